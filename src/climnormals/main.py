# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
import logging
from datetime import datetime
from pathlib import Path
from tempfile import gettempdir
from typing import Dict, NamedTuple, Optional

import click
import geopandas as gpd
import pandas as pd
import xarray as xr
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from climnormals import plotting
from climnormals.config import CONFIG
from climnormals.config import Config as ClimnormalsConfig
from climnormals.datasets.boundaries import USStates
from climnormals.datasets.terraclimate import TerraClimateNormals
from climnormals.datasets.vector import VectorFile
from climnormals.raster import (
    Reducer,
    clip_to_aoi,
    extract_values,
    global_summary,
    reduce_stack,
    stack_layers,
    to_raster_crs,
    zonal_statistics,
)

logger = logging.getLogger(__name__)


class Session(BaseModel, validate_default=True):
    """Session for executing a workflow."""

    output_dir: Path = Path(gettempdir()) / "output"

    @field_validator("output_dir")
    def _make_dir(cls, path):
        """Create dirs if they don't exist yet."""
        if not path.exists():
            print(f"Creating folder {path}")
            path.mkdir(parents=True)
        return path

    @classmethod
    def for_recipe(
        cls,
        recipe: Path,
        output_dir: Path | None = None,
        config: ClimnormalsConfig = CONFIG,
    ) -> "Session":
        if output_dir is None:
            now = datetime.now().strftime("%Y%m%d-%H%M%S")
            output_dir = config.output_root_dir / f"climnormals-{recipe.stem}-{now}"
        return cls(output_dir=output_dir)


class WorkflowResult(NamedTuple):
    """Intermediate and final products of a workflow run."""

    aoi: gpd.GeoDataFrame
    stacks: dict[str, xr.DataArray]
    """Monthly stacks per variable, masked to the AOI."""
    layers: xr.Dataset
    """Summary layer per variable."""
    global_summary: pd.Series
    zones: gpd.GeoDataFrame
    """AOI polygons with one aggregated column per variable."""
    points: gpd.GeoDataFrame | None
    """Points with one sampled column per variable."""


class Workflow(BaseModel):
    """Summarize climate normals over an area and at points.

    Attributes:
        aoi: Regions to summarize over.
        normals: Climate normals to download. When its area is not given it is
            set to the bounding box of the AOI.
        reducers: How to collapse the monthly stack of every variable into a
            single layer, e.g. total precipitation and mean temperature.
        points: Optional point locations to sample the summary layers at.
        global_statistic: Aggregation of each summary layer into one number.
        zonal_statistic: Aggregation of each summary layer per AOI polygon.
        plots: Save maps of the summary layers and zonal results.
    """

    aoi: USStates
    normals: TerraClimateNormals = Field(default_factory=TerraClimateNormals)
    reducers: Dict[str, Reducer] = {"ppt": "sum", "tmax": "mean", "tmin": "mean"}
    points: Optional[VectorFile] = None
    global_statistic: Reducer = "mean"
    zonal_statistic: Reducer = "mean"
    plots: bool = False

    @model_validator(mode="after")
    def _reducer_per_variable(self):
        variables = set(self.normals.variables)
        extra = set(self.reducers) - variables
        if extra:
            raise ValueError(f"Reducers given for variables not downloaded: {extra}")
        missing = variables - set(self.reducers)
        if missing:
            raise ValueError(f"No reducer given for variables: {missing}")
        return self

    @classmethod
    def from_recipe(cls, recipe: Path):
        with open(recipe, "r") as raw_recipe:
            options = yaml.safe_load(raw_recipe)

        return cls(**options)

    def to_recipe(self):
        """Return the workflow as a recipe string."""
        return yaml.dump(self.model_dump(mode="json"), sort_keys=False)

    def save_recipe(self, path: Path):
        """Save the workflow as a recipe file."""

        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, sort_keys=False)

    def run(self) -> WorkflowResult:
        """Download, reduce, aggregate and extract."""
        aoi = self.aoi.load()
        if self.normals.area is None:
            self.normals.area = self.aoi.area(aoi)

        stacks = {
            variable: clip_to_aoi(stack, aoi)
            for variable, stack in self.normals.load().items()
        }
        logger.info(f"Loaded normals for {', '.join(stacks)}")

        layers = stack_layers(
            {
                variable: reduce_stack(stack, how=self.reducers[variable], name=variable)
                for variable, stack in stacks.items()
            }
        )

        summary = global_summary(layers, how=self.global_statistic)
        logger.info(f"Global {self.global_statistic} per layer:\n{summary}")

        zones = zonal_statistics(
            layers, to_raster_crs(aoi, layers), how=self.zonal_statistic
        )

        points = None
        if self.points is not None:
            points = extract_values(layers, to_raster_crs(self.points.load(), layers))
            logger.info(f"Extracted {len(layers.data_vars)} layers at {len(points)} points")

        return WorkflowResult(aoi, stacks, layers, summary, zones, points)

    def execute(self, session: Session) -> WorkflowResult:
        """Run the workflow and write the results to the session output dir."""
        result = self.run()
        # run() fills in normals.area
        self.save_recipe(session.output_dir / "recipe.yaml")

        summary_fn = session.output_dir / "global_summary.csv"
        result.global_summary.rename_axis("layer").to_csv(summary_fn)
        result.zones.to_file(session.output_dir / "zones.geojson")
        if result.points is not None:
            result.points.to_file(session.output_dir / "points.geojson")

        if self.plots:
            self._plot(result, session.output_dir)

        logger.info(f"Results saved to: {session.output_dir}")
        return result

    def _plot(self, result: WorkflowResult, output_dir: Path):
        logger.info(f"Saving plots to {output_dir}")
        for variable in result.layers.data_vars:
            ax = plotting.plot_layer(result.layers[variable], result.aoi)
            plotting.save(ax, output_dir / f"{variable}.png")
            ax = plotting.plot_zones(result.zones, str(variable))
            plotting.save(ax, output_dir / f"zones_{variable}.png")


def main(recipe, output_dir: Optional[Path]):
    session = Session.for_recipe(recipe, output_dir)

    Workflow.from_recipe(recipe).execute(session)


@click.command
@click.argument("recipe", type=click.Path(exists=True, path_type=Path))
@click.option("--cache-dir", default=CONFIG.cache_dir, type=click.Path(path_type=Path))
@click.option("--output-dir", default=None, type=click.Path(path_type=Path))
@click.option(
    "--output-root-dir", default=CONFIG.output_root_dir, type=click.Path(path_type=Path)
)
@click.option(
    "--force-override", is_flag=True, default=False, help="Ignore cached downloads."
)
def cli(
    recipe: Path,
    cache_dir: Path,
    output_dir: Optional[Path],
    output_root_dir: Path,
    force_override: bool,
):
    """Summarize climate normals as described in RECIPE."""
    logging.basicConfig(level=logging.INFO)
    CONFIG.cache_dir = cache_dir
    CONFIG.output_root_dir = output_root_dir
    CONFIG.force_override = force_override
    main(recipe, output_dir)


if __name__ == "__main__":
    cli()
