# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""
This module contains functionality to download and load TerraClimate
climate normals.

TerraClimate is a monthly climate and water balance dataset for global
terrestrial surfaces at 1/24 degree (~4 km). The normals are the monthly
averages over a 30 year period, or over a period representing a +2C or +4C
warmer climate.

Source: <https://www.climatologylab.org/terraclimate.html>

Fetches data through OPeNDAP from
<http://thredds.northwestknowledge.net:8080/thredds/catalog/TERRACLIMATE_ALL/summaries/catalog.html>.
Only the bounding box of the requested area is transferred and cached.

Example: Example: Precipitation and temperature normals around Denver

    ```python
    from climnormals.datasets.terraclimate import TerraClimateNormals

    dataset = TerraClimateNormals(
        variables=["ppt", "tmax", "tmin"],
        area={"name": "denver", "bbox": [-105.2, 39.6, -104.6, 40.0]},
    )
    dataset.download()
    stacks = dataset.load()
    stacks["ppt"]  # 12 monthly layers
    ```
"""

import logging
from typing import Literal, Sequence

import numpy as np
import rioxarray  # noqa: F401 registers the .rio accessor
import xarray as xr
from pydantic import field_validator

from climnormals.config import CONFIG
from climnormals.datasets.abstract import Dataset
from climnormals.utils import WGS84, NamedArea

logger = logging.getLogger(__name__)

THREDDS_ROOT = (
    "http://thredds.northwestknowledge.net:8080/thredds/dodsC/"
    "TERRACLIMATE_ALL/summaries"
)

RESOLUTION = 1 / 24
"""Grid spacing of TerraClimate in degrees."""

Variable = Literal[
    "aet",
    "def",
    "pet",
    "ppt",
    "q",
    "soil",
    "srad",
    "swe",
    "tmax",
    "tmin",
    "vap",
    "vpd",
    "ws",
    "PDSI",
]

Scenario = Literal["19611990", "19812010", "2C", "4C"]


class TerraClimateNormals(Dataset):
    """Monthly TerraClimate normals.

    Attributes:
        variables: Variables to download. Options:

            * aet: Actual evapotranspiration (mm)
            * def: Climate water deficit (mm)
            * pet: Potential evapotranspiration (mm)
            * ppt: Precipitation (mm)
            * q: Runoff (mm)
            * soil: Soil moisture (mm)
            * srad: Downward shortwave radiation (W/m2)
            * swe: Snow water equivalent (mm)
            * tmax: Maximum temperature (°C)
            * tmin: Minimum temperature (°C)
            * vap: Vapor pressure (kPa)
            * vpd: Vapor pressure deficit (kPa)
            * ws: Wind speed (m/s)
            * PDSI: Palmer Drought Severity Index

        scenario: Normal period. "19611990" and "19812010" are historical
            periods, "2C" and "4C" represent a climate 2 or 4 degrees warmer
            than the pre-industrial climate.
        area: A dictionary of the form
            `{"name": "yourname", "bbox": [xmin, ymin, xmax, ymax]}`.
            Required for downloading; the global grid is not supported.
    """

    dataset: Literal["terraclimate_normals"] = "terraclimate_normals"
    variables: Sequence[Variable] = ("ppt", "tmax", "tmin")
    scenario: Scenario = "19812010"
    area: NamedArea | None = None

    @field_validator("scenario", mode="before")
    @classmethod
    def _scenario_as_string(cls, value):
        # yaml reads 19812010 as a number
        return str(value)

    @property
    def _root_dir(self):
        return CONFIG.cache_dir / "terraclimate"

    def _url(self, variable: Variable) -> str:
        return f"{THREDDS_ROOT}/TerraClimate{self.scenario}_{variable}.nc"

    def _path(self, variable: Variable):
        assert self.area, "area should be set"  # type narrowing
        filename = f"TerraClimate{self.scenario}_{variable}_{self.area.name}.nc"
        return self._root_dir / filename

    def _maybe_download(self, variable: Variable):
        """Download the data and return the file path."""
        path = self._path(variable)
        if path.exists() and not CONFIG.force_override:
            logger.info(f"Found {path}")
            return path

        self._root_dir.mkdir(parents=True, exist_ok=True)
        url = self._url(variable)
        logger.info(f"Downloading {variable} for {self.area.name} from {url}")
        with xr.open_dataset(url, decode_times=False) as ds:
            subset = extract_area(ds[[variable]], self.area.bbox, pad=RESOLUTION)
            subset.load().to_netcdf(path)
        return path

    def download(self):
        """Download all variables and return the file paths."""
        if self.area is None:
            raise ValueError("An area is required to download TerraClimate normals")
        return [self._maybe_download(variable) for variable in self.variables]

    def raw_load(self) -> xr.Dataset:
        """All variables as stored in the cache."""
        datasets = []
        for path in self.download():
            with xr.open_dataset(path, decode_times=False) as ds:
                datasets.append(ds.load())
        return xr.merge(datasets)

    def load(self) -> dict[str, xr.DataArray]:
        """Monthly stacks per variable.

        Returns:
            Dictionary with a DataArray for every variable, with dimensions
            (month, y, x), months numbered 1 to 12 and CRS EPSG:4326.
        """
        ds = harmonize(self.raw_load())
        return {variable: ds[variable] for variable in self.variables}


def extract_area(ds, bbox, pad: float = 0.0, x: str = "lon", y: str = "lat"):
    """Extract bounding box from xarray dataset, padded by pad degrees.

    Works for both ascending and descending latitudes.
    """
    xmin, ymin, xmax, ymax = bbox
    ys = ds[y].values
    if ys.size > 1 and ys[0] > ys[-1]:
        yslice = slice(ymax + pad, ymin - pad)
    else:
        yslice = slice(ymin - pad, ymax + pad)
    return ds.sel({x: slice(xmin - pad, xmax + pad), y: yslice})


def harmonize(ds: xr.Dataset) -> xr.Dataset:
    """Rename to x/y/month, number months 1-12 and write the CRS."""
    ds = ds.rename({"lon": "x", "lat": "y", "time": "month"})
    ds = ds.assign_coords(month=np.arange(1, ds.sizes["month"] + 1))
    if "crs" in ds.data_vars:
        ds = ds.drop_vars("crs")
    ds = ds.transpose("month", "y", "x")
    return ds.rio.write_crs(WGS84)
