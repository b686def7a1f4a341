# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""
Administrative boundaries to use as area of interest.

Fetches the cartographic boundary files of the US Census Bureau from
<https://www.census.gov/geographies/mapping-files/time-series/geo/cartographic-boundary.html>.

Example: Example: Load the four corner states

    ```python
    from climnormals.datasets.boundaries import USStates

    aoi = USStates(states=["Colorado", "Utah", "AZ", "NM"])
    aoi.download()
    gdf = aoi.load()
    ```
"""

import logging
from typing import Iterable, Literal, Sequence

import geopandas as gpd
import requests
from pydantic import field_validator

from climnormals.config import CONFIG
from climnormals.datasets.abstract import Dataset
from climnormals.utils import WGS84, NamedArea

logger = logging.getLogger(__name__)

BoundaryResolution = Literal["500k", "5m", "20m"]
"""Generalization level of the boundary files; 500k is the most detailed."""


class UnknownRegionError(ValueError):
    """None of the boundaries matches the requested region name."""


class USStates(Dataset):
    """US state boundaries.

    Attributes:
        states: Names ("Colorado") or postal abbreviations ("CO") of the
            states to select. Matching is case-insensitive. Features are
            returned in the requested order.
        resolution: One of "500k", "5m" or "20m".
        year: Vintage of the boundary files.
    """

    dataset: Literal["us_states"] = "us_states"
    states: Sequence[str]
    resolution: BoundaryResolution = "20m"
    year: int = 2018

    @field_validator("states")
    @classmethod
    def _not_empty(cls, states):
        assert len(states) > 0, "At least one state is required"
        return states

    @field_validator("year")
    @classmethod
    def _valid_year(cls, year):
        assert year >= 2014, f"Asked for year {year}, but no boundaries before 2014"
        return year

    @property
    def name(self) -> str:
        """Short name of the selection, used in cache filenames."""
        return "_".join(sorted(state.lower().replace(" ", "-") for state in self.states))

    @property
    def _root_dir(self):
        return CONFIG.cache_dir / "census"

    @property
    def _filename(self):
        return f"cb_{self.year}_us_state_{self.resolution}.zip"

    @property
    def _url(self):
        return f"https://www2.census.gov/geo/tiger/GENZ{self.year}/shp/{self._filename}"

    @property
    def _path(self):
        return self._root_dir / self._filename

    def download(self):
        """Download the boundary file if it is not in the cache yet."""
        path = self._path
        if path.exists() and not CONFIG.force_override:
            logger.info(f"Found {path}")
            return path

        path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading {self._url} to {path}")
        response = requests.get(self._url, timeout=120)
        response.raise_for_status()
        path.write_bytes(response.content)
        return path

    def raw_load(self) -> gpd.GeoDataFrame:
        """All state boundaries as published."""
        return gpd.read_file(self.download())

    def load(self) -> gpd.GeoDataFrame:
        """Selected states in WGS84.

        Raises:
            UnknownRegionError: when any of the states is not recognized.
        """
        gdf = select_regions(self.raw_load(), self.states)
        logger.info(f"Selected {len(gdf)} state(s): {', '.join(gdf['NAME'])}")
        return gdf.to_crs(WGS84).reset_index(drop=True)

    def area(self, gdf: gpd.GeoDataFrame | None = None) -> NamedArea:
        """Bounding box around the selected states."""
        if gdf is None:
            gdf = self.load()
        return NamedArea.from_geodataframe(self.name, gdf)


def select_regions(
    gdf: gpd.GeoDataFrame,
    names: Iterable[str],
    columns: Sequence[str] = ("NAME", "STUSPS"),
) -> gpd.GeoDataFrame:
    """Select features whose value in any of columns matches one of names.

    Duplicates are dropped, the first occurrence decides the order.
    """
    names = list(names)
    lookup = {}
    for column in columns:
        for index, value in gdf[column].items():
            lookup.setdefault(str(value).lower(), index)

    unknown = [name for name in names if name.lower() not in lookup]
    if unknown:
        raise UnknownRegionError(f"Unknown region(s): {', '.join(unknown)}")

    indices = list(dict.fromkeys(lookup[name.lower()] for name in names))
    return gdf.loc[indices]
