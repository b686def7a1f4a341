# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
from typing import NamedTuple

import geopandas as gpd
from pydantic import BaseModel, field_validator
from shapely.geometry import Polygon

WGS84 = "EPSG:4326"


class BoundingBox(NamedTuple):
    """Bounding box as (xmin, ymin, xmax, ymax) in WGS84 degrees."""

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    @classmethod
    def from_geodataframe(cls, gdf: gpd.GeoDataFrame):
        """Bounding box around all geometries, in WGS84."""
        if gdf.crs is not None:
            gdf = gdf.to_crs(WGS84)
        xmin, ymin, xmax, ymax = gdf.total_bounds
        return cls(float(xmin), float(ymin), float(xmax), float(ymax))


class NamedArea(BaseModel):
    """Named area with bounding box.

    The name is used in cache filenames, so keep it short and unique for
    every distinct bounding box.

    Example:

        >>> NamedArea(name="colorado", bbox=[-109.06, 36.99, -102.04, 41.0]).bbox
        BoundingBox(xmin=-109.06, ymin=36.99, xmax=-102.04, ymax=41.0)

    """

    name: str
    bbox: BoundingBox

    @field_validator("bbox")
    def _parse_bbox(cls, values):
        xmin, ymin, xmax, ymax = values
        assert xmax > xmin, "xmax should be larger than xmin"
        assert ymax > ymin, "ymax should be larger than ymin"
        assert ymax <= 90 and ymin >= -90, "Latitudes should be in [-90, 90]"
        assert xmin >= -180 and xmax <= 180, "Longitudes should be in [-180, 180]."
        return values

    @classmethod
    def from_geodataframe(cls, name: str, gdf: gpd.GeoDataFrame):
        """Area covering the union of all geometries in gdf."""
        return cls(name=name, bbox=BoundingBox.from_geodataframe(gdf))

    @property
    def polygon(self):
        return Polygon.from_bounds(*self.bbox)
