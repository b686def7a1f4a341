# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""Local vector files, for example observation sites."""

import logging
from pathlib import Path
from typing import Literal

import geopandas as gpd

from climnormals.datasets.abstract import Dataset

logger = logging.getLogger(__name__)


class VectorFile(Dataset):
    """Simple features from a local file.

    Example:

        from climnormals.datasets.vector import VectorFile
        sites = VectorFile(dsn="data/sites.gpkg", layer="weather_stations")
        gdf = sites.load()

    Attributes:
        dsn: Path to a file or directory readable by geopandas, e.g. a
            GeoPackage, a shapefile directory or a GeoJSON file.
        layer: Name of the layer within dsn. If None, the first layer.
    """

    dataset: Literal["vector_file"] = "vector_file"
    dsn: Path
    layer: str | None = None

    def download(self):
        """Nothing to download; check that the file exists."""
        if not self.dsn.exists():
            raise FileNotFoundError(f"{self.dsn} not found")
        return self.dsn

    def load(self) -> gpd.GeoDataFrame:
        path = self.download()
        gdf = gpd.read_file(path, layer=self.layer)
        logger.info(f"Read {len(gdf)} features from {path}")
        return gdf
