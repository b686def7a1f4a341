# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""Quick-look maps of rasters and zonal results."""

from pathlib import Path

import geopandas as gpd
import matplotlib.pyplot as plt
import xarray as xr


def plot_layer(
    layer: xr.DataArray,
    aoi: gpd.GeoDataFrame | None = None,
    ax=None,
    cmap: str = "viridis",
):
    """Map a single raster layer, optionally with the AOI outline on top."""
    if ax is None:
        _, ax = plt.subplots()
    layer.plot(ax=ax, cmap=cmap)
    if aoi is not None:
        aoi.boundary.plot(ax=ax, color="black", linewidth=0.5)
    ax.set_title(str(layer.name))
    return ax


def plot_zones(zones: gpd.GeoDataFrame, column: str, ax=None, cmap: str = "viridis"):
    """Choropleth of a zonal statistics column."""
    if ax is None:
        _, ax = plt.subplots()
    zones.plot(
        column=column,
        ax=ax,
        cmap=cmap,
        legend=True,
        edgecolor="black",
        linewidth=0.5,
        missing_kwds={"color": "lightgrey"},
    )
    ax.set_title(column)
    return ax


def save(ax, path: Path):
    """Write the figure of ax to path and close it."""
    fig = ax.get_figure()
    fig.savefig(path, bbox_inches="tight")
    plt.close(fig)
    return path
