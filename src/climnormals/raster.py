# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""
Operations on gridded climate data.

Rasters are xarray objects with spatial dimensions ``y`` and ``x`` and a CRS
written with rioxarray (``raster.rio.write_crs(...)``). Three shapes are
accepted wherever a "raster" is expected:

* a layer: 2-D DataArray,
* a stack: 3-D DataArray with one extra layer dimension (e.g. ``month``),
* a combined stack: Dataset whose data variables are congruent 2-D layers.

Missing cells are NaN. All functions leave their inputs untouched.

Example: Example: Annual precipitation per state

    ```python
    from climnormals.raster import reduce_stack, zonal_statistics

    annual = reduce_stack(normals["ppt"], how="sum", name="ppt")
    zones = zonal_statistics(annual, states)
    ```
"""

import logging
from typing import Literal, Mapping, get_args

import geopandas as gpd
import numpy as np
import pandas as pd
import rioxarray  # noqa: F401 registers the .rio accessor
import xarray as xr
from pyproj import CRS
from rasterio.features import geometry_mask, rasterize
from rasterio.transform import rowcol

logger = logging.getLogger(__name__)

Reducer = Literal["sum", "mean", "min", "max", "median"]
"""Supported reduction functions."""

operators = {
    "mean": np.mean,
    "min": np.min,
    "max": np.max,
    "sum": np.sum,
    "median": np.median,
}


class CRSMismatchError(ValueError):
    """Raster and vector data are not in the same coordinate reference system."""


def normalize_crs(value) -> CRS:
    """Normalize CRS input (string, rasterio or pyproj CRS) into a pyproj CRS."""
    if not isinstance(value, (str, CRS)):
        # rasterio CRS; its authority string survives the conversion best
        value = value.to_string()
    return CRS.from_user_input(value)


def same_crs(left, right) -> bool:
    return normalize_crs(left).equals(normalize_crs(right), ignore_axis_order=True)


def check_same_crs(raster: xr.DataArray | xr.Dataset, vector: gpd.GeoDataFrame):
    """Raise CRSMismatchError unless raster and vector share one CRS."""
    if raster.rio.crs is None:
        raise CRSMismatchError(
            "Raster has no CRS, write one with raster.rio.write_crs()"
        )
    if vector.crs is None:
        raise CRSMismatchError("Vector data has no CRS, set one with gdf.set_crs()")
    if not same_crs(raster.rio.crs, vector.crs):
        raise CRSMismatchError(
            f"Raster CRS ({raster.rio.crs}) differs from vector CRS "
            f"({vector.crs.to_string()}). Reproject first, e.g. with to_raster_crs()."
        )


def to_raster_crs(
    vector: gpd.GeoDataFrame, raster: xr.DataArray | xr.Dataset
) -> gpd.GeoDataFrame:
    """Return a copy of vector reprojected to the CRS of raster."""
    if raster.rio.crs is None:
        raise CRSMismatchError("Raster has no CRS to reproject to")
    return vector.to_crs(normalize_crs(raster.rio.crs))


def _check_reducer(how: str):
    if how not in operators:
        raise ValueError(
            f"Unknown reduction {how!r}, choose from {', '.join(get_args(Reducer))}"
        )


def _layer_dim(stack: xr.DataArray) -> str:
    """Name of the single non-spatial dimension of a stack."""
    spatial = (stack.rio.x_dim, stack.rio.y_dim)
    others = [dim for dim in stack.dims if dim not in spatial]
    if len(others) != 1:
        raise ValueError(
            f"Expected exactly one layer dimension besides {spatial}, got {stack.dims}"
        )
    return str(others[0])


def _as_layers(raster: xr.DataArray | xr.Dataset) -> dict[str, np.ndarray]:
    """Split a layer, stack or combined stack into named (y, x) arrays."""
    if isinstance(raster, xr.Dataset):
        arrays = {str(name): raster[name] for name in raster.data_vars}
    elif raster.ndim == 2:
        name = "value" if raster.name is None else str(raster.name)
        arrays = {name: raster}
    else:
        dim = _layer_dim(raster)
        prefix = "" if raster.name is None else f"{raster.name}_"
        arrays = {
            f"{prefix}{value}": raster.isel({dim: index})
            for index, value in enumerate(raster[dim].values)
        }

    layers = {}
    for name, array in arrays.items():
        if array.ndim != 2:
            raise ValueError(f"Layer {name} should be 2-D, got dims {array.dims}")
        array = array.transpose(raster.rio.y_dim, raster.rio.x_dim)
        layers[name] = np.asarray(array.values, dtype="float64")
    return layers


def _aggregate(values: np.ndarray, how: str, skipna: bool) -> float:
    """Aggregate a flat array of cell values; no valid cells gives NaN."""
    if skipna:
        values = values[~np.isnan(values)]
    if values.size == 0:
        return np.nan
    return float(operators[how](values))


def reduce_stack(
    stack: xr.DataArray,
    how: Reducer = "mean",
    name: str | None = None,
    dim: str | None = None,
    skipna: bool = True,
) -> xr.DataArray:
    """Collapse a stack into a single layer.

    With skipna, each cell is reduced over its valid layers only, so the mean
    divides by the number of valid layers rather than the stack size. Cells
    without any valid layer stay missing, also for ``sum``.

    Args:
        stack: 3-D DataArray with one layer dimension.
        how: Reduction function, one of sum, mean, min, max or median.
        name: Name of the resulting layer. Defaults to the stack name.
        dim: Layer dimension to reduce over. Inferred when None.
        skipna: Ignore missing values.

    Returns:
        2-D layer on the same grid and with the same CRS as the stack.
    """
    _check_reducer(how)
    dim = dim or _layer_dim(stack)
    kwargs = {"min_count": 1} if how == "sum" and skipna else {}
    reduced = getattr(stack, how)(dim=dim, skipna=skipna, **kwargs)

    if stack.rio.crs is not None:
        reduced = reduced.rio.write_crs(stack.rio.crs)
    if name is not None:
        reduced = reduced.rename(name)
    return reduced


def stack_layers(layers: Mapping[str, xr.DataArray]) -> xr.Dataset:
    """Combine named 2-D layers on one grid into a single Dataset."""
    if not layers:
        raise ValueError("At least one layer is required")

    arrays = []
    crs = None
    for name, layer in layers.items():
        if layer.ndim != 2:
            raise ValueError(f"Layer {name} should be 2-D, got dims {layer.dims}")
        if crs is None:
            crs = layer.rio.crs
        elif layer.rio.crs is not None and not same_crs(layer.rio.crs, crs):
            raise CRSMismatchError(f"Layer {name} has a different CRS")
        arrays.append(layer.rename(name))

    try:
        aligned = xr.align(*arrays, join="exact")
    except ValueError as exc:
        raise ValueError("Layers are not on the same grid") from exc

    ds = xr.Dataset({array.name: array for array in aligned})
    if crs is not None:
        ds = ds.rio.write_crs(crs)
    return ds


def clip_to_aoi(
    raster: xr.DataArray | xr.Dataset,
    aoi: gpd.GeoDataFrame,
    all_touched: bool = True,
) -> xr.DataArray | xr.Dataset:
    """Crop raster to the bounds of aoi and mask cells outside its polygons."""
    return raster.rio.clip(
        aoi.geometry.values, crs=aoi.crs, all_touched=all_touched, drop=True
    )


def global_summary(
    raster: xr.DataArray | xr.Dataset,
    how: Reducer = "mean",
    skipna: bool = True,
) -> pd.Series:
    """Reduce every layer to one value.

    Returns:
        Series indexed by layer name. Layers without any valid cell get NaN.
    """
    _check_reducer(how)
    layers = _as_layers(raster)
    summary = {
        name: _aggregate(values.ravel(), how, skipna) for name, values in layers.items()
    }
    return pd.Series(summary, dtype="float64", name=how)


def zonal_statistics(
    raster: xr.DataArray | xr.Dataset,
    zones: gpd.GeoDataFrame,
    how: Reducer = "mean",
    skipna: bool = True,
    all_touched: bool = False,
    as_polygons: bool = True,
) -> gpd.GeoDataFrame | xr.DataArray | xr.Dataset:
    """Aggregate raster cells per zone.

    A cell belongs to a zone when its centre lies inside the zone polygon, or
    when the polygon touches it at all if all_touched is set. Zones without
    valid cells, for example zones outside the raster extent, get NaN.

    Args:
        raster: Layer, stack or combined stack.
        zones: Polygons in the same CRS as raster.
        how: Aggregation function.
        skipna: Ignore missing cells.
        all_touched: Include every cell touched by a zone.
        as_polygons: Return zones with one extra column per layer. If False,
            return a raster on the input grid where cells inside each zone hold
            that zone's aggregate. Where zones overlap the last one wins.

    Raises:
        CRSMismatchError: When raster and zones are in different CRSs.
    """
    _check_reducer(how)
    check_same_crs(raster, zones)

    layers = _as_layers(raster)
    transform = raster.rio.transform()
    shape = (raster.rio.height, raster.rio.width)

    results: dict[str, list[float]] = {name: [] for name in layers}
    for geometry in zones.geometry:
        if geometry is None or geometry.is_empty:
            mask = np.zeros(shape, dtype=bool)
        else:
            mask = geometry_mask(
                [geometry],
                out_shape=shape,
                transform=transform,
                all_touched=all_touched,
                invert=True,
            )
        for name, values in layers.items():
            results[name].append(_aggregate(values[mask], how, skipna))

    logger.info(f"Aggregated {len(layers)} layer(s) over {len(zones)} zones")
    empty = sum(np.isnan(values).all() for values in zip(*results.values()))
    if empty:
        logger.warning(f"{empty} of {len(zones)} zones have no valid cells")

    if as_polygons:
        gdf = zones.copy()
        for name, column in results.items():
            gdf[name] = column
        return gdf

    return _zones_to_raster(raster, zones.geometry, results, all_touched)


def _zones_to_raster(raster, geometries, results, all_touched):
    """Burn zone aggregates onto the grid of raster."""
    transform = raster.rio.transform()
    shape = (raster.rio.height, raster.rio.width)
    y_dim, x_dim = raster.rio.y_dim, raster.rio.x_dim
    coords = {y_dim: raster[y_dim].values, x_dim: raster[x_dim].values}

    burned = {}
    for name, values in results.items():
        shapes = [
            (geometry, value)
            for geometry, value in zip(geometries, values)
            if geometry is not None and not geometry.is_empty and not np.isnan(value)
        ]
        if shapes:
            array = rasterize(
                shapes,
                out_shape=shape,
                transform=transform,
                fill=np.nan,
                all_touched=all_touched,
                dtype="float64",
            )
        else:
            array = np.full(shape, np.nan)
        burned[name] = xr.DataArray(
            array, coords=coords, dims=(y_dim, x_dim), name=name
        )

    if isinstance(raster, xr.DataArray) and raster.ndim == 2:
        (layer,) = burned.values()
        return layer.rio.write_crs(raster.rio.crs)
    return xr.Dataset(burned).rio.write_crs(raster.rio.crs)


def extract_values(
    raster: xr.DataArray | xr.Dataset,
    points: gpd.GeoDataFrame,
) -> gpd.GeoDataFrame:
    """Sample raster layers at point locations.

    Every point takes the value of the cell containing it, no interpolation.
    All layers are sampled in one pass. Points outside the raster extent,
    including points on the far edge of the last row or column, get NaN.

    Args:
        raster: Layer, stack or combined stack.
        points: Point geometries in the same CRS as raster. Use
            :func:`to_raster_crs` to reproject them first.

    Returns:
        Copy of points with one extra column per layer.

    Raises:
        CRSMismatchError: When raster and points are in different CRSs.
        ValueError: When points contains non-point geometries.
    """
    check_same_crs(raster, points)
    if not (points.geom_type == "Point").all():
        raise ValueError("Can only extract values at point geometries")

    layers = _as_layers(raster)
    height, width = raster.rio.height, raster.rio.width
    rows, cols = rowcol(
        raster.rio.transform(),
        points.geometry.x.to_numpy(),
        points.geometry.y.to_numpy(),
        op=np.floor,
    )
    rows = np.asarray(rows, dtype="float64")
    cols = np.asarray(cols, dtype="float64")
    inside = (cols >= 0) & (cols < width) & (rows >= 0) & (rows < height)
    rows = rows[inside].astype(int)
    cols = cols[inside].astype(int)

    gdf = points.copy()
    for name, values in layers.items():
        sampled = np.full(len(points), np.nan)
        sampled[inside] = values[rows, cols]
        gdf[name] = sampled

    outside = int((~inside).sum())
    if outside:
        logger.info(f"{outside} of {len(points)} points are outside the raster extent")
    return gdf
