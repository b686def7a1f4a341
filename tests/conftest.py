import zipfile
from contextlib import contextmanager

import geopandas as gpd
import matplotlib
import numpy as np
import pytest
import rioxarray  # noqa: F401
import xarray as xr
from shapely.geometry import box

from climnormals.config import CONFIG

matplotlib.use("Agg")


### Temporarily change the cache dir

@pytest.fixture
def temporary_cache_dir(tmp_path):
    """Temporarily change the cache dir in config."""
    @contextmanager
    def context_manager():
        old_cache_dir = CONFIG.cache_dir
        CONFIG.cache_dir = tmp_path / "cache"
        yield CONFIG.cache_dir
        CONFIG.cache_dir = old_cache_dir
    return context_manager


@pytest.fixture
def cache_dir(temporary_cache_dir):
    """Run the test with an empty cache dir."""
    with temporary_cache_dir() as path:
        yield path


### Add marker to skip download tests
### https://docs.pytest.org/en/latest/example/simple.html#control-skipping-of-tests-according-to-command-line-option

def pytest_addoption(parser):
    parser.addoption(
        "--include-downloads", action="store_true", help="Also test download functionality."
    )


def pytest_configure(config):
    config.addinivalue_line("markers", "download: mark test as including downloads")


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--include-downloads"):
        skip_download = pytest.mark.skip(reason="need --include-downloads option to run")
        for item in items:
            if "download" in item.keywords:
                item.add_marker(skip_download)


### Synthetic rasters

def raster(values, xmin=0.0, ymax=None, res=1.0, name=None, crs="EPSG:4326"):
    """Layer (2-D values) or monthly stack (3-D values) with 1x1 cells from (xmin, 0)."""
    values = np.asarray(values, dtype="float64")
    height, width = values.shape[-2:]
    if ymax is None:
        ymax = height * res
    coords = {
        "y": ymax - res * (np.arange(height) + 0.5),
        "x": xmin + res * (np.arange(width) + 0.5),
    }
    dims = ("y", "x")
    if values.ndim == 3:
        coords["month"] = np.arange(1, values.shape[0] + 1)
        dims = ("month", "y", "x")
    return xr.DataArray(values, coords=coords, dims=dims, name=name).rio.write_crs(crs)


@pytest.fixture
def make_raster():
    return raster


@pytest.fixture
def make_points():
    def points(xy, crs="EPSG:4326"):
        x, y = zip(*xy)
        return gpd.GeoDataFrame(
            {"site": [f"site{i}" for i in range(len(xy))]},
            geometry=gpd.points_from_xy(x, y),
            crs=crs,
        )
    return points


### Test areas

@pytest.fixture
def colorado():
    return {"name": "colorado", "bbox": [-109.06, 36.99, -102.04, 41.0]}


### Synthetic downloads

STATES = gpd.GeoDataFrame(
    {"NAME": ["Alpha", "Beta"], "STUSPS": ["AA", "BB"]},
    geometry=[box(0, 0, 2, 2), box(2, 0, 4, 2)],
    crs="EPSG:4326",
)


@pytest.fixture
def census_states(cache_dir, tmp_path):
    """Two states, Alpha and Beta, side by side as cached census boundaries."""
    shp_dir = tmp_path / "shp"
    shp_dir.mkdir()
    STATES.to_file(shp_dir / "cb_2018_us_state_20m.shp")

    path = cache_dir / "census" / "cb_2018_us_state_20m.zip"
    path.parent.mkdir(parents=True)
    with zipfile.ZipFile(path, "w") as archive:
        for file in shp_dir.iterdir():
            archive.write(file, arcname=file.name)
    return STATES


@pytest.fixture
def write_terraclimate():
    """Write (month, y, x) values as a cached TerraClimate subset.

    The grid has 1x1 degree cells starting at (0, 0), latitudes descending.
    """
    def write(path, variable, values):
        values = np.asarray(values, dtype="float64")
        months, height, width = values.shape
        ds = xr.Dataset(
            {
                variable: (("time", "lat", "lon"), values),
                "crs": ((), 3),
            },
            coords={
                "time": np.arange(months, dtype="float64"),
                "lat": height - 0.5 - np.arange(height),
                "lon": np.arange(width) + 0.5,
            },
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        ds.to_netcdf(path)
        return path
    return write
