from textwrap import dedent

import numpy as np
import pytest
import xarray as xr
from numpy.testing import assert_array_equal
from pydantic import ValidationError

from climnormals.datasets import load_dataset
from climnormals.datasets.terraclimate import (
    TerraClimateNormals,
    extract_area,
    harmonize,
)

"""
To include download, run:

    pytest tests/datasets/test_terraclimate.py --include-downloads
"""

REFERENCE_RECIPE = dedent(
    """\
    dataset: terraclimate_normals
    variables:
    - ppt
    - tmax
    scenario: '19812010'
    area:
      name: colorado
      bbox:
      - -109.06
      - 36.99
      - -102.04
      - 41.0
    """
)


@pytest.fixture
def reference_args(colorado):
    return dict(variables=["ppt", "tmax"], area=colorado)


@pytest.fixture
def grid():
    """4x4 grid of 1x1 degree cells from (0, 0), latitudes descending."""
    return xr.Dataset(
        {"ppt": (("lat", "lon"), np.arange(16.0).reshape(4, 4))},
        coords={"lat": [3.5, 2.5, 1.5, 0.5], "lon": [0.5, 1.5, 2.5, 3.5]},
    )


def test_recipe(reference_args):
    dataset = TerraClimateNormals(**reference_args)

    assert dataset.to_recipe() == REFERENCE_RECIPE


def test_load_recipe():
    dataset = load_dataset(REFERENCE_RECIPE)

    assert isinstance(dataset, TerraClimateNormals)
    assert dataset.variables == ["ppt", "tmax"]
    assert dataset.area.name == "colorado"


def test_defaults():
    dataset = TerraClimateNormals()

    assert tuple(dataset.variables) == ("ppt", "tmax", "tmin")
    assert dataset.scenario == "19812010"
    assert dataset.area is None


def test_numeric_scenario():
    assert TerraClimateNormals(scenario=19611990).scenario == "19611990"


@pytest.mark.parametrize(
    "args", [{"variables": ["precipitation"]}, {"scenario": "3C"}]
)
def test_invalid(args):
    with pytest.raises(ValidationError):
        TerraClimateNormals(**args)


def test_url():
    dataset = TerraClimateNormals(scenario="4C")

    assert dataset._url("ppt") == (
        "http://thredds.northwestknowledge.net:8080/thredds/dodsC/"
        "TERRACLIMATE_ALL/summaries/TerraClimate4C_ppt.nc"
    )


def test_path(cache_dir, reference_args):
    dataset = TerraClimateNormals(**reference_args)

    path = dataset._path("tmax")

    assert path == cache_dir / "terraclimate" / "TerraClimate19812010_tmax_colorado.nc"


def test_download_requires_area():
    with pytest.raises(ValueError, match="area is required"):
        TerraClimateNormals().download()


def test_load_from_cache(cache_dir, reference_args, write_terraclimate):
    dataset = TerraClimateNormals(**reference_args)
    months = np.arange(12, dtype="float64")[:, None, None]
    write_terraclimate(dataset._path("ppt"), "ppt", np.full((12, 3, 4), 10.0))
    write_terraclimate(dataset._path("tmax"), "tmax", months * np.ones((12, 3, 4)))

    stacks = dataset.load()

    assert list(stacks) == ["ppt", "tmax"]
    ppt = stacks["ppt"]
    assert ppt.name == "ppt"
    assert ppt.dims == ("month", "y", "x")
    assert_array_equal(ppt.month, np.arange(1, 13))
    assert ppt.rio.crs == "EPSG:4326"
    assert_array_equal(ppt.values, 10)
    assert_array_equal(stacks["tmax"].sel(month=3).values, 2)


def test_harmonize_drops_crs_variable(write_terraclimate, tmp_path):
    path = write_terraclimate(tmp_path / "subset.nc", "ppt", np.ones((12, 2, 2)))

    with xr.open_dataset(path, decode_times=False) as ds:
        harmonized = harmonize(ds.load())

    assert list(harmonized.data_vars) == ["ppt"]
    assert harmonized.rio.x_dim == "x"
    assert harmonized.rio.y_dim == "y"


def test_extract_area_descending_latitudes(grid):
    subset = extract_area(grid, (1, 1, 3, 3))

    assert_array_equal(subset.lon, [1.5, 2.5])
    assert_array_equal(subset.lat, [2.5, 1.5])


def test_extract_area_ascending_latitudes(grid):
    subset = extract_area(grid.sortby("lat"), (1, 1, 3, 3))

    assert_array_equal(subset.lat, [1.5, 2.5])


def test_extract_area_pad(grid):
    subset = extract_area(grid, (1, 1, 3, 3), pad=0.6)

    assert subset.sizes == {"lat": 4, "lon": 4}


@pytest.mark.download
def test_download(cache_dir):
    dataset = TerraClimateNormals(
        variables=["ppt"],
        area={"name": "denver", "bbox": [-105.2, 39.6, -104.6, 40.0]},
    )

    stacks = dataset.load()

    assert stacks["ppt"].sizes["month"] == 12
    assert stacks["ppt"].notnull().any()
