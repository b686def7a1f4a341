# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""Functionality related to working with data sources."""

from typing import Union

import yaml
from pydantic import Field, TypeAdapter
from typing_extensions import Annotated

from climnormals.datasets.boundaries import USStates
from climnormals.datasets.terraclimate import TerraClimateNormals
from climnormals.datasets.vector import VectorFile

Datasets = Annotated[
    Union[
        USStates,
        TerraClimateNormals,
        VectorFile,
    ],
    Field(discriminator="dataset"),
]


def load_dataset(recipe: str) -> Datasets:
    """Load a dataset formatted as (yaml) recipe.

    Args:
        recipe: the yaml representation of the dataset.

    """
    model_dict = yaml.safe_load(recipe)

    dataset_loader = TypeAdapter(Datasets)
    dataset = dataset_loader.validate_python(model_dict)
    return dataset  # type: ignore  # https://github.com/pydantic/pydantic/discussions/7094
