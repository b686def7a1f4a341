# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
"""
Standard interface for climnormals datasets.

All climnormals datasets should inherit from the abstract Dataset class and
implement the basic functionality described here.
"""

from abc import ABC, abstractmethod

import yaml
from pydantic import BaseModel


class Dataset(BaseModel, ABC, validate_default=True, validate_assignment=True):
    """Base class for climnormals datasets.

    Attributes:
        dataset: The name of the dataset.
    """

    dataset: str

    @abstractmethod
    def download(self):
        """Download the data.

        Only downloads if data is not in CONFIG.cache_dir or
        CONFIG.force_override is TRUE.
        """

    def raw_load(self):
        """Loads from disk with minimal modification.

        Mostly intended to provide insight into the modifications made in the
        load method.
        """
        raise NotImplementedError("raw_load not implemented for this dataset.")

    @abstractmethod
    def load(self):
        """Load, harmonize, and optionally pre-process the data."""

    def to_recipe(self):
        """Print out a recipe to reproduce this dataset."""
        recipe = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(recipe, sort_keys=False)
