# SPDX-FileCopyrightText: 2024 Climnormals authors
#
# SPDX-License-Identifier: Apache-2.0
from pathlib import Path

from pydantic import BaseModel, field_validator
from xdg_base_dirs import xdg_cache_home


class Config(BaseModel, validate_assignment=True, validate_default=True):
    cache_dir: Path = xdg_cache_home() / "climnormals"
    output_root_dir: Path = Path(".")
    force_override: bool = False

    @field_validator("cache_dir")
    def _make_dir(cls, path):
        """Create dirs if they don't exist yet."""
        if not path.exists():
            print(f"Creating folder {path}")
            path.mkdir(parents=True)
        return path


CONFIG = Config()
