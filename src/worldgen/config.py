# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2024-2026 SYMFLUENCE Team <dev@symfluence.org>

"""
Worldfile generation configuration.

Configuration is a flat YAML file with upper-case keys. Loading precedence
(highest to lowest):
1. Programmatic / CLI overrides
2. Environment variables (WORLDGEN_<KEY>)
3. Config file (YAML)
4. Field defaults
"""

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .exceptions import ConfigurationError

# Standard ConfigDict for all config models
FROZEN_CONFIG = ConfigDict(extra='allow', populate_by_name=True, frozen=True)

ENV_PREFIX = 'WORLDGEN_'

# Keys resolved against the config file's directory when relative
PATH_KEYS = ('TEMPLATE_PATH', 'CELL_TABLE_PATH', 'WORLDFILE_PATH', 'ASPATIAL_RULES_PATH', 'LOG_FILE')


class WorldGenConfig(BaseModel):
    """Inputs, output and runtime settings of one worldfile generation run."""
    model_config = FROZEN_CONFIG

    # Inputs
    template_path: Path = Field(alias='TEMPLATE_PATH', description='Parsed template (YAML or JSON)')
    cell_table_path: Path = Field(alias='CELL_TABLE_PATH', description='Cell table file or GeoTIFF directory')
    cell_table_format: Literal['auto', 'csv', 'parquet', 'geotiff'] = Field(
        default='auto', alias='CELL_TABLE_FORMAT'
    )
    cell_width: Optional[float] = Field(default=None, alias='CELL_WIDTH', gt=0)
    cell_height: Optional[float] = Field(default=None, alias='CELL_HEIGHT', gt=0)
    aspatial_rules_path: Optional[Path] = Field(default=None, alias='ASPATIAL_RULES_PATH')

    # Output
    worldfile_path: Path = Field(alias='WORLDFILE_PATH')
    overwrite: bool = Field(default=False, alias='OVERWRITE')

    # Runtime
    show_progress: bool = Field(default=True, alias='SHOW_PROGRESS')
    log_level: Literal['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'] = Field(default='INFO', alias='LOG_LEVEL')
    log_file: Optional[Path] = Field(default=None, alias='LOG_FILE')

    @field_validator('template_path', 'cell_table_path', 'worldfile_path', 'aspatial_rules_path', 'log_file')
    @classmethod
    def expand_paths(cls, v):
        """Expand ``~`` in paths."""
        return Path(v).expanduser() if v is not None else v

    @field_validator('log_level', mode='before')
    @classmethod
    def upper_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode='after')
    def check_cell_size(self):
        """Tabular cell tables carry no geometry, so the cell size must be configured."""
        tabular = self.cell_table_format in ('csv', 'parquet') or (
            self.cell_table_format == 'auto' and self.cell_table_path.suffix != ''
        )
        if tabular and self.cell_width is None:
            raise ValueError("CELL_WIDTH is required when the cell table is a CSV or Parquet file")
        return self

    @property
    def effective_cell_height(self) -> Optional[float]:
        return self.cell_height if self.cell_height is not None else self.cell_width

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'WorldGenConfig':
        try:
            return cls(**_filter_none_values(values))
        except ValidationError as e:
            raise ConfigurationError(_format_validation_error(e)) from e

    @classmethod
    def from_file(
        cls,
        path: Path,
        overrides: Optional[Dict[str, Any]] = None,
        *,
        use_env: bool = True,
    ) -> 'WorldGenConfig':
        """
        Load configuration from YAML with environment and explicit overrides.

        Relative paths in the file are resolved against the file's directory.

        Raises:
            FileNotFoundError: If the config file is missing.
            ConfigurationError: If the configuration is invalid.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Could not parse configuration file {path}: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping of keys")

        config_dict = {_normalize_key(k): v for k, v in file_config.items()}
        for key in PATH_KEYS:
            value = config_dict.get(key)
            if value and not Path(value).expanduser().is_absolute():
                config_dict[key] = str(path.parent / value)

        if use_env:
            config_dict.update(_load_env_overrides())
        if overrides:
            config_dict.update({_normalize_key(k): v for k, v in overrides.items()})

        return cls.from_dict(config_dict)


def _normalize_key(key: str) -> str:
    return str(key).strip().upper()


def _load_env_overrides() -> Dict[str, str]:
    """Collect WORLDGEN_<KEY> environment variables for known keys."""
    aliases = {field.alias for field in WorldGenConfig.model_fields.values() if field.alias}
    overrides = {}
    for alias in aliases:
        value = os.environ.get(f"{ENV_PREFIX}{alias}")
        if value is not None:
            overrides[alias] = value
    return overrides


def _filter_none_values(d: Dict[str, Any]) -> Dict[str, Any]:
    """Drop explicit nulls so Pydantic falls back to field defaults."""
    return {k: v for k, v in d.items() if v is not None}


def _format_validation_error(error: ValidationError) -> str:
    lines = ["Invalid worldfile generation configuration:"]
    for err in error.errors():
        location = '.'.join(str(part) for part in err.get('loc', ())) or '<root>'
        lines.append(f"  - {location}: {err.get('msg')}")
    return '\n'.join(lines)
