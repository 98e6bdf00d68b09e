# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Config loader: reads YAML from disk and produces validated models.

The loading pipeline is linear:
  1. Read the file
  2. Parse as YAML into a plain dict
  3. Hand the dict to pydantic for schema validation

Any failure stops immediately with a ConfigLoadError (I/O, YAML) or a
ConfigValidationError (schema). No fallback defaults are substituted for a
broken file.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from polypack.apk.metadata import PackageMetadata
from polypack.config.exceptions import ConfigLoadError, ConfigValidationError
from polypack.config.schema import PolypackConfig


def _read_yaml_file(path: Path) -> dict[str, Any]:
    """
    Read a YAML file and return the parsed mapping.

    Raises:
        ConfigLoadError: If the file doesn't exist, isn't readable, or isn't a YAML mapping.
    """
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    if not path.is_file():
        raise ConfigLoadError(f"Config path is not a file: {path}")

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigLoadError(f"Cannot read config file {path}: {err}") from err

    try:
        parsed = yaml.safe_load(raw_text)
    except yaml.YAMLError as err:
        raise ConfigLoadError(f"Invalid YAML in {path}: {err}") from err

    if parsed is None:
        return {}

    if not isinstance(parsed, dict):
        raise ConfigLoadError(
            f"Config file must contain a YAML mapping (dict), got {type(parsed).__name__}"
        )

    return parsed


def load_config(config_path: Path) -> PolypackConfig:
    """
    Load and validate a polypack config file.

    A top-level `package:` section is ignored here; it belongs to
    `load_metadata`, so one file can carry both.

    Raises:
        ConfigLoadError: File I/O or YAML parse failures.
        ConfigValidationError: Schema violations.
    """
    raw_data = _read_yaml_file(config_path)
    raw_data.pop("package", None)

    try:
        return PolypackConfig.model_validate(raw_data)
    except ValidationError as err:
        raise ConfigValidationError(f"Config validation failed for {config_path}:\n{err}") from err


def load_metadata(metadata_path: Path) -> PackageMetadata:
    """
    Load a package metadata record.

    The record is either the whole file or, when the file also carries
    build settings, its `package:` section.

    Raises:
        ConfigLoadError: File I/O or YAML parse failures.
        ConfigValidationError: Schema violations.
    """
    raw_data = _read_yaml_file(metadata_path)
    if "package" in raw_data:
        raw_data = raw_data["package"]
        if not isinstance(raw_data, dict):
            raise ConfigLoadError(f"'package' section in {metadata_path} must be a mapping")

    try:
        return PackageMetadata.model_validate(raw_data)
    except ValidationError as err:
        raise ConfigValidationError(
            f"Package metadata validation failed for {metadata_path}:\n{err}"
        ) from err
