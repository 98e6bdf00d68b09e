# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Format tag → packer factory.

A build target picks its backend exactly once, by tag, through `create_packer`.
The registry is populated at import time by `_register_builtins()` and is not
modified afterwards.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from polypack.apk.metadata import PackageMetadata
from polypack.apk.packer import ApkPacker
from polypack.config.schema import PolypackConfig
from polypack.logging.logger import get_logger
from polypack.packaging.errors import UnsupportedFormatError
from polypack.packaging.interface import Packer

_logger: logging.Logger = get_logger(__name__)

PackerFactory = Callable[[PackageMetadata, Path, PolypackConfig], Packer]

_PACKER_REGISTRY: dict[str, PackerFactory] = {}


def register_packer(format_tag: str, factory: PackerFactory) -> None:
    """
    Register a packer factory under a unique format tag.

    Raises:
        ValueError: If the tag is already registered.
    """
    if format_tag in _PACKER_REGISTRY:
        raise ValueError(f"Packer format '{format_tag}' is already registered")
    _PACKER_REGISTRY[format_tag] = factory
    _logger.debug("Registered packer", extra={"format": format_tag})


def list_formats() -> list[str]:
    """Sorted list of registered format tags."""
    return sorted(_PACKER_REGISTRY.keys())


def create_packer(
    format_tag: str,
    metadata: PackageMetadata,
    staging_dir: Path,
    config: PolypackConfig,
) -> Packer:
    """
    Instantiate the packer for `format_tag`.

    Raises:
        UnsupportedFormatError: If no packer is registered for the tag.
    """
    factory = _PACKER_REGISTRY.get(format_tag)
    if factory is None:
        raise UnsupportedFormatError(
            f"Unknown package format '{format_tag}'. Available: {list_formats()}"
        )
    return factory(metadata, staging_dir, config)


def _register_builtins() -> None:
    register_packer(ApkPacker.format_tag, ApkPacker)


_register_builtins()
