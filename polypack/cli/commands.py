# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the polypack CLI.

Each handler returns an exit code. No print() calls: results are reported
through the structured logger.
"""

import argparse
import logging
from pathlib import Path

from polypack.apk.reader import PackageFormatError, read_package
from polypack.cli.exit_codes import CONFIG_ERROR, RUNTIME_ERROR, SUCCESS, VALIDATION_ERROR
from polypack.config.exceptions import ConfigError
from polypack.config.loader import load_config, load_metadata
from polypack.config.schema import PolypackConfig
from polypack.logging.logger import configure_logging, get_logger
from polypack.packaging.errors import BuildPhaseError, PackagingError
from polypack.packaging.registry import create_packer


def _load_and_configure(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, PolypackConfig, logging.Logger]:
    """
    Shared setup: load the config file (if any) and configure logging.

    Returns (exit_code, config, logger). A non-SUCCESS exit code means the
    caller should return it immediately.
    """
    logger = get_logger(f"polypack.cli.{command_name}")
    config = PolypackConfig()

    if args.config is not None:
        try:
            config = load_config(Path(args.config))
        except ConfigError as err:
            configure_logging(args.log_level or "INFO")
            logger.error(
                "Configuration error",
                extra={"command": command_name, "error": str(err)},
            )
            return CONFIG_ERROR, config, logger

    log_file = Path(config.build.log_file) if config.build.log_file else None
    configure_logging(args.log_level or config.build.log_level, log_file)
    return SUCCESS, config, logger


def handle_build(args: argparse.Namespace) -> int:
    """Prepare the staged tree and build one package."""
    exit_code, config, logger = _load_and_configure(args, "build")
    if exit_code != SUCCESS:
        return exit_code

    try:
        metadata = load_metadata(Path(args.metadata))
    except ConfigError as err:
        logger.error("Invalid package metadata", extra={"error": str(err)})
        return CONFIG_ERROR

    staging_dir = Path(args.staging_dir)
    artifacts_dir = Path(args.artifacts_dir)
    if not staging_dir.is_dir():
        logger.error("Staging directory not found", extra={"staging_dir": str(staging_dir)})
        return CONFIG_ERROR

    try:
        packer = create_packer(args.package_format, metadata, staging_dir, config)
        packer.prepare_staging(artifacts_dir)
        package_path = packer.build_package(artifacts_dir)
    except BuildPhaseError as err:
        logger.error(
            "Build failed",
            extra={"package": metadata.name, "phase": err.phase.value, "error": str(err)},
        )
        return RUNTIME_ERROR
    except (PackagingError, OSError) as err:
        logger.error(
            "Build failed",
            extra={"package": metadata.name, "error": str(err)},
            exc_info=True,
        )
        return RUNTIME_ERROR

    logger.info("Build complete", extra={"package": metadata.name, "artifact": str(package_path)})
    return SUCCESS


def handle_inspect(args: argparse.Namespace) -> int:
    """Log every member of a built package and the entries inside it."""
    exit_code, _, logger = _load_and_configure(args, "inspect")
    if exit_code != SUCCESS:
        return exit_code

    package_path = Path(args.package)
    try:
        members = read_package(package_path)
    except OSError as err:
        logger.error("Cannot read package", extra={"package": str(package_path), "error": str(err)})
        return RUNTIME_ERROR
    except PackageFormatError as err:
        logger.error("Malformed package", extra={"package": str(package_path), "error": str(err)})
        return VALIDATION_ERROR

    for member in members:
        logger.info(
            "Member",
            extra={
                "member": member.name,
                "compressed_bytes": len(member.compressed),
                "tar_bytes": len(member.tar_bytes),
                "entries": len(member.entries),
            },
        )
        for entry in member.entries:
            logger.info(
                "Entry",
                extra={
                    "member": member.name,
                    "entry": entry.name,
                    "mode": oct(entry.mode),
                    "size": entry.size,
                    "linkname": entry.linkname or None,
                    "checksum": entry.pax_headers.get("APK-TOOLS.checksum.SHA1"),
                },
            )
    return SUCCESS
