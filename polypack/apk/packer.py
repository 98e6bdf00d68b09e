# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
ApkPacker, the Alpine-style implementation of the Packer contract.

Staging and building happen in-process. Install, dependency preparation and
index refresh drive the system package manager; every invocation builds a
fresh argv from PackerConfig, so nothing accumulates between calls.
"""

import logging
import subprocess
import time
from pathlib import Path

from polypack import __version__
from polypack.apk.builder import BuildResult, build_apk, package_filename
from polypack.apk.metadata import PackageMetadata, render_metadata, translate_arch
from polypack.config.schema import PolypackConfig
from polypack.logging.logger import get_logger
from polypack.packaging.errors import PackagingError
from polypack.utils.paths import directory_size, ensure_directory

_logger: logging.Logger = get_logger(__name__)

COMMAND_TIMEOUT_SECONDS = 1800


class ApkPacker:
    """Builds and installs .apk packages for one metadata record."""

    format_tag = "apk"

    def __init__(
        self,
        metadata: PackageMetadata,
        staging_dir: Path,
        config: PolypackConfig,
    ) -> None:
        self.metadata = metadata
        self.staging_dir = staging_dir
        self.config = config
        self.last_result: BuildResult | None = None

    def prepare_staging(self, artifacts_dir: Path) -> None:
        """
        Stamp the record and render .PKGINFO and the scriptlets.

        Installed size is measured before anything is rendered, so it counts
        payload only.
        """
        meta = self.metadata
        meta.arch = translate_arch(meta.arch)
        meta.installed_size = directory_size(self.staging_dir)
        meta.build_date = int(time.time())
        meta.tool_version = __version__
        if not meta.origin:
            meta.origin = meta.name

        ensure_directory(artifacts_dir)
        render_metadata(meta, self.staging_dir)
        _logger.info(
            "Staging prepared",
            extra={"package": meta.name, "arch": meta.arch, "installed_size": meta.installed_size},
        )

    def build_package(self, artifacts_dir: Path) -> Path:
        self.last_result = build_apk(self.metadata, self.staging_dir, artifacts_dir, self.config.build)
        return self.last_result.package_path

    def install(self, artifacts_dir: Path) -> None:
        package_path = artifacts_dir / package_filename(self.metadata)
        if not package_path.is_file():
            raise PackagingError(f"Package not found, build it first: {package_path}")
        self._run_package_manager([*self.config.packer.install_args, str(package_path)])

    def prepare_dependencies(self, make_depends: list[str]) -> None:
        if not make_depends:
            return
        self._run_package_manager([*self.config.packer.install_args, *make_depends])

    def prepare_environment(self, extra_tools: list[str]) -> None:
        packer = self.config.packer
        self._run_package_manager([*packer.install_args, *packer.build_env_deps, *extra_tools])

    def refresh_index(self) -> None:
        self._run_package_manager(list(self.config.packer.update_args))

    def _run_package_manager(self, args: list[str]) -> None:
        argv = [self.config.packer.package_manager, *args]
        _logger.info("Running package manager", extra={"argv": argv})
        try:
            subprocess.run(
                argv,
                check=True,
                capture_output=True,
                text=True,
                timeout=COMMAND_TIMEOUT_SECONDS,
            )
        except FileNotFoundError as err:
            raise PackagingError(f"Package manager not found: {argv[0]}") from err
        except subprocess.CalledProcessError as err:
            raise PackagingError(
                f"{argv[0]} exited with status {err.returncode}: {err.stderr.strip()}"
            ) from err
        except subprocess.TimeoutExpired as err:
            raise PackagingError(
                f"{argv[0]} timed out after {COMMAND_TIMEOUT_SECONDS} seconds"
            ) from err
