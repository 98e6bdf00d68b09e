# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The contract every package-format backend fulfils.

A build target selects exactly one backend (by format tag, see
`polypack.packaging.registry`) and then drives it through this capability
set. Backends share no base class; conformance is structural.
"""

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Packer(Protocol):
    """Capability set of a package-format backend."""

    format_tag: str

    def prepare_staging(self, artifacts_dir: Path) -> None:
        """Render format metadata into the staged tree ahead of the build."""
        ...

    def build_package(self, artifacts_dir: Path) -> Path:
        """Produce the artifact in `artifacts_dir` and return its path."""
        ...

    def install(self, artifacts_dir: Path) -> None:
        """Install the artifact previously built into `artifacts_dir`."""
        ...

    def prepare_dependencies(self, make_depends: list[str]) -> None:
        """Install the build-time dependencies of the recipe."""
        ...

    def prepare_environment(self, extra_tools: list[str]) -> None:
        """Install the format's base toolchain plus `extra_tools`."""
        ...

    def refresh_index(self) -> None:
        """Refresh the system package manager's index."""
        ...
