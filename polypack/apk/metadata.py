# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Package metadata record and its rendering into the staged tree.

The rendered .PKGINFO is hashed into the control member, so rendering must be
a pure function of the record: same record, same bytes. Fields are written in
a fixed order and optional fields are omitted entirely when empty, never
emitted blank.

Lifecycle scriptlets live next to .PKGINFO at the root of the staged tree:

    .pre-install      ← pre_install
    .post-install     ← post_install
    .pre-deinstall    ← pre_remove
    .post-deinstall   ← post_remove

Only non-empty bodies produce a file.
"""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from polypack import __version__
from polypack.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

PKGINFO_NAME = ".PKGINFO"

# Record field → file name, in the order they are added to the control member.
SCRIPTLET_FILES: dict[str, str] = {
    "pre_install": ".pre-install",
    "post_install": ".post-install",
    "pre_remove": ".pre-deinstall",
    "post_remove": ".post-deinstall",
}

CONTROL_FILENAMES: frozenset[str] = frozenset({PKGINFO_NAME, *SCRIPTLET_FILES.values()})

SCRIPTLET_SHEBANG = "#!/bin/sh\n"
SCRIPTLET_MODE = 0o755

# Recipe architecture → APK architecture. Unknown names pass through.
APK_ARCHS: dict[str, str] = {
    "x86_64": "x86_64",
    "i686": "x86",
    "aarch64": "aarch64",
    "armv7h": "armv7h",
    "armv6h": "armv6h",
    "any": "all",
}


class PackageMetadata(BaseModel):
    """
    Everything .PKGINFO and the scriptlets are rendered from.

    Dependency-style lists hold pre-formatted strings ("musl>=1.2"); they are
    written verbatim. The record is mutable: prepare_staging stamps size,
    date and tool version, and the build writes data_hash exactly once.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    release: str = Field(default="1", min_length=1)
    arch: str = Field(default="x86_64", min_length=1)
    description: str = ""
    url: str = ""
    license: str = ""
    origin: str = ""
    commit: str = ""
    maintainer: str = ""
    packager: str = ""

    depends: list[str] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    provides: list[str] = Field(default_factory=list)
    replaces: list[str] = Field(default_factory=list)

    installed_size: int = Field(default=0, ge=0)
    build_date: int = Field(default=0, ge=0)
    tool_version: str = __version__
    data_hash: str = ""

    pre_install: str = ""
    post_install: str = ""
    pre_remove: str = ""
    post_remove: str = ""

    @property
    def full_version(self) -> str:
        return f"{self.version}-r{self.release}"

    def scriptlets(self) -> dict[str, str]:
        """Non-empty scriptlet bodies keyed by their file name."""
        bodies: dict[str, str] = {}
        for field_name, file_name in SCRIPTLET_FILES.items():
            body = getattr(self, field_name)
            if body:
                bodies[file_name] = body
        return bodies


def translate_arch(arch: str) -> str:
    return APK_ARCHS.get(arch, arch)


def render_pkginfo(metadata: PackageMetadata) -> str:
    """Render the .PKGINFO text for a metadata record."""
    lines = [
        f"# Generated by polypack {metadata.tool_version}",
        f"pkgname = {metadata.name}",
        f"pkgver = {metadata.full_version}",
    ]

    def optional(key: str, value: str) -> None:
        if value:
            lines.append(f"{key} = {value}")

    optional("pkgdesc", metadata.description)
    optional("url", metadata.url)
    lines.append(f"builddate = {metadata.build_date}")
    optional("packager", metadata.packager or f"polypack {metadata.tool_version}")
    lines.append(f"size = {metadata.installed_size}")
    lines.append(f"arch = {metadata.arch}")
    optional("origin", metadata.origin)
    optional("commit", metadata.commit)
    optional("maintainer", metadata.maintainer)
    optional("license", metadata.license)

    for dep in metadata.depends:
        lines.append(f"depend = {dep}")
    for conflict in metadata.conflicts:
        lines.append(f"depend = !{conflict.lstrip('!')}")
    for provided in metadata.provides:
        lines.append(f"provides = {provided}")
    for replaced in metadata.replaces:
        lines.append(f"replaces = {replaced}")

    optional("datahash", metadata.data_hash)
    return "\n".join(lines) + "\n"


def render_scriptlet(body: str) -> str:
    script = SCRIPTLET_SHEBANG + body
    if not script.endswith("\n"):
        script += "\n"
    return script


def render_metadata(metadata: PackageMetadata, staging_dir: Path) -> list[Path]:
    """
    Write .PKGINFO and the non-empty scriptlets into the staged tree.

    A scriptlet file left over from an earlier render whose body is now empty
    is removed, so the control member only ever reflects the current record.

    Args:
        metadata: The record to render.
        staging_dir: Root of the staged tree; must be writable.

    Returns:
        Paths of the files written, .PKGINFO first.

    Raises:
        OSError: If the staging directory is missing or not writable.
    """
    pkginfo_path = staging_dir / PKGINFO_NAME
    pkginfo_path.write_text(render_pkginfo(metadata), encoding="utf-8")
    written = [pkginfo_path]

    bodies = metadata.scriptlets()
    for file_name in SCRIPTLET_FILES.values():
        script_path = staging_dir / file_name
        if file_name not in bodies:
            script_path.unlink(missing_ok=True)
            continue
        script_path.write_text(render_scriptlet(bodies[file_name]), encoding="utf-8")
        os.chmod(script_path, SCRIPTLET_MODE)
        written.append(script_path)

    _logger.debug(
        "Metadata rendered",
        extra={"package": metadata.name, "files": [p.name for p in written]},
    )
    return written
