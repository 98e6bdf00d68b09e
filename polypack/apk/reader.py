# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Read a built .apk back into its members and entries.

This is an inspection aid for `polypack inspect` and the test suite. It does
not verify signatures against a trust store and it installs nothing.
"""

import io
import tarfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from polypack.packaging.errors import PackagingError

MEMBER_NAMES = ("signature", "control", "data")


class PackageFormatError(PackagingError):
    """The file is not a sequence of complete gzip members holding tar streams."""


@dataclass(frozen=True)
class EntryInfo:
    name: str
    type: bytes
    mode: int
    size: int
    linkname: str
    uid: int
    gid: int
    uname: str
    gname: str
    pax_headers: dict[str, str] = field(default_factory=dict)
    content: Optional[bytes] = None


@dataclass(frozen=True)
class PackageMember:
    name: str
    compressed: bytes
    tar_bytes: bytes
    entries: list[EntryInfo]


def split_gzip_members(blob: bytes) -> list[tuple[bytes, bytes]]:
    """
    Split concatenated gzip members.

    Returns:
        (compressed, decompressed) pairs, in file order.

    Raises:
        PackageFormatError: On corrupt or truncated gzip data.
    """
    members: list[tuple[bytes, bytes]] = []
    remaining = blob
    while remaining:
        decompressor = zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
        try:
            tar_bytes = decompressor.decompress(remaining) + decompressor.flush()
        except zlib.error as err:
            raise PackageFormatError(f"Corrupt gzip member #{len(members) + 1}: {err}") from err
        if not decompressor.eof:
            raise PackageFormatError(f"Truncated gzip member #{len(members) + 1}")
        consumed = len(remaining) - len(decompressor.unused_data)
        members.append((remaining[:consumed], tar_bytes))
        remaining = decompressor.unused_data
    return members


def read_tar_entries(tar_bytes: bytes) -> list[EntryInfo]:
    """List the entries of an uncompressed tar stream, with or without its end marker."""
    if not tar_bytes:
        return []
    try:
        with tarfile.open(
            fileobj=io.BytesIO(tar_bytes),
            mode="r:",
            encoding="utf-8",
            errors="surrogateescape",
        ) as tar:
            entries: list[EntryInfo] = []
            for info in tar:
                content = None
                if info.isreg():
                    extracted = tar.extractfile(info)
                    content = extracted.read() if extracted is not None else b""
                entries.append(
                    EntryInfo(
                        name=info.name,
                        type=info.type,
                        mode=info.mode,
                        size=info.size,
                        linkname=info.linkname,
                        uid=info.uid,
                        gid=info.gid,
                        uname=info.uname,
                        gname=info.gname,
                        pax_headers=dict(info.pax_headers),
                        content=content,
                    )
                )
            return entries
    except tarfile.TarError as err:
        raise PackageFormatError(f"Invalid tar stream: {err}") from err


def read_package(package_path: Path) -> list[PackageMember]:
    """
    Split an .apk into its gzip members and list each member's entries.

    Members are named signature / control / data by position when there are
    exactly three, and member-<n> otherwise.

    Raises:
        OSError: If the file can't be read.
        PackageFormatError: If the content isn't gzip'd tar.
    """
    blob = package_path.read_bytes()
    raw_members = split_gzip_members(blob)
    if len(raw_members) == len(MEMBER_NAMES):
        names = list(MEMBER_NAMES)
    else:
        names = [f"member-{i}" for i in range(1, len(raw_members) + 1)]

    return [
        PackageMember(
            name=name,
            compressed=compressed,
            tar_bytes=tar_bytes,
            entries=read_tar_entries(tar_bytes),
        )
        for name, (compressed, tar_bytes) in zip(names, raw_members)
    ]
