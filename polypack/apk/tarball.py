# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tar serialization of staged entries, with per-file checksum records.

Header rules:
  - regular file → PAX header carrying APK-TOOLS.checksum.SHA1 = sha1(content),
    followed by the content
  - symlink      → PAX header carrying the checksum of empty content, plus the
    link target exactly as readlink returns it (dangling targets are fine)
  - directory, fifo, device → plain ustar header, no extended records; a
    path longer than 100 bytes is split into the ustar prefix field

Names are written as the raw filesystem bytes, so a staged name that is not
valid UTF-8 lands in the archive unchanged.

Ownership is always uid/gid 0, uname/gname "root", whatever the staged tree
says. Any read or stat failure aborts the archive; nothing is skipped.
"""

import io
import logging
import os
import stat
import tarfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from polypack.apk.datahash import StagedEntry, iter_payload_entries
from polypack.apk.metadata import PKGINFO_NAME, SCRIPTLET_FILES
from polypack.logging.logger import get_logger
from polypack.packaging.errors import ArchiveEntryError
from polypack.utils.hashing import EMPTY_SHA1_HEX, compute_sha1_bytes

_logger: logging.Logger = get_logger(__name__)

CHECKSUM_RECORD = "APK-TOOLS.checksum.SHA1"
OWNER_ID = 0
OWNER_NAME = "root"


@dataclass
class TarEntry:
    """In-memory form of one archive member, built and dropped per archive."""

    name: str
    mode: int
    type: bytes
    mtime: int = 0
    linkname: str = ""
    content: Optional[bytes] = None
    checksum: Optional[str] = None
    devmajor: int = 0
    devminor: int = 0

    def to_tarinfo(self) -> tarfile.TarInfo:
        info = tarfile.TarInfo(self.name)
        info.type = self.type
        info.mode = self.mode
        info.mtime = self.mtime
        info.linkname = self.linkname
        info.size = len(self.content) if self.content is not None else 0
        info.uid = info.gid = OWNER_ID
        info.uname = info.gname = OWNER_NAME
        info.devmajor = self.devmajor
        info.devminor = self.devminor
        records: dict[str, str] = {}
        if self.checksum is not None:
            records[CHECKSUM_RECORD] = self.checksum
        info.pax_headers = records
        return info


def _read_content(path: Path, name: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as err:
        raise ArchiveEntryError(name, "read", str(err)) from err


def entry_from_staged(staged: StagedEntry, name: Optional[str] = None) -> TarEntry:
    """
    Build the TarEntry for one lstat'ed path.

    Raises:
        ArchiveEntryError: If the content or link target can't be read, or
            the file type has no tar representation (sockets).
    """
    name = name or staged.relpath
    st = staged.st
    entry = TarEntry(
        name=name,
        mode=stat.S_IMODE(st.st_mode),
        type=tarfile.REGTYPE,
        mtime=int(st.st_mtime),
    )

    if staged.is_regular:
        entry.content = _read_content(staged.path, name)
        entry.checksum = compute_sha1_bytes(entry.content)
    elif staged.is_symlink:
        try:
            entry.linkname = os.readlink(staged.path)
        except OSError as err:
            raise ArchiveEntryError(name, "readlink", str(err)) from err
        entry.type = tarfile.SYMTYPE
        entry.checksum = EMPTY_SHA1_HEX
    elif staged.is_dir:
        entry.type = tarfile.DIRTYPE
    elif stat.S_ISFIFO(st.st_mode):
        entry.type = tarfile.FIFOTYPE
    elif stat.S_ISCHR(st.st_mode) or stat.S_ISBLK(st.st_mode):
        entry.type = tarfile.CHRTYPE if stat.S_ISCHR(st.st_mode) else tarfile.BLKTYPE
        entry.devmajor = os.major(st.st_rdev)
        entry.devminor = os.minor(st.st_rdev)
    else:
        raise ArchiveEntryError(name, "serialize", "unsupported file type")

    return entry


def entry_from_path(path: Path, name: str) -> TarEntry:
    """Stat `path` without following symlinks and build its TarEntry."""
    try:
        st = os.lstat(path)
    except OSError as err:
        raise ArchiveEntryError(name, "stat", str(err)) from err
    return entry_from_staged(StagedEntry(path=path, relpath=name, st=st))


def iter_data_entries(staging_dir: Path) -> Iterator[TarEntry]:
    """Every payload entry of the staged tree, in walk order."""
    try:
        for staged in iter_payload_entries(staging_dir):
            yield entry_from_staged(staged)
    except OSError as err:
        raise ArchiveEntryError(str(staging_dir), "walk", str(err)) from err


def iter_control_entries(staging_dir: Path) -> Iterator[TarEntry]:
    """
    .PKGINFO followed by whichever scriptlets are present, in fixed order.

    Raises:
        ArchiveEntryError: If .PKGINFO is missing or any present file can't be read.
    """
    yield entry_from_path(staging_dir / PKGINFO_NAME, PKGINFO_NAME)
    for file_name in SCRIPTLET_FILES.values():
        script_path = staging_dir / file_name
        if os.path.lexists(script_path):
            yield entry_from_path(script_path, file_name)


def add_member(tar: tarfile.TarFile, info: tarfile.TarInfo, content: Optional[bytes] = None) -> None:
    """
    Append one member. A header with extended records is written in PAX form;
    any other header is plain ustar, with long paths split into the prefix
    field instead of spilling into a PAX path record.

    Raises:
        ValueError: If a ustar header cannot hold the name.
    """
    tar.format = tarfile.PAX_FORMAT if info.pax_headers else tarfile.USTAR_FORMAT
    tar.addfile(info, io.BytesIO(content) if content is not None else None)


def write_entries(tar: tarfile.TarFile, entries: Iterable[TarEntry]) -> int:
    """
    Append entries to an open tar writer. Returns the number written.

    Raises:
        ArchiveEntryError: If an entry can't be serialized.
    """
    count = 0
    for entry in entries:
        info = entry.to_tarinfo()
        try:
            add_member(tar, info, entry.content)
        except (ValueError, tarfile.TarError) as err:
            raise ArchiveEntryError(entry.name, "write header", str(err)) from err
        count += 1
        _logger.debug(
            "Archived entry",
            extra={"entry": entry.name, "size": info.size, "checksum": entry.checksum},
        )
    return count
