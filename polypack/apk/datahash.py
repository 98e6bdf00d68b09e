# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Staged-tree walk and the aggregate payload digest.

The walk visits entries in the order os.scandir yields them, depth first,
each directory before its contents. That order is NOT sorted: it is whatever
the filesystem returns, so the digest is only stable for a given tree on a
given filesystem. Walkers that sort each directory lexically (filepath.Walk
and friends) can produce a different digest for the same tree.

For every payload entry the hasher is fed, in this order:
  1. the entry's relative path as raw filesystem bytes, "/"-separated
  2. one byte: the low 8 bits of its permission mode
  3. the file content, for regular files only
"""

import os
import stat
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from polypack.apk.metadata import CONTROL_FILENAMES
from polypack.utils.hashing import HASH_BUFFER_SIZE, SHA256, new_hasher


@dataclass(frozen=True)
class StagedEntry:
    """One lstat'ed entry of the staged tree."""

    path: Path
    relpath: str
    st: os.stat_result

    @property
    def is_regular(self) -> bool:
        return stat.S_ISREG(self.st.st_mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.st.st_mode)

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.st.st_mode)


def iter_payload_entries(staging_dir: Path) -> Iterator[StagedEntry]:
    """
    Yield every payload entry below `staging_dir` in filesystem order.

    Control files (.PKGINFO and the scriptlets) are skipped at the top level
    only; a same-named file deeper in the tree is ordinary payload. Symlinks
    are reported, never followed.

    Raises:
        OSError: If any directory can't be listed or any entry can't be stat'ed.
    """

    def walk(directory: Path, prefix: str) -> Iterator[StagedEntry]:
        with os.scandir(directory) as it:
            children = list(it)
        for child in children:
            if not prefix and child.name in CONTROL_FILENAMES:
                continue
            relpath = f"{prefix}{child.name}"
            entry = StagedEntry(
                path=Path(child.path),
                relpath=relpath,
                st=child.stat(follow_symlinks=False),
            )
            yield entry
            if entry.is_dir:
                yield from walk(entry.path, relpath + "/")

    yield from walk(staging_dir, "")


def compute_data_hash(staging_dir: Path) -> str:
    """
    Hex SHA256 over the payload of a staged tree.

    Re-running on an unmodified tree yields the same digest.

    Raises:
        OSError: If any entry can't be stat'ed or read.
    """
    hasher = new_hasher(SHA256)
    for entry in iter_payload_entries(staging_dir):
        hasher.update(os.fsencode(entry.relpath))
        hasher.update(bytes([entry.st.st_mode & 0xFF]))
        if entry.is_regular:
            with open(entry.path, "rb") as f:
                while True:
                    chunk = f.read(HASH_BUFFER_SIZE)
                    if not chunk:
                        break
                    hasher.update(chunk)
    return hasher.hexdigest()
