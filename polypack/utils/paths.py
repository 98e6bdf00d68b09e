# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Path utilities for polypack.
"""

import os
from pathlib import Path


def ensure_directory(path: Path) -> Path:
    """
    Create a directory (and parents) if it doesn't exist. Returns the path for chaining.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def directory_size(root: Path) -> int:
    """
    Sum the sizes of every non-directory entry below `root`.

    Symlinks count with their own (lstat) size, not their target's, and are
    never followed into. Any stat failure propagates.

    Raises:
        FileNotFoundError: If root doesn't exist.
        OSError: If an entry can't be stat'ed.
    """
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")

    total = 0
    pending = [root]
    while pending:
        current = pending.pop()
        with os.scandir(current) as it:
            for entry in it:
                if entry.is_dir(follow_symlinks=False):
                    pending.append(Path(entry.path))
                else:
                    total += entry.stat(follow_symlinks=False).st_size
    return total
