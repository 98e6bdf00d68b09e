# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for polypack.

The .apk format fixes the algorithms: SHA1 for per-file checksum records and
for the control/signature members, SHA256 for the data member and for the
aggregate payload hash. Callers pick one by name so the choice stays visible
at the call site.
"""

import hashlib
from pathlib import Path
from typing import Any

SHA1 = "sha1"
SHA256 = "sha256"
HASH_BUFFER_SIZE = 65536  # 64 KiB

# SHA1 of b"", the checksum record every symlink entry carries.
EMPTY_SHA1_HEX = "da39a3ee5e6b4b0d3255bfef95601890afd80709"


def new_hasher(algorithm: str) -> Any:
    """
    Return a fresh streaming hasher for `algorithm`.

    Raises:
        ValueError: If the algorithm is neither sha1 nor sha256.
    """
    if algorithm == SHA1:
        # Mandated by the package format; not a security boundary here.
        return hashlib.sha1(usedforsecurity=False)
    if algorithm == SHA256:
        return hashlib.sha256()
    raise ValueError(f"Unsupported hash algorithm '{algorithm}'. Use '{SHA1}' or '{SHA256}'.")


def compute_file_digest(file_path: Path, algorithm: str = SHA256) -> str:
    """
    Compute the hex digest of a file, reading it in 64 KiB chunks.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = new_hasher(algorithm)
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha1_bytes(data: bytes) -> str:
    """Hex SHA1 of raw bytes."""
    hasher = new_hasher(SHA1)
    hasher.update(data)
    return hasher.hexdigest()


def compute_sha256_bytes(data: bytes) -> str:
    """Hex SHA256 of raw bytes."""
    return hashlib.sha256(data).hexdigest()
