# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Gzip framing with 512-byte alignment and a running digest.

Each member of an .apk is produced the same way:

    populate(tar) ──► tar bytes ──► [digest + byte counter] ──► gzip ──► bytes

After the tar stream is complete, zero bytes are pushed through the counter
until the uncompressed length is a multiple of 512, and only then is the gzip
member closed. The digest is taken over exactly those padded tar bytes, not
over the gzip output; the signature covers the uncompressed control tar.

Two tar shapes exist:
  - FULL: the tar ends with its two-block end-of-archive marker (data member)
  - CUT:  the marker is dropped (control and signature members), so the
          concatenated members decompress into one continuous tar stream
"""

import gzip
import io
import tarfile
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

from polypack.utils.hashing import new_hasher

TAR_BLOCK_SIZE = tarfile.BLOCKSIZE  # 512
END_OF_ARCHIVE = tarfile.NUL * (TAR_BLOCK_SIZE * 2)


class TarKind(Enum):
    FULL = "full"
    CUT = "cut"


@dataclass(frozen=True)
class ArchiveStream:
    """One compressed member of the package, held fully in memory."""

    name: str
    data: bytes
    digest: bytes
    tar_size: int

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()


class _DigestingWriter:
    """Counts and digests every byte on its way into `sink`."""

    def __init__(self, sink: BinaryIO, algorithm: str) -> None:
        self._sink = sink
        self._hasher = new_hasher(algorithm)
        self.count = 0

    def write(self, data: bytes) -> int:
        written = self._sink.write(data)
        self._hasher.update(data)
        self.count += len(data)
        return written

    def digest(self) -> bytes:
        return self._hasher.digest()


def aligned_size(size: int) -> int:
    return (size + TAR_BLOCK_SIZE - 1) // TAR_BLOCK_SIZE * TAR_BLOCK_SIZE


def serialize_tar(populate: Callable[[tarfile.TarFile], object], kind: TarKind) -> bytes:
    """
    Run `populate` against a fresh PAX tar writer and return the raw tar bytes.

    The end-of-archive marker is appended for FULL tars only. tarfile's own
    record-size padding is never emitted; alignment happens in `write_tgz`.
    """
    staging = io.BytesIO()
    with tarfile.open(
        fileobj=staging,
        mode="w",
        format=tarfile.PAX_FORMAT,
        encoding="utf-8",
        errors="surrogateescape",
    ) as tar:
        populate(tar)
        entries_end = tar.offset

    body = staging.getvalue()[:entries_end]
    if kind is TarKind.FULL:
        body += END_OF_ARCHIVE
    return body


def write_tgz(
    name: str,
    kind: TarKind,
    populate: Callable[[tarfile.TarFile], object],
    algorithm: str,
) -> ArchiveStream:
    """
    Build one gzip member from the entries `populate` writes.

    Args:
        name: Label of the member ("signature", "control", "data").
        kind: Whether the tar keeps its end-of-archive marker.
        populate: Callback that writes entries into the tar writer.
        algorithm: Digest over the padded tar bytes, sha1 or sha256.

    Returns:
        ArchiveStream with the compressed bytes, the digest, and the padded
        uncompressed size.
    """
    body = serialize_tar(populate, kind)

    compressed = io.BytesIO()
    with gzip.GzipFile(filename="", fileobj=compressed, mode="wb", mtime=0) as gz:
        writer = _DigestingWriter(gz, algorithm)
        writer.write(body)
        padding = aligned_size(writer.count) - writer.count
        if padding:
            writer.write(tarfile.NUL * padding)
        tar_size = writer.count
        digest = writer.digest()

    return ArchiveStream(name=name, data=compressed.getvalue(), digest=digest, tar_size=tar_size)
