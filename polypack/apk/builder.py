# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
The .apk build pipeline.

One call to `build_apk` walks a strictly sequential set of phases:

    hash → metadata → key generation → data archive → control archive
         → signature archive → concatenation

  1. The aggregate payload digest is computed and written into the record.
  2. .PKGINFO (now carrying datahash) and the scriptlets are rendered.
  3. A fresh RSA keypair is generated; its public half is exported.
  4. The data member is built (FULL tar, SHA256 digest).
  5. The control member is built (CUT tar, SHA1 digest).
  6. The control digest is signed into the signature member (CUT tar).
  7. signature ‖ control ‖ data are written to the artifact path.

Everything before step 7 happens in memory, so memory use grows with the
payload size. A failure stops the build at once and surfaces as a
BuildPhaseError naming the phase. There is no rollback: the staged tree may
hold the freshly rendered .PKGINFO, and a failure during step 7 may leave a
partial artifact behind for the caller to remove.

All state is local to the call. Concurrent builds of different packages are
safe; the only shared resource is the trust directory, where each build
writes its own uniquely named key file.
"""

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from polypack.apk.datahash import compute_data_hash
from polypack.apk.metadata import PackageMetadata, render_metadata
from polypack.apk.signing import (
    build_signature_archive,
    export_public_key,
    generate_signing_key,
    key_identifier,
)
from polypack.apk.tarball import iter_control_entries, iter_data_entries, write_entries
from polypack.apk.tgz import ArchiveStream, TarKind, write_tgz
from polypack.config.schema import BuildConfig
from polypack.logging.logger import get_logger
from polypack.packaging.errors import BuildPhase, BuildPhaseError
from polypack.utils.hashing import SHA1, SHA256

_logger: logging.Logger = get_logger(__name__)

PACKAGE_SUFFIX = ".apk"


@dataclass(frozen=True)
class BuildResult:
    """Outcome of a successful package build."""

    package_path: Path
    key_id: str
    public_key_paths: list[Path]
    data_hash: str
    data_size: int
    data_digest: str
    control_digest: str
    size_bytes: int


def package_filename(metadata: PackageMetadata) -> str:
    """`<name>-<version>-r<release>.<arch>.apk`"""
    return f"{metadata.name}-{metadata.full_version}.{metadata.arch}{PACKAGE_SUFFIX}"


@contextmanager
def _phase(phase: BuildPhase, package: str) -> Iterator[None]:
    _logger.debug("Phase started", extra={"package": package, "phase": phase.value})
    try:
        yield
    except BuildPhaseError:
        raise
    except Exception as err:
        _logger.error(
            "Phase failed",
            extra={"package": package, "phase": phase.value, "error": str(err)},
        )
        raise BuildPhaseError(phase, str(err)) from err
    _logger.info("Phase complete", extra={"package": package, "phase": phase.value})


def concatenate_archives(target: BinaryIO, streams: Sequence[ArchiveStream]) -> int:
    """Write each stream's compressed bytes to `target` in order. Returns bytes written."""
    total = 0
    for stream in streams:
        target.write(stream.data)
        total += len(stream.data)
    return total


def build_data_archive(staging_dir: Path) -> ArchiveStream:
    return write_tgz(
        "data",
        TarKind.FULL,
        lambda tar: write_entries(tar, iter_data_entries(staging_dir)),
        SHA256,
    )


def build_control_archive(staging_dir: Path) -> ArchiveStream:
    return write_tgz(
        "control",
        TarKind.CUT,
        lambda tar: write_entries(tar, iter_control_entries(staging_dir)),
        SHA1,
    )


def build_apk(
    metadata: PackageMetadata,
    staging_dir: Path,
    artifacts_dir: Path,
    config: BuildConfig,
) -> BuildResult:
    """
    Build a signed .apk from a staged tree.

    Args:
        metadata: The package record. Its data_hash is overwritten.
        staging_dir: Root of the staged installation tree.
        artifacts_dir: Where the package and the exported public key land.
        config: Trust directory, key naming and key size.

    Returns:
        BuildResult describing the written artifact.

    Raises:
        BuildPhaseError: If any phase fails; `phase` names which one.
    """
    package = metadata.name
    started = time.monotonic()
    _logger.info(
        "Building package",
        extra={"package": package, "version": metadata.full_version, "staging_dir": str(staging_dir)},
    )

    with _phase(BuildPhase.HASH, package):
        metadata.data_hash = compute_data_hash(staging_dir)

    with _phase(BuildPhase.METADATA, package):
        render_metadata(metadata, staging_dir)

    with _phase(BuildPhase.KEYGEN, package):
        private_key = generate_signing_key(config.key_bits)
        key_id = key_identifier(metadata.name, metadata.version, config.key_prefix)
        public_key_paths = export_public_key(
            private_key.public_key(),
            key_id,
            [Path(config.trust_dir), artifacts_dir],
        )

    with _phase(BuildPhase.DATA_ARCHIVE, package):
        data = build_data_archive(staging_dir)

    with _phase(BuildPhase.CONTROL_ARCHIVE, package):
        _logger.debug(
            "Control archive references data member",
            extra={"package": package, "data_size": len(data.data), "data_digest": data.hexdigest},
        )
        control = build_control_archive(staging_dir)

    with _phase(BuildPhase.SIGNATURE_ARCHIVE, package):
        signature = build_signature_archive(
            private_key, control.digest, key_id, mtime=metadata.build_date or None
        )

    package_path = artifacts_dir / package_filename(metadata)
    with _phase(BuildPhase.CONCATENATION, package):
        artifacts_dir.mkdir(parents=True, exist_ok=True)
        with open(package_path, "wb") as out:
            size_bytes = concatenate_archives(out, [signature, control, data])

    _logger.info(
        "Package built",
        extra={
            "package": package,
            "artifact": str(package_path),
            "size_bytes": size_bytes,
            "elapsed_s": round(time.monotonic() - started, 3),
        },
    )

    return BuildResult(
        package_path=package_path,
        key_id=key_id,
        public_key_paths=public_key_paths,
        data_hash=metadata.data_hash,
        data_size=len(data.data),
        data_digest=data.hexdigest,
        control_digest=control.hexdigest,
        size_bytes=size_bytes,
    )
