# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Ephemeral signing key, control-digest signature, and public key export.

Every build generates a fresh RSA keypair. The private half lives only in the
build call's local variables; it is never written anywhere. The public half is
exported as a PEM SubjectPublicKeyInfo block to:

  - the shared trust directory (/etc/apk/keys by default), where the
    verifier looks keys up by file name, and
  - the build's artifact directory, next to the package.

Both exports are best effort: a failure is logged as a warning and the build
continues. Key files are named after the package name and version, so
concurrent builds of different packages never write the same file.

The signature algorithm is fixed by the verifier: RSA PKCS#1 v1.5 over the
SHA1 digest of the control member.
"""

import logging
import os
import tarfile
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric import utils as rsa_utils

from polypack.apk.tarball import OWNER_ID, OWNER_NAME, add_member
from polypack.apk.tgz import ArchiveStream, TarKind, write_tgz
from polypack.logging.logger import get_logger
from polypack.packaging.errors import SigningError
from polypack.utils.hashing import SHA1

_logger: logging.Logger = get_logger(__name__)

SIGNATURE_PREFIX = ".SIGN.RSA."
PUBLIC_KEY_SUFFIX = ".rsa.pub"
SIGNATURE_MODE = 0o600
PUBLIC_EXPONENT = 65537
DEFAULT_KEY_BITS = 2048
USTAR_NAME_LIMIT = 100


def key_identifier(name: str, version: str, prefix: str = "polypack") -> str:
    """Deterministic per-package key id, e.g. "polypack-foo-1.0"."""
    return f"{prefix}-{name}-{version}"


def public_key_filename(key_id: str) -> str:
    return key_id + PUBLIC_KEY_SUFFIX


def signature_entry_name(key_id: str) -> str:
    """Name of the single signature-member entry; the verifier matches it to a key file."""
    return SIGNATURE_PREFIX + public_key_filename(key_id)


def generate_signing_key(key_bits: int = DEFAULT_KEY_BITS) -> rsa.RSAPrivateKey:
    """
    Generate a fresh RSA private key.

    Raises:
        SigningError: If key generation fails.
    """
    try:
        return rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_bits)
    except (ValueError, TypeError) as err:
        raise SigningError(f"Failed to generate {key_bits}-bit RSA key: {err}") from err


def sign_digest(private_key: rsa.RSAPrivateKey, digest: bytes) -> bytes:
    """
    Sign an already-computed SHA1 digest with PKCS#1 v1.5.

    Raises:
        SigningError: If the digest has the wrong length or signing fails.
    """
    try:
        return private_key.sign(digest, padding.PKCS1v15(), rsa_utils.Prehashed(hashes.SHA1()))
    except (ValueError, TypeError) as err:
        raise SigningError(f"Failed to sign control digest: {err}") from err


def verify_digest_signature(
    public_key: rsa.RSAPublicKey,
    signature: bytes,
    digest: bytes,
) -> bool:
    """True if `signature` is a valid PKCS#1 v1.5 / SHA1 signature of `digest`."""
    try:
        public_key.verify(signature, digest, padding.PKCS1v15(), rsa_utils.Prehashed(hashes.SHA1()))
    except InvalidSignature:
        return False
    return True


def public_key_pem(public_key: rsa.RSAPublicKey) -> bytes:
    """PEM "PUBLIC KEY" block, base64 wrapped at 64 columns."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def export_public_key(
    public_key: rsa.RSAPublicKey,
    key_id: str,
    directories: Iterable[Path],
) -> list[Path]:
    """
    Write `<key_id>.rsa.pub` into each directory, creating it if needed.

    Failures are logged and skipped; the returned list holds only the paths
    that were actually written.
    """
    pem = public_key_pem(public_key)
    written: list[Path] = []

    for directory in directories:
        key_path = directory / public_key_filename(key_id)
        try:
            directory.mkdir(mode=0o750, parents=True, exist_ok=True)
            key_path.write_bytes(pem)
        except OSError as err:
            _logger.warning(
                "Failed to export public key, continuing without it",
                extra={"path": str(key_path), "error": str(err)},
            )
            continue
        written.append(key_path)
        _logger.info("Public key exported", extra={"path": str(key_path)})

    return written


def build_signature_archive(
    private_key: rsa.RSAPrivateKey,
    control_digest: bytes,
    key_id: str,
    mtime: Optional[int] = None,
) -> ArchiveStream:
    """
    Sign the control digest and wrap the signature in its one-entry member.

    The entry uses a plain ustar header with mode 0600 and root ownership.
    The name has no directory part to split off, so it must fit the 100-byte
    ustar name field.

    Raises:
        SigningError: If signing fails or the entry name is too long.
    """
    entry_name = signature_entry_name(key_id)
    if len(os.fsencode(entry_name)) > USTAR_NAME_LIMIT:
        raise SigningError(
            f"Signature entry name exceeds {USTAR_NAME_LIMIT} bytes, shorten the key id: {entry_name}"
        )

    signature = sign_digest(private_key, control_digest)

    info = tarfile.TarInfo(entry_name)
    info.size = len(signature)
    info.mode = SIGNATURE_MODE
    info.mtime = int(time.time()) if mtime is None else mtime
    info.uid = info.gid = OWNER_ID
    info.uname = info.gname = OWNER_NAME

    def populate(tar: tarfile.TarFile) -> None:
        add_member(tar, info, signature)

    return write_tgz("signature", TarKind.CUT, populate, SHA1)
