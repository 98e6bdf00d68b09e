# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Exceptions raised while producing a package.

A build is a strict sequence of phases. Whatever goes wrong inside a phase
reaches the caller as a BuildPhaseError naming that phase, with the original
exception chained as __cause__.
"""

from enum import Enum


class BuildPhase(str, Enum):
    """The sequential phases of an archive build, in execution order."""

    HASH = "hash"
    METADATA = "metadata"
    KEYGEN = "key generation"
    DATA_ARCHIVE = "data archive"
    CONTROL_ARCHIVE = "control archive"
    SIGNATURE_ARCHIVE = "signature archive"
    CONCATENATION = "concatenation"


class PackagingError(Exception):
    """Base for all package-production errors."""


class BuildPhaseError(PackagingError):
    """Raised when a build phase fails. The cause is chained."""

    def __init__(self, phase: BuildPhase, message: str) -> None:
        self.phase = phase
        super().__init__(f"{phase.value} phase failed: {message}")


class ArchiveEntryError(PackagingError):
    """An entry of the staged tree could not be read or serialized."""

    def __init__(self, path: str, operation: str, reason: str) -> None:
        self.path = path
        self.operation = operation
        super().__init__(f"{path}: {operation}: {reason}")


class SigningError(PackagingError):
    """Keypair generation or signing failed."""


class UnsupportedFormatError(PackagingError):
    """No packer is registered for the requested format tag."""
