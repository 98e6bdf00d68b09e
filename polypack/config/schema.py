# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for polypack.

Every setting a build needs is carried in one of these frozen models and
passed explicitly into each build invocation. There is no module-level
mutable state to accumulate into: two packages built concurrently each get
their own config value and cannot see each other's.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from polypack.logging.logger import VALID_LOG_LEVELS


class BuildConfig(BaseModel):
    """Settings for the in-process archive assembler."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    trust_dir: str = Field(
        default="/etc/apk/keys",
        description="Shared directory the verifier reads trusted public keys from",
    )
    key_prefix: str = Field(
        default="polypack",
        min_length=1,
        description="Leading component of the per-build signing key identifier",
    )
    key_bits: int = Field(
        default=2048,
        ge=2048,
        description="RSA modulus size of the ephemeral signing key",
    )
    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got {value!r}")
        return upper


class PackerConfig(BaseModel):
    """
    Settings for the operations that drive the system package manager
    (install, dependency preparation, index refresh).
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    package_manager: str = Field(default="apk", description="Executable to invoke")
    install_args: list[str] = Field(
        default_factory=lambda: ["add", "--allow-untrusted"],
        description="Leading arguments for every install invocation",
    )
    update_args: list[str] = Field(
        default_factory=lambda: ["update"],
        description="Arguments that refresh the package index",
    )
    build_env_deps: list[str] = Field(
        default_factory=lambda: ["alpine-sdk", "ccache"],
        description="Packages installed by prepare_environment",
    )


class PolypackConfig(BaseModel):
    """
    Top-level config container. Both sections are optional; a YAML file
    holding only `build:` is fine, and an empty mapping gives all defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    build: BuildConfig = Field(default_factory=BuildConfig)
    packer: PackerConfig = Field(default_factory=PackerConfig)
