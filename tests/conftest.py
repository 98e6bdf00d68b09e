# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for polypack tests.

Fixtures here are available to every test file automatically.
We keep them minimal, just the stuff that multiple test modules need.
"""

import os
from pathlib import Path

import pytest

from polypack.apk.metadata import PackageMetadata
from polypack.config.schema import BuildConfig


@pytest.fixture()
def staging_dir(tmp_path: Path) -> Path:
    """An empty staged installation tree."""
    root = tmp_path / "staging"
    root.mkdir()
    return root


@pytest.fixture()
def staged_tree(staging_dir: Path) -> Path:
    """
    A small staged tree covering every entry type the data archive handles:

        usr/bin/foo         0755  "hello"
        etc/foo.conf        0644  "key=value\\n"
        usr/lib/libfoo.so   symlink → /nonexistent (dangling)
        var/lib/foo/        empty directory
    """
    (staging_dir / "usr" / "bin").mkdir(parents=True)
    (staging_dir / "usr" / "lib").mkdir(parents=True)
    (staging_dir / "etc").mkdir()
    (staging_dir / "var" / "lib" / "foo").mkdir(parents=True)

    binary = staging_dir / "usr" / "bin" / "foo"
    binary.write_bytes(b"hello")
    os.chmod(binary, 0o755)

    conf = staging_dir / "etc" / "foo.conf"
    conf.write_text("key=value\n", encoding="utf-8")
    os.chmod(conf, 0o644)

    os.symlink("/nonexistent", staging_dir / "usr" / "lib" / "libfoo.so")
    return staging_dir


@pytest.fixture()
def artifacts_dir(tmp_path: Path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture()
def metadata() -> PackageMetadata:
    return PackageMetadata(
        name="foo",
        version="1.0",
        release="2",
        arch="x86_64",
        description="Test package",
        depends=["musl>=1.2"],
        build_date=1700000000,
    )


@pytest.fixture()
def build_config(tmp_path: Path) -> BuildConfig:
    """Build settings with the trust directory redirected into tmp_path."""
    return BuildConfig(trust_dir=str(tmp_path / "trusted-keys"))
