# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-to-end tests for the .apk build pipeline.

Each test builds a real package into tmp_path and parses it back with
polypack.apk.reader, so the assertions are about the bytes on disk.
"""

import hashlib
import os
import tarfile
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization

from polypack.apk import builder as builder_module
from polypack.apk.builder import BuildResult, build_apk, package_filename
from polypack.apk.datahash import compute_data_hash
from polypack.apk.metadata import PackageMetadata, render_pkginfo
from polypack.apk.reader import PackageMember, read_package, read_tar_entries
from polypack.apk.signing import SIGNATURE_PREFIX, verify_digest_signature
from polypack.apk.tarball import CHECKSUM_RECORD
from polypack.apk.tgz import END_OF_ARCHIVE
from polypack.config.schema import BuildConfig
from polypack.packaging.errors import BuildPhase, BuildPhaseError, SigningError
from polypack.utils.hashing import EMPTY_SHA1_HEX


def _members(result: BuildResult) -> tuple[PackageMember, PackageMember, PackageMember]:
    signature, control, data = read_package(result.package_path)
    return signature, control, data


def _signature_verifies(result: BuildResult, key_path: Path) -> bool:
    signature, control, _ = _members(result)
    public_key = serialization.load_pem_public_key(key_path.read_bytes())
    digest = hashlib.sha1(control.tar_bytes).digest()
    return verify_digest_signature(public_key, signature.entries[0].content, digest)


class TestPackageLayout:
    def test_artifact_name(self, metadata: PackageMetadata) -> None:
        assert package_filename(metadata) == "foo-1.0-r2.x86_64.apk"

    def test_three_members_in_order(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        members = read_package(result.package_path)

        assert result.package_path == artifacts_dir / "foo-1.0-r2.x86_64.apk"
        assert [m.name for m in members] == ["signature", "control", "data"]
        assert result.size_bytes == result.package_path.stat().st_size
        assert members[0].entries[0].name.startswith(SIGNATURE_PREFIX)
        assert members[0].entries[0].name == f"{SIGNATURE_PREFIX}{result.key_id}.rsa.pub"

    def test_every_member_is_block_aligned(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        signature, control, data = _members(result)

        for member in (signature, control, data):
            assert len(member.tar_bytes) % 512 == 0
        assert data.tar_bytes.endswith(END_OF_ARCHIVE)
        assert not control.tar_bytes.endswith(END_OF_ARCHIVE)

    def test_members_decompress_into_one_tar_stream(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        signature, control, data = _members(result)

        combined = read_tar_entries(signature.tar_bytes + control.tar_bytes + data.tar_bytes)
        expected = [e.name for e in signature.entries + control.entries + data.entries]
        assert [e.name for e in combined] == expected

    def test_digests_match_member_bytes(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        _, control, data = _members(result)

        assert result.control_digest == hashlib.sha1(control.tar_bytes).hexdigest()
        assert result.data_digest == hashlib.sha256(data.tar_bytes).hexdigest()
        assert result.data_size == len(data.compressed)


class TestPayload:
    def test_data_member_reproduces_tree(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        _, _, data = _members(result)
        entries = {e.name: e for e in data.entries}

        for relpath in ("usr/bin/foo", "etc/foo.conf"):
            source = staged_tree / relpath
            assert entries[relpath].content == source.read_bytes()
            assert entries[relpath].mode == source.stat().st_mode & 0o7777
            assert entries[relpath].pax_headers[CHECKSUM_RECORD] == hashlib.sha1(source.read_bytes()).hexdigest()

        assert ".PKGINFO" not in entries

    def test_empty_tree(
        self, staging_dir: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staging_dir, artifacts_dir, build_config)
        _, _, data = _members(result)

        assert data.entries == []
        assert data.tar_bytes == END_OF_ARCHIVE

    def test_single_executable(
        self, staging_dir: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        (staging_dir / "usr" / "bin").mkdir(parents=True)
        binary = staging_dir / "usr" / "bin" / "foo"
        binary.write_bytes(b"hello")
        binary.chmod(0o755)

        result = build_apk(metadata, staging_dir, artifacts_dir, build_config)
        _, _, data = _members(result)
        files = [e for e in data.entries if e.type == tarfile.REGTYPE]

        assert [f.name for f in files] == ["usr/bin/foo"]
        assert files[0].mode == 0o755
        assert files[0].pax_headers[CHECKSUM_RECORD] == hashlib.sha1(b"hello").hexdigest()

    def test_dangling_symlink(
        self, staging_dir: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        (staging_dir / "usr" / "lib").mkdir(parents=True)
        (staging_dir / "usr" / "lib" / "libfoo.so").symlink_to("/nonexistent")

        result = build_apk(metadata, staging_dir, artifacts_dir, build_config)
        _, _, data = _members(result)
        (link,) = [e for e in data.entries if e.type == tarfile.SYMTYPE]

        assert link.name == "usr/lib/libfoo.so"
        assert link.linkname == "/nonexistent"
        assert link.pax_headers[CHECKSUM_RECORD] == EMPTY_SHA1_HEX


class TestControl:
    def test_pkginfo_carries_recomputed_datahash(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)
        _, control, _ = _members(result)
        pkginfo = control.entries[0]

        assert pkginfo.name == ".PKGINFO"
        assert result.data_hash == compute_data_hash(staged_tree)
        assert metadata.data_hash == result.data_hash
        assert pkginfo.content.decode("utf-8") == render_pkginfo(metadata)
        assert f"datahash = {result.data_hash}\n" in pkginfo.content.decode("utf-8")

    def test_only_present_scriptlets_are_archived(
        self, staged_tree: Path, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        meta = PackageMetadata(
            name="foo",
            version="1.0",
            pre_install="addgroup -S foo",
            post_install="echo installed",
        )
        result = build_apk(meta, staged_tree, artifacts_dir, build_config)
        _, control, _ = _members(result)

        assert [e.name for e in control.entries] == [".PKGINFO", ".pre-install", ".post-install"]
        for entry in control.entries[1:]:
            assert entry.mode == 0o755
            assert entry.content.startswith(b"#!/bin/sh\n")


class TestSigning:
    def test_signature_verifies_with_exported_keys(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        result = build_apk(metadata, staged_tree, artifacts_dir, build_config)

        assert result.key_id == "polypack-foo-1.0"
        assert result.public_key_paths == [
            Path(build_config.trust_dir) / "polypack-foo-1.0.rsa.pub",
            artifacts_dir / "polypack-foo-1.0.rsa.pub",
        ]
        for key_path in result.public_key_paths:
            assert _signature_verifies(result, key_path)

    def test_unwritable_trust_dir_is_not_fatal(
        self, tmp_path: Path, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        config = BuildConfig(trust_dir=str(blocker / "keys"))

        result = build_apk(metadata, staged_tree, artifacts_dir, config)

        assert result.package_path.is_file()
        assert result.public_key_paths == [artifacts_dir / "polypack-foo-1.0.rsa.pub"]

    def test_each_build_uses_a_fresh_key(
        self, staged_tree: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        key_path = artifacts_dir / "polypack-foo-1.0.rsa.pub"
        build_apk(metadata, staged_tree, artifacts_dir, build_config)
        first = key_path.read_bytes()
        build_apk(metadata, staged_tree, artifacts_dir, build_config)
        assert key_path.read_bytes() != first


class TestPhaseFailures:
    def test_missing_staging_dir_fails_in_hash_phase(
        self, tmp_path: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        with pytest.raises(BuildPhaseError) as excinfo:
            build_apk(metadata, tmp_path / "missing", artifacts_dir, build_config)

        assert excinfo.value.phase is BuildPhase.HASH
        assert isinstance(excinfo.value.__cause__, FileNotFoundError)
        assert str(excinfo.value).startswith("hash phase failed")

    def test_key_generation_failure(
        self,
        monkeypatch: pytest.MonkeyPatch,
        staged_tree: Path,
        metadata: PackageMetadata,
        artifacts_dir: Path,
        build_config: BuildConfig,
    ) -> None:
        def broken_keygen(key_bits: int):
            raise SigningError("no entropy")

        monkeypatch.setattr(builder_module, "generate_signing_key", broken_keygen)

        with pytest.raises(BuildPhaseError) as excinfo:
            build_apk(metadata, staged_tree, artifacts_dir, build_config)
        assert excinfo.value.phase is BuildPhase.KEYGEN
        assert not (artifacts_dir / package_filename(metadata)).exists()

    def test_data_archive_failure(
        self,
        monkeypatch: pytest.MonkeyPatch,
        staged_tree: Path,
        metadata: PackageMetadata,
        artifacts_dir: Path,
        build_config: BuildConfig,
    ) -> None:
        def broken_archive(staging_dir: Path):
            raise OSError("disk went away")

        monkeypatch.setattr(builder_module, "build_data_archive", broken_archive)

        with pytest.raises(BuildPhaseError) as excinfo:
            build_apk(metadata, staged_tree, artifacts_dir, build_config)
        assert excinfo.value.phase is BuildPhase.DATA_ARCHIVE
        assert isinstance(excinfo.value.__cause__, OSError)

    def test_unwritable_artifact_path_fails_in_concatenation(
        self, tmp_path: Path, staged_tree: Path, metadata: PackageMetadata, build_config: BuildConfig
    ) -> None:
        not_a_dir = tmp_path / "artifacts-file"
        not_a_dir.write_text("occupied", encoding="utf-8")

        with pytest.raises(BuildPhaseError) as excinfo:
            build_apk(metadata, staged_tree, not_a_dir, build_config)
        assert excinfo.value.phase is BuildPhase.CONCATENATION


class TestConcurrentBuilds:
    def test_shared_trust_dir(self, tmp_path: Path, build_config: BuildConfig) -> None:
        def build(name: str) -> BuildResult:
            staging = tmp_path / f"staging-{name}"
            (staging / "usr" / "share" / name).mkdir(parents=True)
            (staging / "usr" / "share" / name / "README").write_text(f"{name}\n", encoding="utf-8")
            meta = PackageMetadata(name=name, version="2.3", build_date=1700000000)
            return build_apk(meta, staging, tmp_path / f"artifacts-{name}", build_config)

        with ThreadPoolExecutor(max_workers=2) as pool:
            alpha, beta = pool.map(build, ["alpha", "beta"])

        trust_dir = Path(build_config.trust_dir)
        alpha_key = trust_dir / "polypack-alpha-2.3.rsa.pub"
        beta_key = trust_dir / "polypack-beta-2.3.rsa.pub"

        assert sorted(p.name for p in trust_dir.iterdir()) == [alpha_key.name, beta_key.name]
        assert _signature_verifies(alpha, alpha_key)
        assert _signature_verifies(beta, beta_key)
        assert not _signature_verifies(alpha, beta_key)


class TestUnusualNames:
    def test_long_directory_paths_keep_plain_headers(
        self, staging_dir: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        deep = staging_dir / ("d" * 60) / ("e" * 60)
        deep.mkdir(parents=True)
        (deep / "data.bin").write_bytes(b"payload")

        result = build_apk(metadata, staging_dir, artifacts_dir, build_config)
        _, _, data = _members(result)
        dirs = [e for e in data.entries if e.type == tarfile.DIRTYPE]

        assert [d.name for d in dirs] == ["d" * 60, f"{'d' * 60}/{'e' * 60}"]
        assert all(d.pax_headers == {} for d in dirs)
        (payload,) = [e for e in data.entries if e.type == tarfile.REGTYPE]
        assert payload.name == f"{'d' * 60}/{'e' * 60}/data.bin"
        assert payload.content == b"payload"

    def test_non_utf8_file_name(
        self, staging_dir: Path, metadata: PackageMetadata, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        share = staging_dir / "usr" / "share"
        share.mkdir(parents=True)
        (share / os.fsdecode(b"caf\xe9")).write_bytes(b"au lait")

        result = build_apk(metadata, staging_dir, artifacts_dir, build_config)
        _, _, data = _members(result)
        entries = {e.name: e for e in data.entries}
        name = os.fsdecode(b"usr/share/caf\xe9")

        assert result.data_hash == compute_data_hash(staging_dir)
        assert entries[name].content == b"au lait"
        assert entries[name].pax_headers[CHECKSUM_RECORD] == hashlib.sha1(b"au lait").hexdigest()

    def test_overlong_key_id_fails_in_signature_phase(
        self, staged_tree: Path, artifacts_dir: Path, build_config: BuildConfig
    ) -> None:
        meta = PackageMetadata(name="x" * 100, version="1.0")

        with pytest.raises(BuildPhaseError) as excinfo:
            build_apk(meta, staged_tree, artifacts_dir, build_config)
        assert excinfo.value.phase is BuildPhase.SIGNATURE_ARCHIVE
        assert isinstance(excinfo.value.__cause__, SigningError)
