"""
Unit tests for the ceremony artifact archive.
"""

import json
import sqlite3

import pytest

from whistle.ceremony import CeremonyArchive
from whistle.ceremony.chain import GENESIS_HASH, LinkStatus
from whistle.config import WhistleConfig
from whistle.crypto.hashing import SHA256Hasher
from whistle.errors import (
    CapacityError,
    CapacityReason,
    ConflictError,
    ConflictReason,
    IntegrityError,
    ValidationError,
    ValidationReason,
)

GENESIS = b"initial proving key"


def digest(data):
    return SHA256Hasher.hash(data).to_hex()


@pytest.fixture
def config():
    return WhistleConfig(max_artifact_size=1024)


@pytest.fixture
def archive(tmp_path, config):
    with CeremonyArchive(tmp_path / "ceremony", config=config) as archive:
        yield archive


class TestGenesis:
    """Test archiving the initial key."""

    def test_initialize_genesis(self, archive):
        """Test the genesis contribution is number 0."""
        record = archive.initialize_genesis(GENESIS, {"source": "phase1"})

        assert record.index == 0
        assert record.previous_artifact_hash == GENESIS_HASH
        assert archive.artifact_path(0).name == "withdraw_merkle_0000.zkey"
        assert archive.read_artifact(0) == GENESIS

    def test_genesis_twice(self, archive):
        """Test only one genesis contribution is accepted."""
        archive.initialize_genesis(GENESIS)
        with pytest.raises(ConflictError) as exc_info:
            archive.initialize_genesis(b"another")
        assert exc_info.value.reason == ConflictReason.CHAIN_BROKEN

    def test_submit_before_genesis(self, archive):
        """Test contributions need a genesis to link to."""
        with pytest.raises(ConflictError):
            archive.submit("contribution.zkey", b"data", digest(b"data"))


class TestSubmit:
    """Test accepting contributions."""

    def test_submit(self, archive):
        """Test a contribution is numbered, stored and linked."""
        archive.initialize_genesis(GENESIS)
        artifact = b"contribution one"

        record = archive.submit("mine.zkey", artifact, digest(artifact), {"name": "alice"})

        assert record.index == 1
        assert record.previous_artifact_hash == SHA256Hasher.hash(GENESIS)
        assert record.metadata == {"original_filename": "mine.zkey", "name": "alice"}
        assert archive.read_artifact(1) == artifact
        assert archive.artifact_path(1).name == "withdraw_merkle_0001.zkey"

    def test_no_partial_files_left(self, archive):
        """Test staged uploads are moved into place."""
        archive.initialize_genesis(GENESIS)
        archive.submit("a.zkey", b"a", digest(b"a"))
        assert not list(archive.directory.glob("*.partial"))

    def test_failed_rename_leaves_no_trace(self, archive, monkeypatch):
        """Test a failed move into place rolls back the row and keeps the chain."""
        archive.initialize_genesis(GENESIS)

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("whistle.ceremony.archive.os.replace", fail_replace)
        with pytest.raises(OSError):
            archive.submit("a.zkey", b"a", digest(b"a"))
        monkeypatch.undo()

        assert len(archive.chain) == 1
        assert archive.latest()["number"] == 0
        assert not archive.artifact_path(1).exists()
        assert not list(archive.directory.glob("*.partial"))

        assert archive.submit("b.zkey", b"b", digest(b"b")).index == 1
        assert archive.verify().integrity_verified

    def test_failed_commit_keeps_chain(self, archive):
        """Test a failed commit leaves neither a chain record nor an artifact file."""
        archive.initialize_genesis(GENESIS)
        connection = archive._connection

        class FailingCommit:
            def __getattr__(self, name):
                return getattr(connection, name)

            def __enter__(self):
                return connection.__enter__()

            def __exit__(self, *exc_info):
                connection.rollback()
                raise sqlite3.OperationalError("disk I/O error")

        archive._connection = FailingCommit()
        try:
            with pytest.raises(sqlite3.OperationalError):
                archive.submit("a.zkey", b"a", digest(b"a"))
        finally:
            archive._connection = connection

        assert len(archive.chain) == 1
        assert archive.stats()["count"] == 1
        assert archive.latest()["number"] == 0
        assert not archive.artifact_path(1).exists()
        assert not list(archive.directory.glob("*.partial"))

    @pytest.mark.parametrize("filename", ["key.txt", "../escape.zkey", "dir/key.zkey", ".zkey", ""])
    def test_bad_filename(self, archive, filename):
        """Test only plain .zkey names are accepted."""
        archive.initialize_genesis(GENESIS)
        with pytest.raises(ValidationError) as exc_info:
            archive.submit(filename, b"a", digest(b"a"))
        assert exc_info.value.reason == ValidationReason.INVALID_ARTIFACT_NAME

    def test_too_large(self, archive):
        """Test artifacts above the size limit."""
        archive.initialize_genesis(GENESIS)
        artifact = b"x" * 1025
        with pytest.raises(CapacityError) as exc_info:
            archive.submit("big.zkey", artifact, digest(artifact))
        assert exc_info.value.reason == CapacityReason.ARTIFACT_TOO_LARGE
        assert len(archive.chain) == 1

    @pytest.mark.parametrize("claimed", ["not hex", "abcd", ""])
    def test_unparseable_hash(self, archive, claimed):
        """Test the claimed hash must be 64 hex digits."""
        archive.initialize_genesis(GENESIS)
        with pytest.raises(ValidationError) as exc_info:
            archive.submit("a.zkey", b"a", claimed)
        assert exc_info.value.reason == ValidationReason.MALFORMED_PAYLOAD

    def test_hash_mismatch(self, archive):
        """Test a claimed hash that does not match the upload."""
        archive.initialize_genesis(GENESIS)
        with pytest.raises(ConflictError):
            archive.submit("a.zkey", b"a", digest(b"b"))
        assert len(archive.chain) == 1
        assert archive.read_artifact(1) is None


class TestQueries:
    """Test reading back the archive."""

    def test_stats_and_latest(self, archive):
        """Test the published statistics and latest pointer."""
        assert archive.latest() is None
        archive.initialize_genesis(GENESIS)
        archive.submit("a.zkey", b"a", digest(b"a"))

        stats = archive.stats()
        assert stats["count"] == 2
        assert stats["latest"] == 1
        assert stats["status"] == "Active"
        assert stats["goal"] == 100
        assert stats["circuit"] == "withdraw_merkle"

        latest = archive.latest()
        assert latest["number"] == 1
        assert latest["filename"] == "withdraw_merkle_0001.zkey"
        assert latest["hash"] == digest(b"a")

    def test_published_json(self, archive):
        """Test stats.json and latest.json are written after each contribution."""
        archive.initialize_genesis(GENESIS)
        archive.submit("a.zkey", b"a", digest(b"a"))

        stats = json.loads((archive.directory / "stats.json").read_text())
        latest = json.loads((archive.directory / "latest.json").read_text())
        assert stats["count"] == 2
        assert latest["number"] == 1

    def test_contributions_newest_first(self, archive):
        """Test the contribution listing order."""
        archive.initialize_genesis(GENESIS)
        for name in (b"a", b"b"):
            archive.submit(name.decode() + ".zkey", name, digest(name))

        numbers = [entry["number"] for entry in archive.contributions()]
        assert numbers == [2, 1, 0]
        assert archive.contributions()[0]["metadata"]["original_filename"] == "b.zkey"


class TestPersistence:
    """Test reopening and verifying the archive."""

    def test_reopen(self, tmp_path, config):
        """Test the chain is rebuilt from disk."""
        directory = tmp_path / "ceremony"
        with CeremonyArchive(directory, config=config) as archive:
            archive.initialize_genesis(GENESIS)
            archive.submit("a.zkey", b"a", digest(b"a"))

        with CeremonyArchive(directory, config=config) as archive:
            assert len(archive.chain) == 2
            record = archive.submit("b.zkey", b"b", digest(b"b"))
            assert record.index == 2
            assert archive.verify().integrity_verified

    def test_verify_reports_tampering(self, archive):
        """Test a modified artifact on disk fails it and later indices."""
        archive.initialize_genesis(GENESIS)
        for name in (b"a", b"b", b"c"):
            archive.submit(name.decode() + ".zkey", name, digest(name))
        archive.artifact_path(1).write_bytes(b"tampered")

        report = archive.verify()

        assert report.failing_indices == [1, 2, 3]
        assert report.status_of(1) == LinkStatus.ARTIFACT_MISMATCH

    def test_verify_reports_missing_file(self, archive):
        """Test a deleted artifact."""
        archive.initialize_genesis(GENESIS)
        archive.submit("a.zkey", b"a", digest(b"a"))
        archive.artifact_path(1).unlink()
        assert archive.verify().status_of(1) == LinkStatus.MISSING_ARTIFACT

    def test_reopen_tampered(self, tmp_path, config):
        """Test loading a tampered archive raises IntegrityError."""
        directory = tmp_path / "ceremony"
        with CeremonyArchive(directory, config=config) as archive:
            archive.initialize_genesis(GENESIS)
            archive.submit("a.zkey", b"a", digest(b"a"))
            archive.artifact_path(0).write_bytes(b"tampered")

        with pytest.raises(IntegrityError):
            CeremonyArchive(directory, config=config)
