"""Ceremony artifact archive.

Accepts contribution artifacts, numbers them sequentially, stores each blob
as ``<circuit>_<NNNN>.zkey`` and its metadata in SQLite, and after every
accepted contribution publishes ``latest.json`` and ``stats.json`` next to
the artifacts.
"""

import json
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..config import WhistleConfig, get_global_config
from ..crypto.hashing import Hash, SHA256Hasher
from ..errors import (
    CapacityError,
    CapacityReason,
    ConflictError,
    ConflictReason,
    IntegrityError,
    ValidationError,
    ValidationReason,
)
from ..logging import LogContext, get_logger
from .chain import ContributionChain, ContributionRecord, VerificationReport, verify_all

_SCHEMA = """
CREATE TABLE IF NOT EXISTS contributions (
    number INTEGER PRIMARY KEY,
    filename TEXT NOT NULL,
    hash TEXT NOT NULL,
    previous_hash TEXT NOT NULL,
    size INTEGER NOT NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS ceremony_config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def _iso(timestamp: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(timestamp))


class CeremonyArchive:
    """File and SQLite backed store of the contribution chain."""

    def __init__(
        self,
        directory: Union[str, Path],
        config: Optional[WhistleConfig] = None,
        database_path: Optional[Union[str, Path]] = None,
        goal: int = 100,
    ):
        self.config = config or get_global_config()
        self.config.validate()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.database_path = Path(database_path) if database_path else self.directory / "ceremony.db"

        self._lock = threading.RLock()
        self._connection = sqlite3.connect(str(self.database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._logger = get_logger(__name__)
        self._context = LogContext(component="ceremony", ceremony_id=self.config.circuit_name)

        with self._connection:
            self._connection.executescript(_SCHEMA)
            for key, value in (
                ("status", "Active"),
                ("goal", str(goal)),
                ("started", time.strftime("%Y-%m-%d", time.gmtime())),
            ):
                self._connection.execute(
                    "INSERT OR IGNORE INTO ceremony_config (key, value) VALUES (?, ?)", (key, value)
                )

        self.chain = ContributionChain()
        self._load()

    # Lifecycle

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def __enter__(self) -> "CeremonyArchive":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _rows(self) -> List[sqlite3.Row]:
        return self._connection.execute(
            "SELECT * FROM contributions ORDER BY number ASC"
        ).fetchall()

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> ContributionRecord:
        return ContributionRecord(
            index=row["number"],
            previous_artifact_hash=Hash.from_hex(row["previous_hash"]),
            artifact_hash=Hash.from_hex(row["hash"]),
            metadata=json.loads(row["metadata"]),
        )

    def _load(self) -> None:
        """Rebuild the in-memory chain from the database and the stored files.

        Raises:
            IntegrityError: a stored artifact is missing or breaks the chain.
        """
        for row in self._rows():
            path = self.directory / row["filename"]
            if not path.is_file():
                raise IntegrityError(
                    f"Archived artifact {row['filename']} is missing", component="ceremony"
                )
            try:
                self.chain.append(self._record_from_row(row), path.read_bytes())
            except ConflictError as e:
                raise IntegrityError(
                    f"Archived contribution {row['number']} breaks the chain: {e.message}",
                    component="ceremony",
                    cause=e,
                ) from e

        if len(self.chain):
            self._logger.info(
                "Loaded ceremony archive",
                context=self._context,
                extra={"contributions": len(self.chain)},
            )

    # Naming

    def artifact_filename(self, number: int) -> str:
        return f"{self.config.circuit_name}_{number:04d}{self.config.artifact_extension}"

    def artifact_path(self, number: int) -> Path:
        return self.directory / self.artifact_filename(number)

    def _check_filename(self, filename: str) -> None:
        if (
            not filename
            or "/" in filename
            or "\\" in filename
            or filename in (".", "..")
            or not filename.endswith(self.config.artifact_extension)
            or filename == self.config.artifact_extension
        ):
            raise ValidationError(
                f"Only {self.config.artifact_extension} files are allowed",
                reason=ValidationReason.INVALID_ARTIFACT_NAME,
                field="filename",
                value=filename,
            )

    def _check_size(self, artifact: bytes) -> None:
        if len(artifact) > self.config.max_artifact_size:
            raise CapacityError(
                f"Artifact of {len(artifact)} bytes exceeds the {self.config.max_artifact_size} byte limit",
                reason=CapacityReason.ARTIFACT_TOO_LARGE,
                capacity=self.config.max_artifact_size,
            )

    # Writes

    @contextmanager
    def _staged_file(self, number: int, artifact: bytes) -> Iterator[Tuple[Path, Path]]:
        """Write ``artifact`` beside its final path; on failure remove both copies."""
        final = self.artifact_path(number)
        staging = final.with_name(final.name + ".partial")
        staging.write_bytes(artifact)
        try:
            yield staging, final
        except BaseException:
            for path in (staging, final):
                if path.exists():
                    path.unlink()
            raise

    def _store(self, artifact: bytes, metadata: Optional[Dict[str, Any]]) -> ContributionRecord:
        with self._lock:
            record = self.chain.next_record(artifact, metadata)
            created_at = time.time()

            # The chain only advances once the row is committed and the file is in place.
            with self._staged_file(record.index, artifact) as (staging, final):
                with self._connection:
                    self._connection.execute(
                        "INSERT INTO contributions "
                        "(number, filename, hash, previous_hash, size, metadata, created_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (
                            record.index,
                            self.artifact_filename(record.index),
                            record.artifact_hash.to_hex(),
                            record.previous_artifact_hash.to_hex(),
                            len(artifact),
                            json.dumps(record.metadata, sort_keys=True),
                            created_at,
                        ),
                    )
                    os.replace(staging, final)
            self.chain.append(record, artifact)

            self._publish()

        self._logger.info(
            f"Contribution #{record.index} received",
            context=self._context,
            extra={"filename": self.artifact_filename(record.index), "hash": record.artifact_hash.to_hex()},
        )
        return record

    def initialize_genesis(self, artifact: bytes, metadata: Optional[Dict[str, Any]] = None) -> ContributionRecord:
        """Archive the initial key as contribution 0."""
        self._check_size(artifact)
        with self._lock:
            if len(self.chain):
                raise ConflictError(
                    "Ceremony already has a genesis contribution",
                    reason=ConflictReason.CHAIN_BROKEN,
                )
            return self._store(artifact, metadata)

    def submit(
        self,
        filename: str,
        artifact: bytes,
        claimed_hash: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ContributionRecord:
        """Accept an uploaded contribution and assign it the next number.

        Raises:
            ValidationError: bad file name or unparseable hash.
            CapacityError: the artifact exceeds ``max_artifact_size``.
            ConflictError: the claimed hash does not match the bytes, or the
                ceremony has no genesis contribution yet.
        """
        self._check_filename(filename)
        self._check_size(artifact)

        try:
            claimed = Hash.from_hex(claimed_hash)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Contribution hash must be 64 hex digits",
                reason=ValidationReason.MALFORMED_PAYLOAD,
                field="claimed_hash",
                value=claimed_hash,
            ) from e

        actual = SHA256Hasher.hash(artifact)
        if claimed != actual:
            self._logger.warning(
                "Contribution hash mismatch",
                context=self._context,
                extra={"claimed": claimed.to_hex(), "actual": actual.to_hex()},
            )
            raise ConflictError(
                "Claimed contribution hash does not match the uploaded artifact",
                reason=ConflictReason.CHAIN_BROKEN,
            )

        with self._lock:
            if not len(self.chain):
                raise ConflictError(
                    "Ceremony has no genesis contribution",
                    reason=ConflictReason.CHAIN_BROKEN,
                )
            meta = {"original_filename": filename, **(metadata or {})}
            return self._store(artifact, meta)

    # Reads

    def _config_values(self) -> Dict[str, str]:
        rows = self._connection.execute("SELECT key, value FROM ceremony_config").fetchall()
        return {row["key"]: row["value"] for row in rows}

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            values = self._config_values()
            latest = self.chain.latest()
            return {
                "count": len(self.chain),
                "latest": latest.index if latest else 0,
                "status": values.get("status", "Active"),
                "goal": int(values.get("goal", "100")),
                "started": values.get("started"),
                "circuit": self.config.circuit_name,
            }

    def latest(self) -> Optional[Dict[str, Any]]:
        """Pointer to the newest contribution, or None before genesis."""
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM contributions ORDER BY number DESC LIMIT 1"
            ).fetchone()
            if row is None:
                return None
            return {
                "number": row["number"],
                "filename": row["filename"],
                "hash": row["hash"],
                "timestamp": _iso(row["created_at"]),
            }

    def contributions(self) -> List[Dict[str, Any]]:
        """All contributions, newest first."""
        with self._lock:
            rows = self._connection.execute(
                "SELECT number, filename, hash, previous_hash, size, metadata, created_at "
                "FROM contributions ORDER BY number DESC"
            ).fetchall()
            return [
                {
                    "number": row["number"],
                    "filename": row["filename"],
                    "hash": row["hash"],
                    "previous_hash": row["previous_hash"],
                    "size": row["size"],
                    "metadata": json.loads(row["metadata"]),
                    "created_at": _iso(row["created_at"]),
                }
                for row in rows
            ]

    def read_artifact(self, number: int) -> Optional[bytes]:
        path = self.artifact_path(number)
        return path.read_bytes() if path.is_file() else None

    def verify(self) -> VerificationReport:
        """Re-read every artifact from disk and replay the chain.

        Reports tampering instead of raising, so the full set of failing
        indices is visible.
        """
        with self._lock:
            records = [self._record_from_row(row) for row in self._rows()]
            artifacts = {record.index: self.read_artifact(record.index) for record in records}

        report = verify_all(records, artifacts)
        self._logger.info(
            "Ceremony verification finished",
            context=self._context,
            extra={
                "contributions": len(records),
                "integrity_verified": report.integrity_verified,
                "failing_indices": report.failing_indices,
            },
        )
        return report

    def _publish(self) -> None:
        """Write ``stats.json`` and ``latest.json``."""
        stats = self.stats()
        (self.directory / "stats.json").write_text(json.dumps(stats, indent=2))

        latest = self.latest()
        if latest is not None:
            (self.directory / "latest.json").write_text(json.dumps(latest, indent=2))
