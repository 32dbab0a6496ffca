"""
Trusted setup contribution chain.

Each contribution to the multi-party setup produces a new key artifact.
Record ``i`` names the SHA-256 of its own artifact and of the artifact of
record ``i - 1``; record 0 links to the all-zero genesis sentinel. The chain
is append-only.

Verification checks integrity only: every artifact matches its record and
every link matches its predecessor. Whether the setup is *secure* depends on
at least one contributor having destroyed their randomness, which nothing in
the chain can show. Reports keep the two apart.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..crypto.hashing import Hash, SHA256Hasher
from ..errors import ConflictError, ConflictReason
from ..logging import get_logger

logger = get_logger(__name__)

GENESIS_HASH = Hash.zero()

SECURITY_ASSUMPTION = (
    "Setup security requires at least one contributor to have destroyed their "
    "secret randomness. This cannot be checked from the contribution chain."
)


@dataclass(frozen=True)
class ContributionRecord:
    """One link of the chain."""

    index: int
    previous_artifact_hash: Hash
    artifact_hash: Hash
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_genesis(self) -> bool:
        return self.index == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "previous_artifact_hash": self.previous_artifact_hash.to_hex(),
            "artifact_hash": self.artifact_hash.to_hex(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContributionRecord":
        return cls(
            index=int(data["index"]),
            previous_artifact_hash=Hash.from_hex(data["previous_artifact_hash"]),
            artifact_hash=Hash.from_hex(data["artifact_hash"]),
            metadata=dict(data.get("metadata") or {}),
        )


class LinkStatus(Enum):
    """Verification outcome for one index."""

    VALID = "valid"
    ARTIFACT_MISMATCH = "artifact_mismatch"
    LINK_MISMATCH = "link_mismatch"
    INDEX_GAP = "index_gap"
    MISSING_ARTIFACT = "missing_artifact"
    INVALIDATED_BY_PREDECESSOR = "invalidated_by_predecessor"


@dataclass(frozen=True)
class LinkResult:
    """Verification details for one record."""

    index: int
    status: LinkStatus
    expected_previous_hash: Optional[Hash] = None
    actual_artifact_hash: Optional[Hash] = None

    @property
    def is_valid(self) -> bool:
        return self.status == LinkStatus.VALID

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "status": self.status.value,
            "expected_previous_hash": self.expected_previous_hash.to_hex()
            if self.expected_previous_hash else None,
            "actual_artifact_hash": self.actual_artifact_hash.to_hex()
            if self.actual_artifact_hash else None,
        }


@dataclass
class VerificationReport:
    """Per-index result of replaying a chain from genesis."""

    results: List[LinkResult] = field(default_factory=list)
    security_assumption: str = SECURITY_ASSUMPTION

    @property
    def failing_indices(self) -> List[int]:
        return [result.index for result in self.results if not result.is_valid]

    @property
    def integrity_verified(self) -> bool:
        """Every link checked out (an empty chain is trivially intact)."""
        return not self.failing_indices

    @property
    def security_verifiable(self) -> bool:
        return False

    def status_of(self, index: int) -> LinkStatus:
        for result in self.results:
            if result.index == index:
                return result.status
        raise KeyError(index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "integrity_verified": self.integrity_verified,
            "failing_indices": self.failing_indices,
            "results": [result.to_dict() for result in self.results],
            "security_verifiable": self.security_verifiable,
            "security_assumption": self.security_assumption,
        }


Artifacts = Union[Sequence[Optional[bytes]], Mapping[int, Optional[bytes]]]


def _artifact_at(artifacts: Artifacts, position: int, index: int) -> Optional[bytes]:
    if isinstance(artifacts, Mapping):
        return artifacts.get(index)
    if position < len(artifacts):
        return artifacts[position]
    return None


def verify_all(records: Sequence[ContributionRecord], artifacts: Artifacts) -> VerificationReport:
    """Replay ``records`` from genesis against their artifacts.

    ``artifacts`` is either aligned with ``records`` or keyed by record index.
    Once an index fails, every later index is reported as failing too, since
    its link can no longer be trusted.
    """
    report = VerificationReport()
    expected_previous = GENESIS_HASH
    broken = False

    for position, record in enumerate(records):
        artifact = _artifact_at(artifacts, position, record.index)
        actual = SHA256Hasher.hash(artifact) if artifact is not None else None

        if record.index != position:
            status = LinkStatus.INDEX_GAP
        elif actual is None:
            status = LinkStatus.MISSING_ARTIFACT
        elif actual != record.artifact_hash:
            status = LinkStatus.ARTIFACT_MISMATCH
        elif record.previous_artifact_hash != expected_previous:
            status = LinkStatus.LINK_MISMATCH
        elif broken:
            status = LinkStatus.INVALIDATED_BY_PREDECESSOR
        else:
            status = LinkStatus.VALID

        report.results.append(
            LinkResult(
                index=position,
                status=status,
                expected_previous_hash=expected_previous,
                actual_artifact_hash=actual,
            )
        )

        if status != LinkStatus.VALID:
            broken = True
        expected_previous = actual if actual is not None else record.artifact_hash

    if report.failing_indices:
        logger.warning(
            "Contribution chain failed verification",
            extra={"failing_indices": report.failing_indices, "records": len(records)},
        )
    return report


class ContributionChain:
    """Append-only, hash-linked sequence of contributions."""

    def __init__(self):
        self._records: List[ContributionRecord] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def records(self) -> List[ContributionRecord]:
        with self._lock:
            return list(self._records)

    def latest(self) -> Optional[ContributionRecord]:
        with self._lock:
            return self._records[-1] if self._records else None

    def expected_previous_hash(self) -> Hash:
        """Hash the next record must link to."""
        with self._lock:
            return self._records[-1].artifact_hash if self._records else GENESIS_HASH

    def next_record(self, artifact: bytes, metadata: Optional[Dict[str, Any]] = None) -> ContributionRecord:
        """Build the record that would correctly extend the chain with ``artifact``."""
        with self._lock:
            return ContributionRecord(
                index=len(self._records),
                previous_artifact_hash=self.expected_previous_hash(),
                artifact_hash=SHA256Hasher.hash(artifact),
                metadata=dict(metadata or {}),
            )

    def append(self, record: ContributionRecord, artifact: bytes) -> ContributionRecord:
        """Append ``record`` if it correctly extends the chain.

        Acts as a compare-and-swap on the expected previous hash: of several
        callers racing for the same index, one succeeds and the rest get
        ``ConflictError(CHAIN_BROKEN)``. Nothing is appended on failure.
        """
        actual = SHA256Hasher.hash(artifact)

        with self._lock:
            expected_index = len(self._records)
            expected_previous = self.expected_previous_hash()

            if record.index != expected_index:
                problem = f"index {record.index} does not extend chain of length {expected_index}"
            elif record.previous_artifact_hash != expected_previous:
                problem = f"previous hash does not match artifact of record {expected_index - 1}"
            elif record.artifact_hash != actual:
                problem = "artifact bytes do not match the declared artifact hash"
            else:
                problem = None

            if problem is not None:
                logger.warning("Contribution rejected: " + problem, extra={"index": record.index})
                raise ConflictError(
                    f"Contribution rejected: {problem}",
                    reason=ConflictReason.CHAIN_BROKEN,
                    metadata={"index": record.index, "expected_index": expected_index},
                )

            self._records.append(record)

        logger.info("Contribution appended", extra={"index": record.index, "hash": actual.to_hex()})
        return record

    def verify(self, artifacts: Artifacts) -> VerificationReport:
        """Verify the stored records against ``artifacts``."""
        return verify_all(self.records(), artifacts)

    verify_all = staticmethod(verify_all)
