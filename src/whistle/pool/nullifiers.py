"""
Spent nullifier registry.

A fixed-capacity set of nullifier hashes. Membership is permanent. The
capacity models the fixed-size ledger account the set is persisted to; the
in-memory structure is a hash set with insertion order kept for the account
layout.
"""

import struct
import threading
from typing import Any, Dict, List, Set

from ..crypto.field import (
    FIELD_ELEMENT_SIZE,
    SCALAR_FIELD_MODULUS,
    from_be32,
    require_field_element,
    to_be32,
)
from ..errors import (
    CapacityError,
    CapacityReason,
    ConfigurationError,
    ConflictError,
    ConflictReason,
    EncodingError,
    EncodingReason,
    IntegrityError,
)
from ..logging import get_logger

logger = get_logger(__name__)

COUNT_SIZE = 2
MAX_CAPACITY = 2**16 - 1


class NullifierRegistry:
    """Set of spent nullifier hashes with atomic check-and-insert."""

    def __init__(self, capacity: int = 256):
        if not 1 <= capacity <= MAX_CAPACITY:
            raise ConfigurationError(
                f"Nullifier capacity must be between 1 and {MAX_CAPACITY}",
                config_key="nullifier_capacity",
                config_value=capacity,
            )
        self._capacity = capacity
        self._spent: Set[int] = set()
        self._order: List[int] = []
        self._lock = threading.RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._capacity - len(self._spent)

    def __len__(self) -> int:
        with self._lock:
            return len(self._spent)

    def __contains__(self, nullifier_hash: object) -> bool:
        with self._lock:
            return nullifier_hash in self._spent

    def is_spent(self, nullifier_hash: int) -> bool:
        """Check if a nullifier hash has been recorded."""
        with self._lock:
            return nullifier_hash in self._spent

    def require_unspent(self, nullifier_hash: int) -> None:
        """Raise ``ConflictError(DOUBLE_SPEND)`` if already recorded."""
        if self.is_spent(nullifier_hash):
            raise ConflictError(
                "Nullifier has already been spent",
                reason=ConflictReason.DOUBLE_SPEND,
                metadata={"nullifier_hash": to_be32(nullifier_hash).hex()},
            )

    def check_and_insert(self, nullifier_hash: int) -> bool:
        """Record ``nullifier_hash`` unless already present.

        Returns:
            True if the hash was fresh and is now recorded, False if it was
            already spent (the set is left unchanged).

        Raises:
            ValidationError: not a scalar field element.
            CapacityError: the hash is fresh but the registry is full.
        """
        require_field_element(nullifier_hash, "nullifier_hash")

        with self._lock:
            if nullifier_hash in self._spent:
                logger.warning("Double spend attempt rejected", extra={"spent": len(self._spent)})
                return False

            if len(self._spent) >= self._capacity:
                logger.warning("Nullifier registry full", extra={"capacity": self._capacity})
                raise CapacityError(
                    f"Nullifier registry is full ({self._capacity} entries)",
                    reason=CapacityReason.REGISTRY_FULL,
                    capacity=self._capacity,
                )

            self._spent.add(nullifier_hash)
            self._order.append(nullifier_hash)
            logger.debug("Recorded nullifier", extra={"spent": len(self._spent)})
            return True

    def spent(self) -> List[int]:
        """Recorded hashes in insertion order."""
        with self._lock:
            return list(self._order)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'spent': len(self._spent),
                'capacity': self._capacity,
                'remaining': self._capacity - len(self._spent),
            }

    def to_account_bytes(self) -> bytes:
        """``capacity`` 32-byte slots, zero padded, then a u16 LE count."""
        with self._lock:
            slots = b"".join(to_be32(value) for value in self._order)
            padding = b"\x00" * (FIELD_ELEMENT_SIZE * (self._capacity - len(self._order)))
            return slots + padding + struct.pack("<H", len(self._order))

    @classmethod
    def account_size(cls, capacity: int) -> int:
        return capacity * FIELD_ELEMENT_SIZE + COUNT_SIZE

    @classmethod
    def from_account_bytes(cls, data: bytes) -> "NullifierRegistry":
        """Rebuild a registry from :meth:`to_account_bytes` output.

        Raises:
            EncodingError: the size is not ``32 * capacity + 2``.
            IntegrityError: the count exceeds capacity or a slot repeats.
        """
        body = len(data) - COUNT_SIZE
        if body <= 0 or body % FIELD_ELEMENT_SIZE:
            raise EncodingError(
                f"Nullifier account of {len(data)} bytes is not 32 * capacity + 2",
                reason=EncodingReason.INVALID_LENGTH,
            )

        capacity = body // FIELD_ELEMENT_SIZE
        (count,) = struct.unpack_from("<H", data, body)
        if count > capacity:
            raise IntegrityError(
                f"Nullifier count {count} exceeds account capacity {capacity}",
                component="nullifiers",
            )

        registry = cls(capacity)
        for slot in range(count):
            value = from_be32(data, slot * FIELD_ELEMENT_SIZE, SCALAR_FIELD_MODULUS,
                              EncodingReason.NON_CANONICAL)
            if not registry.check_and_insert(value):
                raise IntegrityError(
                    f"Nullifier account slot {slot} repeats an earlier entry",
                    component="nullifiers",
                )
        return registry
