"""
Deposit notes.

A note is the secret a depositor keeps in order to withdraw later:

* ``commitment = H(secret, H(nullifier, amount))`` is published on deposit
  and becomes a leaf of the accumulator;
* ``nullifier_hash = H(nullifier, 0)`` is published on withdrawal and marks
  the note spent.

The amount is bound into the commitment only, so the nullifier hash reveals
nothing about the denomination.
"""

import json
import secrets
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from ..errors import ValidationError, ValidationReason
from ..logging import get_logger
from .field import (
    SCALAR_FIELD_MODULUS,
    field_from_hex,
    field_to_hex,
    require_field_element,
    require_u64,
)
from .hashing import FieldHasher, get_default_hasher

logger = get_logger(__name__)


def compute_commitment(
    secret: int, nullifier: int, amount: int, hasher: Optional[FieldHasher] = None
) -> int:
    """Return ``H(secret, H(nullifier, amount))``.

    Raises:
        ValidationError: if any input is outside the scalar field or the
            amount does not fit a u64.
    """
    require_field_element(secret, "secret")
    require_field_element(nullifier, "nullifier")
    require_u64(amount, "amount")
    h = hasher or get_default_hasher()
    return h(secret, h(nullifier, amount))


def compute_nullifier_hash(nullifier: int, hasher: Optional[FieldHasher] = None) -> int:
    """Return ``H(nullifier, 0)``."""
    require_field_element(nullifier, "nullifier")
    h = hasher or get_default_hasher()
    return h(nullifier, 0)


def random_field_element() -> int:
    """Uniform element of ``[0, r)`` from the OS CSPRNG."""
    return secrets.randbelow(SCALAR_FIELD_MODULUS)


@dataclass(frozen=True)
class Note:
    """A deposit note."""

    secret: int
    nullifier: int
    amount: int
    commitment: int
    nullifier_hash: int
    leaf_index: Optional[int] = None

    def with_leaf_index(self, leaf_index: int) -> "Note":
        """Return a copy recording where the commitment was inserted."""
        if not isinstance(leaf_index, int) or leaf_index < 0:
            raise ValidationError(
                "leaf_index must be a non-negative integer",
                reason=ValidationReason.INVALID_INDEX,
                field="leaf_index",
                value=leaf_index,
            )
        return replace(self, leaf_index=leaf_index)

    def verify(self, hasher: Optional[FieldHasher] = None) -> None:
        """Raise ``ValidationError`` unless the derived fields match the secrets."""
        expected_commitment = compute_commitment(
            self.secret, self.nullifier, self.amount, hasher
        )
        if expected_commitment != self.commitment:
            raise ValidationError(
                "Note commitment does not match its secret material",
                reason=ValidationReason.MALFORMED_NOTE,
                field="commitment",
            )
        if compute_nullifier_hash(self.nullifier, hasher) != self.nullifier_hash:
            raise ValidationError(
                "Note nullifier hash does not match its nullifier",
                reason=ValidationReason.MALFORMED_NOTE,
                field="nullifierHash",
            )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with hex-encoded 32-byte fields."""
        return {
            "secret": field_to_hex(self.secret),
            "nullifier": field_to_hex(self.nullifier),
            "commitment": field_to_hex(self.commitment),
            "nullifierHash": field_to_hex(self.nullifier_hash),
            "amount": str(self.amount),
            "leafIndex": self.leaf_index,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any], hasher: Optional[FieldHasher] = None) -> "Note":
        """Parse :meth:`to_dict` output and re-derive the hashes."""
        try:
            amount_raw = data["amount"]
            secret = field_from_hex(data["secret"], "secret")
            nullifier = field_from_hex(data["nullifier"], "nullifier")
            commitment = field_from_hex(data["commitment"], "commitment")
            nullifier_hash = field_from_hex(data["nullifierHash"], "nullifierHash")
        except (KeyError, TypeError, AttributeError) as e:
            raise ValidationError(
                f"Malformed note: {e}", reason=ValidationReason.MALFORMED_NOTE
            ) from e

        try:
            amount = int(amount_raw)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "Note amount must be a decimal integer",
                reason=ValidationReason.MALFORMED_NOTE,
                field="amount",
                value=amount_raw,
            ) from e

        leaf_index = data.get("leafIndex")
        if leaf_index is not None and (isinstance(leaf_index, bool) or not isinstance(leaf_index, int)):
            raise ValidationError(
                "leafIndex must be an integer",
                reason=ValidationReason.MALFORMED_NOTE,
                field="leafIndex",
                value=leaf_index,
            )

        note = cls(
            secret=secret,
            nullifier=nullifier,
            amount=amount,
            commitment=commitment,
            nullifier_hash=nullifier_hash,
            leaf_index=leaf_index,
        )
        note.verify(hasher)
        return note

    @classmethod
    def from_json(cls, text: str, hasher: Optional[FieldHasher] = None) -> "Note":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError(
                f"Note is not valid JSON: {e}", reason=ValidationReason.MALFORMED_NOTE
            ) from e
        if not isinstance(data, dict):
            raise ValidationError("Note JSON must be an object", reason=ValidationReason.MALFORMED_NOTE)
        return cls.from_dict(data, hasher)

    def __repr__(self) -> str:
        # Never print the secret material
        return (
            f"Note(amount={self.amount}, commitment={field_to_hex(self.commitment)[:16]}..., "
            f"leaf_index={self.leaf_index})"
        )


def create_note(
    secret: int, nullifier: int, amount: int, hasher: Optional[FieldHasher] = None
) -> Note:
    """Build a note from explicit secret material."""
    return Note(
        secret=secret,
        nullifier=nullifier,
        amount=amount,
        commitment=compute_commitment(secret, nullifier, amount, hasher),
        nullifier_hash=compute_nullifier_hash(nullifier, hasher),
    )


def generate_note(amount: int, hasher: Optional[FieldHasher] = None) -> Note:
    """Draw fresh secret material for a deposit of ``amount``."""
    note = create_note(random_field_element(), random_field_element(), amount, hasher)
    logger.debug("Generated note", extra={"amount": amount})
    return note
