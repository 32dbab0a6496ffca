"""
Unit tests for deposit notes.
"""

import json

import pytest

from whistle.crypto.field import SCALAR_FIELD_MODULUS, U64_MAX, field_to_hex
from whistle.crypto.hashing import Sha3FieldHasher
from whistle.crypto.notes import (
    Note,
    compute_commitment,
    compute_nullifier_hash,
    create_note,
    generate_note,
    random_field_element,
)
from whistle.errors import ValidationError, ValidationReason

ONE_SOL = 1_000_000_000


class TestCommitment:
    """Test commitment and nullifier hash derivation."""

    def test_commitment_structure(self):
        """Test commitment = H(secret, H(nullifier, amount))."""
        h = Sha3FieldHasher()
        assert compute_commitment(11, 22, ONE_SOL) == h(11, h(22, ONE_SOL))

    def test_nullifier_hash_structure(self):
        """Test nullifier_hash = H(nullifier, 0)."""
        h = Sha3FieldHasher()
        assert compute_nullifier_hash(22) == h(22, 0)

    def test_amount_binds_commitment(self):
        """Test different amounts give different commitments."""
        assert compute_commitment(1, 2, ONE_SOL) != compute_commitment(1, 2, 10 * ONE_SOL)

    def test_nullifier_hash_ignores_amount(self):
        """Test the nullifier hash does not depend on the amount."""
        a = create_note(1, 2, ONE_SOL)
        b = create_note(1, 2, 10 * ONE_SOL)
        assert a.nullifier_hash == b.nullifier_hash
        assert a.commitment != b.commitment

    def test_secret_out_of_field(self):
        """Test a secret equal to r is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            compute_commitment(SCALAR_FIELD_MODULUS, 1, ONE_SOL)
        assert exc_info.value.field == "secret"

    def test_nullifier_out_of_field(self):
        """Test a nullifier above r is rejected."""
        with pytest.raises(ValidationError):
            compute_nullifier_hash(SCALAR_FIELD_MODULUS + 1)

    def test_amount_must_fit_u64(self):
        """Test amounts above u64 are rejected."""
        with pytest.raises(ValidationError):
            compute_commitment(1, 2, U64_MAX + 1)
        assert compute_commitment(1, 2, U64_MAX) >= 0

    def test_boundary_values(self):
        """Test r - 1 is a valid secret and nullifier."""
        note = create_note(SCALAR_FIELD_MODULUS - 1, SCALAR_FIELD_MODULUS - 1, 0)
        assert 0 <= note.commitment < SCALAR_FIELD_MODULUS


class TestNote:
    """Test the Note data class."""

    def test_generate_note(self):
        """Test generated notes are self-consistent."""
        note = generate_note(ONE_SOL)
        note.verify()
        assert note.amount == ONE_SOL
        assert note.leaf_index is None

    def test_generated_notes_differ(self):
        """Test fresh secret material per note."""
        assert generate_note(ONE_SOL).commitment != generate_note(ONE_SOL).commitment

    def test_random_field_element_range(self):
        """Test random elements are in the scalar field."""
        for _ in range(20):
            assert 0 <= random_field_element() < SCALAR_FIELD_MODULUS

    def test_with_leaf_index(self):
        """Test recording the leaf index returns a copy."""
        note = create_note(1, 2, ONE_SOL)
        placed = note.with_leaf_index(5)
        assert placed.leaf_index == 5
        assert note.leaf_index is None
        assert placed.commitment == note.commitment

    def test_with_negative_leaf_index(self):
        """Test a negative leaf index is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            create_note(1, 2, ONE_SOL).with_leaf_index(-1)
        assert exc_info.value.reason == ValidationReason.INVALID_INDEX

    def test_verify_detects_tampering(self):
        """Test verify rejects a note whose commitment was altered."""
        note = create_note(1, 2, ONE_SOL)
        forged = Note(note.secret, note.nullifier, note.amount, note.commitment + 1, note.nullifier_hash)
        with pytest.raises(ValidationError) as exc_info:
            forged.verify()
        assert exc_info.value.reason == ValidationReason.MALFORMED_NOTE

    def test_to_dict_fields(self):
        """Test the serialized field names and encodings."""
        note = create_note(1, 2, ONE_SOL).with_leaf_index(3)
        data = note.to_dict()
        assert set(data) == {"secret", "nullifier", "commitment", "nullifierHash", "amount", "leafIndex"}
        assert data["secret"] == field_to_hex(1)
        assert len(data["commitment"]) == 64
        assert data["amount"] == str(ONE_SOL)
        assert data["leafIndex"] == 3

    def test_json_roundtrip(self):
        """Test a note survives JSON serialization."""
        note = generate_note(10 * ONE_SOL).with_leaf_index(7)
        assert Note.from_json(note.to_json()) == note

    def test_from_dict_rejects_wrong_commitment(self):
        """Test parsing re-derives and checks the commitment."""
        data = create_note(1, 2, ONE_SOL).to_dict()
        data["amount"] = str(10 * ONE_SOL)
        with pytest.raises(ValidationError) as exc_info:
            Note.from_dict(data)
        assert exc_info.value.reason == ValidationReason.MALFORMED_NOTE

    def test_from_dict_missing_field(self):
        """Test a missing field is a malformed note."""
        data = create_note(1, 2, ONE_SOL).to_dict()
        del data["nullifier"]
        with pytest.raises(ValidationError) as exc_info:
            Note.from_dict(data)
        assert exc_info.value.reason == ValidationReason.MALFORMED_NOTE

    def test_from_json_invalid(self):
        """Test invalid JSON is a malformed note."""
        with pytest.raises(ValidationError):
            Note.from_json("{not json")
        with pytest.raises(ValidationError):
            Note.from_json(json.dumps([1, 2, 3]))

    def test_from_dict_accepts_hex_prefix(self):
        """Test 0x-prefixed hex fields are accepted."""
        note = create_note(1, 2, ONE_SOL)
        data = {key: ("0x" + value if key not in ("amount", "leafIndex") else value)
                for key, value in note.to_dict().items()}
        assert Note.from_dict(data) == note

    def test_repr_hides_secrets(self):
        """Test the repr does not leak the secret."""
        note = create_note(123456789, 987654321, ONE_SOL)
        assert field_to_hex(note.secret) not in repr(note)
        assert "123456789" not in repr(note)
