"""
Property-based tests for deposit notes using Hypothesis.
"""

from hypothesis import assume, given, settings, strategies as st

from whistle.crypto.field import SCALAR_FIELD_MODULUS, U64_MAX
from whistle.crypto.notes import Note, create_note

field_elements = st.integers(min_value=0, max_value=SCALAR_FIELD_MODULUS - 1)
amounts = st.integers(min_value=0, max_value=U64_MAX)


class TestNoteProperties:
    """Invariants of note derivation."""

    @given(secret=field_elements, nullifier=field_elements, amount=amounts)
    @settings(max_examples=20, deadline=None)
    def test_derived_values_in_field(self, secret, nullifier, amount):
        """Test commitment and nullifier hash are scalar field elements."""
        note = create_note(secret, nullifier, amount)
        assert 0 <= note.commitment < SCALAR_FIELD_MODULUS
        assert 0 <= note.nullifier_hash < SCALAR_FIELD_MODULUS

    @given(secret=field_elements, nullifier=field_elements, amount=amounts)
    @settings(max_examples=20, deadline=None)
    def test_json_roundtrip(self, secret, nullifier, amount):
        """Test serialization preserves and re-verifies the note."""
        note = create_note(secret, nullifier, amount)
        assert Note.from_json(note.to_json()) == note

    @given(secret=field_elements, nullifier=field_elements, a=amounts, b=amounts)
    @settings(max_examples=20, deadline=None)
    def test_amount_only_in_commitment(self, secret, nullifier, a, b):
        """Test the amount changes the commitment but not the nullifier hash."""
        assume(a != b)
        first = create_note(secret, nullifier, a)
        second = create_note(secret, nullifier, b)
        assert first.nullifier_hash == second.nullifier_hash
        assert first.commitment != second.commitment
