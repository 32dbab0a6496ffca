"""
Property-based tests for the Groth16 proof layout using Hypothesis.
"""

import pytest
from hypothesis import given, settings, strategies as st

from whistle.crypto.field import BASE_FIELD_MODULUS, to_be32
from whistle.crypto.zkp.codec import G1Point, G2Point, Groth16Proof, decode_proof, encode_proof
from whistle.errors import EncodingError

coordinates = st.integers(min_value=0, max_value=BASE_FIELD_MODULUS - 1)


@st.composite
def proofs(draw):
    return Groth16Proof(
        a=G1Point(draw(coordinates), draw(coordinates)),
        b=G2Point(x=(draw(coordinates), draw(coordinates)), y=(draw(coordinates), draw(coordinates))),
        c=G1Point(draw(coordinates), draw(coordinates)),
    )


class TestCodecProperties:
    """Invariants of the verifier encoding."""

    @given(proof=proofs())
    @settings(max_examples=20, deadline=None)
    def test_decode_inverts_encode(self, proof):
        """Test decoding recovers the prover's points."""
        assert decode_proof(encode_proof(proof)) == proof

    @given(proof=proofs())
    @settings(max_examples=20, deadline=None)
    def test_segment_layout(self, proof):
        """Test every segment sits at its fixed offset."""
        data = encode_proof(proof)
        assert len(data) == 256
        assert data[0:32] == to_be32(proof.a.x)
        assert data[32:64] == to_be32((BASE_FIELD_MODULUS - proof.a.y) % BASE_FIELD_MODULUS)
        assert data[64:96] == to_be32(proof.b.x[1])
        assert data[96:128] == to_be32(proof.b.x[0])
        assert data[128:160] == to_be32(proof.b.y[1])
        assert data[160:192] == to_be32(proof.b.y[0])
        assert data[192:256] == to_be32(proof.c.x) + to_be32(proof.c.y)

    @given(proof=proofs(), slot=st.integers(min_value=0, max_value=7),
           excess=st.integers(min_value=0, max_value=2**256 - 1 - BASE_FIELD_MODULUS))
    @settings(max_examples=20, deadline=None)
    def test_unreduced_coordinate_rejected(self, proof, slot, excess):
        """Test a coordinate at or above q anywhere is rejected."""
        data = bytearray(encode_proof(proof))
        data[slot * 32:(slot + 1) * 32] = to_be32(BASE_FIELD_MODULUS + excess)
        with pytest.raises(EncodingError):
            decode_proof(bytes(data))

    @given(data=st.binary(max_size=300).filter(lambda b: len(b) != 256))
    @settings(max_examples=20, deadline=None)
    def test_wrong_length_rejected(self, data):
        """Test only 256-byte inputs decode."""
        with pytest.raises(EncodingError):
            decode_proof(data)
