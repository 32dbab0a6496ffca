"""
Groth16 proof byte layout.

The on-chain pairing verifier expects a 256-byte proof laid out as::

    A  (64)   be32(x) || be32(-y mod q)
    B  (128)  be32(x1) || be32(x0) || be32(y1) || be32(y0)
    C  (64)   be32(x) || be32(y)

A is negated because the verifier checks ``e(-A, B) * e(alpha, beta) * ...
== 1``. B's extension field components are emitted imaginary part first,
while provers such as snarkjs give them real part first. C is untouched.
A wrong layout still decodes; it only fails pairing verification, so the
exact bytes are pinned by tests.
"""

from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from ...errors import EncodingError, EncodingReason, ValidationError, ValidationReason
from ..field import BASE_FIELD_MODULUS, from_be32, require_field_element, to_be32

G1_SIZE = 64
G2_SIZE = 128
PROOF_SIZE = G1_SIZE + G2_SIZE + G1_SIZE


@dataclass(frozen=True)
class G1Point:
    """Affine point on the base curve."""
    x: int
    y: int

    def __post_init__(self):
        require_field_element(self.x, "x", BASE_FIELD_MODULUS)
        require_field_element(self.y, "y", BASE_FIELD_MODULUS)

    def negate(self) -> 'G1Point':
        return G1Point(self.x, (BASE_FIELD_MODULUS - self.y) % BASE_FIELD_MODULUS)


@dataclass(frozen=True)
class G2Point:
    """Affine point on the twist; each coordinate is ``(real, imaginary)``."""
    x: Tuple[int, int]
    y: Tuple[int, int]

    def __post_init__(self):
        try:
            object.__setattr__(self, 'x', tuple(self.x))
            object.__setattr__(self, 'y', tuple(self.y))
        except TypeError as e:
            raise ValidationError("G2 coordinates must be pairs of integers",
                                  reason=ValidationReason.INVALID_FIELD_ELEMENT) from e
        if len(self.x) != 2 or len(self.y) != 2:
            raise ValidationError("G2 coordinates must have two components",
                                  reason=ValidationReason.INVALID_FIELD_ELEMENT)
        for name, value in (('x0', self.x[0]), ('x1', self.x[1]),
                            ('y0', self.y[0]), ('y1', self.y[1])):
            require_field_element(value, name, BASE_FIELD_MODULUS)


@dataclass(frozen=True)
class Groth16Proof:
    """Proof points as produced by the prover."""
    a: G1Point
    b: G2Point
    c: G1Point

    def to_bytes(self) -> bytes:
        return encode_proof(self)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'Groth16Proof':
        return decode_proof(data)


@dataclass(frozen=True)
class EncodedProof:
    """The verifier encoding split into its three segments."""
    a: bytes
    b: bytes
    c: bytes

    def __post_init__(self):
        for name, value, size in (('a', self.a, G1_SIZE), ('b', self.b, G2_SIZE), ('c', self.c, G1_SIZE)):
            if len(value) != size:
                raise EncodingError(f"Proof segment {name} must be {size} bytes, got {len(value)}",
                                    reason=EncodingReason.MALFORMED_POINT)

    @classmethod
    def split(cls, data: bytes) -> 'EncodedProof':
        _check_length(data, PROOF_SIZE, "proof")
        return cls(a=bytes(data[:G1_SIZE]),
                   b=bytes(data[G1_SIZE:G1_SIZE + G2_SIZE]),
                   c=bytes(data[G1_SIZE + G2_SIZE:]))

    def to_bytes(self) -> bytes:
        return self.a + self.b + self.c


def _check_length(data: bytes, size: int, what: str) -> None:
    if not isinstance(data, (bytes, bytearray)) or len(data) != size:
        length = len(data) if isinstance(data, (bytes, bytearray)) else None
        raise EncodingError(f"Encoded {what} must be {size} bytes, got {length}",
                            reason=EncodingReason.MALFORMED_POINT,
                            metadata={"expected": size, "actual": length})


def encode_g1(point: G1Point, negate: bool = False) -> bytes:
    """Encode a G1 point, optionally negating ``y``."""
    if negate:
        point = point.negate()
    return to_be32(point.x) + to_be32(point.y)


def decode_g1(data: bytes, negated: bool = False) -> G1Point:
    """Inverse of :func:`encode_g1`."""
    _check_length(data, G1_SIZE, "G1 point")
    x = from_be32(data, 0, BASE_FIELD_MODULUS)
    y = from_be32(data, 32, BASE_FIELD_MODULUS)
    point = G1Point(x, y)
    return point.negate() if negated else point


def encode_g2(point: G2Point) -> bytes:
    """Encode a G2 point with each coordinate's components swapped."""
    return (to_be32(point.x[1]) + to_be32(point.x[0]) +
            to_be32(point.y[1]) + to_be32(point.y[0]))


def decode_g2(data: bytes) -> G2Point:
    """Inverse of :func:`encode_g2`."""
    _check_length(data, G2_SIZE, "G2 point")
    x1, x0, y1, y0 = (from_be32(data, offset, BASE_FIELD_MODULUS) for offset in (0, 32, 64, 96))
    return G2Point(x=(x0, x1), y=(y0, y1))


def encode_proof(proof: Groth16Proof) -> bytes:
    """Encode a proof into the 256-byte verifier layout."""
    return encode_g1(proof.a, negate=True) + encode_g2(proof.b) + encode_g1(proof.c)


def decode_proof(data: bytes) -> Groth16Proof:
    """Decode the 256-byte verifier layout.

    Raises:
        EncodingError: wrong length or a coordinate not below ``q``.
    """
    parts = EncodedProof.split(data)
    return Groth16Proof(a=decode_g1(parts.a, negated=True),
                        b=decode_g2(parts.b),
                        c=decode_g1(parts.c))


def _parse_coordinate(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Coordinate {name} is not an integer: {value!r}",
                            reason=EncodingReason.MALFORMED_POINT) from e
    if not 0 <= number < BASE_FIELD_MODULUS:
        raise EncodingError(f"Coordinate {name} is outside the base field",
                            reason=EncodingReason.MALFORMED_POINT)
    return number


def _pair(values: Sequence[Any], name: str) -> Tuple[Any, Any]:
    if not isinstance(values, (list, tuple)) or len(values) < 2:
        raise EncodingError(f"{name} must list at least two coordinates",
                            reason=EncodingReason.MALFORMED_POINT)
    return values[0], values[1]


def from_snarkjs(obj: Dict[str, Any]) -> Groth16Proof:
    """Build a proof from snarkjs JSON (decimal strings, projective ``z`` ignored)."""
    try:
        pi_a, pi_b, pi_c = obj['pi_a'], obj['pi_b'], obj['pi_c']
    except (KeyError, TypeError) as e:
        raise EncodingError(f"Missing proof field: {e}", reason=EncodingReason.MALFORMED_POINT) from e

    ax, ay = _pair(pi_a, 'pi_a')
    bx, by = _pair(pi_b, 'pi_b')
    bx0, bx1 = _pair(bx, 'pi_b[0]')
    by0, by1 = _pair(by, 'pi_b[1]')
    cx, cy = _pair(pi_c, 'pi_c')

    return Groth16Proof(
        a=G1Point(_parse_coordinate(ax, 'pi_a[0]'), _parse_coordinate(ay, 'pi_a[1]')),
        b=G2Point(x=(_parse_coordinate(bx0, 'pi_b[0][0]'), _parse_coordinate(bx1, 'pi_b[0][1]')),
                  y=(_parse_coordinate(by0, 'pi_b[1][0]'), _parse_coordinate(by1, 'pi_b[1][1]'))),
        c=G1Point(_parse_coordinate(cx, 'pi_c[0]'), _parse_coordinate(cy, 'pi_c[1]')),
    )


def to_snarkjs(proof: Groth16Proof) -> Dict[str, Any]:
    """Inverse of :func:`from_snarkjs` with ``z = 1``."""
    return {
        'pi_a': [str(proof.a.x), str(proof.a.y), '1'],
        'pi_b': [[str(proof.b.x[0]), str(proof.b.x[1])],
                 [str(proof.b.y[0]), str(proof.b.y[1])],
                 ['1', '0']],
        'pi_c': [str(proof.c.x), str(proof.c.y), '1'],
        'protocol': 'groth16',
        'curve': 'bn128',
    }
