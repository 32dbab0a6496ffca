"""
BN254 field constants and helpers.

Secrets, nullifiers, commitments and Merkle nodes live in the scalar field
``r``; curve point coordinates live in the base field ``q``. Both fit in 32
bytes and are serialized big-endian.
"""

from typing import Any, Optional

from ..errors import create_field_error, EncodingError, EncodingReason

# Scalar field of BN254 (order of the G1 group).
SCALAR_FIELD_MODULUS = (
    21888242871839275222246405745257275088548364400416034343698204186575808495617
)

# Base field of BN254 (coordinates of G1 / components of G2 points).
BASE_FIELD_MODULUS = (
    21888242871839275222246405745257275088696311157297823662689037894645226208583
)

FIELD_ELEMENT_SIZE = 32
U64_MAX = 2**64 - 1


def is_field_element(value: Any, modulus: int = SCALAR_FIELD_MODULUS) -> bool:
    """Return True if ``value`` is an int in ``[0, modulus)``."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < modulus
    )


def require_field_element(
    value: Any, name: str, modulus: int = SCALAR_FIELD_MODULUS
) -> int:
    """Return ``value`` unchanged or raise ``ValidationError``."""
    if not is_field_element(value, modulus):
        raise create_field_error(name, value, modulus)
    return value


def require_u64(value: Any, name: str) -> int:
    """Return ``value`` unchanged if it fits an unsigned 64-bit integer."""
    if not is_field_element(value, U64_MAX + 1):
        raise create_field_error(
            name, value, U64_MAX + 1, f"Invalid amount for '{name}': must be a u64"
        )
    return value


def to_be32(value: int) -> bytes:
    """Encode a non-negative integer as 32 big-endian bytes."""
    return value.to_bytes(FIELD_ELEMENT_SIZE, byteorder="big")


def from_be32(
    data: bytes,
    offset: int = 0,
    modulus: Optional[int] = None,
    reason: EncodingReason = EncodingReason.MALFORMED_POINT,
) -> int:
    """Decode 32 big-endian bytes at ``offset``.

    When ``modulus`` is given the decoded value must be below it, otherwise
    ``EncodingError(reason)`` is raised.
    """
    chunk = data[offset:offset + FIELD_ELEMENT_SIZE]
    if len(chunk) != FIELD_ELEMENT_SIZE:
        raise EncodingError(
            f"Expected {FIELD_ELEMENT_SIZE} bytes at offset {offset}, got {len(chunk)}",
            reason=EncodingReason.INVALID_LENGTH,
            offset=offset,
        )
    value = int.from_bytes(chunk, byteorder="big")
    if modulus is not None and value >= modulus:
        raise EncodingError(
            f"Value at offset {offset} is not reduced modulo the field prime",
            reason=reason,
            offset=offset,
        )
    return value


def field_to_hex(value: int) -> str:
    """Hex-encode a field element as 64 lowercase digits, no prefix."""
    return to_be32(value).hex()


def field_from_hex(text: str, name: str = "value") -> int:
    """Parse the output of :func:`field_to_hex` (a ``0x`` prefix is accepted)."""
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise create_field_error(name, text, SCALAR_FIELD_MODULUS, f"'{name}' is not valid hex") from None
    if len(raw) != FIELD_ELEMENT_SIZE:
        raise create_field_error(name, text, SCALAR_FIELD_MODULUS, f"'{name}' must encode exactly 32 bytes")
    return require_field_element(int.from_bytes(raw, byteorder="big"), name)
