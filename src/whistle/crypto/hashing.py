"""
Hash functions and utilities for Whistle.

Two families of hashes are used by the protocol:

* byte hashes (SHA-256) identifying ceremony artifacts and deriving
  instruction discriminators, wrapped in the 32-byte :class:`Hash` value;
* a two-input hash over the BN254 scalar field, ``H(a, b) -> int``, used for
  commitments, nullifier hashes and Merkle nodes.
"""

import hashlib
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes

from ..logging import get_logger
from .field import SCALAR_FIELD_MODULUS, require_field_element, to_be32

logger = get_logger(__name__)


@dataclass(frozen=True)
class Hash:
    """Immutable 32-byte hash value."""

    value: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.value, (bytes, bytearray)) or len(self.value) != 32:
            raise ValueError("Hash must be exactly 32 bytes")
        object.__setattr__(self, "value", bytes(self.value))

    def __str__(self) -> str:
        return self.value.hex()

    def __repr__(self) -> str:
        return f"Hash('{self.value.hex()}')"

    def __lt__(self, other: "Hash") -> bool:
        return self.value < other.value

    @classmethod
    def from_hex(cls, hex_string: str) -> "Hash":
        """Create a Hash from a hexadecimal string."""
        return cls(bytes.fromhex(hex_string))

    @classmethod
    def from_int(cls, value: int) -> "Hash":
        """Create a Hash from an integer (big-endian)."""
        return cls(value.to_bytes(32, byteorder="big"))

    @classmethod
    def zero(cls) -> "Hash":
        """Create a zero hash (all zeros)."""
        return cls(b"\x00" * 32)

    def is_zero(self) -> bool:
        return self.value == b"\x00" * 32

    def to_hex(self) -> str:
        """Convert hash to hexadecimal string."""
        return self.value.hex()

    def to_int(self) -> int:
        """Convert hash to integer (big-endian)."""
        return int.from_bytes(self.value, byteorder="big")


class SHA256Hasher:
    """SHA-256 over raw bytes."""

    @staticmethod
    def hash(data: Union[bytes, str]) -> Hash:
        """
        Hash data using SHA-256.

        Args:
            data: Data to hash (bytes or string)

        Returns:
            Hash object containing the SHA-256 hash
        """
        if isinstance(data, str):
            data = data.encode("utf-8")

        return Hash(hashlib.sha256(data).digest())

    @staticmethod
    def discriminator(name: str, namespace: str = "global") -> bytes:
        """
        Derive an 8-byte instruction discriminator.

        Args:
            name: Instruction name, e.g. ``"withdraw"``
            namespace: Discriminator namespace

        Returns:
            First 8 bytes of ``sha256("<namespace>:<name>")``
        """
        return hashlib.sha256(f"{namespace}:{name}".encode("utf-8")).digest()[:8]


class FieldHasher(ABC):
    """Two-input hash over the scalar field.

    Implementations must be deterministic and return a value in ``[0, r)``.
    """

    name = "abstract"

    @abstractmethod
    def hash_pair(self, left: int, right: int) -> int:
        """Hash two field elements to one."""
        pass

    def __call__(self, left: int, right: int) -> int:
        require_field_element(left, "left")
        require_field_element(right, "right")
        return self.hash_pair(left, right)


class Sha3FieldHasher(FieldHasher):
    """SHA3-256 of ``be32(left) || be32(right)`` reduced modulo ``r``.

    Not circuit friendly; a Poseidon implementation can be swapped in through
    :func:`set_default_hasher` without touching callers.
    """

    name = "sha3-256"

    def hash_pair(self, left: int, right: int) -> int:
        digest = hashes.Hash(hashes.SHA3_256())
        digest.update(to_be32(left))
        digest.update(to_be32(right))
        return int.from_bytes(digest.finalize(), byteorder="big") % SCALAR_FIELD_MODULUS


_default_hasher: Optional[FieldHasher] = None
_hasher_lock = threading.Lock()


def get_default_hasher() -> FieldHasher:
    """Return the process-wide field hasher."""
    global _default_hasher
    with _hasher_lock:
        if _default_hasher is None:
            _default_hasher = Sha3FieldHasher()
        return _default_hasher


def set_default_hasher(hasher: Optional[FieldHasher]) -> None:
    """Install a different field hasher; ``None`` restores the default."""
    global _default_hasher
    with _hasher_lock:
        _default_hasher = hasher
    logger.info(
        "Field hasher changed",
        extra={"hasher": hasher.name if hasher is not None else Sha3FieldHasher.name},
    )


def hash_pair(left: int, right: int) -> int:
    """``H(left, right)`` with the default field hasher."""
    return get_default_hasher()(left, right)
