"""
Append-only Merkle accumulator of deposit commitments.

Leaves are appended left to right. Empty positions hold the zero-subtree
hash of their level, so the tree always has a well-defined root. Each
insert recomputes only the path from the new leaf to the root and records
the new root in a bounded :class:`RootHistory` window; withdrawals may prove
membership against any root still inside that window.

Level 0 is the leaf level and level ``depth`` is the root. A direction bit
of 0 means the node on the path is a left child, 1 a right child.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import (
    CapacityError,
    CapacityReason,
    ConfigurationError,
    ConflictError,
    ConflictReason,
    EncodingError,
    EncodingReason,
    IntegrityError,
    ValidationError,
    ValidationReason,
)
from ..logging import get_logger
from .field import (
    FIELD_ELEMENT_SIZE,
    SCALAR_FIELD_MODULUS,
    from_be32,
    require_field_element,
    to_be32,
)
from .hashing import FieldHasher, get_default_hasher

logger = get_logger(__name__)

MAX_DEPTH = 32
MAX_EXPORT_DEPTH = 16


def compute_zero_hashes(depth: int, hasher: Optional[FieldHasher] = None) -> Tuple[int, ...]:
    """Return ``zeros[0..depth]`` with ``zeros[0] = 0`` and ``zeros[i+1] = H(zeros[i], zeros[i])``."""
    h = hasher or get_default_hasher()
    zeros = [0]
    for _ in range(depth):
        zeros.append(h(zeros[-1], zeros[-1]))
    return tuple(zeros)


def compute_root(
    leaf: int,
    index: int,
    siblings: Sequence[int],
    direction_bits: Sequence[int],
    hasher: Optional[FieldHasher] = None,
) -> int:
    """Fold a leaf up its authentication path and return the implied root."""
    if len(siblings) != len(direction_bits):
        raise ValidationError(
            "siblings and direction_bits must have the same length",
            reason=ValidationReason.INVALID_INDEX,
            field="direction_bits",
        )

    h = hasher or get_default_hasher()
    current = leaf
    for sibling, bit in zip(siblings, direction_bits):
        if bit == 0:
            current = h(current, sibling)
        elif bit == 1:
            current = h(sibling, current)
        else:
            raise ValidationError(
                "direction bits must be 0 or 1",
                reason=ValidationReason.INVALID_INDEX,
                field="direction_bits",
                value=bit,
            )
    return current


@dataclass(frozen=True)
class MerkleProof:
    """Authentication path for one leaf position, bound to the root it was read against."""

    leaf_index: int
    siblings: Tuple[int, ...]
    direction_bits: Tuple[int, ...]
    root: int

    @property
    def depth(self) -> int:
        return len(self.siblings)

    def compute_root(self, leaf: int, hasher: Optional[FieldHasher] = None) -> int:
        return compute_root(leaf, self.leaf_index, self.siblings, self.direction_bits, hasher)

    def verify(self, leaf: int, hasher: Optional[FieldHasher] = None) -> bool:
        """Check the proof without raising."""
        return self.compute_root(leaf, hasher) == self.root


@dataclass(frozen=True)
class AccumulatorSnapshot:
    """Consistent read of the accumulator head."""

    depth: int
    next_index: int
    root: int

    @property
    def capacity(self) -> int:
        return 2 ** self.depth

    @property
    def is_full(self) -> bool:
        return self.next_index >= self.capacity


class RootHistory:
    """Fixed-capacity circular buffer of recent roots."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ConfigurationError(
                "Root history capacity must be positive",
                config_key="root_history_size",
                config_value=capacity,
            )
        self._capacity = capacity
        self._slots: List[Optional[int]] = [None] * capacity
        self._cursor = 0
        self._size = 0
        self._lock = threading.RLock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, root: int) -> None:
        """Record ``root``, evicting the oldest entry when full."""
        with self._lock:
            self._slots[self._cursor] = root
            self._cursor = (self._cursor + 1) % self._capacity
            self._size = min(self._size + 1, self._capacity)

    def latest(self) -> Optional[int]:
        with self._lock:
            if self._size == 0:
                return None
            return self._slots[(self._cursor - 1) % self._capacity]

    def roots(self) -> List[int]:
        """Roots in the window, oldest first."""
        with self._lock:
            start = (self._cursor - self._size) % self._capacity
            return [self._slots[(start + i) % self._capacity] for i in range(self._size)]

    def __contains__(self, root: object) -> bool:
        with self._lock:
            return any(slot == root for slot in self._slots if slot is not None)

    def __len__(self) -> int:
        with self._lock:
            return self._size


@dataclass(frozen=True)
class TreeState:
    """Every node of a small tree in heap order plus the number of levels.

    Position 0 is the root; the children of position ``i`` are ``2i + 1``
    and ``2i + 2``. The last ``2**levels_used`` positions are the leaves.
    """

    levels_used: int
    nodes: Tuple[int, ...]

    def __post_init__(self):
        expected = 2 ** (self.levels_used + 1) - 1
        if len(self.nodes) != expected:
            raise ValidationError(
                f"Tree of {self.levels_used} levels needs {expected} nodes, got {len(self.nodes)}",
                reason=ValidationReason.INVALID_INDEX,
                field="nodes",
            )

    @staticmethod
    def heap_position(depth: int, level: int, index: int) -> int:
        """Heap position of node ``index`` at ``level`` (0 = leaves)."""
        return 2 ** (depth - level) - 1 + index

    @property
    def root(self) -> int:
        return self.nodes[0]

    def leaves(self) -> Tuple[int, ...]:
        first = 2 ** self.levels_used - 1
        return self.nodes[first:]

    def to_bytes(self) -> bytes:
        return b"".join(to_be32(node) for node in self.nodes) + bytes([self.levels_used])

    @classmethod
    def from_bytes(cls, data: bytes) -> "TreeState":
        if not data:
            raise EncodingError("Empty tree state", reason=EncodingReason.INVALID_LENGTH)

        levels_used = data[-1]
        if levels_used < 1 or levels_used > MAX_EXPORT_DEPTH:
            raise EncodingError(
                f"Unsupported tree depth {levels_used}",
                reason=EncodingReason.INVALID_LENGTH,
                offset=len(data) - 1,
            )

        count = 2 ** (levels_used + 1) - 1
        if len(data) != count * FIELD_ELEMENT_SIZE + 1:
            raise EncodingError(
                f"Tree state of depth {levels_used} must be {count * FIELD_ELEMENT_SIZE + 1} bytes",
                reason=EncodingReason.INVALID_LENGTH,
            )

        nodes = tuple(
            from_be32(data, i * FIELD_ELEMENT_SIZE, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
            for i in range(count)
        )
        return cls(levels_used=levels_used, nodes=nodes)


class MerkleAccumulator:
    """Append-only incremental Merkle tree with a root-history window."""

    def __init__(
        self,
        depth: int = 20,
        root_history_size: int = 30,
        hasher: Optional[FieldHasher] = None,
    ):
        if not isinstance(depth, int) or not 1 <= depth <= MAX_DEPTH:
            raise ConfigurationError(
                f"Merkle depth must be between 1 and {MAX_DEPTH}",
                config_key="merkle_depth",
                config_value=depth,
            )

        self._depth = depth
        self._hasher = hasher or get_default_hasher()
        self._zeros = compute_zero_hashes(depth, self._hasher)
        self._nodes: Dict[Tuple[int, int], int] = {}
        self._next_index = 0
        self._root = self._zeros[depth]
        self._history = RootHistory(root_history_size)
        self._history.push(self._root)
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config, hasher: Optional[FieldHasher] = None) -> "MerkleAccumulator":
        return cls(config.merkle_depth, config.root_history_size, hasher)

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def capacity(self) -> int:
        return 2 ** self._depth

    @property
    def zeros(self) -> Tuple[int, ...]:
        return self._zeros

    @property
    def hasher(self) -> FieldHasher:
        return self._hasher

    @property
    def next_index(self) -> int:
        with self._lock:
            return self._next_index

    @property
    def current_root(self) -> int:
        with self._lock:
            return self._root

    @property
    def root_history(self) -> RootHistory:
        return self._history

    def __len__(self) -> int:
        return self.next_index

    def _node(self, level: int, index: int) -> int:
        return self._nodes.get((level, index), self._zeros[level])

    def leaf(self, index: int) -> int:
        """Leaf value at ``index``; unfilled positions read as 0."""
        with self._lock:
            self._check_index(index)
            return self._node(0, index)

    def leaves(self) -> List[int]:
        with self._lock:
            return [self._nodes[(0, i)] for i in range(self._next_index)]

    def snapshot(self) -> AccumulatorSnapshot:
        with self._lock:
            return AccumulatorSnapshot(self._depth, self._next_index, self._root)

    def insert(self, leaf: int) -> int:
        """Append ``leaf`` and return its index.

        Raises:
            ValidationError: ``leaf`` is not a scalar field element.
            CapacityError: the tree already holds ``2**depth`` leaves.
        """
        require_field_element(leaf, "leaf")

        with self._lock:
            if self._next_index >= self.capacity:
                logger.warning(
                    "Rejected insert into full tree",
                    extra={"depth": self._depth, "capacity": self.capacity},
                )
                raise CapacityError(
                    f"Merkle tree is full ({self.capacity} leaves)",
                    reason=CapacityReason.TREE_FULL,
                    capacity=self.capacity,
                )

            index = self._next_index
            updates = {(0, index): leaf}
            current = leaf
            position = index
            for level in range(self._depth):
                if position & 1:
                    current = self._hasher(self._node(level, position - 1), current)
                else:
                    current = self._hasher(current, self._node(level, position + 1))
                position >>= 1
                updates[(level + 1, position)] = current

            # Nothing below can fail, so state changes all at once
            self._nodes.update(updates)
            self._root = current
            self._history.push(current)
            self._next_index = index + 1

        logger.debug("Inserted leaf", extra={"index": index, "next_index": index + 1})
        return index

    def insert_at(self, leaf: int, expected_index: int) -> int:
        """Insert only if the next free position is still ``expected_index``."""
        with self._lock:
            if expected_index != self._next_index:
                raise ConflictError(
                    f"Expected next index {expected_index} but tree is at {self._next_index}",
                    reason=ConflictReason.STALE_ROOT,
                    metadata={"expected_index": expected_index, "next_index": self._next_index},
                )
            return self.insert(leaf)

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < self.capacity:
            raise ValidationError(
                f"Leaf index must be in [0, {self.capacity})",
                reason=ValidationReason.INVALID_INDEX,
                field="index",
                value=index,
            )

    def get_proof(self, index: int) -> MerkleProof:
        """Authentication path for ``index`` against the current root.

        Any position below the capacity can be queried; the path of an
        unfilled position does not depend on the value that will land there.
        """
        with self._lock:
            self._check_index(index)
            siblings = []
            bits = []
            position = index
            for level in range(self._depth):
                siblings.append(self._node(level, position ^ 1))
                bits.append(position & 1)
                position >>= 1
            return MerkleProof(
                leaf_index=index,
                siblings=tuple(siblings),
                direction_bits=tuple(bits),
                root=self._root,
            )

    def verify_path(
        self,
        leaf: int,
        index: int,
        siblings: Sequence[int],
        direction_bits: Sequence[int],
        root: int,
    ) -> bool:
        """Recompute the root from a path; return True or raise ``PATH_MISMATCH``."""
        self._check_index(index)

        if len(siblings) != self._depth or len(direction_bits) != self._depth:
            raise ConflictError(
                f"Path length must equal tree depth {self._depth}",
                reason=ConflictReason.PATH_MISMATCH,
            )

        for level, bit in enumerate(direction_bits):
            if bit != (index >> level) & 1:
                raise ConflictError(
                    f"Direction bit at level {level} disagrees with index {index}",
                    reason=ConflictReason.PATH_MISMATCH,
                    metadata={"level": level},
                )

        computed = compute_root(leaf, index, siblings, direction_bits, self._hasher)
        if computed != root:
            raise ConflictError(
                "Recomputed root does not match",
                reason=ConflictReason.PATH_MISMATCH,
                metadata={"index": index},
            )
        return True

    def verify_proof(self, leaf: int, proof: MerkleProof) -> bool:
        return self.verify_path(leaf, proof.leaf_index, proof.siblings, proof.direction_bits, proof.root)

    def is_known_root(self, root: int) -> bool:
        """True if ``root`` is in the recent-root window."""
        with self._lock:
            return root in self._history

    def to_tree_state(self) -> TreeState:
        """Export every node in heap order (small trees only)."""
        if self._depth > MAX_EXPORT_DEPTH:
            raise ConfigurationError(
                f"Tree state export is limited to depth {MAX_EXPORT_DEPTH}",
                config_key="merkle_depth",
                config_value=self._depth,
            )

        with self._lock:
            nodes = [0] * (2 ** (self._depth + 1) - 1)
            for level in range(self._depth + 1):
                for index in range(2 ** (self._depth - level)):
                    nodes[TreeState.heap_position(self._depth, level, index)] = self._node(level, index)
            return TreeState(levels_used=self._depth, nodes=tuple(nodes))

    @classmethod
    def from_tree_state(
        cls,
        state: TreeState,
        next_index: int,
        root_history_size: int = 30,
        hasher: Optional[FieldHasher] = None,
    ) -> "MerkleAccumulator":
        """Rebuild an accumulator from exported state.

        ``next_index`` comes from the pool state. The leaves below it are
        re-inserted and every recomputed node must match the stored array.

        Raises:
            IntegrityError: the stored nodes disagree with the recomputed tree.
        """
        tree = cls(state.levels_used, root_history_size, hasher)
        leaves = state.leaves()
        if not 0 <= next_index <= len(leaves):
            raise IntegrityError(
                f"next_index {next_index} is outside a tree of {len(leaves)} leaves",
                component="merkle",
            )

        for leaf in leaves[:next_index]:
            tree.insert(leaf)

        rebuilt = tree.to_tree_state()
        if rebuilt.nodes != state.nodes:
            mismatched = [i for i, (a, b) in enumerate(zip(rebuilt.nodes, state.nodes)) if a != b]
            logger.error(
                "Stored tree state does not match recomputed tree",
                extra={"first_mismatch": mismatched[0], "mismatches": len(mismatched)},
            )
            raise IntegrityError(
                "Stored tree state does not match recomputed tree",
                component="merkle",
                metadata={"mismatched_positions": mismatched[:16]},
            )
        return tree
