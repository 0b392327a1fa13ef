"""Append-only Merkle accumulator for note commitments."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

from shieldpool.crypto.poseidon import Hasher, default_hasher
from shieldpool.exceptions import (
    CapacityExceededError,
    DuplicateCommitmentError,
    InputMalformedError,
    LeafNotFoundError,
)
from shieldpool.utils.encoding import short_hex
from shieldpool.utils.field import is_field_element, require_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MerkleWitness:
    """
    Inclusion witness for one leaf.

    path_directions[i] == 0 means the running hash is the left child at
    level i, 1 means it is the right child. root is the accumulator root the
    witness was taken against.
    """

    leaf_index: int
    path_elements: Tuple[int, ...]
    path_directions: Tuple[int, ...]
    root: int

    @property
    def depth(self) -> int:
        return len(self.path_elements)


def compute_root(
    leaf: int,
    path_elements: Sequence[int],
    path_directions: Sequence[int],
    hasher: Optional[Hasher] = None,
) -> int:
    """
    Fold a leaf up to a root.

    At each level: left = d ? sibling : running, right = d ? running : sibling,
    running = H(left, right).

    Raises:
        InputMalformedError: If lengths differ or a direction is not 0/1
    """
    hasher = hasher or default_hasher()
    if len(path_elements) != len(path_directions):
        raise InputMalformedError("Path elements and directions differ in length")

    running = leaf
    for sibling, direction in zip(path_elements, path_directions):
        if direction == 0:
            running = hasher.hash_pair(running, sibling)
        elif direction == 1:
            running = hasher.hash_pair(sibling, running)
        else:
            raise InputMalformedError("Path directions must be 0 or 1")
    return running


class MerkleAccumulator:
    """
    Fixed-depth binary Merkle tree of commitments.

    Leaves are appended left to right and never removed. Only non-default
    nodes are stored, keyed by (level, position); any missing node is the
    root of an empty subtree, whose hash per level is computed once when the
    accumulator is created.

    All mutation and snapshot reads go through one per-instance lock, so
    several accumulators (e.g. one per token) can live in a process without
    sharing state.
    """

    DEFAULT_DEPTH = 32
    DEFAULT_ROOT_HISTORY = 30
    ZERO_LEAF = 0

    def __init__(
        self,
        depth: int = DEFAULT_DEPTH,
        hasher: Optional[Hasher] = None,
        root_history_size: int = DEFAULT_ROOT_HISTORY,
    ):
        """
        Initialize empty accumulator.

        Args:
            depth: Number of levels between leaves and root (default 32)
            hasher: Node hash (default Poseidon)
            root_history_size: How many recent roots is_known_root() accepts

        Raises:
            ValueError: If depth or history size is invalid
        """
        if depth < 1 or depth > 64:
            raise ValueError("Tree depth must be between 1 and 64")
        if root_history_size < 1:
            raise ValueError("Root history size must be positive")

        self.depth = depth
        self.capacity = 2**depth
        self.hasher = hasher or default_hasher()

        self.leaves: List[int] = []
        self._index_of: Dict[int, int] = {}
        self.nodes: Dict[Tuple[int, int], int] = {}

        self.zero_hashes = self._compute_zero_hashes()
        self._root = self.zero_hashes[depth]
        self._root_history: Deque[int] = deque([self._root], maxlen=root_history_size)

        self._lock = threading.RLock()

    def _compute_zero_hashes(self) -> List[int]:
        """Hash of an empty subtree for every level 0..depth."""
        zeros = [self.ZERO_LEAF]
        for _ in range(self.depth):
            zeros.append(self.hasher.hash_pair(zeros[-1], zeros[-1]))
        return zeros

    def _node(self, level: int, position: int) -> int:
        return self.nodes.get((level, position), self.zero_hashes[level])

    def _check_appendable(self, leaf: int) -> None:
        require_field(leaf, "leaf")
        if len(self.leaves) >= self.capacity:
            raise CapacityExceededError(f"Accumulator is full ({self.capacity} leaves)")
        if leaf in self._index_of:
            raise DuplicateCommitmentError("Commitment already present in accumulator")

    def prepare_append(self, leaf: int) -> Tuple[int, int]:
        """
        Return the (leaf_index, root) that append(leaf) would produce.

        Nothing is modified. Hold `lock` across prepare_append() and
        append() to stage an append behind another commit, such as a
        database write.

        Raises:
            FieldRangeError: If leaf is not a field element
            CapacityExceededError: If the tree already holds 2^depth leaves
            DuplicateCommitmentError: If leaf is already in the tree
        """
        with self._lock:
            self._check_appendable(leaf)
            index = len(self.leaves)
            return index, self._fold_path(index, leaf)

    def append(self, leaf: int) -> int:
        """
        Append a commitment and return its leaf index.

        Raises:
            FieldRangeError: If leaf is not a field element
            CapacityExceededError: If the tree already holds 2^depth leaves
            DuplicateCommitmentError: If leaf is already in the tree
        """
        with self._lock:
            self._check_appendable(leaf)

            index = len(self.leaves)
            self.leaves.append(leaf)
            self._index_of[leaf] = index
            self.nodes[(0, index)] = leaf
            self._root = self._fold_path(index, leaf, store=True)
            self._root_history.append(self._root)
            root = self._root

        logger.debug(f"Appended leaf {index}, root={short_hex(root)}")
        return index

    def _fold_path(self, leaf_index: int, leaf: int, store: bool = False) -> int:
        """Hash a leaf up to the root, optionally storing the new parents."""
        position = leaf_index
        current = leaf

        for level in range(self.depth):
            if position % 2 == 0:
                current = self.hasher.hash_pair(current, self._node(level, position + 1))
            else:
                current = self.hasher.hash_pair(self._node(level, position - 1), current)
            position >>= 1
            if store:
                self.nodes[(level + 1, position)] = current

        return current

    def witness_for(self, index: int) -> MerkleWitness:
        """
        Return the inclusion witness of an inserted leaf.

        The path and root are read under the lock, so the witness always
        folds to the returned root even with concurrent appends.

        Raises:
            LeafNotFoundError: If no leaf was inserted at index
        """
        with self._lock:
            if isinstance(index, bool) or not isinstance(index, int):
                raise LeafNotFoundError(f"No leaf at index {index!r}")
            if index < 0 or index >= len(self.leaves):
                raise LeafNotFoundError(f"No leaf at index {index}")

            elements = []
            directions = []
            position = index
            for level in range(self.depth):
                elements.append(self._node(level, position ^ 1))
                directions.append(position & 1)
                position >>= 1

            return MerkleWitness(
                leaf_index=index,
                path_elements=tuple(elements),
                path_directions=tuple(directions),
                root=self._root,
            )

    def witness_for_commitment(self, commitment: int) -> MerkleWitness:
        """
        Return the witness of a leaf by value.

        Raises:
            LeafNotFoundError: If the commitment was never appended
        """
        with self._lock:
            index = self._index_of.get(commitment)
            if index is None:
                raise LeafNotFoundError("Commitment not found in accumulator")
            return self.witness_for(index)

    def index_of(self, commitment: int) -> Optional[int]:
        """Leaf index of a commitment, or None."""
        return self._index_of.get(commitment)

    def __contains__(self, commitment: object) -> bool:
        return commitment in self._index_of

    def verify(self, leaf: int, witness: MerkleWitness, claimed_root: int) -> bool:
        """
        Check that witness folds leaf to claimed_root.

        Malformed witnesses (wrong depth, non-binary directions, values
        outside the field) verify as False.
        """
        if witness.depth != self.depth or len(witness.path_directions) != self.depth:
            return False
        if not is_field_element(leaf) or not is_field_element(claimed_root):
            return False
        if not all(is_field_element(e) for e in witness.path_elements):
            return False
        try:
            return compute_root(
                leaf, witness.path_elements, witness.path_directions, self.hasher
            ) == claimed_root
        except InputMalformedError:
            return False

    @property
    def lock(self) -> threading.RLock:
        """Reentrant lock guarding every mutation and snapshot read."""
        return self._lock

    @property
    def root(self) -> int:
        """Get the current root."""
        with self._lock:
            return self._root

    def is_known_root(self, root: int) -> bool:
        """True if root is the current root or one of the recent ones."""
        with self._lock:
            return root in self._root_history

    @property
    def root_history(self) -> List[int]:
        with self._lock:
            return list(self._root_history)

    def get_state(self) -> dict:
        """
        Get the current state of the tree for serialization.

        Returns:
            dict: Tree state including leaves, depth, and root
        """
        with self._lock:
            return {
                "depth": self.depth,
                "capacity": self.capacity,
                "num_leaves": len(self.leaves),
                "leaves": [str(leaf) for leaf in self.leaves],
                "root": str(self._root),
            }

    def __len__(self) -> int:
        """Return the number of leaves in the tree."""
        return len(self.leaves)

    def __repr__(self) -> str:
        return (
            f"MerkleAccumulator(depth={self.depth}, "
            f"leaves={len(self.leaves)}/{self.capacity}, "
            f"root={short_hex(self._root)})"
        )
