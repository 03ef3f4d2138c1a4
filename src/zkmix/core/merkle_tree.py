"""Fixed-depth Merkle accumulator backing the deposit tree.

Verification never needs the tree itself: a MerkleWitness (leaf index plus
sibling path) is enough to recompute the root for any leaf value. The same
computation checks current state (old leaf) and projects the next state
(new leaf), which is how insertion is expressed:

    witness.verify_against_root(EMPTY_LEAF, current_root)
    new_root = witness.compute_root(commitment)

MerkleTree is the off-chain companion that depositors and indexers keep in
memory to produce fresh witnesses.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, List, Optional, Tuple
import logging

from zkmix.utils.field import EMPTY_LEAF, to_field
from zkmix.utils.hash import merkle_hash
from zkmix.utils.encoding import short_hex
from zkmix.exceptions import (
    InvalidFieldElementError,
    InvalidLeafIndexError,
    InvalidWitnessError,
    TreeHeightExceededError,
)

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 20
MAX_DEPTH = 256


@lru_cache(maxsize=None)
def empty_subtree_roots(depth: int) -> Tuple[int, ...]:
    """
    Roots of all-empty subtrees, indexed by level.

    Level 0 is the empty leaf itself; level `depth` is the empty tree root.
    """
    nodes = [EMPTY_LEAF]
    for _ in range(depth):
        nodes.append(merkle_hash(nodes[-1], nodes[-1]))
    return tuple(nodes)


def empty_root(depth: int = DEFAULT_DEPTH) -> int:
    """Root of a tree of the given depth whose leaves are all empty."""
    return empty_subtree_roots(depth)[depth]


def _check_depth(depth: int) -> None:
    if not isinstance(depth, int) or depth < 1 or depth > MAX_DEPTH:
        raise ValueError(f"Tree depth must be between 1 and {MAX_DEPTH}")


@dataclass(frozen=True)
class MerkleWitness:
    """
    Sibling path proving the content of one leaf under a root.

    siblings[0] is the sibling of the leaf, siblings[-1] the sibling
    just below the root.
    """

    index: int
    siblings: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "siblings", tuple(self.siblings))

    @property
    def depth(self) -> int:
        return len(self.siblings)

    def _validate(self) -> None:
        if not self.siblings or len(self.siblings) > MAX_DEPTH:
            raise InvalidWitnessError(f"Witness depth must be between 1 and {MAX_DEPTH}")
        if isinstance(self.index, bool) or not isinstance(self.index, int):
            raise InvalidWitnessError("Witness index must be an int")
        if self.index < 0 or self.index >= 2 ** self.depth:
            raise InvalidWitnessError(
                f"Witness index {self.index} outside [0, 2^{self.depth})"
            )
        try:
            for sibling in self.siblings:
                to_field(sibling)
        except InvalidFieldElementError as e:
            raise InvalidWitnessError(f"Malformed sibling: {e}")

    def compute_root(self, leaf_value: int) -> int:
        """
        Root that results if leaf_value occupies this witness's index.

        Pure function of (index, siblings, leaf_value).

        Raises:
            InvalidWitnessError: If the witness is structurally invalid
            InvalidFieldElementError: If leaf_value is not a field element
        """
        self._validate()
        current = to_field(leaf_value)
        position = self.index

        for sibling in self.siblings:
            if position % 2 == 0:
                current = merkle_hash(current, sibling)
            else:
                current = merkle_hash(sibling, current)
            position >>= 1

        return current

    def verify_against_root(self, leaf_value: int, expected_root: int) -> None:
        """
        Raises:
            InvalidWitnessError: If compute_root(leaf_value) != expected_root
        """
        computed = self.compute_root(leaf_value)
        if computed != expected_root:
            logger.debug(
                "Witness mismatch at index %d: computed %s, expected %s",
                self.index, short_hex(computed), short_hex(expected_root),
            )
            raise InvalidWitnessError(
                f"Witness for index {self.index} does not match root"
            )

    def matches(self, leaf_value: int, expected_root: int) -> bool:
        """Non-raising form of verify_against_root."""
        try:
            self.verify_against_root(leaf_value, expected_root)
            return True
        except (InvalidWitnessError, InvalidFieldElementError):
            return False


class MerkleTree:
    """
    Sparse fixed-depth binary Merkle tree.

    Only non-empty nodes are stored; everything else falls back to the
    precomputed empty-subtree roots, so depths up to 256 stay cheap.
    """

    def __init__(self, depth: int = DEFAULT_DEPTH):
        """
        Initialize empty Merkle tree.

        Args:
            depth: Number of levels above the leaves (capacity 2^depth)

        Raises:
            ValueError: If depth is invalid
        """
        _check_depth(depth)

        self.depth = depth
        self.max_leaves = 2 ** depth
        self._empty = empty_subtree_roots(depth)

        # (level, position) -> node, level 0 holds leaves
        self.nodes: Dict[Tuple[int, int], int] = {}

    def _node(self, level: int, position: int) -> int:
        return self.nodes.get((level, position), self._empty[level])

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidLeafIndexError(f"Invalid leaf index: {index!r}")
        if index < 0 or index >= self.max_leaves:
            raise InvalidLeafIndexError(f"Invalid leaf index: {index}")

    def get_leaf(self, index: int) -> int:
        """Current value at a leaf (EMPTY_LEAF if never set)."""
        self._check_index(index)
        return self._node(0, index)

    def set_leaf(self, index: int, value: int) -> int:
        """
        Set a leaf and update every node on its path to the root.

        Returns:
            int: New root
        """
        self._check_index(index)
        value = to_field(value)

        self._store(0, index, value)
        position = index
        current = value

        for level in range(self.depth):
            sibling = self._node(level, position ^ 1)
            if position % 2 == 0:
                current = merkle_hash(current, sibling)
            else:
                current = merkle_hash(sibling, current)
            position >>= 1
            self._store(level + 1, position, current)

        return current

    def _store(self, level: int, position: int, value: int) -> None:
        # Empty nodes are implicit
        if value == self._empty[level]:
            self.nodes.pop((level, position), None)
        else:
            self.nodes[(level, position)] = value

    def insert(self, commitment: int) -> int:
        """
        Place a commitment at the next free leaf.

        Returns:
            int: Leaf index used

        Raises:
            TreeHeightExceededError: If tree is full
        """
        index = self.next_free_index()
        self.set_leaf(index, commitment)
        return index

    def next_free_index(self) -> int:
        """Lowest empty leaf index."""
        index = 0
        for occupied in self.occupied_indices():
            if occupied != index:
                break
            index += 1
        if index >= self.max_leaves:
            raise TreeHeightExceededError(f"Tree is full (max {self.max_leaves} leaves)")
        return index

    def occupied_indices(self) -> List[int]:
        return sorted(position for (level, position) in self.nodes if level == 0)

    def get_witness(self, index: int) -> MerkleWitness:
        """
        Witness for a leaf against the current root.

        Works for empty leaves too, which is what a depositor needs.
        """
        self._check_index(index)

        siblings = []
        position = index
        for level in range(self.depth):
            siblings.append(self._node(level, position ^ 1))
            position >>= 1

        return MerkleWitness(index=index, siblings=tuple(siblings))

    def index_of(self, value: int) -> Optional[int]:
        """Index of the first leaf holding value, if any."""
        for index in self.occupied_indices():
            if self.nodes[(0, index)] == value:
                return index
        return None

    @property
    def root(self) -> int:
        """Get the current Merkle root."""
        return self._node(self.depth, 0)

    def get_state(self) -> dict:
        """
        Get the current state of the tree for serialization.

        Returns:
            dict: Tree state including leaves, depth, and root
        """
        return {
            "depth": self.depth,
            "max_leaves": self.max_leaves,
            "num_leaves": len(self),
            "leaves": {index: self.nodes[(0, index)] for index in self.occupied_indices()},
            "root": self.root,
        }

    def __len__(self) -> int:
        """Return the number of non-empty leaves in the tree."""
        return sum(1 for (level, _) in self.nodes if level == 0)

    def __repr__(self) -> str:
        return (
            f"MerkleTree(depth={self.depth}, "
            f"leaves={len(self)}/{self.max_leaves}, "
            f"root={short_hex(self.root)})"
        )
