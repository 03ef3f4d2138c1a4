"""Sparse key-value Merkle map used as the nullifier (double-spend) set.

Conceptually a depth-256 Merkle tree whose leaf position is the key itself.
Values are UNUSED (0) or USED (1); a key moves from UNUSED to USED exactly
once and never back.
"""

from dataclasses import dataclass
from typing import Tuple

from zkmix.core.merkle_tree import MerkleTree, MerkleWitness, empty_root
from zkmix.utils.field import USED, to_field
from zkmix.exceptions import InvalidFieldElementError, InvalidWitnessError

MAP_DEPTH = 256


def empty_map_root() -> int:
    """Root of a map in which every key is UNUSED."""
    return empty_root(MAP_DEPTH)


@dataclass(frozen=True)
class MerkleMapWitness:
    """
    Path for one key of a MerkleMap.

    The key is part of the witness; compute_root_and_key returns it so a
    verifier can check the path belongs to the key it cares about.
    """

    key: int
    siblings: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "siblings", tuple(self.siblings))

    def compute_root_and_key(self, value: int) -> Tuple[int, int]:
        """
        Raises:
            InvalidWitnessError: If the path is malformed or the key is not a field element
        """
        if len(self.siblings) != MAP_DEPTH:
            raise InvalidWitnessError(f"Map witness must have {MAP_DEPTH} siblings")
        try:
            key = to_field(self.key)
        except InvalidFieldElementError as e:
            raise InvalidWitnessError(f"Malformed map key: {e}")

        root = MerkleWitness(index=key, siblings=self.siblings).compute_root(value)
        return root, key

    def compute_root(self, value: int) -> int:
        return self.compute_root_and_key(value)[0]


class MerkleMap:
    """Key-value view over a depth-256 sparse MerkleTree."""

    def __init__(self):
        self._tree = MerkleTree(depth=MAP_DEPTH)

    def get(self, key: int) -> int:
        return self._tree.get_leaf(to_field(key))

    def set(self, key: int, value: int) -> int:
        """Set a key's value. Returns the new root."""
        return self._tree.set_leaf(to_field(key), value)

    def is_used(self, key: int) -> bool:
        return self.get(key) == USED

    def mark_used(self, key: int) -> int:
        return self.set(key, USED)

    def get_witness(self, key: int) -> MerkleMapWitness:
        witness = self._tree.get_witness(to_field(key))
        return MerkleMapWitness(key=key, siblings=witness.siblings)

    @property
    def root(self) -> int:
        return self._tree.root

    def __len__(self) -> int:
        return len(self._tree)

    def __repr__(self) -> str:
        return f"MerkleMap(entries={len(self)})"
