"""Tests for the nullifier map."""

import pytest

from zkmix.core.merkle_map import MAP_DEPTH, MerkleMap, MerkleMapWitness, empty_map_root
from zkmix.core.merkle_tree import empty_root
from zkmix.utils.field import FIELD_MODULUS, UNUSED, USED
from zkmix.exceptions import InvalidWitnessError


class TestMerkleMap:
    """Tests for key-value operations."""

    def test_empty_root(self):
        assert MerkleMap().root == empty_map_root() == empty_root(MAP_DEPTH)

    def test_unset_key_is_unused(self):
        nullifier_map = MerkleMap()
        assert nullifier_map.get(12345) == UNUSED
        assert not nullifier_map.is_used(12345)

    def test_mark_used(self):
        nullifier_map = MerkleMap()
        root = nullifier_map.mark_used(7)
        assert root == nullifier_map.root != empty_map_root()
        assert nullifier_map.is_used(7)
        assert not nullifier_map.is_used(8)
        assert len(nullifier_map) == 1

    def test_large_keys(self):
        nullifier_map = MerkleMap()
        nullifier_map.mark_used(FIELD_MODULUS - 1)
        assert nullifier_map.is_used(FIELD_MODULUS - 1)


class TestMerkleMapWitness:
    """Tests for map witnesses."""

    def test_compute_root_and_key(self):
        nullifier_map = MerkleMap()
        nullifier_map.mark_used(3)
        witness = nullifier_map.get_witness(99)

        root, key = witness.compute_root_and_key(UNUSED)
        assert root == nullifier_map.root
        assert key == 99

    def test_witness_projects_update(self):
        nullifier_map = MerkleMap()
        witness = nullifier_map.get_witness(42)
        predicted = witness.compute_root(USED)
        assert nullifier_map.mark_used(42) == predicted

    def test_wrong_sibling_count(self):
        with pytest.raises(InvalidWitnessError):
            MerkleMapWitness(key=1, siblings=(0,) * 20).compute_root(UNUSED)

    def test_key_out_of_field(self):
        with pytest.raises(InvalidWitnessError):
            MerkleMapWitness(key=FIELD_MODULUS, siblings=(0,) * MAP_DEPTH).compute_root(UNUSED)
