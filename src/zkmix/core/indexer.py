"""Off-chain reconstruction of the deposit tree and nullifier map.

The indexer replays the mixer's event stream in emission order. Every
deposit publishes the leaf index it was written to, so commitments are
placed exactly where the mixer put them, wherever the depositor chose to
insert. Each placement is then checked against the root the mixer announced
right after it, so a feed that disagrees with the chain is detected rather
than silently producing wrong witnesses.
"""

from typing import Iterable, Optional
import logging

from zkmix.core.events import EventKind, EventLog, MixerEvent
from zkmix.core.merkle_map import MerkleMap, MerkleMapWitness
from zkmix.core.merkle_tree import DEFAULT_DEPTH, MerkleTree, MerkleWitness
from zkmix.models.schemas import MerkleMapWitnessModel, MerkleWitnessModel
from zkmix.utils.field import EMPTY_LEAF
from zkmix.utils.encoding import field_to_hex, hex_to_field
from zkmix.exceptions import (
    DeserializationError,
    IndexerError,
    InvalidFieldElementError,
)

logger = logging.getLogger(__name__)


class DepositTreeIndexer:
    """Mirror of the mixer's trees, built only from public events."""

    def __init__(self, depth: int = DEFAULT_DEPTH):
        self.deposit_tree = MerkleTree(depth=depth)
        self.nullifier_map = MerkleMap()
        self._next_sequence = 0
        self._pending_commitment: Optional[int] = None
        self._pending_index: Optional[int] = None
        self._pending_nullifier: Optional[int] = None

    @classmethod
    def from_event_log(cls, event_log: EventLog, depth: int = DEFAULT_DEPTH) -> "DepositTreeIndexer":
        indexer = cls(depth=depth)
        indexer.consume(event_log)
        return indexer

    def consume(self, events: Iterable[MixerEvent]) -> int:
        """
        Apply events in order; already-seen sequence numbers are skipped.

        Returns:
            int: Number of events applied

        Raises:
            IndexerError: On a sequence gap or a root mismatch
        """
        applied = 0
        for event in events:
            if event.sequence < self._next_sequence:
                continue
            if event.sequence != self._next_sequence:
                raise IndexerError(
                    f"Event gap: expected sequence {self._next_sequence}, got {event.sequence}"
                )
            self._apply(event)
            self._next_sequence += 1
            applied += 1
        return applied

    def _apply(self, event: MixerEvent) -> None:
        if event.kind == EventKind.COMMITMENT_ADDED:
            if self._pending_commitment is not None:
                raise IndexerError("Two commitments without a deposit root in between")
            self._pending_commitment = event.payload

        elif event.kind == EventKind.DEPOSIT_INDEX:
            if self._pending_commitment is None or self._pending_index is not None:
                raise IndexerError("Deposit index without exactly one preceding commitment")
            if event.payload >= self.deposit_tree.max_leaves:
                raise IndexerError(
                    f"Deposit index {event.payload} outside a depth-{self.deposit_tree.depth} tree"
                )
            self._pending_index = event.payload

        elif event.kind == EventKind.NEW_DEPOSIT_ROOT:
            if self._pending_commitment is None or self._pending_index is None:
                raise IndexerError("Deposit root without a preceding commitment and index")
            index = self._pending_index
            if self.deposit_tree.get_leaf(index) != EMPTY_LEAF:
                raise IndexerError(f"Deposit at sequence {event.sequence} reuses leaf {index}")
            self.deposit_tree.set_leaf(index, self._pending_commitment)
            if self.deposit_tree.root != event.payload:
                self.deposit_tree.set_leaf(index, EMPTY_LEAF)
                raise IndexerError(
                    f"Deposit root at sequence {event.sequence} does not match leaf {index}"
                )
            logger.debug("Indexed commitment at leaf %d", index)
            self._pending_commitment = None
            self._pending_index = None

        elif event.kind == EventKind.NULLIFIER_SPENT:
            if self._pending_nullifier is not None:
                raise IndexerError("Two nullifiers without a nullifier root in between")
            self._pending_nullifier = event.payload

        elif event.kind == EventKind.NEW_NULLIFIER_ROOT:
            if self._pending_nullifier is None:
                raise IndexerError("Nullifier root without a preceding nullifier")
            self.nullifier_map.mark_used(self._pending_nullifier)
            if self.nullifier_map.root != event.payload:
                self.nullifier_map.set(self._pending_nullifier, 0)
                raise IndexerError("Nullifier map root mismatch")
            self._pending_nullifier = None

        else:
            raise IndexerError(f"Unknown event kind: {event.kind}")

    @property
    def deposit_root(self) -> int:
        return self.deposit_tree.root

    @property
    def nullifier_root(self) -> int:
        return self.nullifier_map.root

    def next_free_index(self) -> int:
        return self.deposit_tree.next_free_index()

    def index_of(self, commitment: int) -> Optional[int]:
        return self.deposit_tree.index_of(commitment)

    def deposit_witness(self, index: int) -> MerkleWitness:
        return self.deposit_tree.get_witness(index)

    def nullifier_witness(self, key: int) -> MerkleMapWitness:
        return self.nullifier_map.get_witness(key)

    def __repr__(self) -> str:
        return (
            f"DepositTreeIndexer(deposits={len(self.deposit_tree)}, "
            f"nullifiers={len(self.nullifier_map)}, next_sequence={self._next_sequence})"
        )


def witness_to_json(witness: MerkleWitness) -> str:
    """Serialize a deposit witness for transport to a wallet."""
    return MerkleWitnessModel(
        index=witness.index,
        siblings=[field_to_hex(s) for s in witness.siblings],
    ).model_dump_json()


def witness_from_json(json_str: str) -> MerkleWitness:
    try:
        model = MerkleWitnessModel.model_validate_json(json_str)
        return MerkleWitness(
            index=model.index,
            siblings=tuple(hex_to_field(s) for s in model.siblings),
        )
    except (ValueError, InvalidFieldElementError) as e:
        raise DeserializationError(f"Invalid Merkle witness: {e}")


def map_witness_to_json(witness: MerkleMapWitness) -> str:
    return MerkleMapWitnessModel(
        key=field_to_hex(witness.key),
        siblings=[field_to_hex(s) for s in witness.siblings],
    ).model_dump_json()


def map_witness_from_json(json_str: str) -> MerkleMapWitness:
    try:
        model = MerkleMapWitnessModel.model_validate_json(json_str)
        return MerkleMapWitness(
            key=hex_to_field(model.key),
            siblings=tuple(hex_to_field(s) for s in model.siblings),
        )
    except (ValueError, InvalidFieldElementError) as e:
        raise DeserializationError(f"Invalid Merkle map witness: {e}")
