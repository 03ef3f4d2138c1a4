"""Main package initialization."""

__version__ = "0.1.0"
__author__ = "ZK-Mixer Team"
__description__ = "Fixed-denomination ZK-Mixer with nullifier-based double-spend protection"

from .core.merkle_tree import MerkleTree, MerkleWitness
from .core.merkle_map import MerkleMap, MerkleMapWitness
from .core.commitment import Commitment, commit
from .core.ledger import Ledger
from .core.events import EventKind, EventLog, MixerEvent
from .core.mixer import Mixer, MixerAccount, DepositReceipt, WithdrawalReceipt
from .core.indexer import DepositTreeIndexer
from .crypto.nullifier import Nullifier
from .crypto.note import DepositNote

__all__ = [
    "MerkleTree",
    "MerkleWitness",
    "MerkleMap",
    "MerkleMapWitness",
    "Commitment",
    "commit",
    "Ledger",
    "EventKind",
    "EventLog",
    "MixerEvent",
    "Mixer",
    "MixerAccount",
    "DepositReceipt",
    "WithdrawalReceipt",
    "DepositTreeIndexer",
    "Nullifier",
    "DepositNote",
]
