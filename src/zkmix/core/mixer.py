"""Core Mixer: fixed-denomination deposit/withdraw state machine.

The persistent state is a single MixerAccount record holding three public
values (denomination, deposit root, nullifier root) plus a replay tag. Neither
tree is stored: every transition carries a witness for the one path it
touches, re-verified against the currently persisted root right before the
mutation. A witness computed against an older root is rejected, and the
caller must refresh it and retry.

Transaction Flow:

    DEPOSIT(secret, nullifier, witness, sender):
        1. nullifier_key = nullifier.key()
        2. commitment = Hash(secret, nullifier_key)
        3. witness proves the target leaf is empty under deposit_root
        4. deposit_root <- witness.compute_root(commitment)
        5. sender pays `denomination` into the pool
        6. emit commitment-added, deposit-index, new-deposit-root

    WITHDRAW(secret, nullifier, witness, nullifier_witness, recipient):
        1. nullifier binds to replay_tag (no cross-deployment replay)
        2. nullifier_witness proves the key is unused under nullifier_root
        3. witness proves Hash(secret, nullifier_key) is in the deposit tree
        4. nullifier_root <- nullifier_witness.compute_root(USED)
        5. pool pays `denomination` to recipient
        6. emit nullifier-spent, new-nullifier-root (if enabled)

Key Invariants:
    - All-or-nothing: every check runs before any mutation; the ledger
      transfer, persistence and root update are applied together or not at all
    - A nullifier key, once used, never returns to unused
    - A commitment, once inserted, is never altered or removed
    - The denomination never changes after initialization
"""

from dataclasses import dataclass, replace
from datetime import datetime
from functools import partial
from typing import Callable, List, Optional
import logging
import threading
import uuid

from zkmix.config import MAX_DEPOSIT_DEPTH, MixerSettings, get_settings
from zkmix.core.commitment import commit
from zkmix.core.events import EventKind, EventLog, MixerEvent
from zkmix.core.ledger import Ledger, MAX_AMOUNT
from zkmix.core.merkle_map import MerkleMapWitness, empty_map_root
from zkmix.core.merkle_tree import MerkleWitness, empty_root
from zkmix.crypto.nullifier import Nullifier
from zkmix.models.schemas import MixerStateModel
from zkmix.utils.field import EMPTY_LEAF, to_field
from zkmix.utils.hash import address_to_field
from zkmix.utils.encoding import field_to_hex, short_hex
from zkmix.exceptions import (
    CommitmentNotFoundError,
    InvalidMixerStateError,
    InvalidNullifierProofError,
    InvalidWitnessError,
    LeafOccupiedError,
    UninitializedError,
    ZKMixerException,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MixerAccount:
    """The mixer's persistent record. Replaced wholesale on every transition."""

    address: str
    tree_depth: int
    denomination: Optional[int] = None
    deposit_root: Optional[int] = None
    nullifier_root: Optional[int] = None
    replay_tag: Optional[int] = None
    deposit_count: int = 0
    withdrawal_count: int = 0

    @property
    def is_initialized(self) -> bool:
        return None not in (
            self.denomination, self.deposit_root, self.nullifier_root, self.replay_tag
        )


class DepositReceipt:
    """Receipt for a successful deposit."""

    def __init__(
        self,
        transaction_id: str,
        commitment: int,
        leaf_index: int,
        deposit_root: int,
        timestamp: datetime,
    ):
        self.transaction_id = transaction_id
        self.commitment = commitment
        self.leaf_index = leaf_index
        self.deposit_root = deposit_root
        self.timestamp = timestamp

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "transaction_id": self.transaction_id,
            "commitment": field_to_hex(self.commitment),
            "leaf_index": self.leaf_index,
            "deposit_root": field_to_hex(self.deposit_root),
            "timestamp": self.timestamp.isoformat(),
        }


class WithdrawalReceipt:
    """Receipt for a successful withdrawal."""

    def __init__(
        self,
        transaction_id: str,
        recipient: str,
        amount: int,
        nullifier_root: int,
        timestamp: datetime,
    ):
        self.transaction_id = transaction_id
        self.recipient = recipient
        self.amount = amount
        self.nullifier_root = nullifier_root
        self.timestamp = timestamp

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "transaction_id": self.transaction_id,
            "recipient": self.recipient,
            "amount": self.amount,
            "nullifier_root": field_to_hex(self.nullifier_root),
            "timestamp": self.timestamp.isoformat(),
        }


class Mixer:
    """
    Fixed-denomination privacy mixer.

    Holds one MixerAccount and applies the Deposit and Withdraw transitions
    to it, one at a time. Value moves through the Ledger collaborator; if a
    MixerStore is attached, each transition is also written to it inside the
    same all-or-nothing scope.
    """

    def __init__(
        self,
        address: str,
        ledger: Optional[Ledger] = None,
        event_log: Optional[EventLog] = None,
        store=None,
        settings: Optional[MixerSettings] = None,
        tree_depth: Optional[int] = None,
    ):
        """
        Create an uninitialized mixer account.

        Args:
            address: The mixer's own account address (pool custody)
            ledger: Value ledger (a fresh in-memory one by default)
            event_log: Audit stream to publish to
            store: Optional MixerStore for persistence
            settings: Settings (process-wide settings by default)
            tree_depth: Deposit tree depth, overriding settings

        Raises:
            ValueError: If address is empty or tree_depth is out of range
        """
        if not isinstance(address, str) or not address:
            raise ValueError("Mixer address must be a non-empty string")

        settings = settings or get_settings()
        self.address = address
        self.ledger = ledger if ledger is not None else Ledger()
        self.event_log = event_log if event_log is not None else EventLog()
        self.store = store
        self.settings = settings

        if tree_depth is None:
            tree_depth = settings.deposit_tree_depth
        if (isinstance(tree_depth, bool) or not isinstance(tree_depth, int)
                or not 1 <= tree_depth <= MAX_DEPOSIT_DEPTH):
            raise ValueError(f"Deposit tree depth must be between 1 and {MAX_DEPOSIT_DEPTH}")

        self._account = MixerAccount(address=address, tree_depth=tree_depth)
        # transitions are applied one at a time
        self._lock = threading.Lock()

    @property
    def account(self) -> MixerAccount:
        return self._account

    @property
    def pool_balance(self) -> int:
        return self.ledger.balance_of(self.address)

    def initialize(self, denomination: Optional[int] = None,
                   replay_tag: Optional[int] = None) -> MixerAccount:
        """
        Set the immutable parameters and the empty-tree roots.

        Args:
            denomination: Amount per deposit/withdrawal (settings default)
            replay_tag: Domain-separation tag (defaults to the encoded address)

        Raises:
            InvalidMixerStateError: If already initialized
            ValueError: If denomination does not fit a ledger amount
        """
        with self._lock:
            if self._account.is_initialized:
                raise InvalidMixerStateError(f"Mixer {self.address} is already initialized")

            if denomination is None:
                denomination = self.settings.denomination
            denomination = to_field(denomination)
            if denomination <= 0 or denomination > MAX_AMOUNT:
                raise ValueError("Denomination must be in (0, 2^64)")

            if replay_tag is None:
                replay_tag = address_to_field(self.address)

            account = replace(
                self._account,
                denomination=denomination,
                deposit_root=empty_root(self._account.tree_depth),
                nullifier_root=empty_map_root(),
                replay_tag=to_field(replay_tag),
            )
            if self.store is not None:
                self.store.record_transition(account, [], {})
            self._account = account

        logger.info(
            "Initialized mixer %s: denomination=%d depth=%d",
            self.address, denomination, account.tree_depth,
        )
        return account

    def deposit(self, secret: int, nullifier: Nullifier, witness: MerkleWitness,
                sender: str) -> DepositReceipt:
        """
        Insert Hash(secret, nullifier.key()) at the witness's (empty) leaf.

        Args:
            secret: Depositor's private field element
            nullifier: Nullifier created in the depositor's wallet
            witness: Path to an empty leaf under the current deposit root
            sender: Account paying the denomination

        Returns:
            DepositReceipt: Commitment, index and new deposit root

        Raises:
            UninitializedError: Before initialize()
            LeafOccupiedError: Leaf not empty, or witness stale
            InvalidWitnessError: Structurally invalid witness
            InvalidCommitmentError: Secret is not a field element
            InsufficientFundsError, TransferRejectedError: Ledger refused payment
        """
        with self._lock:
            try:
                account = self._require_initialized()
                self._check_nullifier(nullifier)

                commitment = commit(secret, nullifier.key())

                self._check_witness_depth(witness, account)
                if witness.compute_root(EMPTY_LEAF) != account.deposit_root:
                    raise LeafOccupiedError(
                        f"Leaf {witness.index} is not empty under the current deposit root"
                    )
                new_root = witness.compute_root(commitment)

                transaction_id = "deposit_" + str(uuid.uuid4())
                events = self.event_log.prepare(transaction_id, [
                    (EventKind.COMMITMENT_ADDED, commitment),
                    (EventKind.DEPOSIT_INDEX, witness.index),
                    (EventKind.NEW_DEPOSIT_ROOT, new_root),
                ])
                new_account = replace(
                    account,
                    deposit_root=new_root,
                    deposit_count=account.deposit_count + 1,
                )

                self._apply(
                    new_account,
                    events,
                    lambda: self.ledger.transfer(sender, self.address, account.denomination),
                )
            except ZKMixerException as e:
                logger.warning("Deposit rejected: %s: %s", type(e).__name__, e)
                raise

        logger.info(
            "Deposit %s: commitment %s at leaf %d, root %s",
            transaction_id, short_hex(commitment), witness.index, short_hex(new_root),
        )
        return DepositReceipt(
            transaction_id=transaction_id,
            commitment=commitment,
            leaf_index=witness.index,
            deposit_root=new_root,
            timestamp=datetime.now(),
        )

    def withdraw(self, secret: int, nullifier: Nullifier, witness: MerkleWitness,
                 nullifier_witness: MerkleMapWitness, recipient: str) -> WithdrawalReceipt:
        """
        Release the denomination to recipient for a deposit proven by
        (secret, nullifier), and mark the nullifier used.

        Args:
            secret: The secret used at deposit time
            nullifier: The deposit's nullifier, bound to this mixer's replay tag
            witness: Path to the deposit's commitment under the current deposit root
            nullifier_witness: Path for nullifier.key() under the current nullifier root
            recipient: Account receiving the funds

        Returns:
            WithdrawalReceipt: Recipient, amount and new nullifier root

        Raises:
            UninitializedError: Before initialize()
            InvalidNullifierProofError: Nullifier not bound to the replay tag
            NullifierAlreadyUsedError: Deposit already withdrawn
            CommitmentNotFoundError: Commitment not under the deposit root
            InvalidWitnessError: Malformed or stale witness
            TransferRejectedError: Ledger refused payment
        """
        with self._lock:
            try:
                account = self._require_initialized()
                self._check_nullifier(nullifier)
                if not isinstance(nullifier_witness, MerkleMapWitness):
                    raise InvalidWitnessError("Nullifier witness must be a MerkleMapWitness")

                nullifier.verify([account.replay_tag])
                nullifier.assert_unused(nullifier_witness, account.nullifier_root)

                nullifier_key = nullifier.key()
                commitment = commit(secret, nullifier_key)

                self._check_witness_depth(witness, account)
                if witness.compute_root(commitment) != account.deposit_root:
                    raise CommitmentNotFoundError(
                        f"Commitment not found at leaf {witness.index} under the current deposit root"
                    )

                new_nullifier_root = nullifier.set_used(nullifier_witness)

                transaction_id = "withdrawal_" + str(uuid.uuid4())
                entries = []
                if self.settings.emit_withdrawal_events:
                    entries = [
                        (EventKind.NULLIFIER_SPENT, nullifier_key),
                        (EventKind.NEW_NULLIFIER_ROOT, new_nullifier_root),
                    ]
                events = self.event_log.prepare(transaction_id, entries)
                new_account = replace(
                    account,
                    nullifier_root=new_nullifier_root,
                    withdrawal_count=account.withdrawal_count + 1,
                )

                self._apply(
                    new_account,
                    events,
                    lambda: self.ledger.transfer(self.address, recipient, account.denomination),
                )
            except ZKMixerException as e:
                logger.warning("Withdrawal rejected: %s: %s", type(e).__name__, e)
                raise

        logger.info("Withdrawal %s: %d to %s", transaction_id, account.denomination, recipient)
        return WithdrawalReceipt(
            transaction_id=transaction_id,
            recipient=recipient,
            amount=account.denomination,
            nullifier_root=new_nullifier_root,
            timestamp=datetime.now(),
        )

    def _require_initialized(self) -> MixerAccount:
        if not self._account.is_initialized:
            raise UninitializedError(f"Mixer {self.address} has not been initialized")
        return self._account

    @staticmethod
    def _check_nullifier(nullifier: Nullifier) -> None:
        if not isinstance(nullifier, Nullifier):
            raise InvalidNullifierProofError("Expected a Nullifier")

    @staticmethod
    def _check_witness_depth(witness: MerkleWitness, account: MixerAccount) -> None:
        if not isinstance(witness, MerkleWitness) or witness.depth != account.tree_depth:
            raise InvalidWitnessError(
                f"Deposit witness must have depth {account.tree_depth}"
            )

    def _apply(self, account: MixerAccount, events: List[MixerEvent],
               transfer: Callable[[], None]) -> None:
        """Move value, persist, publish and switch state as one unit."""
        with self.ledger.transaction():
            transfer()
            before_publish = None
            if self.store is not None:
                before_publish = partial(
                    self.store.record_transition, account, events, dict(self.ledger.balances)
                )
            # the store commits only once the batch is known to extend the log
            self.event_log.append_all(events, before_publish=before_publish)
            self._account = account

    def get_mixer_state(self) -> MixerStateModel:
        """
        Return current mixer state for verification.

        Raises:
            UninitializedError: Before initialize()
        """
        account = self._require_initialized()
        return MixerStateModel(
            address=account.address,
            denomination=account.denomination,
            tree_depth=account.tree_depth,
            deposit_root=field_to_hex(account.deposit_root),
            nullifier_root=field_to_hex(account.nullifier_root),
            replay_tag=field_to_hex(account.replay_tag),
            deposit_count=account.deposit_count,
            withdrawal_count=account.withdrawal_count,
            pool_balance=self.pool_balance,
        )

    @classmethod
    def restore(cls, store, address: str, ledger: Optional[Ledger] = None,
                settings: Optional[MixerSettings] = None) -> "Mixer":
        """
        Rebuild a mixer from persisted account, events and balances.

        Raises:
            InvalidMixerStateError: If no account is stored for address
        """
        account = store.load_account(address)
        if account is None:
            raise InvalidMixerStateError(f"No stored mixer account for {address}")

        if ledger is None:
            ledger = Ledger()
            ledger.balances.update(store.load_balances())

        mixer = cls(
            address=address,
            ledger=ledger,
            event_log=EventLog(store.load_events(address)),
            store=store,
            settings=settings,
            tree_depth=account.tree_depth,
        )
        mixer._account = account
        logger.info("Restored mixer %s with %d events", address, len(mixer.event_log))
        return mixer

    def __repr__(self) -> str:
        return (
            f"Mixer(address={self.address!r}, "
            f"deposits={self._account.deposit_count}, "
            f"withdrawals={self._account.withdrawal_count})"
        )
