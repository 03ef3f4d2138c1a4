"""Tests for the mixer state machine."""

import pytest

from zkmix.core.events import EventKind
from zkmix.core.indexer import DepositTreeIndexer
from zkmix.core.ledger import Ledger
from zkmix.core.merkle_map import MerkleMap, empty_map_root
from zkmix.core.merkle_tree import MerkleTree, empty_root
from zkmix.core.mixer import Mixer
from zkmix.crypto.note import DepositNote
from zkmix.utils.hash import address_to_field
from zkmix.exceptions import (
    CommitmentNotFoundError,
    InsufficientFundsError,
    InvalidMixerStateError,
    InvalidNullifierProofError,
    InvalidWitnessError,
    LeafOccupiedError,
    NullifierAlreadyUsedError,
    TransferRejectedError,
    UninitializedError,
)


class Wallet:
    """Off-chain view a depositor keeps: local copies of both trees."""

    def __init__(self, mixer):
        self.mixer = mixer
        self.tree = MerkleTree(depth=mixer.account.tree_depth)
        self.nullifier_map = MerkleMap()

    def deposit(self, sender="alice"):
        note = DepositNote.generate(self.mixer.account.replay_tag)
        index = self.tree.next_free_index()
        receipt = self.mixer.deposit(note.secret, note.nullifier(), self.tree.get_witness(index), sender)
        self.tree.set_leaf(index, receipt.commitment)
        note.leaf_index = index
        return note, receipt

    def withdraw(self, note, recipient="carol"):
        nullifier = note.nullifier()
        receipt = self.mixer.withdraw(
            note.secret,
            nullifier,
            self.tree.get_witness(note.leaf_index),
            self.nullifier_map.get_witness(nullifier.key()),
            recipient,
        )
        self.nullifier_map.mark_used(nullifier.key())
        return receipt


@pytest.fixture
def wallet(mixer):
    return Wallet(mixer)


class TestInitialization:
    """Tests for initialize()."""

    def test_initialize_sets_empty_roots(self, mixer, settings):
        account = mixer.account
        assert account.is_initialized
        assert account.denomination == settings.denomination
        assert account.deposit_root == empty_root(8)
        assert account.nullifier_root == empty_map_root()
        assert account.replay_tag == address_to_field(mixer.address)

    def test_custom_parameters(self, settings):
        mixer = Mixer("other", settings=settings)
        mixer.initialize(denomination=5, replay_tag=77)
        assert mixer.account.denomination == 5
        assert mixer.account.replay_tag == 77

    def test_double_initialize(self, mixer):
        with pytest.raises(InvalidMixerStateError):
            mixer.initialize()

    @pytest.mark.parametrize("denomination", [0, 2 ** 64])
    def test_bad_denomination(self, settings, denomination):
        mixer = Mixer("other", settings=settings)
        with pytest.raises(ValueError):
            mixer.initialize(denomination=denomination)
        assert not mixer.account.is_initialized

    def test_operations_before_initialize(self, settings):
        mixer = Mixer("other", settings=settings)
        note = DepositNote.generate(1)
        with pytest.raises(UninitializedError):
            mixer.deposit(note.secret, note.nullifier(), MerkleTree(depth=8).get_witness(0), "alice")
        with pytest.raises(UninitializedError):
            mixer.get_mixer_state()

    def test_empty_address(self, settings):
        with pytest.raises(ValueError):
            Mixer("", settings=settings)

    @pytest.mark.parametrize("depth", [0, -1, 65, 300, True, "8"])
    def test_tree_depth_out_of_range(self, settings, depth):
        with pytest.raises(ValueError):
            Mixer("other", settings=settings, tree_depth=depth)

    def test_tree_depth_override(self, settings):
        mixer = Mixer("other", settings=settings, tree_depth=64)
        mixer.initialize()
        assert mixer.account.deposit_root == empty_root(64)


class TestDeposit:
    """Tests for deposit()."""

    def test_deposit_updates_root_and_balances(self, mixer, wallet, ledger, settings):
        note, receipt = wallet.deposit()
        assert receipt.leaf_index == 0
        assert receipt.commitment == note.commitment
        assert mixer.account.deposit_root == wallet.tree.root == receipt.deposit_root
        assert mixer.account.deposit_count == 1
        assert mixer.pool_balance == settings.denomination
        assert ledger.balance_of("alice") == 9 * settings.denomination

    def test_deposit_events(self, mixer, wallet):
        note, receipt = wallet.deposit()
        events = mixer.event_log.for_transaction(receipt.transaction_id)
        assert [e.kind for e in events] == [
            EventKind.COMMITMENT_ADDED, EventKind.DEPOSIT_INDEX, EventKind.NEW_DEPOSIT_ROOT,
        ]
        assert events[0].payload == note.commitment
        assert events[1].payload == receipt.leaf_index
        assert events[2].payload == mixer.account.deposit_root

    def test_occupied_leaf_rejected(self, mixer, wallet):
        wallet.deposit()
        note = DepositNote.generate(mixer.account.replay_tag)
        witness = wallet.tree.get_witness(0)
        with pytest.raises(LeafOccupiedError):
            mixer.deposit(note.secret, note.nullifier(), witness, "bob")
        assert mixer.account.deposit_count == 1

    def test_stale_witness_rejected(self, mixer, wallet, ledger):
        stale = wallet.tree.get_witness(1)
        wallet.deposit()
        before = dict(ledger.balances)
        root = mixer.account.deposit_root

        note = DepositNote.generate(mixer.account.replay_tag)
        # leaf 1 is empty, but the path predates deposit 0
        with pytest.raises(InvalidWitnessError):
            mixer.deposit(note.secret, note.nullifier(), stale, "bob")
        assert ledger.balances == before
        assert mixer.account.deposit_root == root

    def test_wrong_depth_witness(self, mixer):
        note = DepositNote.generate(mixer.account.replay_tag)
        with pytest.raises(InvalidWitnessError):
            mixer.deposit(note.secret, note.nullifier(), MerkleTree(depth=4).get_witness(0), "alice")

    def test_insufficient_funds_is_atomic(self, mixer, wallet):
        root = mixer.account.deposit_root
        with pytest.raises(InsufficientFundsError):
            wallet.deposit(sender="pauper")
        assert mixer.account.deposit_root == root
        assert mixer.account.deposit_count == 0
        assert len(mixer.event_log) == 0

    def test_nullifier_type_checked(self, mixer):
        with pytest.raises(InvalidNullifierProofError):
            mixer.deposit(1, "not a nullifier", MerkleTree(depth=8).get_witness(0), "alice")

    def test_same_commitment_twice(self, mixer, wallet):
        """Duplicate commitments land at distinct leaves; only one can be withdrawn."""
        note, _ = wallet.deposit()
        index = wallet.tree.next_free_index()
        receipt = mixer.deposit(note.secret, note.nullifier(), wallet.tree.get_witness(index), "alice")
        wallet.tree.set_leaf(index, receipt.commitment)

        wallet.withdraw(note)
        with pytest.raises(NullifierAlreadyUsedError):
            wallet.withdraw(note)

    def test_deposits_at_chosen_leaves_replay(self, mixer):
        """An indexer rebuilds deposits made at any empty leaf, including the last one."""
        tree = MerkleTree(depth=8)
        placed = {}
        for index in [5, 2 ** 8 - 1]:
            note = DepositNote.generate(mixer.account.replay_tag)
            receipt = mixer.deposit(note.secret, note.nullifier(), tree.get_witness(index), "alice")
            tree.set_leaf(index, receipt.commitment)
            placed[index] = receipt.commitment

        indexer = DepositTreeIndexer.from_event_log(mixer.event_log, depth=8)
        assert indexer.deposit_root == mixer.account.deposit_root
        for index, commitment in placed.items():
            assert indexer.index_of(commitment) == index

        index = indexer.next_free_index()
        assert index == 0
        note = DepositNote.generate(mixer.account.replay_tag)
        mixer.deposit(note.secret, note.nullifier(), indexer.deposit_witness(index), "bob")
        assert indexer.consume(mixer.event_log) == 3
        assert indexer.deposit_root == mixer.account.deposit_root


class TestWithdraw:
    """Tests for withdraw()."""

    def test_withdraw(self, mixer, wallet, ledger, settings):
        note, _ = wallet.deposit()
        receipt = wallet.withdraw(note, recipient="carol")
        assert receipt.amount == settings.denomination
        assert ledger.balance_of("carol") == settings.denomination
        assert mixer.pool_balance == 0
        assert mixer.account.nullifier_root == wallet.nullifier_map.root == receipt.nullifier_root
        assert mixer.account.withdrawal_count == 1

    def test_withdraw_events(self, mixer, wallet):
        note, _ = wallet.deposit()
        receipt = wallet.withdraw(note)
        events = mixer.event_log.for_transaction(receipt.transaction_id)
        assert [e.kind for e in events] == [EventKind.NULLIFIER_SPENT, EventKind.NEW_NULLIFIER_ROOT]
        assert events[0].payload == note.nullifier_key

    def test_withdraw_events_disabled(self, settings, ledger):
        quiet = settings.model_copy(update={"emit_withdrawal_events": False})
        mixer = Mixer("quiet", ledger=ledger, settings=quiet)
        mixer.initialize()
        wallet = Wallet(mixer)
        note, _ = wallet.deposit()
        wallet.withdraw(note)
        assert len(mixer.event_log) == 3

    def test_double_withdraw(self, mixer, wallet, ledger):
        note, _ = wallet.deposit()
        wallet.deposit(sender="bob")
        wallet.withdraw(note)
        before = dict(ledger.balances)
        with pytest.raises(NullifierAlreadyUsedError):
            wallet.withdraw(note, recipient="dave")
        assert ledger.balances == before

    def test_double_withdraw_with_wrong_secret_still_reports_used(self, mixer, wallet):
        note, _ = wallet.deposit()
        wallet.withdraw(note)
        nullifier = note.nullifier()
        with pytest.raises(NullifierAlreadyUsedError):
            mixer.withdraw(
                note.secret + 1,
                nullifier,
                wallet.tree.get_witness(0),
                wallet.nullifier_map.get_witness(nullifier.key()),
                "carol",
            )

    def test_wrong_secret(self, mixer, wallet):
        note, _ = wallet.deposit()
        note.secret += 1
        with pytest.raises(CommitmentNotFoundError):
            wallet.withdraw(note)
        assert mixer.account.withdrawal_count == 0

    def test_never_deposited(self, mixer, wallet):
        wallet.deposit()
        note = DepositNote.generate(mixer.account.replay_tag)
        note.leaf_index = 1
        with pytest.raises(CommitmentNotFoundError):
            wallet.withdraw(note)

    def test_nullifier_for_other_deployment(self, mixer, wallet):
        note, _ = wallet.deposit()
        foreign = DepositNote(note.secret, note.nullifier_private_key, replay_tag=12345, leaf_index=0)
        with pytest.raises(InvalidNullifierProofError):
            wallet.withdraw(foreign)

    def test_stale_nullifier_witness(self, mixer, wallet):
        first, _ = wallet.deposit()
        second, _ = wallet.deposit()
        nullifier = second.nullifier()
        stale = wallet.nullifier_map.get_witness(nullifier.key())
        wallet.withdraw(first)
        with pytest.raises(InvalidWitnessError):
            mixer.withdraw(second.secret, nullifier, wallet.tree.get_witness(1), stale, "carol")

    def test_nullifier_witness_type_checked(self, mixer, wallet):
        note, _ = wallet.deposit()
        with pytest.raises(InvalidWitnessError):
            mixer.withdraw(note.secret, note.nullifier(), wallet.tree.get_witness(0),
                           wallet.tree.get_witness(0), "carol")

    def test_recipient_is_pool(self, mixer, wallet, ledger):
        note, _ = wallet.deposit()
        root = mixer.account.nullifier_root
        with pytest.raises(TransferRejectedError):
            wallet.withdraw(note, recipient=mixer.address)
        assert mixer.account.nullifier_root == root
        assert len(mixer.event_log) == 3


class TestMixerState:
    """Tests for the public state projection."""

    def test_get_mixer_state(self, mixer, wallet, settings):
        wallet.deposit()
        state = mixer.get_mixer_state()
        assert state.address == mixer.address
        assert state.denomination == settings.denomination
        assert state.tree_depth == 8
        assert state.deposit_count == 1
        assert state.pool_balance == settings.denomination
        assert int(state.deposit_root, 16) == mixer.account.deposit_root

    def test_receipts_to_dict(self, wallet):
        note, deposit = wallet.deposit()
        withdrawal = wallet.withdraw(note)
        assert deposit.to_dict()["leaf_index"] == 0
        assert withdrawal.to_dict()["recipient"] == "carol"

    def test_separate_ledgers_are_independent(self, settings):
        mixer = Mixer("solo", ledger=Ledger(), settings=settings)
        mixer.initialize()
        assert mixer.pool_balance == 0

    def test_repr(self, mixer):
        assert "deposits=0" in repr(mixer)
