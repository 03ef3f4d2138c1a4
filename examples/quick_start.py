#!/usr/bin/env python3
"""
Quick start guide for the ZK-Mixer system.

Run this to see a complete workflow example.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from zkmix.config import MixerSettings, configure_logging
from zkmix.core.indexer import DepositTreeIndexer
from zkmix.core.ledger import Ledger
from zkmix.core.mixer import Mixer
from zkmix.crypto.note import DepositNote
from zkmix.utils.encoding import short_hex
from zkmix.exceptions import NullifierAlreadyUsedError


def main():
    """Run a simple example of the ZK-Mixer system."""

    settings = MixerSettings(_env_file=None, log_level="WARNING")
    configure_logging(settings)

    print("=" * 70)
    print("ZK-MIXER QUICK START EXAMPLE")
    print("=" * 70)
    print()

    # Step 1: Initialize the mixer
    print("Step 1: Initialize the ZK-Mixer")
    print("-" * 70)
    ledger = Ledger()
    ledger.mint("alice", 2 * settings.denomination)
    ledger.mint("bob", settings.denomination)
    mixer = Mixer("B62qmixer", ledger=ledger, settings=settings)
    mixer.initialize()
    print(f"✓ Mixer created with {settings.deposit_tree_depth}-level deposit tree")
    print(f"  Denomination: {settings.denomination}")
    print(f"  Deposit root: {short_hex(mixer.account.deposit_root)}")
    print()

    # Step 2: Alice deposits
    print("Step 2: Alice deposits one denomination")
    print("-" * 70)
    indexer = DepositTreeIndexer.from_event_log(mixer.event_log, depth=settings.deposit_tree_depth)
    alice_note = DepositNote.generate(mixer.account.replay_tag)
    index = indexer.next_free_index()
    alice_receipt = mixer.deposit(
        alice_note.secret, alice_note.nullifier(), indexer.deposit_witness(index), "alice"
    )
    alice_note.leaf_index = alice_receipt.leaf_index
    print("✓ Deposit accepted")
    print(f"  Commitment: {short_hex(alice_receipt.commitment)}")
    print(f"  Tree Index: {alice_receipt.leaf_index}")
    print()

    # Step 3: Bob deposits
    print("Step 3: Bob deposits one denomination")
    print("-" * 70)
    indexer.consume(mixer.event_log)
    bob_note = DepositNote.generate(mixer.account.replay_tag)
    index = indexer.next_free_index()
    bob_receipt = mixer.deposit(
        bob_note.secret, bob_note.nullifier(), indexer.deposit_witness(index), "bob"
    )
    print("✓ Deposit accepted")
    print(f"  Tree Index: {bob_receipt.leaf_index}")
    print(f"  Pool balance: {mixer.pool_balance}")
    print()

    # Step 4: Alice withdraws to a fresh address, using only public events
    print("Step 4: Alice withdraws to a fresh address")
    print("-" * 70)
    indexer.consume(mixer.event_log)
    nullifier = alice_note.nullifier()
    withdrawal = mixer.withdraw(
        alice_note.secret,
        nullifier,
        indexer.deposit_witness(alice_note.leaf_index),
        indexer.nullifier_witness(nullifier.key()),
        "fresh-address",
    )
    print("✓ Withdrawal successful!")
    print(f"  Recipient: {withdrawal.recipient}")
    print(f"  Amount: {withdrawal.amount}")
    print()

    # Step 5: Replaying the note fails
    print("Step 5: Alice tries to withdraw the same deposit again")
    print("-" * 70)
    indexer.consume(mixer.event_log)
    try:
        mixer.withdraw(
            alice_note.secret,
            nullifier,
            indexer.deposit_witness(alice_note.leaf_index),
            indexer.nullifier_witness(nullifier.key()),
            "another-address",
        )
    except NullifierAlreadyUsedError as e:
        print(f"✓ Rejected: {e}")
    print()

    # Summary
    state = mixer.get_mixer_state()
    print("=" * 70)
    print("MIXER STATE")
    print("=" * 70)
    print(f"  Deposits: {state.deposit_count}")
    print(f"  Withdrawals: {state.withdrawal_count}")
    print(f"  Pool balance: {state.pool_balance}")
    print(f"  Deposit root: {state.deposit_root}")
    print(f"  Nullifier root: {state.nullifier_root}")


if __name__ == "__main__":
    main()
