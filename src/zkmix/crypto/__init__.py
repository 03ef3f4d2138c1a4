"""Cryptographic primitives module"""

from zkmix.crypto.nullifier import (
    Nullifier,
    generate_private_key,
    hash_to_curve,
)

from zkmix.crypto.note import DepositNote

__all__ = [
    'Nullifier',
    'generate_private_key',
    'hash_to_curve',
    'DepositNote',
]
