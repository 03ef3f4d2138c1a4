"""Deposit commitment scheme: commitment = Hash(secret, nullifier_key)."""

from zkmix.utils.field import random_field_element, to_field
from zkmix.utils.hash import field_hash
from zkmix.exceptions import InvalidCommitmentError, InvalidFieldElementError


def commit(secret: int, nullifier_key: int) -> int:
    """
    Compute the public commitment binding a (secret, nullifier_key) pair.

    Binding and hiding are inherited from the field hash.

    Raises:
        InvalidCommitmentError: If either input is not a field element
    """
    try:
        return field_hash([to_field(secret), to_field(nullifier_key)])
    except InvalidFieldElementError as e:
        raise InvalidCommitmentError(f"Cannot commit: {e}")


class Commitment:
    """
    Commitment helpers for depositors and verifiers.

    The secret keeps the depositor custodian of the funds; the nullifier key
    is the public key of the depositor's nullifier, whose private part never
    leaves the wallet.
    """

    @staticmethod
    def generate_secret() -> int:
        """Generate a random deposit secret."""
        return random_field_element()

    @staticmethod
    def compute_commitment(secret: int, nullifier_key: int) -> int:
        return commit(secret, nullifier_key)

    @staticmethod
    def verify_commitment(secret: int, nullifier_key: int, expected_commitment: int) -> bool:
        """
        Verify that a commitment matches the given secret and nullifier key.

        Returns:
            bool: True if commitment is valid, False otherwise
        """
        try:
            return commit(secret, nullifier_key) == expected_commitment
        except InvalidCommitmentError:
            return False
