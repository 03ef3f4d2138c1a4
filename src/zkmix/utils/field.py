"""Prime field elements for commitments, roots and tree nodes."""

import secrets
from typing import Any

from zkmix.exceptions import InvalidFieldElementError

# BN254 scalar field modulus (the native field of most SNARK backends)
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Bytes needed to encode any field element
FIELD_BYTES = 32

# Sentinels stored in tree leaves
EMPTY_LEAF = 0
UNUSED = 0
USED = 1


def to_field(value: Any) -> int:
    """
    Validate that a value is a canonical field element.

    Args:
        value: Candidate element

    Returns:
        int: The same value, as a plain int

    Raises:
        InvalidFieldElementError: If value is not an int in [0, FIELD_MODULUS)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFieldElementError(f"Field element must be an int, got {type(value).__name__}")
    if value < 0 or value >= FIELD_MODULUS:
        raise InvalidFieldElementError("Field element out of range")
    return int(value)


def random_field_element() -> int:
    """Sample a uniformly random non-zero field element."""
    return secrets.randbelow(FIELD_MODULUS - 1) + 1


def field_to_bytes(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return to_field(value).to_bytes(FIELD_BYTES, byteorder="big")


def bytes_to_field(data: bytes) -> int:
    """
    Map arbitrary bytes onto the field (big-endian integer, reduced).

    Used to turn hash digests into field elements.
    """
    return int.from_bytes(data, byteorder="big") % FIELD_MODULUS
