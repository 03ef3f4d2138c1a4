"""Cryptographic hash utilities over the proof system's field."""

import hashlib
from typing import Sequence, Union

from zkmix.utils.field import bytes_to_field, field_to_bytes


def sha256(data: Union[bytes, str]) -> bytes:
    """
    Compute SHA-256 hash of data.

    Args:
        data: Bytes or string to hash

    Returns:
        bytes: 32-byte SHA-256 hash
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def field_hash(elements: Sequence[int]) -> int:
    """
    Collision-resistant hash of a sequence of field elements.

    SHA-256 over a one-byte arity prefix followed by the 32-byte
    big-endian encoding of every element, reduced into the field.

    Args:
        elements: Field elements to hash (at most 255)

    Returns:
        int: Field element digest

    Raises:
        InvalidFieldElementError: If any element is not canonical
    """
    if len(elements) > 255:
        raise ValueError("Cannot hash more than 255 field elements")
    data = bytes([len(elements)]) + b"".join(field_to_bytes(e) for e in elements)
    return bytes_to_field(sha256(data))


def merkle_hash(left: int, right: int) -> int:
    """
    Compute Merkle tree hash of two siblings.

    Args:
        left: Left child
        right: Right child

    Returns:
        int: Parent node
    """
    return field_hash([left, right])


def hash_to_field(data: Union[bytes, str]) -> int:
    """Hash arbitrary bytes (or a UTF-8 string) to a field element."""
    return bytes_to_field(sha256(data))


def address_to_field(address: str) -> int:
    """
    Encode an account address as a field element.

    This is the recommended replay tag: a value unique to one deployment.
    """
    if not isinstance(address, str) or not address:
        raise ValueError("Address must be a non-empty string")
    return hash_to_field(b"zkmix-address:" + address.encode('utf-8'))
