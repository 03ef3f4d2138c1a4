"""Encoding and decoding utilities."""

from typing import Union

from zkmix.utils.field import FIELD_BYTES, field_to_bytes, to_field


def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string.

    Args:
        data: Bytes to convert

    Returns:
        str: Hexadecimal string with '0x' prefix
    """
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hexadecimal string to bytes.

    Args:
        hex_str: Hexadecimal string (with or without '0x' prefix)

    Returns:
        bytes: Decoded bytes

    Raises:
        ValueError: If hex string is invalid
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]

    if len(hex_str) % 2 != 0:
        raise ValueError("Hex string must have even number of characters")

    return bytes.fromhex(hex_str)


def field_to_hex(value: int) -> str:
    """Encode a field element as a 0x-prefixed, 64-digit hex string."""
    return bytes_to_hex(field_to_bytes(value))


def hex_to_field(hex_str: str) -> int:
    """
    Decode a hex string produced by field_to_hex.

    Raises:
        ValueError: If the string is not valid hex or too long
        InvalidFieldElementError: If the value is outside the field
    """
    data = hex_to_bytes(hex_str)
    if len(data) > FIELD_BYTES:
        raise ValueError(f"Field element encoding longer than {FIELD_BYTES} bytes")
    return to_field(int.from_bytes(data, byteorder="big"))


def short_hex(value: Union[int, bytes], length: int = 16) -> str:
    """Abbreviated hex form for logs and reprs."""
    if isinstance(value, int):
        value = value.to_bytes(FIELD_BYTES, byteorder="big")
    return value.hex()[:length] + "..."
