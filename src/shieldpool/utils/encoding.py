"""Encoding and decoding utilities."""

from typing import Union

from shieldpool.utils.field import require_field, parse_field

FIELD_BYTES = 32


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


def field_to_bytes(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return require_field(value).to_bytes(FIELD_BYTES, byteorder="big")


def bytes_to_field(data: bytes) -> int:
    """Decode 32 big-endian bytes into a field element (rejects non-canonical)."""
    if len(data) != FIELD_BYTES:
        raise ValueError(f"Field element encoding must be {FIELD_BYTES} bytes")
    return require_field(int.from_bytes(data, byteorder="big"))


def field_to_hex(value: int) -> str:
    """Encode a field element as a 0x-prefixed, 64 digit hex string."""
    return bytes_to_hex(field_to_bytes(value))


def hex_to_field(hex_str: str) -> int:
    """Decode a 0x-prefixed hex string into a field element."""
    return parse_field(hex_str if hex_str.startswith("0x") else "0x" + hex_str)


def short_hex(value: Union[int, bytes], length: int = 16) -> str:
    """Abbreviated hex for log lines."""
    if isinstance(value, int):
        value = value.to_bytes(FIELD_BYTES, byteorder="big")
    return value.hex()[:length] + "..."
