"""Field element helpers over the BN254 scalar field."""

import secrets
from typing import Any, Iterable, List

from shieldpool.exceptions import FieldRangeError

# BN254 (alt_bn128) scalar field, used by circom/snarkjs circuits
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FIELD_BITS = FIELD_MODULUS.bit_length()


def is_field_element(value: Any) -> bool:
    """Return True if value is an int in [0, p). Booleans are rejected."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < FIELD_MODULUS
    )


def require_field(value: Any, name: str = "value") -> int:
    """
    Validate a canonical field element.

    Args:
        value: Candidate field element
        name: Field name used in the error message

    Returns:
        int: The value, unchanged

    Raises:
        FieldRangeError: If value is not an int in [0, p)
    """
    if not is_field_element(value):
        # The value itself is never echoed, it may be secret material
        raise FieldRangeError(f"{name} must be an integer in [0, field modulus)")
    return value


def require_fields(values: Iterable[Any], name: str = "values") -> List[int]:
    """Validate every element of an iterable."""
    return [require_field(v, f"{name}[{i}]") for i, v in enumerate(values)]


def random_field_element() -> int:
    """
    Draw a uniformly random non-zero field element.

    Always returns a canonical value, so callers never need to reduce.
    """
    while True:
        value = secrets.randbelow(FIELD_MODULUS)
        if value:
            return value


def parse_field(value: Any, name: str = "value") -> int:
    """
    Parse a decimal string, 0x-hex string or int into a field element.

    Raises:
        FieldRangeError: If the value cannot be parsed or is out of range
    """
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise FieldRangeError(f"{name} is not a valid integer string") from None
    return require_field(value, name)
