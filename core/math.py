# PATH: core/math.py
"""
Numeric utilities for the gas oracle.

Provider payloads carry quantities as ints, hex strings ("0x3b9aca00") or
decimal strings. Conversion to display units goes through Decimal so that
wei -> gwei does not pick up float noise before the final float().
"""

from decimal import Decimal, InvalidOperation
from typing import Union, Optional

Quantity = Union[str, int, float, Decimal, None]


def safe_decimal(value: Quantity, default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Hex strings are decoded as integers.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None or isinstance(value, bool):
        return default

    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, int):
            result = Decimal(value)
        elif isinstance(value, str):
            text = value.strip()
            if text.lower().startswith("0x"):
                result = Decimal(int(text, 16))
            else:
                result = Decimal(text)
        else:
            result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default

    # NaN / Infinity are never valid quantities
    if not result.is_finite():
        return default
    return result


def decode_quantity(value: Quantity) -> Optional[int]:
    """
    Decode an integer quantity.

    Returns:
        Integer value, or None if the value is missing or malformed
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    try:
        if isinstance(value, str):
            text = value.strip()
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(Decimal(text))
        return int(value)
    except (InvalidOperation, ValueError, TypeError, OverflowError):
        return None


def to_display_unit(value: Quantity, decimals: int) -> float:
    """
    Convert a smallest-unit quantity to a display unit.

    Args:
        value: Quantity in the smallest unit (e.g. wei)
        decimals: Decimal places between units (9 for gwei, 18 for ether)

    Returns:
        Float value in the display unit (0.0 if malformed)
    """
    amount = safe_decimal(value)
    if decimals <= 0:
        return float(amount)
    return float(amount / (Decimal(10) ** decimals))
