"""
Formatting helpers for JSON responses and logs.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime
from typing import Union, Optional

CENTS = Decimal('0.01')


def to_decimal(value: Union[int, float, Decimal, str, None], default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Convert a number-like value to Decimal without float artifacts.

    Examples:
        to_decimal(1.5) -> Decimal('1.5')
        to_decimal('abc') -> None
    """
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def quantize_money(value: Union[int, float, Decimal, str]) -> Decimal:
    """Round a monetary amount to cents."""
    return to_decimal(value, Decimal('0')).quantize(CENTS, rounding=ROUND_HALF_UP)


def money_json(value: Union[int, float, Decimal, str, None]) -> Optional[float]:
    """
    Monetary amount as a JSON number with two decimals.

    Examples:
        money_json(Decimal('29.50')) -> 29.5
        money_json(None) -> None
    """
    if value is None:
        return None
    return float(quantize_money(value))


def datetime_json(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string or None."""
    if value is None:
        return None
    return value.isoformat()


def mask_phone(phone: Optional[str]) -> str:
    """Keep the first 4 characters of a phone number for logs."""
    if not phone:
        return '-'
    return phone[:4] + '****'
