"""
Storefront Core - Shared Helpers
==================================
Pure utility functions with NO database or module dependencies.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def to_money(value) -> Decimal:
    """Round a monetary amount half-up to 2 decimal places."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(price, quantity: int) -> Decimal:
    """Price x quantity, rounded to cents."""
    return to_money(to_money(price) * int(quantity))


def safe_int(value: Optional[str]) -> Optional[int]:
    """Safely convert a string to int. Returns None on failure."""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def format_money(value) -> str:
    """Format an amount with thousands separators and 2 decimals."""
    if value is None:
        return "0.00"
    try:
        return "{:,.2f}".format(to_money(value))
    except (ArithmeticError, ValueError, TypeError):
        return str(value)
