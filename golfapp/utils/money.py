"""
Yen formatting for user-facing text.

Usage:
    from golfapp.utils.money import format_yen

    format_yen(4584)   -> "4,584円"
    format_yen(0)      -> "0円"
"""
from decimal import Decimal


def format_yen(amount) -> str:
    """
    Format a whole-yen amount with thousands separators.

    Args:
        amount: int / Decimal / str

    Returns:
        "5,500円"
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    return f"{int(amount):,}円"
