"""
Fixed-Point Money Module

Amounts are USD with two decimal places. The store keeps them as integer
cents so that balance updates are exact single-statement integer adds.
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28  # High precision for financial calculations

CENT = Decimal('0.01')
CENTS_PER_UNIT = 100


def to_cents(amount: Union[Decimal, str]) -> int:
    """
    Convert a decimal amount to integer cents.

    Raises:
        ValueError: if the amount has more than two decimal places
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))

    quantized = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if quantized != amount:
        raise ValueError(f"Amount {amount} has more than two decimal places")

    return int(quantized * CENTS_PER_UNIT)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place Decimal"""
    return (Decimal(cents) / CENTS_PER_UNIT).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    """Format for the wire: plain string with exactly two decimals"""
    return f"{amount.quantize(CENT, rounding=ROUND_HALF_UP):.2f}"


def format_display(amount: Decimal) -> str:
    """Format for messages, e.g. $10,000.00"""
    return f"${amount.quantize(CENT, rounding=ROUND_HALF_UP):,.2f}"
