"""
Money helpers for Kwanza (AOA) amounts.

Amounts are always Decimal with 2 places, rounded half-up. They leave the
API as decimal strings ("15000.00").
"""
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def round_money(amount, rounding=ROUND_HALF_UP):
    """
    Round amount to 2 decimal places

    Args:
        amount: Decimal, int or str (floats go through str to avoid binary noise)

    Returns:
        Decimal: Rounded amount
    """
    if amount is None:
        return ZERO
    return Decimal(str(amount)).quantize(TWO_PLACES, rounding=rounding)


def calculate_percentage(amount, percent):
    """
    Percentage of an amount, percent given as 0-100

    Example:
        >>> calculate_percentage(Decimal('15000.00'), Decimal('2'))
        Decimal('300.00')
    """
    if not amount or not percent:
        return ZERO
    return round_money(Decimal(str(amount)) * Decimal(str(percent)) / HUNDRED)


def sum_amounts(amounts):
    total = ZERO
    for amount in amounts:
        if amount:
            total += Decimal(str(amount))
    return round_money(total)


def format_money(amount):
    """Serialize an amount as a fixed 2-place decimal string"""
    return f"{round_money(amount):.2f}"

