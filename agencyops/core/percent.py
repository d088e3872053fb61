"""
Percent/fraction conversion for commission splits.

Splits are persisted as fractions with four decimal places and exchanged as
percentages with two. All arithmetic stays in Decimal.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

HUNDRED = Decimal("100")
FRACTION_QUANTUM = Decimal("0.0001")
PERCENT_QUANTUM = Decimal("0.01")
MONEY_QUANTUM = Decimal("0.01")


def to_fraction(percent: Decimal) -> Decimal:
    return (Decimal(percent) / HUNDRED).quantize(FRACTION_QUANTUM, rounding=ROUND_HALF_UP)


def to_percent(fraction: Decimal | None) -> Decimal:
    if fraction is None:
        return Decimal("0.00")
    return (Decimal(fraction) * HUNDRED).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def round_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def has_percent_precision(value: Decimal) -> bool:
    """True when ``value`` needs no more than two decimal places."""
    return Decimal(value) == Decimal(value).quantize(PERCENT_QUANTUM)
