"""Integer paise arithmetic.

Every monetary value in the pipeline is an ``int`` number of paise. Rates are
``Decimal`` percentages. Rounding is always half-up to a whole paisa and is
applied per computation, never once at the end of a sum.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

PAISE_PER_RUPEE = 100
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of paise to the nearest whole paisa."""
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def ceil_paise(value: Decimal) -> int:
    """Round a Decimal amount of paise up to a whole paisa."""
    return int(value.quantize(_ONE, rounding=ROUND_CEILING))


def percent_of(amount: int, rate_percent: Decimal) -> int:
    """Return ``rate_percent`` % of ``amount``, rounded to a whole paisa."""
    return round_half_up(Decimal(amount) * rate_percent / _HUNDRED)


def divide_round(amount: int, divisor: int | Decimal) -> int:
    """Divide an amount and round half-up; the divisor must be non-zero."""
    if divisor == 0:
        raise ZeroDivisionError("cannot divide paise by zero")
    return round_half_up(Decimal(amount) / Decimal(divisor))


def rupees_to_paise(rupees: int | str | Decimal) -> int:
    """Convert a rupee amount (up to two decimals) to paise."""
    return round_half_up(Decimal(str(rupees)) * PAISE_PER_RUPEE)


def paise_to_rupees(paise: int) -> Decimal:
    return (Decimal(paise) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))


def format_inr(paise: int) -> str:
    """Format paise for display, e.g. ``Rs 1,23,456.78`` (Indian grouping)."""
    sign = "-" if paise < 0 else ""
    rupees, fraction = divmod(abs(paise), PAISE_PER_RUPEE)
    digits = str(rupees)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"{sign}Rs {digits}.{fraction:02d}"
