# Overview: Decimal money helpers shared by pricing, ledger and balances.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")

ADJUST_PERCENT = "percent"
ADJUST_VALUE = "value"
VALID_ADJUSTMENT_TYPES = (ADJUST_PERCENT, ADJUST_VALUE)


def to_decimal(value, *, field: str = "amount") -> Decimal:
    """
    Coerce wire input (str/int/float/Decimal/None) to an unrounded Decimal.

    Floats go through str() so 0.1 stays 0.1. Raises ValueError on junk.
    """
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"{field} must be a number")
    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def round_money(value) -> Decimal:
    """Round half-up to 2 places; the only rounding mode used for money."""
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_money(value, *, field: str = "amount") -> Decimal:
    return to_decimal(value, field=field).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def format_money(value) -> str | None:
    if value is None:
        return None
    return f"{round_money(value):.2f}"


def adjustment_amount(base, value, adjustment_type: str) -> Decimal:
    """
    Resolve a discount/tax entry against its base.

    - "value": the entered figure itself
    - "percent": base * value / 100, rounded once at the end
    """
    raw = to_decimal(value)
    if adjustment_type == ADJUST_PERCENT:
        return round_money(to_decimal(base) * raw / Decimal("100"))
    if adjustment_type == ADJUST_VALUE:
        return round_money(raw)
    raise ValueError(f"Unknown adjustment type: {adjustment_type}")
