# Overview: Line-item and bill totals math (dozen pricing, discounts, tax, location split).

"""
Pricing rules (authoritative)

- Money is rounded half-up to 2 places when each figure is computed:
  line subtotal, line discount, line total, bill discount, tax, total.
- unit price x quantity is multiplied on unrounded operands and the product
  is rounded once (a dozen price of 10.00 is a unit price of 0.8333...).
- Dozen entry multiplies every entered quantity by 12; quantities are
  stored in whole units.
- The per-dozen price is always unit x 12 when not entered directly.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from .errors import QuantityInvalid, ValidationError
from .money import (
    ADJUST_PERCENT,
    ADJUST_VALUE,
    VALID_ADJUSTMENT_TYPES,
    ZERO,
    adjustment_amount,
    round_money,
    to_decimal,
)


PRICE_SINGLE = "single"
PRICE_DOZEN = "dozen"
VALID_PRICE_TYPES = (PRICE_SINGLE, PRICE_DOZEN)

DOZEN = Decimal("12")

KIND_PURCHASE = "purchase"
KIND_SALE = "sale"


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    product_name: str
    front_quantity: int
    warehouse_quantity: int
    quantity: int
    price_type: str
    unit_price: Decimal
    dozen_price: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    subtotal: Decimal
    total: Decimal
    warehouse_flag: bool


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    discount: Decimal
    discount_type: str
    discount_amount: Decimal
    tax: Decimal
    tax_type: str
    tax_amount: Decimal
    total: Decimal


def _flag(value) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _number(value, field: str) -> Decimal:
    try:
        return to_decimal(value, field=field)
    except ValueError as exc:
        raise ValidationError(str(exc), {"field": field})


def _units(value, field: str, multiplier: Decimal) -> int:
    """Entered quantity -> whole units (after dozen multiplication)."""
    qty = _number(value, field) * multiplier
    if qty < 0:
        raise QuantityInvalid(f"{field} cannot be negative", {"field": field})
    if qty != qty.to_integral_value():
        raise QuantityInvalid(f"{field} must be a whole number of units", {"field": field, "units": str(qty)})
    return int(qty)


def adjustment_type(value, default: str, field: str) -> str:
    kind = str(value or default).strip().lower()
    if kind not in VALID_ADJUSTMENT_TYPES:
        raise ValidationError(f"Invalid {field}: {value}", {"valid": list(VALID_ADJUSTMENT_TYPES)})
    return kind


def split_quantities(kind: str, raw: dict, multiplier: Decimal = Decimal("1")) -> tuple[int, int, bool]:
    """
    Resolve (front, warehouse, warehouse_flag) for one entered line.

    Explicit front/warehouse quantities win when either is non-zero. Otherwise
    `quantity` goes to one location: purchases land in the warehouse unless
    to_warehouse is false, sales leave from the front unless from_warehouse
    is true.
    """
    front = _units(raw.get("front_quantity") or 0, "front_quantity", multiplier)
    warehouse = _units(raw.get("warehouse_quantity") or 0, "warehouse_quantity", multiplier)

    if front + warehouse == 0:
        qty = _units(raw.get("quantity") or 0, "quantity", multiplier)
        if kind == KIND_PURCHASE:
            to_warehouse = _flag(raw.get("to_warehouse"))
            use_warehouse = True if to_warehouse is None else to_warehouse
        else:
            use_warehouse = bool(_flag(raw.get("from_warehouse")))
        if use_warehouse:
            warehouse = qty
        else:
            front = qty

    if front + warehouse <= 0:
        raise QuantityInvalid("Quantity must be greater than zero", {"product_id": raw.get("product_id")})

    return front, warehouse, warehouse > 0 and front == 0


def price_line(kind: str, raw: dict, product) -> PricedLine:
    """
    Price one entered line against its product.

    raw keys: product_id, price_type, unit_price, dozen_price, quantity,
    front_quantity, warehouse_quantity, to_warehouse / from_warehouse,
    discount, discount_type.
    """
    price_type = str(raw.get("price_type") or PRICE_SINGLE).strip().lower()
    if price_type not in VALID_PRICE_TYPES:
        raise ValidationError(f"Invalid price_type: {price_type}", {"valid": list(VALID_PRICE_TYPES)})
    multiplier = DOZEN if price_type == PRICE_DOZEN else Decimal("1")

    front, warehouse, flag = split_quantities(kind, raw, multiplier)
    quantity = front + warehouse

    entered_unit = _number(raw.get("unit_price"), "unit_price")
    entered_dozen = _number(raw.get("dozen_price"), "dozen_price")
    if entered_unit < 0 or entered_dozen < 0:
        raise ValidationError("Prices cannot be negative", {"product_id": product.id})

    if entered_unit > 0:
        unit = entered_unit
    elif entered_dozen > 0:
        unit = entered_dozen / DOZEN
    elif kind == KIND_SALE and product.sale_price is not None:
        unit = Decimal(str(product.sale_price))
    else:
        raise ValidationError(
            f"Price is required for {product.name}",
            {"product_id": product.id, "field": "unit_price"},
        )

    dozen = entered_dozen if (price_type == PRICE_DOZEN and entered_dozen > 0) else unit * DOZEN

    subtotal = round_money(unit * quantity)
    discount_type = adjustment_type(raw.get("discount_type"), ADJUST_VALUE, "discount_type")
    discount = _number(raw.get("discount"), "discount")
    if discount < 0:
        raise ValidationError("Discount cannot be negative", {"product_id": product.id})
    discount_amount = adjustment_amount(subtotal, discount, discount_type)
    if discount_amount > subtotal:
        raise ValidationError("Discount cannot exceed line subtotal", {"product_id": product.id})

    return PricedLine(
        product_id=product.id,
        product_name=product.name,
        front_quantity=front,
        warehouse_quantity=warehouse,
        quantity=quantity,
        price_type=price_type,
        unit_price=round_money(unit),
        dozen_price=round_money(dozen),
        discount=round_money(discount),
        discount_type=discount_type,
        discount_amount=discount_amount,
        subtotal=subtotal,
        total=round_money(subtotal - discount_amount),
        warehouse_flag=flag,
    )


def bill_totals(lines, *, discount=None, discount_type=None, tax=None, tax_type=None) -> BillTotals:
    """Header totals: discount on the line sum, tax on (subtotal - discount)."""
    subtotal = round_money(sum((line.total for line in lines), ZERO))

    d_type = adjustment_type(discount_type, ADJUST_VALUE, "discount_type")
    d_value = _number(discount, "discount")
    if d_value < 0:
        raise ValidationError("Discount cannot be negative", {"field": "discount"})
    discount_amount = adjustment_amount(subtotal, d_value, d_type)
    if discount_amount > subtotal:
        raise ValidationError("Discount cannot exceed subtotal", {"field": "discount"})

    t_type = adjustment_type(tax_type, ADJUST_PERCENT, "tax_type")
    t_value = _number(tax, "tax")
    if t_value < 0:
        raise ValidationError("Tax cannot be negative", {"field": "tax"})
    taxable = subtotal - discount_amount
    tax_amount = adjustment_amount(taxable, t_value, t_type)

    return BillTotals(
        subtotal=subtotal,
        discount=round_money(d_value),
        discount_type=d_type,
        discount_amount=discount_amount,
        tax=round_money(t_value),
        tax_type=t_type,
        tax_amount=tax_amount,
        total=round_money(taxable + tax_amount),
    )


def same_price(stored, entered) -> bool:
    try:
        return round_money(stored) == round_money(entered)
    except (InvalidOperation, ValueError):
        return False
