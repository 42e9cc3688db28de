from decimal import Decimal
from types import SimpleNamespace

import pytest

from backoffice.errors import QuantityInvalid, ValidationError
from backoffice.pricing import bill_totals, price_line, split_quantities


PRODUCT = SimpleNamespace(id=7, name="Notebook A4", sale_price=Decimal("100.00"))


def test_single_price_line_total():
    line = price_line("purchase", {"product_id": 7, "quantity": 12, "unit_price": "100"}, PRODUCT)

    assert line.quantity == 12
    assert line.unit_price == Decimal("100.00")
    assert line.dozen_price == Decimal("1200.00")
    assert line.subtotal == Decimal("1200.00")
    assert line.total == Decimal("1200.00")


def test_dozen_entry_multiplies_quantity_and_derives_unit_price():
    line = price_line(
        "purchase",
        {"product_id": 7, "price_type": "dozen", "quantity": 1, "dozen_price": "10.00"},
        PRODUCT,
    )

    assert line.quantity == 12
    assert line.unit_price == Decimal("0.83")
    assert line.dozen_price == Decimal("10.00")
    # unrounded 0.8333... x 12 is rounded once
    assert line.subtotal == Decimal("10.00")


def test_half_dozen_is_six_units():
    line = price_line(
        "sale",
        {"product_id": 7, "price_type": "dozen", "quantity": "0.5", "unit_price": "2.00"},
        PRODUCT,
    )
    assert line.quantity == 6
    assert line.subtotal == Decimal("12.00")


def test_percent_discount_rounds_half_up():
    line = price_line(
        "sale",
        {"product_id": 7, "quantity": 3, "unit_price": "99.99", "discount": "10", "discount_type": "percent"},
        PRODUCT,
    )

    assert line.subtotal == Decimal("299.97")
    assert line.discount_amount == Decimal("30.00")
    assert line.total == Decimal("269.97")


def test_rounding_is_half_up_not_bankers():
    line = price_line("sale", {"product_id": 7, "quantity": 1, "unit_price": "0.125"}, PRODUCT)
    assert line.subtotal == Decimal("0.13")


def test_sale_defaults_to_product_sale_price():
    line = price_line("sale", {"product_id": 7, "quantity": 2}, PRODUCT)
    assert line.unit_price == Decimal("100.00")
    assert line.total == Decimal("200.00")


def test_purchase_requires_a_cost():
    with pytest.raises(ValidationError):
        price_line("purchase", {"product_id": 7, "quantity": 2}, PRODUCT)


def test_discount_cannot_exceed_line():
    with pytest.raises(ValidationError):
        price_line("sale", {"product_id": 7, "quantity": 1, "unit_price": "10", "discount": "11"}, PRODUCT)


def test_split_purchase_defaults_to_warehouse():
    assert split_quantities("purchase", {"quantity": 5}) == (0, 5, True)
    assert split_quantities("purchase", {"quantity": 5, "to_warehouse": False}) == (5, 0, False)


def test_split_sale_defaults_to_front():
    assert split_quantities("sale", {"quantity": 4}) == (4, 0, False)
    assert split_quantities("sale", {"quantity": 4, "from_warehouse": True}) == (0, 4, True)


def test_split_explicit_locations_win():
    assert split_quantities("purchase", {"quantity": 99, "front_quantity": 5, "warehouse_quantity": 3}) == (5, 3, False)


def test_zero_quantity_rejected():
    with pytest.raises(QuantityInvalid):
        split_quantities("purchase", {"quantity": 0})


def test_fractional_units_rejected():
    with pytest.raises(QuantityInvalid):
        price_line("sale", {"product_id": 7, "quantity": "1.5", "unit_price": "1"}, PRODUCT)


def test_bill_totals_discount_then_tax():
    lines = [SimpleNamespace(total=Decimal("1000.00")), SimpleNamespace(total=Decimal("200.00"))]

    totals = bill_totals(lines, discount="10", discount_type="percent", tax="5", tax_type="percent")

    assert totals.subtotal == Decimal("1200.00")
    assert totals.discount_amount == Decimal("120.00")
    assert totals.tax_amount == Decimal("54.00")
    assert totals.total == Decimal("1134.00")


def test_bill_totals_value_adjustments():
    lines = [SimpleNamespace(total=Decimal("1200.00"))]

    totals = bill_totals(lines, discount="50", discount_type="value", tax="0")

    assert totals.total == Decimal("1150.00")
    assert totals.tax_type == "percent"


def test_bill_discount_cannot_exceed_subtotal():
    with pytest.raises(ValidationError):
        bill_totals([SimpleNamespace(total=Decimal("10.00"))], discount="20")
