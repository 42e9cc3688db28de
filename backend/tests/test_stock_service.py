import pytest

from backoffice.errors import NotFound, QuantityInvalid, StockWouldGoNegative
from backoffice.services import stock_service
from backoffice.services.stock_service import StockDelta


def test_adjust_front_and_warehouse(db_session, product):
    stock_service.adjust(product.id, "front", 5)
    stock_service.adjust(product.id, "warehouse", -20)
    db_session.commit()

    assert product.front_quantity == 15
    assert product.warehouse_quantity == 0


def test_adjust_below_zero_is_rejected(db_session, product):
    with pytest.raises(StockWouldGoNegative) as exc:
        stock_service.adjust(product.id, "front", -11)

    assert isinstance(exc.value, QuantityInvalid)
    assert exc.value.details["available"] == 10
    db_session.rollback()
    assert product.front_quantity == 10


def test_adjust_unknown_product(db_session):
    with pytest.raises(NotFound):
        stock_service.adjust(9999, "front", 1)


def test_adjust_invalid_location(db_session, product):
    with pytest.raises(QuantityInvalid):
        stock_service.adjust(product.id, "backroom", 1)


def test_apply_deltas_nets_per_location(db_session, product, product_b):
    applied = stock_service.apply_deltas([
        StockDelta(product_b.id, "front", -3),
        StockDelta(product.id, "front", -4),
        StockDelta(product.id, "front", 6),
        StockDelta(product.id, "warehouse", 0),
    ])
    db_session.commit()

    assert applied == [
        StockDelta(product.id, "front", 2),
        StockDelta(product_b.id, "front", -3),
    ]
    assert product.front_quantity == 12
    assert product_b.front_quantity == 47
