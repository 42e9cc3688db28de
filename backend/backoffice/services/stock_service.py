# Overview: Service-layer operations for stock; applies signed quantity deltas to product locations.

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFound, QuantityInvalid, StockWouldGoNegative
from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


LOCATION_FRONT = "front"
LOCATION_WAREHOUSE = "warehouse"
VALID_LOCATIONS = (LOCATION_FRONT, LOCATION_WAREHOUSE)

_LOCATION_COLUMNS = {
    LOCATION_FRONT: "front_quantity",
    LOCATION_WAREHOUSE: "warehouse_quantity",
}


@dataclass(frozen=True)
class StockDelta:
    product_id: int
    location: str
    delta: int

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "location": self.location, "delta": self.delta}


def get_locked_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).populate_existing().first()
    if not product:
        raise NotFound(f"Product {product_id} not found", {"product_id": product_id})
    return product


def adjust(product_id: int, location: str, delta: int) -> StockDelta:
    """
    Apply a signed delta to one location of one product.

    Raises StockWouldGoNegative if the location would drop below zero.
    Does not commit; the caller owns the transaction.
    """
    if location not in VALID_LOCATIONS:
        raise QuantityInvalid(f"Invalid stock location: {location}", {"location": location})
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise QuantityInvalid("Stock delta must be a whole number", {"delta": str(delta)})

    product = get_locked_product(product_id)
    column = _LOCATION_COLUMNS[location]
    current = getattr(product, column) or 0
    new_qty = current + delta
    if new_qty < 0:
        raise StockWouldGoNegative(
            f"Insufficient stock for {product.name} ({location})",
            {
                "product_id": product_id,
                "location": location,
                "available": current,
                "requested": -delta,
            },
        )
    if delta:
        setattr(product, column, new_qty)
        db.session.flush()
    return StockDelta(product_id=product_id, location=location, delta=delta)


def net_deltas(deltas) -> list[StockDelta]:
    """Collapse deltas to one per (product, location), dropping zeros, sorted."""
    totals: dict[tuple[int, str], int] = {}
    for d in deltas:
        key = (d.product_id, d.location)
        totals[key] = totals.get(key, 0) + d.delta
    return [
        StockDelta(product_id=pid, location=loc, delta=qty)
        for (pid, loc), qty in sorted(totals.items())
        if qty
    ]


def apply_deltas(deltas) -> list[StockDelta]:
    """
    Apply many deltas in (product_id, location) order.

    WHY: A fixed lock order keeps two writers touching the same products
    from deadlocking each other.
    """
    applied = []
    for d in net_deltas(deltas):
        applied.append(adjust(d.product_id, d.location, d.delta))
    return applied


def item_deltas(item, sign: int) -> list[StockDelta]:
    """Stock effect of one line item (sign +1 adds to stock, -1 removes)."""
    out = []
    if item.front_quantity:
        out.append(StockDelta(item.product_id, LOCATION_FRONT, sign * int(item.front_quantity)))
    if item.warehouse_quantity:
        out.append(StockDelta(item.product_id, LOCATION_WAREHOUSE, sign * int(item.warehouse_quantity)))
    return out
