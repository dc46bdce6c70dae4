"""
Inventory ledger primitives; stock is derived from movements.

Invariants:

- Stock is ledger-derived: stock(p) = SUM(IN.quantity) - SUM(OUT.quantity).
  No counter is stored on Product.
- Movements are append-only: never updated or deleted in normal operation.
- append_movement() is a pure insert; callers validate sufficiency first,
  inside the same transaction (see services.concurrency).
- A movement references a sale or a product change, never both.
"""
from __future__ import annotations

from typing import Iterable

from sqlalchemy import case, func

from ..extensions import db
from ..models import InventoryMovement
from ..models.inventory import MOVEMENT_IN, MOVEMENT_TYPES
from ..time_utils import current_clock

_SIGNED_QUANTITY = case(
    (InventoryMovement.type == MOVEMENT_IN, InventoryMovement.quantity),
    else_=-InventoryMovement.quantity,
)


def current_stock(product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(_SIGNED_QUANTITY), 0)
    ).filter(InventoryMovement.product_id == product_id)
    return int(q.scalar() or 0)


def stock_levels(product_ids: Iterable[int]) -> dict[int, int]:
    """Stock for many products in one aggregation; products without movements get 0."""
    ids = list(product_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(
            InventoryMovement.product_id,
            func.coalesce(func.sum(_SIGNED_QUANTITY), 0),
        )
        .filter(InventoryMovement.product_id.in_(ids))
        .group_by(InventoryMovement.product_id)
        .all()
    )
    levels = {product_id: 0 for product_id in ids}
    for product_id, stock in rows:
        levels[product_id] = int(stock or 0)
    return levels


def append_movement(
    *,
    product_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    sale_id: int | None = None,
    change_id: int | None = None,
    clock=None,
) -> InventoryMovement:
    """
    Append-only ledger insert.

    - No stock checks here.
    - No updates/deletes of existing movements.
    - Flushes so the id is assigned without committing.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"invalid movement type {movement_type!r}")
    if sale_id is not None and change_id is not None:
        raise ValueError("movement cannot reference both a sale and a change")

    mv = InventoryMovement(
        type=movement_type,
        quantity=quantity,
        reason=reason,
        product_id=product_id,
        sale_id=sale_id,
        change_id=change_id,
        created_at=current_clock(clock).now(),
    )
    db.session.add(mv)
    db.session.flush()
    return mv


def movements_for_sale(sale_id: int) -> list[InventoryMovement]:
    return (
        InventoryMovement.query.filter_by(sale_id=sale_id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )


def movements_for_change(change_id: int) -> list[InventoryMovement]:
    return (
        InventoryMovement.query.filter_by(change_id=change_id)
        .order_by(InventoryMovement.id.asc())
        .all()
    )
