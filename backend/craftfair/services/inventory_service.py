# Overview: Direct inventory movements (stocking, manual adjustments) and movement queries.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import ValidationError
from ..event_state import ACTION_INVENTORY_IN, ACTION_INVENTORY_OUT
from ..models import InventoryMovement, Product
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES
from ..validation import (
    check_event_phase,
    check_no_duplicate_movement,
    check_positive,
    check_sale_active,
    check_single_owner,
    check_stock,
    enforce,
    parse_datetime_field,
    require_event,
    require_exchange,
    require_product,
    require_sale,
)
from .concurrency import run_in_transaction
from .ledger_service import append_movement, current_stock, stock_levels


def _check_movement_type(movement_type):
    if movement_type not in MOVEMENT_TYPES:
        return ValidationError(
            f"movement type must be one of {', '.join(MOVEMENT_TYPES)}",
            details={"type": movement_type},
        )
    return None


def create_inventory_movement(
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
    Record a movement outside the sale/exchange workflows.

    IN is accepted only while the product's event is SCHEDULED (stocking);
    OUT only while it is ACTIVE and never beyond current stock.
    """
    def _op():
        enforce(
            lambda: _check_movement_type(movement_type),
            lambda: check_positive(quantity, "quantity"),
            lambda: check_single_owner(sale_id, change_id),
        )

        product = require_product(product_id, lock=True)
        event = require_event(product.event_id)
        action = ACTION_INVENTORY_IN if movement_type == MOVEMENT_IN else ACTION_INVENTORY_OUT
        enforce(lambda: check_event_phase(event, action, clock))

        if sale_id is not None:
            sale = require_sale(sale_id)
            enforce(lambda: check_sale_active(sale))
        if change_id is not None:
            require_exchange(change_id)

        enforce(
            lambda: check_no_duplicate_movement(
                product_id, movement_type, sale_id=sale_id, change_id=change_id
            ),
            lambda: check_stock(product_id, quantity) if movement_type == MOVEMENT_OUT else None,
        )

        return append_movement(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            reason=reason,
            sale_id=sale_id,
            change_id=change_id,
            clock=clock,
        )

    return run_in_transaction(_op, operation="inventory movement")


def get_movement(movement_id: int) -> InventoryMovement | None:
    return db.session.get(InventoryMovement, movement_id)


def list_movements(
    *,
    product_id: int | None = None,
    event_id: int | None = None,
    movement_type: str | None = None,
    sale_id: int | None = None,
    change_id: int | None = None,
    start_date: datetime | str | None = None,
    end_date: datetime | str | None = None,
    limit: int | None = None,
) -> list[InventoryMovement]:
    """Newest first. Date bounds are inclusive."""
    q = db.session.query(InventoryMovement)
    if product_id is not None:
        q = q.filter(InventoryMovement.product_id == product_id)
    if event_id is not None:
        q = q.join(Product, Product.id == InventoryMovement.product_id).filter(Product.event_id == event_id)
    if movement_type is not None:
        q = q.filter(InventoryMovement.type == movement_type)
    if sale_id is not None:
        q = q.filter(InventoryMovement.sale_id == sale_id)
    if change_id is not None:
        q = q.filter(InventoryMovement.change_id == change_id)
    if start_date is not None:
        q = q.filter(InventoryMovement.created_at >= parse_datetime_field(start_date, "start_date"))
    if end_date is not None:
        q = q.filter(InventoryMovement.created_at <= parse_datetime_field(end_date, "end_date"))

    q = q.order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def stock_for_product(product_id: int) -> int:
    require_product(product_id)
    return current_stock(product_id)


def stock_summary_for_event(event_id: int) -> dict:
    """Per-product stock for an event, plus totals moved in and out."""
    require_event(event_id)
    products = (
        db.session.query(Product)
        .filter(Product.event_id == event_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    levels = stock_levels(p.id for p in products)

    totals = {MOVEMENT_IN: 0, MOVEMENT_OUT: 0}
    if products:
        rows = (
            db.session.query(InventoryMovement.type, db.func.sum(InventoryMovement.quantity))
            .filter(InventoryMovement.product_id.in_([p.id for p in products]))
            .group_by(InventoryMovement.type)
            .all()
        )
        for movement_type, total in rows:
            totals[movement_type] = int(total or 0)

    items = [
        {
            "product_id": p.id,
            "name": p.name,
            "artisan_id": p.artisan_id,
            "stock": levels.get(p.id, 0),
        }
        for p in products
    ]
    return {
        "event_id": event_id,
        "items": items,
        "total_in": totals[MOVEMENT_IN],
        "total_out": totals[MOVEMENT_OUT],
        "total_stock": sum(item["stock"] for item in items),
        "out_of_stock": [item["product_id"] for item in items if item["stock"] <= 0],
    }
