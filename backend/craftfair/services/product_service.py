# Overview: Product administration; stock is always read from the ledger.

from __future__ import annotations

from ..extensions import db
from ..errors import DuplicateOperation, InvalidState, ValidationError
from ..event_state import ACTION_CREATE_PRODUCT, ACTION_EDIT_PRODUCT
from ..models import Event, InventoryMovement, Product
from ..models.inventory import MOVEMENT_IN, REASON_INITIAL_LOAD
from ..validation import (
    check_artisan_active,
    check_event_phase,
    check_positive,
    enforce,
    require_artisan,
    require_event,
    require_product,
)
from .concurrency import run_in_transaction
from .ledger_service import append_movement, current_stock, stock_levels

PRODUCT_MUTABLE_FIELDS = {"name", "price_cents", "category"}


def _validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required", details={"field": "name"})
    cleaned = name.strip()
    if len(cleaned) > 255:
        raise ValidationError("name must be at most 255 characters", details={"field": "name"})
    return cleaned


def _ensure_unique_name(name: str, event_id: int, artisan_id: int, exclude_id: int | None = None) -> None:
    q = db.session.query(Product).filter_by(name=name, event_id=event_id, artisan_id=artisan_id)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise DuplicateOperation(
            "product",
            f"Artisan {artisan_id} already has a product named {name!r} in event {event_id}",
            details={"name": name, "event_id": event_id, "artisan_id": artisan_id},
        )


def _has_sale_movements(product_id: int) -> bool:
    q = InventoryMovement.query.filter(
        InventoryMovement.product_id == product_id,
        db.or_(InventoryMovement.sale_id.isnot(None), InventoryMovement.change_id.isnot(None)),
    )
    return db.session.query(q.exists()).scalar()


def create_product(
    *,
    event_id: int,
    artisan_id: int,
    name: str,
    price_cents: int,
    initial_quantity: int = 0,
    category: str | None = None,
    clock=None,
) -> Product:
    """
    Register a product for a SCHEDULED event.

    A positive initial_quantity is written as an "initial load" IN movement.
    """
    def _op():
        clean_name = _validate_name(name)
        enforce(lambda: check_positive(price_cents, "price_cents"))
        if isinstance(initial_quantity, bool) or not isinstance(initial_quantity, int) or initial_quantity < 0:
            raise ValidationError(
                "initial_quantity must be a non-negative integer",
                details={"field": "initial_quantity", "value": initial_quantity},
            )

        event = require_event(event_id, lock=True)
        enforce(lambda: check_event_phase(event, ACTION_CREATE_PRODUCT, clock))
        artisan = require_artisan(artisan_id)
        enforce(lambda: check_artisan_active(artisan))
        _ensure_unique_name(clean_name, event_id, artisan_id)

        product = Product(
            name=clean_name,
            price_cents=price_cents,
            category=category,
            event_id=event_id,
            artisan_id=artisan_id,
        )
        db.session.add(product)
        db.session.flush()

        if initial_quantity > 0:
            append_movement(
                product_id=product.id,
                movement_type=MOVEMENT_IN,
                quantity=initial_quantity,
                reason=REASON_INITIAL_LOAD,
                clock=clock,
            )
        return product

    return run_in_transaction(_op, operation="create product")


def get_product(product_id: int) -> dict:
    product = require_product(product_id)
    return product.to_dict(stock=current_stock(product_id))


def list_products(
    *,
    event_id: int | None = None,
    artisan_id: int | None = None,
    include_closed: bool = False,
    order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Products with their ledger stock.

    Products of explicitly closed events are hidden unless include_closed.
    order: "name" or "stock" (highest first); default is by id.
    """
    q = db.session.query(Product).join(Event, Event.id == Product.event_id)
    if event_id is not None:
        q = q.filter(Product.event_id == event_id)
    if artisan_id is not None:
        q = q.filter(Product.artisan_id == artisan_id)
    if not include_closed:
        q = q.filter(Event.is_closed.is_(False))

    if order == "name":
        q = q.order_by(Product.name.asc(), Product.id.asc())
    else:
        q = q.order_by(Product.id.asc())

    products = q.all()
    levels = stock_levels(p.id for p in products)
    items = [p.to_dict(stock=levels.get(p.id, 0)) for p in products]
    if order == "stock":
        items.sort(key=lambda item: (-item["stock"], item["id"]))

    if page is None:
        return {"items": items, "count": len(items)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = len(items)
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    window = items[(page - 1) * per_page: page * per_page]
    return {
        "items": window,
        "count": len(window),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_product(product_id: int, *, patch: dict, clock=None) -> Product:
    def _op():
        product = require_product(product_id, lock=True)
        event = require_event(product.event_id)
        enforce(lambda: check_event_phase(event, ACTION_EDIT_PRODUCT, clock))

        unknown = sorted(set(patch) - PRODUCT_MUTABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(unknown)}", details={"fields": unknown})

        if "name" in patch:
            new_name = _validate_name(patch["name"])
            _ensure_unique_name(new_name, product.event_id, product.artisan_id, exclude_id=product_id)
            product.name = new_name
        if "price_cents" in patch and patch["price_cents"] != product.price_cents:
            enforce(lambda: check_positive(patch["price_cents"], "price_cents"))
            if _has_sale_movements(product_id):
                raise InvalidState(
                    "product",
                    product_id,
                    expected="no sales",
                    actual="has sales",
                    message="Price cannot change once the product has sales or exchanges",
                )
            product.price_cents = patch["price_cents"]
        if "category" in patch:
            product.category = patch["category"]

        db.session.flush()
        return product

    return run_in_transaction(_op, operation="update product")


def delete_product(product_id: int, *, clock=None) -> None:
    def _op():
        product = require_product(product_id, lock=True)
        event = require_event(product.event_id)
        enforce(lambda: check_event_phase(event, ACTION_EDIT_PRODUCT, clock))
        has_movements = db.session.query(
            InventoryMovement.query.filter_by(product_id=product_id).exists()
        ).scalar()
        if has_movements:
            raise InvalidState("product", product_id, expected="no movements", actual="has movements")
        db.session.delete(product)

    run_in_transaction(_op, operation="delete product")
