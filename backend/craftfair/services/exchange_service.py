"""
Product exchange workflow: swap sold units for an equal or higher value product.

Rules, checked in this order (first failure wins):

1. sale exists                                  -> NotFound
2. no exchange recorded for the sale yet        -> DuplicateOperation
3. distinct products, positive quantity,
   coherent difference payment                  -> ValidationError / PaymentCoherenceViolation
4. sale ACTIVE, its event ACTIVE                -> InvalidState
5. both products exist, same event and artisan
   as the sale                                  -> NotFound / CrossEntityMismatch
6. delivered price >= returned price            -> DowngradeNotAllowed
7. quantity <= sale.quantity_sold               -> ValidationError
8. delivered stock >= quantity                  -> InsufficientStock

A full exchange (quantity == quantity_sold) flips the sale to CHANGED.
A partial one leaves it ACTIVE; the unique sale_id on product_changes still
blocks a second exchange.
"""
from __future__ import annotations

from ..extensions import db
from ..event_state import ACTION_EXCHANGE
from ..models import InventoryMovement, Product, ProductChange, Sale
from ..models.inventory import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_EXCHANGE_DELIVERY,
    REASON_EXCHANGE_RETURN,
)
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH, SALE_CHANGED
from ..time_utils import current_clock
from ..validation import (
    check_distinct_products,
    check_event_phase,
    check_exchange_payment,
    check_exchange_products,
    check_exchange_quantity,
    check_no_prior_exchange,
    check_payment_method,
    check_positive,
    check_sale_active,
    check_stock,
    check_value_direction,
    enforce,
    lock_products,
    require_event,
    require_exchange,
    require_sale,
)
from .concurrency import run_in_transaction
from .ledger_service import append_movement, movements_for_change


def create_exchange(
    *,
    sale_id: int,
    product_returned_id: int,
    product_delivered_id: int,
    quantity: int,
    payment_method_difference: str | None = None,
    card_fee_difference_cents: int | None = None,
    clock=None,
) -> ProductChange:
    def _op():
        sale = require_sale(sale_id, lock=True)
        enforce(
            lambda: check_no_prior_exchange(sale_id),
            lambda: check_distinct_products(product_returned_id, product_delivered_id),
            lambda: check_positive(quantity, "quantity"),
            lambda: check_payment_method(payment_method_difference, required=False),
            lambda: check_exchange_payment(payment_method_difference, card_fee_difference_cents),
        )

        event = require_event(sale.event_id)
        enforce(
            lambda: check_sale_active(sale),
            lambda: check_event_phase(event, ACTION_EXCHANGE, clock),
        )

        products = lock_products([product_returned_id, product_delivered_id])
        returned = products[product_returned_id]
        delivered = products[product_delivered_id]

        enforce(
            lambda: check_exchange_products(sale, returned, delivered),
            lambda: check_value_direction(returned, delivered),
            lambda: check_exchange_quantity(quantity, sale),
            lambda: check_stock(product_delivered_id, quantity),
        )

        value_difference = (delivered.price_cents - returned.price_cents) * quantity

        change = ProductChange(
            sale_id=sale.id,
            product_returned_id=returned.id,
            product_delivered_id=delivered.id,
            quantity=quantity,
            delivered_product_price_cents=delivered.price_cents,
            value_difference_cents=value_difference,
            payment_method_difference=payment_method_difference,
            card_fee_difference_cents=card_fee_difference_cents,
            created_at=current_clock(clock).now(),
        )
        db.session.add(change)
        db.session.flush()

        append_movement(
            product_id=returned.id,
            movement_type=MOVEMENT_IN,
            quantity=quantity,
            reason=REASON_EXCHANGE_RETURN,
            change_id=change.id,
            clock=clock,
        )
        append_movement(
            product_id=delivered.id,
            movement_type=MOVEMENT_OUT,
            quantity=quantity,
            reason=REASON_EXCHANGE_DELIVERY,
            change_id=change.id,
            clock=clock,
        )

        if quantity == sale.quantity_sold:
            sale.state = SALE_CHANGED
        return change

    return run_in_transaction(_op, operation="create exchange")


def find_exchange(change_id: int) -> ProductChange:
    return require_exchange(change_id)


def sale_has_exchange(sale_id: int) -> bool:
    return check_no_prior_exchange(sale_id) is not None


def exchange_movements(change_id: int) -> list[InventoryMovement]:
    require_exchange(change_id)
    return movements_for_change(change_id)


def list_exchanges(
    *,
    event_id: int | None = None,
    artisan_id: int | None = None,
    sale_id: int | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Newest first, paginated like the other listings."""
    page = max(1, int(page))
    per_page = min(max(1, int(per_page)), 200)

    q = db.session.query(ProductChange).join(Sale, Sale.id == ProductChange.sale_id)
    if event_id is not None:
        q = q.filter(Sale.event_id == event_id)
    if artisan_id is not None:
        q = q.filter(Sale.artisan_id == artisan_id)
    if sale_id is not None:
        q = q.filter(ProductChange.sale_id == sale_id)

    total = q.count()
    rows = (
        q.order_by(ProductChange.created_at.desc(), ProductChange.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    return {
        "items": [c.to_dict() for c in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def exchange_stats_for_event(event_id: int) -> dict:
    require_event(event_id)
    changes = (
        db.session.query(ProductChange)
        .join(Sale, Sale.id == ProductChange.sale_id)
        .filter(Sale.event_id == event_id)
        .all()
    )

    by_method = {PAYMENT_CASH: 0, PAYMENT_CARD: 0}
    for change in changes:
        if change.payment_method_difference in by_method:
            by_method[change.payment_method_difference] += change.value_difference_cents

    delivered_counts: dict[int, int] = {}
    for change in changes:
        delivered_counts[change.product_delivered_id] = (
            delivered_counts.get(change.product_delivered_id, 0) + change.quantity
        )
    most_delivered = None
    if delivered_counts:
        product_id = min(delivered_counts, key=lambda pid: (-delivered_counts[pid], pid))
        product = db.session.get(Product, product_id)
        most_delivered = {
            "product_id": product_id,
            "name": product.name if product else None,
            "quantity": delivered_counts[product_id],
        }

    return {
        "event_id": event_id,
        "total_exchanges": len(changes),
        "total_quantity": sum(c.quantity for c in changes),
        "total_value_difference_cents": sum(c.value_difference_cents for c in changes),
        "total_card_fees_cents": sum(c.card_fee_difference_cents or 0 for c in changes),
        "value_difference_by_payment_method": by_method,
        "most_delivered_product": most_delivered,
    }
