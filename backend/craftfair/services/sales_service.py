"""
Sale workflow: register, multi-item register, cancel, and sale queries.

Every write goes through run_in_transaction(): the stock check and the OUT
movement it guards happen inside the same write transaction, so two
concurrent sales of the last unit cannot both commit.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import FairError, InvalidState, ValidationError
from ..event_state import ACTION_CANCEL_SALE, ACTION_REGISTER_SALE
from ..models import Product, Sale
from ..models.inventory import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_DIRECT_SALE,
    REASON_SALE_CANCELLATION,
)
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH, SALE_ACTIVE, SALE_CANCELLED
from ..time_utils import current_clock
from ..validation import (
    check_artisan_active,
    check_event_phase,
    check_no_duplicate_movement,
    check_no_prior_exchange,
    check_payment_method,
    check_positive,
    check_product_context,
    check_sale_active,
    check_sale_payment,
    check_stock,
    enforce,
    parse_datetime_field,
    require_artisan,
    require_event,
    require_product,
    require_sale,
)
from .concurrency import run_in_transaction
from .ledger_service import append_movement


# =============================================================================
# REGISTER
# =============================================================================

def create_sale(
    *,
    event_id: int,
    product_id: int,
    artisan_id: int,
    quantity: int,
    value_charged_cents: int,
    payment_method: str,
    card_fee_cents: int | None = None,
    clock=None,
) -> Sale:
    """
    Register one product line sold at an active event.

    Writes the Sale (state ACTIVE, dated now) and its OUT movement in one
    transaction.
    """
    def _op():
        enforce(
            lambda: check_positive(quantity, "quantity"),
            lambda: check_positive(value_charged_cents, "value_charged_cents"),
            lambda: check_payment_method(payment_method),
            lambda: check_sale_payment(payment_method, card_fee_cents),
        )

        event = require_event(event_id)
        enforce(lambda: check_event_phase(event, ACTION_REGISTER_SALE, clock))

        artisan = require_artisan(artisan_id)
        enforce(lambda: check_artisan_active(artisan))

        product = require_product(product_id, lock=True)
        enforce(
            lambda: check_product_context(product, event_id, artisan_id),
            lambda: check_stock(product_id, quantity),
        )

        now = current_clock(clock).now()
        sale = Sale(
            event_id=event_id,
            product_id=product_id,
            artisan_id=artisan_id,
            quantity_sold=quantity,
            value_charged_cents=value_charged_cents,
            payment_method=payment_method,
            card_fee_cents=card_fee_cents,
            state=SALE_ACTIVE,
            date=now,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        append_movement(
            product_id=product_id,
            movement_type=MOVEMENT_OUT,
            quantity=quantity,
            reason=REASON_DIRECT_SALE,
            sale_id=sale.id,
            clock=clock,
        )
        return sale

    return run_in_transaction(_op, operation="create sale")


def prorate_card_fee(total_fee_cents: int | None, values_cents: list[int]) -> list[int | None]:
    """
    Split a basket's card fee across items in proportion to their value.

    Each running total is rounded half-up to the cent and every item takes
    the difference from the previous running total, so the parts are never
    negative and always sum to the total. The last item absorbs the
    rounding remainder.
    """
    if total_fee_cents is None:
        return [None for _ in values_cents]
    total_value = sum(values_cents)
    if total_value <= 0:
        return [0 for _ in values_cents]

    parts = []
    running_value = 0
    allocated = 0
    for index, value in enumerate(values_cents):
        running_value += value
        if index == len(values_cents) - 1:
            target = total_fee_cents
        else:
            target = (2 * total_fee_cents * running_value + total_value) // (2 * total_value)
        parts.append(target - allocated)
        allocated = target
    return parts


def _validate_basket(event_id: int, payment_method: str, card_fee_total_cents, items) -> list[tuple[dict, Product]]:
    max_items = current_app.config.get("MULTI_SALE_MAX_ITEMS", 50)
    if not items:
        raise ValidationError("A multi-sale needs at least one item", details={"items": 0})
    if len(items) > max_items:
        raise ValidationError(
            f"A multi-sale accepts at most {max_items} items",
            details={"items": len(items), "max_items": max_items},
        )

    enforce(
        lambda: check_payment_method(payment_method),
        lambda: check_sale_payment(payment_method, card_fee_total_cents),
    )
    require_event(event_id)

    resolved = []
    for index, item in enumerate(items):
        quantity = item.get("quantity")
        failure = check_positive(quantity, "quantity")
        if failure is not None:
            failure.details["item_index"] = index
            raise failure

        product = require_product(item.get("product_id"))
        artisan = require_artisan(item.get("artisan_id"))
        enforce(
            lambda: check_artisan_active(artisan),
            lambda: check_product_context(product, event_id, artisan.id),
        )
        resolved.append((item, product))
    return resolved


def create_multi_sale(
    *,
    event_id: int,
    payment_method: str,
    items: list[dict],
    card_fee_total_cents: int | None = None,
    clock=None,
) -> list[Sale]:
    """
    Register a basket of items paid together.

    items: [{"product_id", "artisan_id", "quantity"}, ...]

    The whole basket is validated up front, value_charged is price x quantity,
    and the card fee is prorated by value. Each item is then registered as its
    own transaction: a failing item raises its original error with
    committed_sale_ids and failed_item_index added to details, and the
    items before it stay committed.
    """
    resolved = _validate_basket(event_id, payment_method, card_fee_total_cents, items)

    values = [product.price_cents * item["quantity"] for item, product in resolved]
    fees = prorate_card_fee(card_fee_total_cents, values)
    if payment_method == PAYMENT_CASH:
        fees = [None for _ in fees]

    sales: list[Sale] = []
    for index, ((item, product), value, fee) in enumerate(zip(resolved, values, fees)):
        try:
            sale = create_sale(
                event_id=event_id,
                product_id=product.id,
                artisan_id=item["artisan_id"],
                quantity=item["quantity"],
                value_charged_cents=value,
                payment_method=payment_method,
                card_fee_cents=fee,
                clock=clock,
            )
        except FairError as exc:
            exc.details["committed_sale_ids"] = [s.id for s in sales]
            exc.details["failed_item_index"] = index
            current_app.logger.warning(
                "multi-sale stopped at item %s of %s (%s); committed %s",
                index, len(resolved), exc.code, exc.details["committed_sale_ids"],
            )
            raise
        sales.append(sale)
    return sales


# =============================================================================
# CANCEL
# =============================================================================

def _check_cancellation_window(sale: Sale, clock=None):
    hours = current_app.config.get("SALE_CANCELLATION_WINDOW_HOURS")
    if hours is None:
        return None
    elapsed = current_clock(clock).now() - sale.date
    if elapsed > timedelta(hours=hours):
        return InvalidState(
            "sale",
            sale.id,
            expected=f"within {hours}h of sale",
            actual="cancellation window expired",
            message=f"Sale {sale.id} can no longer be cancelled ({hours}h window)",
        )
    return None


def _check_not_exchanged(sale: Sale):
    if check_no_prior_exchange(sale.id) is not None:
        return InvalidState(
            "sale",
            sale.id,
            expected="no product change",
            actual="has product change",
            message=f"Sale {sale.id} has a product change and cannot be cancelled",
        )
    return None


def cancel_sale(sale_id: int, *, clock=None) -> Sale:
    """
    Cancel an ACTIVE sale: state becomes CANCELLED and the sold units come
    back through a compensating IN movement owned by the same sale.
    """
    def _op():
        sale = require_sale(sale_id, lock=True)
        event = require_event(sale.event_id)
        enforce(
            lambda: check_sale_active(sale),
            lambda: _check_not_exchanged(sale),
            lambda: _check_cancellation_window(sale, clock),
            lambda: check_event_phase(event, ACTION_CANCEL_SALE, clock),
            lambda: check_no_duplicate_movement(sale.product_id, MOVEMENT_IN, sale_id=sale.id),
        )

        sale.state = SALE_CANCELLED
        append_movement(
            product_id=sale.product_id,
            movement_type=MOVEMENT_IN,
            quantity=sale.quantity_sold,
            reason=REASON_SALE_CANCELLATION,
            sale_id=sale.id,
            clock=clock,
        )
        return sale

    return run_in_transaction(_op, operation="cancel sale")


# =============================================================================
# QUERIES
# =============================================================================

def find_sale(sale_id: int) -> Sale:
    return require_sale(sale_id)


def list_sales(
    *,
    event_id: int | None = None,
    artisan_id: int | None = None,
    product_id: int | None = None,
    payment_method: str | None = None,
    state: str | None = None,
    start_date: datetime | str | None = None,
    end_date: datetime | str | None = None,
    order: str = "desc",
) -> list[Sale]:
    q = db.session.query(Sale)
    if event_id is not None:
        q = q.filter(Sale.event_id == event_id)
    if artisan_id is not None:
        q = q.filter(Sale.artisan_id == artisan_id)
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)
    if payment_method is not None:
        q = q.filter(Sale.payment_method == payment_method)
    if state is not None:
        q = q.filter(Sale.state == state)
    if start_date is not None:
        q = q.filter(Sale.date >= parse_datetime_field(start_date, "start_date"))
    if end_date is not None:
        q = q.filter(Sale.date <= parse_datetime_field(end_date, "end_date"))

    if order == "asc":
        q = q.order_by(Sale.date.asc(), Sale.id.asc())
    else:
        q = q.order_by(Sale.date.desc(), Sale.id.desc())
    return q.all()


def effective_sales_query():
    """Sales that still count as revenue (ACTIVE or CHANGED)."""
    return db.session.query(Sale).filter(Sale.state != SALE_CANCELLED)


def _totals(sales: list[Sale]) -> dict:
    total_amount = sum(s.value_charged_cents for s in sales)
    return {
        "total_sales": len(sales),
        "total_quantity": sum(s.quantity_sold for s in sales),
        "total_amount_cents": total_amount,
        "total_card_fees_cents": sum(s.card_fee_cents or 0 for s in sales),
    }


def sales_stats_for_event(event_id: int) -> dict:
    require_event(event_id)
    sales = effective_sales_query().filter(Sale.event_id == event_id).all()

    stats = _totals(sales)
    by_method = {}
    for method in (PAYMENT_CASH, PAYMENT_CARD):
        subset = [s for s in sales if s.payment_method == method]
        by_method[method] = {
            "count": len(subset),
            "amount_cents": sum(s.value_charged_cents for s in subset),
            "fees_cents": sum(s.card_fee_cents or 0 for s in subset),
        }
    stats["event_id"] = event_id
    stats["by_payment_method"] = by_method
    return stats


def sales_stats_for_artisan(artisan_id: int, event_id: int | None = None) -> dict:
    require_artisan(artisan_id)
    q = effective_sales_query().filter(Sale.artisan_id == artisan_id)
    if event_id is not None:
        q = q.filter(Sale.event_id == event_id)
    sales = q.all()

    stats = _totals(sales)
    stats["artisan_id"] = artisan_id
    stats["event_id"] = event_id
    # Integer cents, half-up
    stats["average_sale_cents"] = (
        (2 * stats["total_amount_cents"] + len(sales)) // (2 * len(sales)) if sales else 0
    )
    return stats


def sales_by_day(
    *,
    start_date: datetime | str,
    end_date: datetime | str,
    event_id: int | None = None,
) -> list[dict]:
    """Daily totals over [start_date, end_date], grouped in Python to stay engine-neutral."""
    start = parse_datetime_field(start_date, "start_date")
    end = parse_datetime_field(end_date, "end_date")
    if start > end:
        raise ValidationError("start_date must not be after end_date")

    q = effective_sales_query().filter(Sale.date >= start, Sale.date <= end)
    if event_id is not None:
        q = q.filter(Sale.event_id == event_id)

    days: dict = defaultdict(lambda: {"count": 0, "quantity": 0, "amount_cents": 0})
    for sale in q.order_by(Sale.date.asc()).all():
        bucket = days[sale.date.date()]
        bucket["count"] += 1
        bucket["quantity"] += sale.quantity_sold
        bucket["amount_cents"] += sale.value_charged_cents

    return [{"day": day.isoformat(), **totals} for day, totals in sorted(days.items())]


def top_selling_products(event_id: int, limit: int = 10) -> list[dict]:
    require_event(event_id)
    rows = (
        db.session.query(
            Sale.product_id,
            Product.name,
            func.sum(Sale.quantity_sold).label("quantity"),
            func.sum(Sale.value_charged_cents).label("amount"),
        )
        .join(Product, Product.id == Sale.product_id)
        .filter(Sale.event_id == event_id, Sale.state != SALE_CANCELLED)
        .group_by(Sale.product_id, Product.name)
        .order_by(func.sum(Sale.quantity_sold).desc(), Sale.product_id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": product_id,
            "name": name,
            "quantity_sold": int(quantity or 0),
            "amount_cents": int(amount or 0),
        }
        for product_id, name, quantity, amount in rows
    ]
