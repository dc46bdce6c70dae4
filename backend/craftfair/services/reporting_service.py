# Overview: Event and artisan summaries; commissions are computed from basis points.

from __future__ import annotations

from ..extensions import db
from ..models import Artisan, Event, Product, ProductChange, Sale
from ..models.sales import PAYMENT_CARD, PAYMENT_CASH, SALE_CANCELLED
from ..time_utils import to_utc_z
from ..validation import require_artisan, require_event
from .ledger_service import stock_levels

LINE_SALE = "SALE"
LINE_EXCHANGE = "EXCHANGE"


def commission_cents(amount_cents: int, bps: int) -> int:
    """amount x bps / 10000, rounded half-up to the cent."""
    return (2 * amount_cents * bps + 10000) // 20000


def _commissions(event: Event, amount_cents: int) -> dict:
    association = commission_cents(amount_cents, event.commission_association_bps)
    seller = commission_cents(amount_cents, event.commission_seller_bps)
    return {
        "association_commission_cents": association,
        "seller_commission_cents": seller,
        "net_for_artisans_cents": amount_cents - association - seller,
    }


def _event_sales(event_id: int) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter(Sale.event_id == event_id, Sale.state != SALE_CANCELLED)
        .order_by(Sale.date.asc(), Sale.id.asc())
        .all()
    )


def _event_changes(event_id: int) -> list[ProductChange]:
    return (
        db.session.query(ProductChange)
        .join(Sale, Sale.id == ProductChange.sale_id)
        .filter(Sale.event_id == event_id)
        .order_by(ProductChange.created_at.asc(), ProductChange.id.asc())
        .all()
    )


def _pick_top(totals: dict, names: dict, id_key: str, value_key: str) -> dict | None:
    if not totals:
        return None
    top_id = min(totals, key=lambda k: (-totals[k], k))
    return {id_key: top_id, "name": names.get(top_id), value_key: totals[top_id]}


def event_summary(event_id: int) -> dict:
    """
    Headline numbers for one event.

    Revenue counts sales that were not cancelled plus the price differences
    collected on exchanges.
    """
    event = require_event(event_id)
    sales = _event_sales(event_id)
    changes = _event_changes(event_id)

    payment_totals = {PAYMENT_CASH: 0, PAYMENT_CARD: 0}
    card_fees = 0
    product_qty: dict[int, int] = {}
    product_names: dict[int, str] = {}
    artisan_amount: dict[int, int] = {}
    artisan_names: dict[int, str] = {}

    for sale in sales:
        payment_totals[sale.payment_method] += sale.value_charged_cents
        card_fees += sale.card_fee_cents or 0
        product_qty[sale.product_id] = product_qty.get(sale.product_id, 0) + sale.quantity_sold
        product_names[sale.product_id] = sale.product.name
        artisan_amount[sale.artisan_id] = artisan_amount.get(sale.artisan_id, 0) + sale.value_charged_cents
        artisan_names[sale.artisan_id] = sale.artisan.name

    for change in changes:
        if change.payment_method_difference in payment_totals:
            payment_totals[change.payment_method_difference] += change.value_difference_cents
        card_fees += change.card_fee_difference_cents or 0
        artisan_id = change.sale.artisan_id
        artisan_amount[artisan_id] = artisan_amount.get(artisan_id, 0) + change.value_difference_cents
        artisan_names.setdefault(artisan_id, change.sale.artisan.name)

    total = sum(s.value_charged_cents for s in sales) + sum(c.value_difference_cents for c in changes)

    summary = {
        "event_id": event.id,
        "event_name": event.name,
        "total_sales_cents": total,
        "sales_count": len(sales),
        "exchanges_count": len(changes),
        "payment_totals": payment_totals,
        "card_fees_total_cents": card_fees,
        "most_sold_product": _pick_top(product_qty, product_names, "product_id", "quantity_sold"),
        "top_artisan": _pick_top(artisan_amount, artisan_names, "artisan_id", "total_sold_cents"),
    }
    summary.update(_commissions(event, total))
    return summary


def event_accounting_summary(event_id: int) -> dict:
    """
    Per-artisan settlement for an event.

    Each artisan gets the list of sale and exchange lines, the amount sold,
    card fees, both commissions and the net amount to receive
    (sold - commissions - card fees).
    """
    event = require_event(event_id)
    grouped: dict[int, dict] = {}

    def _bucket(artisan: Artisan) -> dict:
        if artisan.id not in grouped:
            grouped[artisan.id] = {
                "artisan_id": artisan.id,
                "artisan_name": artisan.name,
                "artisan_identification": artisan.identification,
                "lines": [],
            }
        return grouped[artisan.id]

    for sale in _event_sales(event_id):
        _bucket(sale.artisan)["lines"].append({
            "type": LINE_SALE,
            "sale_id": sale.id,
            "date": to_utc_z(sale.date),
            "product_id": sale.product_id,
            "product_name": sale.product.name,
            "quantity": sale.quantity_sold,
            "amount_cents": sale.value_charged_cents,
            "payment_method": sale.payment_method,
            "card_fee_cents": sale.card_fee_cents or 0,
        })

    for change in _event_changes(event_id):
        _bucket(change.sale.artisan)["lines"].append({
            "type": LINE_EXCHANGE,
            "sale_id": change.sale_id,
            "change_id": change.id,
            "date": to_utc_z(change.created_at),
            "product_id": change.product_delivered_id,
            "product_name": change.delivered_product.name,
            "quantity": change.quantity,
            "amount_cents": change.value_difference_cents,
            "payment_method": change.payment_method_difference,
            "card_fee_cents": change.card_fee_difference_cents or 0,
        })

    artisans = []
    totals = {
        "total_sold_cents": 0,
        "total_card_fees_cents": 0,
        "association_commission_cents": 0,
        "seller_commission_cents": 0,
        "net_received_cents": 0,
    }
    for artisan_id in sorted(grouped):
        entry = grouped[artisan_id]
        sold = sum(line["amount_cents"] for line in entry["lines"])
        fees = sum(line["card_fee_cents"] for line in entry["lines"])
        association = commission_cents(sold, event.commission_association_bps)
        seller = commission_cents(sold, event.commission_seller_bps)
        entry.update({
            "total_sold_cents": sold,
            "total_card_fees_cents": fees,
            "association_commission_cents": association,
            "seller_commission_cents": seller,
            "net_received_cents": sold - association - seller - fees,
        })
        artisans.append(entry)
        for key in totals:
            totals[key] += entry[key]

    return {
        "event_id": event.id,
        "event_name": event.name,
        "commission_association_bps": event.commission_association_bps,
        "commission_seller_bps": event.commission_seller_bps,
        "artisans": artisans,
        "totals": totals,
    }


def artisan_event_summary(artisan_id: int, event_id: int) -> dict:
    """Sold and unsold products of one artisan at one event, with stock and commissions."""
    artisan = require_artisan(artisan_id)
    event = require_event(event_id)

    products = (
        db.session.query(Product)
        .filter(Product.event_id == event_id, Product.artisan_id == artisan_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    levels = stock_levels(p.id for p in products)

    sold_qty: dict[int, int] = {}
    sold_amount: dict[int, int] = {}
    card_fees = 0
    sales = (
        db.session.query(Sale)
        .filter(Sale.event_id == event_id, Sale.artisan_id == artisan_id, Sale.state != SALE_CANCELLED)
        .all()
    )
    for sale in sales:
        sold_qty[sale.product_id] = sold_qty.get(sale.product_id, 0) + sale.quantity_sold
        sold_amount[sale.product_id] = sold_amount.get(sale.product_id, 0) + sale.value_charged_cents
        card_fees += sale.card_fee_cents or 0

    sold, unsold = [], []
    for product in products:
        row = {
            "product_id": product.id,
            "name": product.name,
            "price_cents": product.price_cents,
            "stock": levels.get(product.id, 0),
            "quantity_sold": sold_qty.get(product.id, 0),
            "amount_cents": sold_amount.get(product.id, 0),
        }
        (sold if row["quantity_sold"] > 0 else unsold).append(row)

    total = sum(sold_amount.values())
    summary = {
        "artisan_id": artisan.id,
        "artisan_name": artisan.name,
        "event_id": event.id,
        "event_name": event.name,
        "sold_products": sold,
        "unsold_products": unsold,
        "total_sold_cents": total,
        "card_fees_total_cents": card_fees,
    }
    summary.update(_commissions(event, total))
    return summary
