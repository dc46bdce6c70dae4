"""
Precondition checks shared by the workflows.

Helpers here come in three kinds:

- require_*(): load a record by id (optionally row-locked) or raise NotFound.
- check_*(): small rule functions that return a FairError instance on
  violation and None otherwise. They never write and never coerce input.
- parse_datetime_field(): the one coercion, raising ValidationError on bad dates.

Workflows list their checks in order and hand them to enforce(), which
evaluates them lazily and raises the first failure.
"""
from __future__ import annotations

from typing import Callable, Iterable, Optional

from .errors import (
    CrossEntityMismatch,
    DowngradeNotAllowed,
    DuplicateOperation,
    FairError,
    InsufficientStock,
    InvalidState,
    NotFound,
    PaymentCoherenceViolation,
    ValidationError,
)
from .event_state import allowed_phases, phase_allows, resolve_event_phase
from .extensions import db
from .models import Artisan, Event, InventoryMovement, Product, ProductChange, Sale
from .models.sales import PAYMENT_CARD, PAYMENT_CASH, PAYMENT_METHODS, SALE_ACTIVE
from .services.concurrency import lock_for_update
from .services.ledger_service import current_stock
from .time_utils import normalize_datetime

Check = Callable[[], Optional[FairError]]


def first_failure(checks: Iterable[Check]) -> Optional[FairError]:
    for check in checks:
        failure = check()
        if failure is not None:
            return failure
    return None


def enforce(*checks: Check) -> None:
    """Run checks in order; raise the first failure."""
    failure = first_failure(checks)
    if failure is not None:
        raise failure


# =============================================================================
# EXISTENCE
# =============================================================================

def _require(model, entity: str, entity_id: int, *, lock: bool = False):
    query = db.session.query(model).filter_by(id=entity_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFound(entity, entity_id)
    return record


def require_event(event_id: int, *, lock: bool = False) -> Event:
    return _require(Event, "event", event_id, lock=lock)


def require_artisan(artisan_id: int) -> Artisan:
    return _require(Artisan, "artisan", artisan_id)


def require_product(product_id: int, *, lock: bool = False) -> Product:
    return _require(Product, "product", product_id, lock=lock)


def require_sale(sale_id: int, *, lock: bool = False) -> Sale:
    return _require(Sale, "sale", sale_id, lock=lock)


def require_exchange(change_id: int) -> ProductChange:
    return _require(ProductChange, "product_change", change_id)


def lock_products(product_ids: Iterable[int]) -> dict[int, Product]:
    """Lock several product rows in id order (stable order avoids deadlocks)."""
    locked = {}
    for product_id in sorted(set(product_ids)):
        locked[product_id] = require_product(product_id, lock=True)
    return locked


# =============================================================================
# EVENT PHASE
# =============================================================================

def check_event_phase(event: Event, action: str, clock=None) -> Optional[FairError]:
    phase = resolve_event_phase(event, clock)
    if phase_allows(phase, action):
        return None
    expected = allowed_phases(action)
    return InvalidState(
        "event",
        event.id,
        expected=expected[0] if len(expected) == 1 else expected,
        actual=phase,
        message=f"Cannot {action.replace('_', ' ')} while event {event.id} is {phase}",
    )


# =============================================================================
# INPUT PARSING
# =============================================================================

def parse_datetime_field(value, field: str):
    """Datetime or ISO-8601 string -> UTC-naive datetime; anything else is a ValidationError."""
    try:
        return normalize_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            f"{field} must be an ISO-8601 datetime",
            details={"field": field, "value": str(value)},
        ) from exc


# =============================================================================
# QUANTITIES AND STOCK
# =============================================================================

def check_positive(value, field: str) -> Optional[FairError]:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return ValidationError(f"{field} must be a positive integer", details={"field": field, "value": value})
    return None


def check_stock(product_id: int, requested: int) -> Optional[FairError]:
    available = current_stock(product_id)
    if available < requested:
        return InsufficientStock(product_id, available=available, requested=requested)
    return None


# =============================================================================
# CROSS-ENTITY CONSISTENCY
# =============================================================================

def check_artisan_active(artisan: Artisan) -> Optional[FairError]:
    if not artisan.is_active:
        return InvalidState("artisan", artisan.id, expected="active", actual="inactive")
    return None


def check_product_context(product: Product, event_id: int, artisan_id: int) -> Optional[FairError]:
    if product.event_id != event_id:
        return CrossEntityMismatch(
            f"Product {product.id} does not belong to event {event_id}",
            details={"product_id": product.id, "event_id": event_id, "product_event_id": product.event_id},
        )
    if product.artisan_id != artisan_id:
        return CrossEntityMismatch(
            f"Product {product.id} does not belong to artisan {artisan_id}",
            details={"product_id": product.id, "artisan_id": artisan_id, "product_artisan_id": product.artisan_id},
        )
    return None


def check_exchange_products(sale: Sale, returned: Product, delivered: Product) -> Optional[FairError]:
    for product in (returned, delivered):
        if product.event_id != sale.event_id or product.artisan_id != sale.artisan_id:
            return CrossEntityMismatch(
                "Exchanged products must belong to the same event and artisan as the sale",
                details={
                    "sale_id": sale.id,
                    "product_id": product.id,
                    "sale_event_id": sale.event_id,
                    "sale_artisan_id": sale.artisan_id,
                },
            )
    return None


def check_distinct_products(returned_id: int, delivered_id: int) -> Optional[FairError]:
    if returned_id == delivered_id:
        return ValidationError(
            "Returned and delivered products must differ",
            details={"product_id": returned_id},
        )
    return None


# =============================================================================
# SALE / EXCHANGE RULES
# =============================================================================

def check_sale_active(sale: Sale) -> Optional[FairError]:
    if sale.state != SALE_ACTIVE:
        return InvalidState("sale", sale.id, expected=SALE_ACTIVE, actual=sale.state)
    return None


def check_exchange_quantity(quantity: int, sale: Sale) -> Optional[FairError]:
    if quantity > sale.quantity_sold:
        return ValidationError(
            f"Cannot exchange {quantity} units; sale {sale.id} sold {sale.quantity_sold}",
            details={"requested": quantity, "quantity_sold": sale.quantity_sold},
        )
    return None


def check_value_direction(returned: Product, delivered: Product) -> Optional[FairError]:
    if delivered.price_cents < returned.price_cents:
        return DowngradeNotAllowed(returned.price_cents, delivered.price_cents)
    return None


def check_no_prior_exchange(sale_id: int) -> Optional[FairError]:
    exists = db.session.query(
        ProductChange.query.filter_by(sale_id=sale_id).exists()
    ).scalar()
    if exists:
        return DuplicateOperation(
            "product_change",
            f"Sale {sale_id} already has an exchange",
            details={"sale_id": sale_id},
        )
    return None


def check_no_duplicate_movement(
    product_id: int,
    movement_type: str,
    *,
    sale_id: int | None = None,
    change_id: int | None = None,
) -> Optional[FairError]:
    if sale_id is None and change_id is None:
        return None
    query = InventoryMovement.query.filter_by(product_id=product_id, type=movement_type)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    if change_id is not None:
        query = query.filter_by(change_id=change_id)
    if db.session.query(query.exists()).scalar():
        return DuplicateOperation(
            "inventory_movement",
            "A movement of this type already exists for this product and owner",
            details={
                "product_id": product_id,
                "type": movement_type,
                "sale_id": sale_id,
                "change_id": change_id,
            },
        )
    return None


def check_single_owner(sale_id: int | None, change_id: int | None) -> Optional[FairError]:
    if sale_id is not None and change_id is not None:
        return ValidationError(
            "A movement references a sale or a product change, never both",
            details={"sale_id": sale_id, "change_id": change_id},
        )
    return None


# =============================================================================
# PAYMENTS
# =============================================================================

def check_payment_method(method: str | None, *, required: bool = True) -> Optional[FairError]:
    if method is None and not required:
        return None
    if method not in PAYMENT_METHODS:
        return ValidationError(
            f"payment method must be one of {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": method},
        )
    return None


def check_sale_payment(method: str, fee_cents: int | None) -> Optional[FairError]:
    """CARD needs a fee amount; CASH never carries a positive fee."""
    if fee_cents is not None and fee_cents < 0:
        return ValidationError("card fee cannot be negative", details={"card_fee_cents": fee_cents})
    if method == PAYMENT_CARD and fee_cents is None:
        return PaymentCoherenceViolation(
            "Card payments require a card fee",
            details={"payment_method": method},
        )
    if method == PAYMENT_CASH and fee_cents:
        return PaymentCoherenceViolation(
            "Cash payments cannot carry a card fee",
            details={"payment_method": method, "card_fee_cents": fee_cents},
        )
    return None


def check_exchange_payment(method: str | None, fee_cents: int | None) -> Optional[FairError]:
    """A fee difference only makes sense for CARD, and CARD must state one."""
    if fee_cents is not None and fee_cents < 0:
        return ValidationError("card fee cannot be negative", details={"card_fee_difference_cents": fee_cents})
    if method == PAYMENT_CARD and fee_cents is None:
        return PaymentCoherenceViolation(
            "Card payment of an exchange difference requires a card fee",
            details={"payment_method_difference": method},
        )
    if fee_cents is not None and method != PAYMENT_CARD:
        return PaymentCoherenceViolation(
            "A card fee difference requires the CARD payment method",
            details={"payment_method_difference": method, "card_fee_difference_cents": fee_cents},
        )
    return None
