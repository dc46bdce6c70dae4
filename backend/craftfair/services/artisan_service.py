# Overview: Artisan administration.

from __future__ import annotations

import re

from ..extensions import db
from ..errors import DuplicateOperation, InvalidState, ValidationError
from ..event_state import PHASE_CLOSED, resolve_event_phase
from ..models import Artisan, Event, Product, Sale
from ..validation import require_artisan
from .concurrency import run_in_transaction

_NAME_RE = re.compile(r"^[^\W\d_]+(?: [^\W\d_]+)*$")
_IDENTIFICATION_RE = re.compile(r"^\d{5,10}$")

ARTISAN_FIELDS = ("name", "identification", "is_active")


def _validate_name(name) -> str:
    cleaned = " ".join(name.split()) if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError("name is required", details={"field": "name"})
    if len(cleaned) > 100:
        raise ValidationError("name must be at most 100 characters", details={"field": "name"})
    if not _NAME_RE.match(cleaned):
        raise ValidationError("name may only contain letters and spaces", details={"field": "name"})
    return cleaned


def _validate_identification(identification) -> str:
    value = identification.strip() if isinstance(identification, str) else ""
    if not _IDENTIFICATION_RE.match(value):
        raise ValidationError(
            "identification must be 5 to 10 digits",
            details={"field": "identification"},
        )
    return value


def _ensure_unique_identification(identification: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Artisan).filter(Artisan.identification == identification)
    if exclude_id is not None:
        q = q.filter(Artisan.id != exclude_id)
    if q.first() is not None:
        raise DuplicateOperation(
            "artisan",
            "An artisan with this identification already exists",
            details={"identification": identification},
        )


def _has_sales(artisan_id: int) -> bool:
    return db.session.query(Sale.query.filter_by(artisan_id=artisan_id).exists()).scalar()


def _has_products(artisan_id: int) -> bool:
    return db.session.query(Product.query.filter_by(artisan_id=artisan_id).exists()).scalar()


def _open_event_ids(artisan_id: int, clock=None) -> list[int]:
    events = (
        db.session.query(Event)
        .join(Product, Product.event_id == Event.id)
        .filter(Product.artisan_id == artisan_id)
        .distinct()
        .all()
    )
    return [e.id for e in events if resolve_event_phase(e, clock) != PHASE_CLOSED]


def create_artisan(*, name: str, identification: str, is_active: bool = True) -> Artisan:
    def _op():
        clean_name = _validate_name(name)
        clean_id = _validate_identification(identification)
        _ensure_unique_identification(clean_id)

        artisan = Artisan(name=clean_name, identification=clean_id, is_active=bool(is_active))
        db.session.add(artisan)
        db.session.flush()
        return artisan

    return run_in_transaction(_op, operation="create artisan")


def get_artisan(artisan_id: int) -> Artisan:
    return require_artisan(artisan_id)


def list_artisans(*, active: bool | None = None, search: str | None = None) -> list[Artisan]:
    q = db.session.query(Artisan)
    if active is not None:
        q = q.filter(Artisan.is_active.is_(active))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(db.or_(Artisan.name.ilike(term), Artisan.identification.ilike(term)))
    return q.order_by(Artisan.name.asc(), Artisan.id.asc()).all()


def update_artisan(artisan_id: int, *, patch: dict, clock=None) -> Artisan:
    """
    Edit an artisan.

    With recorded sales only is_active may change. Deactivation is refused
    while the artisan still has products in events that are not closed.
    """
    def _op():
        artisan = require_artisan(artisan_id)

        unknown = sorted(set(patch) - set(ARTISAN_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown artisan fields: {', '.join(unknown)}", details={"fields": unknown})

        if _has_sales(artisan_id):
            locked = sorted(set(patch) - {"is_active"})
            if locked:
                raise InvalidState(
                    "artisan",
                    artisan_id,
                    expected="no sales",
                    actual="has sales",
                    message=f"Cannot modify {', '.join(locked)}: the artisan already has sales",
                )

        if "name" in patch:
            artisan.name = _validate_name(patch["name"])
        if "identification" in patch:
            clean_id = _validate_identification(patch["identification"])
            _ensure_unique_identification(clean_id, exclude_id=artisan_id)
            artisan.identification = clean_id
        if "is_active" in patch:
            activate = bool(patch["is_active"])
            if artisan.is_active and not activate:
                open_events = _open_event_ids(artisan_id, clock)
                if open_events:
                    raise InvalidState(
                        "artisan",
                        artisan_id,
                        expected="no products in open events",
                        actual="has products in open events",
                        message="Cannot deactivate an artisan with products in events that are not closed",
                    )
            artisan.is_active = activate

        db.session.flush()
        return artisan

    return run_in_transaction(_op, operation="update artisan")


def delete_artisan(artisan_id: int) -> None:
    def _op():
        artisan = require_artisan(artisan_id)
        if _has_products(artisan_id):
            raise InvalidState("artisan", artisan_id, expected="no products", actual="has products")
        if _has_sales(artisan_id):
            raise InvalidState("artisan", artisan_id, expected="no sales", actual="has sales")
        db.session.delete(artisan)

    run_in_transaction(_op, operation="delete artisan")
