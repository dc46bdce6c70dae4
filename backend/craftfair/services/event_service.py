# Overview: Event administration; creation, edits while scheduled, manual close, deletion.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import DuplicateOperation, InvalidState, ValidationError
from ..event_state import ACTION_CLOSE_EVENT, ACTION_EDIT_EVENT, PHASE_CLOSED, resolve_event_phase
from ..models import Event, Product, Sale
from ..time_utils import current_clock
from ..validation import check_event_phase, enforce, parse_datetime_field, require_event
from .concurrency import run_in_transaction

EVENT_FIELDS = (
    "name",
    "location",
    "start_date",
    "end_date",
    "commission_association_bps",
    "commission_seller_bps",
)


def _clean_text(value, field: str, max_len: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    text = value.strip()
    if len(text) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", details={"field": field})
    return text


def _validate_bps(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 10000:
        raise ValidationError(
            f"{field} must be an integer between 0 and 10000 basis points",
            details={"field": field, "value": value},
        )
    return value


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Event).filter(Event.name == name)
    if exclude_id is not None:
        q = q.filter(Event.id != exclude_id)
    if q.first() is not None:
        raise DuplicateOperation("event", f"An event named {name!r} already exists", details={"name": name})


def _event_has_sales(event_id: int) -> bool:
    return db.session.query(Sale.query.filter_by(event_id=event_id).exists()).scalar()


def create_event(
    *,
    name: str,
    location: str,
    start_date: datetime | str,
    end_date: datetime | str,
    commission_association_bps: int = 1000,
    commission_seller_bps: int = 500,
    clock=None,
) -> Event:
    def _op():
        clean_name = _clean_text(name, "name", 100)
        clean_location = _clean_text(location, "location", 200)
        start = parse_datetime_field(start_date, "start_date")
        end = parse_datetime_field(end_date, "end_date")
        if start >= end:
            raise ValidationError("start_date must be before end_date")
        if start < current_clock(clock).now():
            raise ValidationError("start_date cannot be in the past")
        _validate_bps(commission_association_bps, "commission_association_bps")
        _validate_bps(commission_seller_bps, "commission_seller_bps")
        _ensure_unique_name(clean_name)

        event = Event(
            name=clean_name,
            location=clean_location,
            start_date=start,
            end_date=end,
            commission_association_bps=commission_association_bps,
            commission_seller_bps=commission_seller_bps,
            is_closed=False,
        )
        db.session.add(event)
        db.session.flush()
        return event

    return run_in_transaction(_op, operation="create event")


def get_event(event_id: int) -> Event:
    return require_event(event_id)


def list_events(*, status: str | None = None, clock=None) -> list[Event]:
    """All events by start date; optionally only those in one phase."""
    events = db.session.query(Event).order_by(Event.start_date.asc(), Event.id.asc()).all()
    if status is None:
        return events
    return [e for e in events if resolve_event_phase(e, clock) == status]


def search_events(name: str) -> list[Event]:
    term = (name or "").strip()
    if not term:
        return []
    return (
        db.session.query(Event)
        .filter(Event.name.ilike(f"%{term}%"))
        .order_by(Event.start_date.asc())
        .all()
    )


def update_event(event_id: int, *, patch: dict, clock=None) -> Event:
    """
    Edit a SCHEDULED event.

    Every field in the patch is validated before any is applied. A new
    start_date follows the same rules as on creation.
    """
    def _op():
        event = require_event(event_id, lock=True)
        enforce(lambda: check_event_phase(event, ACTION_EDIT_EVENT, clock))

        unknown = sorted(set(patch) - set(EVENT_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown event fields: {', '.join(unknown)}", details={"fields": unknown})

        changes = {}
        if "name" in patch:
            changes["name"] = _clean_text(patch["name"], "name", 100)
            _ensure_unique_name(changes["name"], exclude_id=event_id)
        if "location" in patch:
            changes["location"] = _clean_text(patch["location"], "location", 200)

        start = parse_datetime_field(patch["start_date"], "start_date") if "start_date" in patch else event.start_date
        end = parse_datetime_field(patch["end_date"], "end_date") if "end_date" in patch else event.end_date
        if start >= end:
            raise ValidationError("start_date must be before end_date")
        if "start_date" in patch and start < current_clock(clock).now():
            raise ValidationError("start_date cannot be in the past")
        changes["start_date"] = start
        changes["end_date"] = end

        for field in ("commission_association_bps", "commission_seller_bps"):
            if field in patch:
                changes[field] = _validate_bps(patch[field], field)

        for field, value in changes.items():
            setattr(event, field, value)
        db.session.flush()
        return event

    return run_in_transaction(_op, operation="update event")


def close_event(event_id: int, *, clock=None) -> Event:
    """Close an ACTIVE event now: sets the closed flag and moves end_date to the current time."""
    def _op():
        event = require_event(event_id, lock=True)
        if event.is_closed:
            raise InvalidState("event", event_id, expected="ACTIVE", actual=PHASE_CLOSED, message="Event is already closed")
        enforce(lambda: check_event_phase(event, ACTION_CLOSE_EVENT, clock))

        now = current_clock(clock).now()
        event.is_closed = True
        # start_date < end_date must still hold
        if now > event.start_date:
            event.end_date = now
        db.session.flush()
        return event

    return run_in_transaction(_op, operation="close event")


def delete_event(event_id: int) -> None:
    def _op():
        event = require_event(event_id, lock=True)
        has_products = db.session.query(Product.query.filter_by(event_id=event_id).exists()).scalar()
        if has_products:
            raise InvalidState("event", event_id, expected="no products", actual="has products")
        if _event_has_sales(event_id):
            raise InvalidState("event", event_id, expected="no sales", actual="has sales")
        db.session.delete(event)

    run_in_transaction(_op, operation="delete event")
