"""
Event lifecycle phases.

An event's phase is derived from its dates, the explicit closed flag and the
current time; it is never stored. Callers resolve the phase inside the
transaction that acts on it and must not cache it across operations.
"""
from __future__ import annotations

from .time_utils import current_clock

PHASE_SCHEDULED = "SCHEDULED"
PHASE_ACTIVE = "ACTIVE"
PHASE_CLOSED = "CLOSED"

PHASES = (PHASE_SCHEDULED, PHASE_ACTIVE, PHASE_CLOSED)

ACTION_CREATE_PRODUCT = "create_product"
ACTION_INVENTORY_IN = "inventory_in"
ACTION_INVENTORY_OUT = "inventory_out"
ACTION_REGISTER_SALE = "register_sale"
ACTION_CANCEL_SALE = "cancel_sale"
ACTION_EXCHANGE = "exchange"
ACTION_CLOSE_EVENT = "close_event"
ACTION_EDIT_PRODUCT = "edit_product"
ACTION_EDIT_EVENT = "edit_event"

# Which phases permit each action
PHASE_ACTIONS = {
    ACTION_CREATE_PRODUCT: {PHASE_SCHEDULED},
    ACTION_INVENTORY_IN: {PHASE_SCHEDULED},
    ACTION_INVENTORY_OUT: {PHASE_ACTIVE},
    ACTION_REGISTER_SALE: {PHASE_ACTIVE},
    ACTION_CANCEL_SALE: {PHASE_ACTIVE},
    ACTION_EXCHANGE: {PHASE_ACTIVE},
    ACTION_CLOSE_EVENT: {PHASE_ACTIVE},
    ACTION_EDIT_PRODUCT: {PHASE_SCHEDULED},
    ACTION_EDIT_EVENT: {PHASE_SCHEDULED},
}


def resolve_event_phase(event, clock=None) -> str:
    """
    Derive SCHEDULED / ACTIVE / CLOSED for an event.

    The explicit closed flag wins; otherwise the phase follows the clock
    relative to start_date and end_date (both inclusive for ACTIVE).
    """
    if event.is_closed:
        return PHASE_CLOSED
    now = current_clock(clock).now()
    if now < event.start_date:
        return PHASE_SCHEDULED
    if now > event.end_date:
        return PHASE_CLOSED
    return PHASE_ACTIVE


def phase_allows(phase: str, action: str) -> bool:
    try:
        return phase in PHASE_ACTIONS[action]
    except KeyError:
        raise ValueError(f"unknown action {action!r}") from None


def allowed_phases(action: str) -> list[str]:
    return [p for p in PHASES if p in PHASE_ACTIONS[action]]
