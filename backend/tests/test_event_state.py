from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from craftfair.event_state import (
    ACTION_CLOSE_EVENT,
    ACTION_CREATE_PRODUCT,
    ACTION_EXCHANGE,
    ACTION_INVENTORY_IN,
    ACTION_INVENTORY_OUT,
    ACTION_REGISTER_SALE,
    PHASE_ACTIVE,
    PHASE_CLOSED,
    PHASE_SCHEDULED,
    allowed_phases,
    phase_allows,
    resolve_event_phase,
)
from craftfair.time_utils import FixedClock, current_clock

START = datetime(2026, 5, 1, 9, 0)
END = datetime(2026, 5, 3, 18, 0)


def _event(is_closed=False):
    return SimpleNamespace(start_date=START, end_date=END, is_closed=is_closed)


@pytest.mark.parametrize("now, expected", [
    (START - timedelta(seconds=1), PHASE_SCHEDULED),
    (START, PHASE_ACTIVE),
    (START + timedelta(days=1), PHASE_ACTIVE),
    (END, PHASE_ACTIVE),
    (END + timedelta(seconds=1), PHASE_CLOSED),
])
def test_phase_follows_clock(now, expected):
    assert resolve_event_phase(_event(), FixedClock(now)) == expected


def test_closed_flag_wins_over_dates():
    clock = FixedClock(START + timedelta(hours=2))
    assert resolve_event_phase(_event(is_closed=True), clock) == PHASE_CLOSED


def test_gating_table():
    assert phase_allows(PHASE_SCHEDULED, ACTION_CREATE_PRODUCT)
    assert phase_allows(PHASE_SCHEDULED, ACTION_INVENTORY_IN)
    assert not phase_allows(PHASE_SCHEDULED, ACTION_INVENTORY_OUT)
    assert not phase_allows(PHASE_SCHEDULED, ACTION_REGISTER_SALE)

    assert not phase_allows(PHASE_ACTIVE, ACTION_CREATE_PRODUCT)
    assert not phase_allows(PHASE_ACTIVE, ACTION_INVENTORY_IN)
    for action in (ACTION_INVENTORY_OUT, ACTION_REGISTER_SALE, ACTION_EXCHANGE, ACTION_CLOSE_EVENT):
        assert phase_allows(PHASE_ACTIVE, action)

    for action in (ACTION_CREATE_PRODUCT, ACTION_INVENTORY_IN, ACTION_INVENTORY_OUT,
                   ACTION_REGISTER_SALE, ACTION_EXCHANGE, ACTION_CLOSE_EVENT):
        assert not phase_allows(PHASE_CLOSED, action)


def test_unknown_action_rejected():
    with pytest.raises(ValueError):
        phase_allows(PHASE_ACTIVE, "teleport")


def test_allowed_phases_in_lifecycle_order():
    assert allowed_phases(ACTION_INVENTORY_IN) == [PHASE_SCHEDULED]
    assert allowed_phases(ACTION_REGISTER_SALE) == [PHASE_ACTIVE]


def test_configured_clock_is_used(app):
    pinned = FixedClock(END + timedelta(days=1))
    app.config["CLOCK"] = pinned
    try:
        assert current_clock() is pinned
        assert resolve_event_phase(_event()) == PHASE_CLOSED

        explicit = FixedClock(START - timedelta(days=1))
        assert current_clock(explicit) is explicit
        assert resolve_event_phase(_event(), explicit) == PHASE_SCHEDULED
    finally:
        app.config["CLOCK"] = None


def test_fixed_clock_moves_only_when_told():
    clock = FixedClock("2026-05-01T09:00:00Z")
    assert clock.now() == START
    clock.advance(hours=3)
    assert clock.now() == START + timedelta(hours=3)
    clock.set(END)
    assert clock.now() == END
