from datetime import timedelta

import pytest

from craftfair.errors import DuplicateOperation, InvalidState, NotFound, ValidationError
from craftfair.event_state import PHASE_ACTIVE, PHASE_CLOSED, PHASE_SCHEDULED, resolve_event_phase
from craftfair.extensions import db
from craftfair.services import artisan_service, event_service
from craftfair.services.concurrency import run_in_transaction

from .conftest import BEFORE_EVENT, EVENT_END, EVENT_START


def _create(**overrides):
    data = {
        "name": "Autumn Market",
        "location": "Old Town Hall",
        "start_date": EVENT_START,
        "end_date": EVENT_END,
    }
    data.update(overrides)
    return event_service.create_event(**data)


def test_create_event_defaults(db_session, clock):
    event = _create()
    assert event.commission_association_bps == 1000
    assert event.commission_seller_bps == 500
    assert event.is_closed is False
    assert resolve_event_phase(event) == PHASE_SCHEDULED
    assert event.to_dict()["status"] == PHASE_SCHEDULED


@pytest.mark.parametrize("overrides", [
    {"start_date": EVENT_END, "end_date": EVENT_START},
    {"start_date": BEFORE_EVENT - timedelta(days=1)},
    {"commission_association_bps": 10001},
    {"commission_seller_bps": -1},
    {"name": "   "},
    {"location": None},
])
def test_create_event_validation(db_session, clock, overrides):
    with pytest.raises(ValidationError):
        _create(**overrides)


def test_event_names_are_unique(db_session, clock):
    _create()
    with pytest.raises(DuplicateOperation):
        _create(location="Elsewhere")


def test_update_while_scheduled(event):
    updated = event_service.update_event(
        event.id,
        patch={"location": "Riverside", "end_date": EVENT_END + timedelta(days=1), "commission_seller_bps": 300},
    )
    assert updated.location == "Riverside"
    assert updated.end_date == EVENT_END + timedelta(days=1)
    assert updated.commission_seller_bps == 300

    with pytest.raises(ValidationError):
        event_service.update_event(event.id, patch={"end_date": EVENT_START - timedelta(days=1)})
    with pytest.raises(ValidationError):
        event_service.update_event(event.id, patch={"is_closed": True})


def test_update_with_bad_date_leaves_event_untouched(event):
    with pytest.raises(ValidationError) as exc:
        event_service.update_event(event.id, patch={"name": "Renamed", "start_date": "not-a-date"})
    assert exc.value.details["field"] == "start_date"

    # a later unrelated commit must not carry the rejected edit
    artisan_service.create_artisan(name="Pablo Diaz", identification="99887")
    db.session.expire_all()
    assert event_service.get_event(event.id).name == "Spring Craft Fair"


def test_unexpected_error_rolls_back_transaction(event):
    event_id = event.id

    def _op():
        event_service.get_event(event_id).name = "Half written"
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        run_in_transaction(_op, operation="test op")

    artisan_service.create_artisan(name="Pablo Diaz", identification="99887")
    db.session.expire_all()
    assert event_service.get_event(event_id).name == "Spring Craft Fair"


def test_update_cannot_move_start_into_past(event, clock):
    with pytest.raises(ValidationError):
        event_service.update_event(event.id, patch={"start_date": clock.now() - timedelta(hours=1)})
    assert event_service.get_event(event.id).start_date == EVENT_START


def test_create_event_rejects_unparseable_dates(db_session, clock):
    with pytest.raises(ValidationError) as exc:
        _create(end_date="sometime soon")
    assert exc.value.details["field"] == "end_date"


def test_update_rejected_once_active(event, open_event):
    open_event()
    with pytest.raises(InvalidState):
        event_service.update_event(event.id, patch={"location": "Riverside"})


def test_close_active_event(event, open_event):
    clock = open_event()
    clock.advance(hours=3)

    closed = event_service.close_event(event.id)
    assert closed.is_closed is True
    assert closed.end_date == clock.now()
    assert resolve_event_phase(closed) == PHASE_CLOSED

    with pytest.raises(InvalidState):
        event_service.close_event(event.id)


def test_close_requires_active(event):
    with pytest.raises(InvalidState):
        event_service.close_event(event.id)


def test_delete_rules(event, make_product):
    make_product()
    with pytest.raises(InvalidState):
        event_service.delete_event(event.id)

    spare_id = _create(name="Spare").id
    event_service.delete_event(spare_id)
    with pytest.raises(NotFound):
        event_service.get_event(spare_id)


def test_list_and_search(event, open_event):
    later = _create(name="Winter Bazaar", start_date=EVENT_END + timedelta(days=30),
                    end_date=EVENT_END + timedelta(days=31))

    assert [e.id for e in event_service.list_events()] == [event.id, later.id]
    open_event()
    assert [e.id for e in event_service.list_events(status=PHASE_ACTIVE)] == [event.id]
    assert [e.id for e in event_service.list_events(status=PHASE_SCHEDULED)] == [later.id]

    assert [e.id for e in event_service.search_events("bazaar")] == [later.id]
    assert event_service.search_events("  ") == []
