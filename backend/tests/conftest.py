"""
Pytest fixtures for craftfair backend tests.

Provides the test database, a pinned clock, and factories for the usual
event / artisan / product setup. The clock starts a few days before the
event so products can be stocked; tests move it with open_event().
"""
from datetime import datetime, timedelta

import pytest

from craftfair import create_app
from craftfair.config import TestingConfig
from craftfair.extensions import db
from craftfair.services import artisan_service, event_service, product_service
from craftfair.time_utils import FixedClock

EVENT_START = datetime(2026, 3, 5, 9, 0)
EVENT_END = datetime(2026, 3, 8, 18, 0)
BEFORE_EVENT = datetime(2026, 3, 1, 10, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(config_object=TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def clock(app):
    """Pinned clock installed as the app's CLOCK for the duration of a test."""
    fixed = FixedClock(BEFORE_EVENT)
    app.config["CLOCK"] = fixed
    yield fixed
    app.config["CLOCK"] = None


@pytest.fixture(scope='function')
def open_event(clock):
    """Move the clock inside the event window."""
    def _open():
        clock.set(EVENT_START + timedelta(hours=1))
        return clock
    return _open


@pytest.fixture(scope='function')
def event(db_session, clock):
    return event_service.create_event(
        name="Spring Craft Fair",
        location="Main Square",
        start_date=EVENT_START,
        end_date=EVENT_END,
        commission_association_bps=1000,
        commission_seller_bps=500,
    )


@pytest.fixture(scope='function')
def artisan(db_session):
    return artisan_service.create_artisan(name="Maria Lopez", identification="1234567")


@pytest.fixture(scope='function')
def other_artisan(db_session):
    return artisan_service.create_artisan(name="Jorge Ruiz", identification="7654321")


@pytest.fixture(scope='function')
def make_product(event, artisan):
    """Factory: product for the default event/artisan with initial stock."""
    counter = {"n": 0}

    def _make(price_cents=10000, initial_quantity=10, name=None, artisan_id=None, event_id=None):
        counter["n"] += 1
        return product_service.create_product(
            event_id=event_id or event.id,
            artisan_id=artisan_id or artisan.id,
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            initial_quantity=initial_quantity,
        )
    return _make
