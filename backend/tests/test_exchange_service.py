import pytest

from craftfair.errors import (
    CrossEntityMismatch,
    DowngradeNotAllowed,
    DuplicateOperation,
    InsufficientStock,
    InvalidState,
    NotFound,
    PaymentCoherenceViolation,
    ValidationError,
)
from craftfair.models import ProductChange
from craftfair.models.inventory import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_EXCHANGE_DELIVERY,
    REASON_EXCHANGE_RETURN,
)
from craftfair.models.sales import SALE_ACTIVE, SALE_CHANGED
from craftfair.services import exchange_service, sales_service
from craftfair.services.ledger_service import current_stock


@pytest.fixture
def sold(make_product, event, artisan, other_artisan, open_event):
    """Two units of a 100.00 product sold at an active event, plus exchange candidates."""
    returned = make_product(price_cents=10000, initial_quantity=5, name="Mug")
    upgrade = make_product(price_cents=12000, initial_quantity=5, name="Teapot")
    cheaper = make_product(price_cents=7000, initial_quantity=5, name="Cup")
    twin = make_product(price_cents=10000, initial_quantity=3, name="Mug blue")
    empty = make_product(price_cents=15000, initial_quantity=0, name="Jar")
    foreign = make_product(price_cents=15000, initial_quantity=2, name="Plate", artisan_id=other_artisan.id)
    open_event()
    sale = sales_service.create_sale(
        event_id=event.id, product_id=returned.id, artisan_id=artisan.id,
        quantity=2, value_charged_cents=20000, payment_method="CASH",
    )
    return {
        "sale": sale,
        "returned": returned,
        "upgrade": upgrade,
        "cheaper": cheaper,
        "twin": twin,
        "empty": empty,
        "foreign": foreign,
    }


def _exchange(sale, returned, delivered, quantity, method=None, fee=None):
    return exchange_service.create_exchange(
        sale_id=sale.id,
        product_returned_id=returned.id,
        product_delivered_id=delivered.id,
        quantity=quantity,
        payment_method_difference=method,
        card_fee_difference_cents=fee,
    )


def test_full_exchange_flips_sale_to_changed(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]

    change = _exchange(sale, returned, upgrade, 2, method="CARD", fee=80)

    assert change.value_difference_cents == 4000
    assert change.delivered_product_price_cents == 12000
    assert sales_service.find_sale(sale.id).state == SALE_CHANGED
    assert current_stock(returned.id) == 5
    assert current_stock(upgrade.id) == 3

    movements = exchange_service.exchange_movements(change.id)
    assert {(m.product_id, m.type, m.reason) for m in movements} == {
        (returned.id, MOVEMENT_IN, REASON_EXCHANGE_RETURN),
        (upgrade.id, MOVEMENT_OUT, REASON_EXCHANGE_DELIVERY),
    }
    assert all(m.sale_id is None and m.change_id == change.id for m in movements)


def test_partial_exchange_keeps_sale_active_and_blocks_another(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]

    _exchange(sale, returned, upgrade, 1, method="CASH")
    assert sales_service.find_sale(sale.id).state == SALE_ACTIVE
    assert exchange_service.sale_has_exchange(sale.id)

    with pytest.raises(DuplicateOperation):
        _exchange(sale, returned, upgrade, 1, method="CASH")
    assert ProductChange.query.count() == 1


def test_repeated_exchange_is_always_a_duplicate(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    _exchange(sale, returned, upgrade, 2, method="CASH")

    # sale is CHANGED now, but the duplicate is what gets reported
    with pytest.raises(DuplicateOperation) as exc:
        _exchange(sale, returned, upgrade, 2, method="CASH")
    assert exc.value.details["kind"] == "product_change"


def test_downgrade_rejected(sold):
    sale, returned, cheaper = sold["sale"], sold["returned"], sold["cheaper"]
    with pytest.raises(DowngradeNotAllowed) as exc:
        _exchange(sale, returned, cheaper, 1)
    assert exc.value.details == {"returned_price_cents": 10000, "delivered_price_cents": 7000}
    assert current_stock(cheaper.id) == 5
    assert not exchange_service.sale_has_exchange(sale.id)


def test_equal_value_exchange_has_no_difference(sold):
    sale, returned, twin = sold["sale"], sold["returned"], sold["twin"]
    change = _exchange(sale, returned, twin, 1)
    assert change.value_difference_cents == 0
    assert change.payment_method_difference is None
    assert current_stock(twin.id) == 2


def test_delivered_product_needs_stock(sold):
    sale, returned, empty = sold["sale"], sold["returned"], sold["empty"]
    with pytest.raises(InsufficientStock) as exc:
        _exchange(sale, returned, empty, 1, method="CASH")
    assert exc.value.details["product_id"] == empty.id
    assert not exchange_service.sale_has_exchange(sale.id)


def test_quantity_cannot_exceed_sale(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    with pytest.raises(ValidationError) as exc:
        _exchange(sale, returned, upgrade, 3, method="CASH")
    assert exc.value.details == {"requested": 3, "quantity_sold": 2}


def test_same_product_rejected(sold):
    sale, returned = sold["sale"], sold["returned"]
    with pytest.raises(ValidationError):
        _exchange(sale, returned, returned, 1)


def test_card_difference_needs_fee(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    with pytest.raises(PaymentCoherenceViolation):
        _exchange(sale, returned, upgrade, 1, method="CARD")
    with pytest.raises(PaymentCoherenceViolation):
        _exchange(sale, returned, upgrade, 1, method="CASH", fee=50)


def test_products_must_match_sale(sold):
    sale, returned, foreign = sold["sale"], sold["returned"], sold["foreign"]
    with pytest.raises(CrossEntityMismatch):
        _exchange(sale, returned, foreign, 1, method="CASH")


def test_unknown_sale_or_product(sold):
    sale, returned = sold["sale"], sold["returned"]
    with pytest.raises(NotFound):
        exchange_service.create_exchange(
            sale_id=9999, product_returned_id=returned.id, product_delivered_id=returned.id + 100, quantity=1
        )
    with pytest.raises(NotFound):
        exchange_service.create_exchange(
            sale_id=sale.id, product_returned_id=returned.id, product_delivered_id=9999, quantity=1
        )


def test_cancelled_sale_cannot_be_exchanged(sold):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    sales_service.cancel_sale(sale.id)
    with pytest.raises(InvalidState) as exc:
        _exchange(sale, returned, upgrade, 1, method="CASH")
    assert exc.value.details["entity"] == "sale"


def test_exchange_rejected_after_event_closes(sold, clock, event):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    clock.set(event.end_date)
    clock.advance(seconds=1)
    with pytest.raises(InvalidState) as exc:
        _exchange(sale, returned, upgrade, 1, method="CASH")
    assert exc.value.details["entity"] == "event"


def test_listing_and_stats(sold, event):
    sale, returned, upgrade = sold["sale"], sold["returned"], sold["upgrade"]
    change = _exchange(sale, returned, upgrade, 2, method="CARD", fee=80)

    page = exchange_service.list_exchanges(event_id=event.id)
    assert page["count"] == 1
    assert page["items"][0]["id"] == change.id
    assert page["pagination"]["total"] == 1
    assert not page["pagination"]["has_next"]

    assert exchange_service.list_exchanges(sale_id=sale.id + 1)["count"] == 0
    assert exchange_service.find_exchange(change.id).sale_id == sale.id

    stats = exchange_service.exchange_stats_for_event(event.id)
    assert stats["total_exchanges"] == 1
    assert stats["total_quantity"] == 2
    assert stats["total_value_difference_cents"] == 4000
    assert stats["total_card_fees_cents"] == 80
    assert stats["value_difference_by_payment_method"] == {"CASH": 0, "CARD": 4000}
    assert stats["most_delivered_product"]["product_id"] == upgrade.id
