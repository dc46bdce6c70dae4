import pytest

from craftfair.errors import DuplicateOperation, InvalidState, NotFound, ValidationError
from craftfair.services import event_service, product_service, sales_service
from craftfair.services.ledger_service import current_stock


def test_create_with_initial_stock(event, artisan):
    product = product_service.create_product(
        event_id=event.id, artisan_id=artisan.id, name="Clay bowl",
        price_cents=4500, initial_quantity=12, category="ceramics",
    )
    assert current_stock(product.id) == 12

    data = product_service.get_product(product.id)
    assert data["stock"] == 12
    assert data["category"] == "ceramics"


def test_create_rules(event, artisan, make_product, open_event):
    make_product(name="Clay bowl")
    with pytest.raises(DuplicateOperation):
        make_product(name="Clay bowl")
    with pytest.raises(ValidationError):
        make_product(price_cents=0)
    with pytest.raises(ValidationError):
        make_product(initial_quantity=-1)
    with pytest.raises(NotFound):
        make_product(artisan_id=9999)

    open_event()
    with pytest.raises(InvalidState):
        make_product(name="Late arrival")


def test_list_orders_and_hides_closed_events(event, make_product, open_event):
    a = make_product(name="Zither", initial_quantity=1)
    b = make_product(name="Anklet", initial_quantity=8)
    c = make_product(name="Mirror", initial_quantity=4)

    by_name = product_service.list_products(event_id=event.id, order="name")
    assert [item["id"] for item in by_name["items"]] == [b.id, c.id, a.id]

    by_stock = product_service.list_products(order="stock")
    assert [item["stock"] for item in by_stock["items"]] == [8, 4, 1]

    paged = product_service.list_products(page=2, per_page=2)
    assert paged["count"] == 1
    assert paged["pagination"]["total"] == 3
    assert paged["pagination"]["has_prev"] is True

    open_event()
    event_service.close_event(event.id)
    assert product_service.list_products()["count"] == 0
    assert product_service.list_products(include_closed=True)["count"] == 3


def test_update_while_scheduled(make_product):
    product = make_product(name="Basket", price_cents=2000)
    updated = product_service.update_product(product.id, patch={"name": "Big basket", "price_cents": 2500})
    assert updated.name == "Big basket"
    assert updated.price_cents == 2500

    other = make_product(name="Small basket")
    with pytest.raises(DuplicateOperation):
        product_service.update_product(other.id, patch={"name": "Big basket"})
    with pytest.raises(ValidationError):
        product_service.update_product(product.id, patch={"event_id": 2})


def test_update_rejected_once_sales_start(make_product, event, artisan, open_event):
    product = make_product()
    open_event()
    sales_service.create_sale(
        event_id=event.id, product_id=product.id, artisan_id=artisan.id,
        quantity=1, value_charged_cents=product.price_cents, payment_method="CASH",
    )
    with pytest.raises(InvalidState):
        product_service.update_product(product.id, patch={"price_cents": 1})


def test_delete_rules(make_product):
    stocked = make_product(initial_quantity=3)
    with pytest.raises(InvalidState):
        product_service.delete_product(stocked.id)

    empty_id = make_product(initial_quantity=0).id
    product_service.delete_product(empty_id)
    with pytest.raises(NotFound):
        product_service.get_product(empty_id)
