import pytest

from craftfair.errors import DuplicateOperation, InvalidState, NotFound, ValidationError
from craftfair.services import artisan_service, event_service, sales_service


def test_create_and_get(db_session):
    artisan = artisan_service.create_artisan(name="  Ana   María  ", identification="12345")
    assert artisan.name == "Ana María"
    assert artisan.is_active is True
    assert artisan_service.get_artisan(artisan.id).identification == "12345"


@pytest.mark.parametrize("name, identification", [
    ("R2D2", "1234567"),
    ("", "1234567"),
    ("Ana", "1234"),
    ("Ana", "12345678901"),
    ("Ana", "12a45"),
])
def test_create_validation(db_session, name, identification):
    with pytest.raises(ValidationError):
        artisan_service.create_artisan(name=name, identification=identification)


def test_identification_is_unique(artisan):
    with pytest.raises(DuplicateOperation):
        artisan_service.create_artisan(name="Someone Else", identification="1234567")


def test_list_filters(artisan, other_artisan):
    artisan_service.update_artisan(other_artisan.id, patch={"is_active": False})
    assert [a.id for a in artisan_service.list_artisans()] == [other_artisan.id, artisan.id]
    assert [a.id for a in artisan_service.list_artisans(active=True)] == [artisan.id]
    assert [a.id for a in artisan_service.list_artisans(search="7654")] == [other_artisan.id]


def test_cannot_deactivate_with_products_in_open_event(artisan, make_product):
    make_product()
    with pytest.raises(InvalidState):
        artisan_service.update_artisan(artisan.id, patch={"is_active": False})


def test_with_sales_only_active_flag_changes(artisan, event, make_product, open_event):
    product = make_product()
    open_event()
    sales_service.create_sale(
        event_id=event.id, product_id=product.id, artisan_id=artisan.id,
        quantity=1, value_charged_cents=product.price_cents, payment_method="CASH",
    )
    with pytest.raises(InvalidState):
        artisan_service.update_artisan(artisan.id, patch={"name": "New Name"})

    event_service.close_event(event.id)
    updated = artisan_service.update_artisan(artisan.id, patch={"is_active": False})
    assert updated.is_active is False


def test_delete_rules(artisan, other_artisan, make_product):
    make_product()
    with pytest.raises(InvalidState):
        artisan_service.delete_artisan(artisan.id)

    other_id = other_artisan.id
    artisan_service.delete_artisan(other_id)
    with pytest.raises(NotFound):
        artisan_service.get_artisan(other_id)
