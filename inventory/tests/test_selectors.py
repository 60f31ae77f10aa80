import pytest
from inventory.selectors import (
    list_active_reservations_for_product,
    list_stock_for_products,
    low_stock_products,
    reservation_for_reference,
)
from inventory.tests.factories import stocked_product
from inventory.types import Reference


@pytest.mark.django_db
def test_stock_listing_and_low_stock(engine, ledger):
    plenty = stocked_product(50, sku="A-PLENTY")
    scarce = stocked_product(6, sku="B-SCARCE")
    engine.reserve(scarce.id, 2)

    rows = list_stock_for_products(ledger=ledger, product_ids=[plenty.id, scarce.id])

    assert [r["sku"] for r in rows] == ["A-PLENTY", "B-SCARCE"]
    assert rows[1]["reserved"] == 2
    assert rows[1]["available"] == 4
    assert [r["product_id"] for r in low_stock_products(ledger=ledger)] == [scarce.id]


@pytest.mark.django_db
def test_reservation_lookups(engine):
    product = stocked_product(10)
    handle = engine.reserve(product.id, 3, reference=Reference.of("cart", 9))
    released = engine.reserve(product.id, 1)
    engine.release(released)

    active = list_active_reservations_for_product(product.id)

    assert [r["id"] for r in active] == [handle.movement_id]
    assert active[0]["reference_id"] == "9"
    assert reservation_for_reference(Reference.of("cart", 9)).id == handle.movement_id
    assert reservation_for_reference(Reference.of("cart", 10)) is None
