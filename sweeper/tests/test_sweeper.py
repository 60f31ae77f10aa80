import logging

import pytest
from cart.models import Cart
from cart.services import CartService
from cart.tests.factories import CartFactory
from common.exceptions import CartNotActive
from django.core.cache import cache
from inventory.models import StockMovement
from inventory.tests.factories import stocked_product
from sweeper.services import LOCK_KEY, ExpirySweeper, release_lock


@pytest.fixture
def carts(engine, clock):
    return CartService(engine, clock=clock)


@pytest.fixture
def sweeper(engine, carts, clock):
    return ExpirySweeper(engine, carts, clock=clock)


@pytest.mark.django_db
def test_full_cart_lifecycle_across_sweeps(sweeper, carts, engine, clock):
    product = stocked_product(20)
    idle_a, idle_b, bought = CartFactory(), CartFactory(), CartFactory()
    carts.add_item(idle_a.id, product.id, 2)
    carts.add_item(idle_b.id, product.id, 3)
    carts.add_item(bought.id, product.id, 1)
    carts.checkout(bought.id)

    first = sweeper.sweep(clock.advance(hours=2))
    assert first.reservations_expired == 2
    assert first.carts_abandoned == 2
    assert (first.carts_expired, first.carts_deleted, first.errors) == (0, 0, 0)
    assert set(Cart.objects.filter(status=Cart.STATUS_ABANDONED).values_list("id", flat=True)) == {idle_a.id, idle_b.id}

    second = sweeper.sweep(clock.advance(hours=23))
    assert second.carts_expired == 2
    assert second.carts_deleted == 0

    third = sweeper.sweep(clock.advance(days=31))
    assert third.carts_deleted == 2
    assert list(Cart.objects.values_list("id", "status")) == [(bought.id, Cart.STATUS_CONVERTED)]
    assert engine.available_stock(product.id).physical == 19


@pytest.mark.django_db
def test_expiring_cart_releases_its_pending_reservations(sweeper, carts, engine, clock, shop_settings):
    shop_settings(RESERVATION_TTL_MINUTES=5000)
    product = stocked_product(5)
    cart = CartFactory()
    item = carts.add_item(cart.id, product.id, 4)

    result = sweeper.sweep(clock.advance(hours=25))

    assert result.reservations_expired == 0
    assert result.carts_abandoned == 1
    assert result.carts_expired == 1
    assert StockMovement.objects.get(pk=item.reservation_id).status == StockMovement.STATUS_CANCELLED
    assert engine.available_stock(product.id).available == 5


@pytest.mark.django_db
def test_recently_active_carts_are_left_alone(sweeper, carts, clock):
    product = stocked_product(5)
    cart = CartFactory()
    carts.add_item(cart.id, product.id, 1)

    result = sweeper.sweep(clock.advance(minutes=10))

    assert result.as_dict() == {
        "reservations_expired": 0,
        "carts_abandoned": 0,
        "carts_expired": 0,
        "carts_deleted": 0,
        "errors": 0,
        "skipped": False,
    }
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_overlapping_sweep_is_skipped(sweeper, clock):
    cart = CartFactory(last_activity_at=clock.advance(hours=-5))
    cache.add(LOCK_KEY, "held", 300)

    result = sweeper.sweep(clock.advance(hours=5))

    assert result.skipped is True
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE


@pytest.mark.django_db
def test_lock_is_released_after_sweep(sweeper, clock):
    assert sweeper.sweep(clock()).skipped is False
    assert sweeper.sweep(clock()).skipped is False
    assert cache.get(LOCK_KEY) is None


@pytest.mark.django_db
def test_one_bad_cart_does_not_stop_the_batch(sweeper, clock, monkeypatch, caplog):
    stale = clock.advance(hours=-3)
    bad, good = CartFactory(last_activity_at=stale), CartFactory(last_activity_at=stale)
    original = sweeper.carts.abandon

    def flaky(cart_id, now=None):
        if cart_id == bad.id:
            raise CartNotActive("simulated", cart_id=cart_id)
        return original(cart_id, now)

    monkeypatch.setattr(sweeper.carts, "abandon", flaky)

    with caplog.at_level(logging.ERROR, logger="shop.sweeper"):
        result = sweeper.sweep(clock.advance(hours=3))

    assert result.errors == 1
    assert result.carts_abandoned == 1
    good.refresh_from_db()
    assert good.status == Cart.STATUS_ABANDONED
    assert any(r.msg == "sweeper.cart_failed" for r in caplog.records)


@pytest.mark.django_db
def test_dry_run_counts_without_changing_anything(sweeper, engine, clock):
    product = stocked_product(5)
    handle = engine.reserve(product.id, 1, ttl=0)
    cart = CartFactory(last_activity_at=clock.advance(hours=-2))

    result = sweeper.sweep(clock.advance(hours=2), dry_run=True)

    assert result.carts_abandoned == 1
    assert result.reservations_expired == 0
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE
    assert StockMovement.objects.get(pk=handle.movement_id).is_pending


@pytest.mark.django_db
def test_sweep_that_outlived_its_lock_leaves_the_next_lock_alone(sweeper, clock, monkeypatch, caplog):
    cart = CartFactory(last_activity_at=clock.advance(hours=-3))
    original = sweeper.carts.abandon

    def slow_abandon(cart_id, now=None):
        # Our lock timed out and the next run took it
        cache.delete(LOCK_KEY)
        cache.add(LOCK_KEY, "next-run", 300)
        return original(cart_id, now)

    monkeypatch.setattr(sweeper.carts, "abandon", slow_abandon)

    with caplog.at_level(logging.WARNING, logger="shop.sweeper"):
        result = sweeper.sweep(clock.advance(hours=3))

    assert result.carts_abandoned == 1
    assert cache.get(LOCK_KEY) == "next-run"
    assert any(r.msg == "sweeper.lock_lost" for r in caplog.records)
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ABANDONED


def test_release_lock_only_deletes_own_token():
    cache.add(LOCK_KEY, "mine", 300)

    assert release_lock("theirs") is False
    assert cache.get(LOCK_KEY) == "mine"
    assert release_lock("mine") is True
    assert cache.get(LOCK_KEY) is None
