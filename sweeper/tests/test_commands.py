import datetime as dt

import pytest
from cart.models import Cart
from cart.tests.factories import CartFactory
from django.core.cache import cache
from django.core.management import call_command
from django.utils import timezone
from inventory.reservations import ReservationEngine
from inventory.tests.factories import stocked_product
from orders.tests.factories import OrderFactory
from sweeper.services import LOCK_KEY


@pytest.mark.django_db
def test_run_sweeper_once(capsys):
    CartFactory(last_activity_at=timezone.now() - dt.timedelta(hours=3))

    call_command("run_sweeper")

    out = capsys.readouterr().out
    assert "Sweep done" in out
    assert "carts_abandoned=1" in out
    assert Cart.objects.get().status == Cart.STATUS_ABANDONED


@pytest.mark.django_db
def test_run_sweeper_respects_auto_sweep(capsys, shop_settings):
    shop_settings(AUTO_SWEEP=False)
    cart = CartFactory(last_activity_at=timezone.now() - dt.timedelta(hours=3))

    call_command("run_sweeper")
    assert "disabled" in capsys.readouterr().out
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ACTIVE

    call_command("run_sweeper", "--force")
    cart.refresh_from_db()
    assert cart.status == Cart.STATUS_ABANDONED


@pytest.mark.django_db
def test_cleanup_carts_dry_run_and_expire(capsys):
    long_ago = timezone.now() - dt.timedelta(days=2)
    idle = CartFactory(last_activity_at=long_ago)

    call_command("cleanup_carts", "--dry-run", "--expire")
    assert "Would affect: abandoned=1 expired=1 deleted=0" in capsys.readouterr().out
    idle.refresh_from_db()
    assert idle.status == Cart.STATUS_ACTIVE

    call_command("cleanup_carts", "--expire")
    assert "Processed: abandoned=1 expired=1" in capsys.readouterr().out
    idle.refresh_from_db()
    assert idle.status == Cart.STATUS_EXPIRED


@pytest.mark.django_db
def test_cleanup_carts_delete_past_retention(capsys):
    old = CartFactory(status=Cart.STATUS_EXPIRED, expired_at=timezone.now() - dt.timedelta(days=45))
    recent = CartFactory(status=Cart.STATUS_EXPIRED, expired_at=timezone.now() - dt.timedelta(days=2))

    call_command("cleanup_carts", "--delete")

    assert "deleted=1" in capsys.readouterr().out
    assert list(Cart.objects.values_list("id", flat=True)) == [recent.id]
    assert not Cart.objects.filter(pk=old.pk).exists()


@pytest.mark.django_db
def test_shop_stats(capsys):
    product = stocked_product(4, sku="LOW-1")
    ReservationEngine().reserve(product.id, 1)
    CartFactory()
    OrderFactory(status="processing")

    call_command("shop_stats")

    out = capsys.readouterr().out
    assert "Carts:\n  active: 1" in out
    assert "Orders:\n  processing: 1" in out
    assert "Reservations:\n  pending: 1" in out
    assert "Low stock products: 1" in out
    assert "LOW-1" in out


@pytest.mark.django_db
def test_cleanup_carts_waits_for_running_sweep(capsys):
    idle = CartFactory(last_activity_at=timezone.now() - dt.timedelta(hours=3))
    cache.add(LOCK_KEY, "running-sweep", 300)

    call_command("cleanup_carts")

    assert "Another sweep is running" in capsys.readouterr().out
    idle.refresh_from_db()
    assert idle.status == Cart.STATUS_ACTIVE
    assert cache.get(LOCK_KEY) == "running-sweep"
