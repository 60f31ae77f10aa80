import pytest
from common.exceptions import (
    InsufficientStock,
    InvalidQuantity,
    InvalidRequest,
    InvalidTransition,
    UnknownMovement,
    UnknownProduct,
)
from inventory.ledger import MAX_QUANTITY, MOVEMENT_REFERENCE
from inventory.models import StockMovement
from inventory.tests.factories import stocked_product
from inventory.types import Reference


@pytest.mark.django_db
def test_record_increase_updates_physical_and_available(ledger):
    product = stocked_product(0)

    movement_id = ledger.record(product.id, StockMovement.TYPE_INCREASE, 7, reference=Reference.of("po", 12))

    movement = StockMovement.objects.get(pk=movement_id)
    assert movement.status == StockMovement.STATUS_COMPLETED
    assert movement.reference_type == "po"
    assert movement.reference_id == "12"
    summary = ledger.available_stock(product.id)
    assert (summary.physical, summary.reserved, summary.available) == (7, 0, 7)


@pytest.mark.django_db
@pytest.mark.parametrize("quantity", [0, -1, MAX_QUANTITY + 1, True, "3", 1.5])
def test_record_rejects_bad_quantities_without_writing(ledger, quantity):
    product = stocked_product(0)

    with pytest.raises(InvalidQuantity):
        ledger.record(product.id, StockMovement.TYPE_INCREASE, quantity)

    assert not StockMovement.objects.filter(product=product).exists()


@pytest.mark.django_db
def test_record_unknown_product(ledger):
    with pytest.raises(UnknownProduct):
        ledger.record(999999, StockMovement.TYPE_INCREASE, 1)


@pytest.mark.django_db
def test_record_unknown_type_is_a_caller_error(ledger):
    product = stocked_product(5)

    with pytest.raises(InvalidRequest):
        ledger.record(product.id, "claimed", 1)


@pytest.mark.django_db
def test_record_terminal_status_is_rejected(ledger):
    product = stocked_product(5)

    with pytest.raises(InvalidTransition):
        ledger.record(product.id, StockMovement.TYPE_INCREASE, 1, status=StockMovement.STATUS_EXPIRED)


@pytest.mark.django_db
def test_completed_decrease_cannot_exceed_available(ledger):
    product = stocked_product(3)

    with pytest.raises(InsufficientStock) as exc_info:
        ledger.record(product.id, StockMovement.TYPE_DECREASE, 4)

    assert exc_info.value.available == 3
    assert exc_info.value.requested == 4
    assert ledger.available_stock(product.id).physical == 3


@pytest.mark.django_db
def test_backorders_allow_negative_stock(ledger, shop_settings):
    shop_settings(ALLOW_BACKORDERS=True)
    product = stocked_product(2)

    ledger.record(product.id, StockMovement.TYPE_DECREASE, 5)

    summary = ledger.available_stock(product.id)
    assert summary.backorders_allowed is True
    assert summary.physical == -3
    assert summary.available == -3


@pytest.mark.django_db
def test_unmanaged_product_skips_availability_check(ledger):
    product = stocked_product(0, manage_stock=False)

    ledger.record(product.id, StockMovement.TYPE_SALE, 2)

    assert ledger.available_stock(product.id).available == -2


@pytest.mark.django_db
def test_pending_increase_counts_only_after_completion(ledger):
    product = stocked_product(0)
    movement_id = ledger.record(product.id, StockMovement.TYPE_INCREASE, 4, status=StockMovement.STATUS_PENDING)

    assert ledger.available_stock(product.id).physical == 0

    ledger.complete(movement_id)
    assert ledger.available_stock(product.id).physical == 4


@pytest.mark.django_db
def test_same_terminal_target_twice_is_a_noop(ledger, clock):
    product = stocked_product(0)
    movement_id = ledger.record(product.id, StockMovement.TYPE_INCREASE, 4, status=StockMovement.STATUS_PENDING)

    first = ledger.cancel(movement_id)
    clock.advance(minutes=5)
    second = ledger.cancel(movement_id)

    assert first.status == second.status == StockMovement.STATUS_CANCELLED
    assert second.cancelled_at == first.cancelled_at


@pytest.mark.django_db
@pytest.mark.parametrize(
    "first,then",
    [
        ("complete", "cancel"),
        ("complete", "expire"),
        ("cancel", "complete"),
        ("cancel", "expire"),
        ("expire", "complete"),
        ("expire", "cancel"),
    ],
)
def test_terminal_movement_never_changes(ledger, first, then):
    product = stocked_product(10)
    movement_id = ledger.record(product.id, StockMovement.TYPE_DECREASE, 2, status=StockMovement.STATUS_PENDING)
    getattr(ledger, first)(movement_id)
    status = StockMovement.objects.get(pk=movement_id).status

    with pytest.raises(InvalidTransition):
        getattr(ledger, then)(movement_id)

    assert StockMovement.objects.get(pk=movement_id).status == status


@pytest.mark.django_db
def test_transition_unknown_movement(ledger):
    with pytest.raises(UnknownMovement):
        ledger.complete(424242)


@pytest.mark.django_db
def test_completing_pending_decrease_checks_availability(ledger):
    product = stocked_product(2)
    movement_id = ledger.record(product.id, StockMovement.TYPE_DECREASE, 3, status=StockMovement.STATUS_PENDING)

    with pytest.raises(InsufficientStock):
        ledger.complete(movement_id)

    assert StockMovement.objects.get(pk=movement_id).status == StockMovement.STATUS_PENDING


@pytest.mark.django_db
def test_adjust_records_signed_quantity(ledger):
    product = stocked_product(5)

    ledger.adjust(product.id, -2, note="Stock take")
    ledger.adjust(product.id, 4)

    adjustments = list(
        StockMovement.objects.filter(product=product, movement_type=StockMovement.TYPE_ADJUSTMENT)
        .order_by("id")
        .values_list("quantity", flat=True)
    )
    assert adjustments == [-2, 4]
    assert ledger.available_stock(product.id).physical == 7


@pytest.mark.django_db
@pytest.mark.parametrize("delta", [0, True, 2.0])
def test_adjust_rejects_invalid_delta(ledger, delta):
    product = stocked_product(5)

    with pytest.raises(InvalidQuantity):
        ledger.adjust(product.id, delta)


@pytest.mark.django_db
def test_negative_adjust_cannot_push_available_below_zero(ledger):
    product = stocked_product(2)

    with pytest.raises(InsufficientStock):
        ledger.adjust(product.id, -3)


@pytest.mark.django_db
def test_completing_reservation_writes_exactly_one_sale(ledger):
    product = stocked_product(10)
    reservation_id = ledger.record(product.id, StockMovement.TYPE_RESERVATION, 4, status=StockMovement.STATUS_PENDING)

    ledger.complete(reservation_id)
    ledger.complete(reservation_id)

    sales = StockMovement.objects.filter(product=product, movement_type=StockMovement.TYPE_SALE)
    assert sales.count() == 1
    sale = sales.get()
    assert (sale.reference_type, sale.reference_id) == (MOVEMENT_REFERENCE, str(reservation_id))
    summary = ledger.available_stock(product.id)
    assert (summary.physical, summary.reserved, summary.available) == (6, 0, 6)


@pytest.mark.django_db
def test_cancelled_reservation_logs_release(ledger):
    product = stocked_product(10)
    reservation_id = ledger.record(product.id, StockMovement.TYPE_RESERVATION, 4, status=StockMovement.STATUS_PENDING)

    ledger.cancel(reservation_id)

    release = StockMovement.objects.get(product=product, movement_type=StockMovement.TYPE_RELEASE)
    assert release.quantity == 4
    assert release.reference_id == str(reservation_id)
    # Informational only
    assert ledger.available_stock(product.id).physical == 10


@pytest.mark.django_db
def test_release_log_can_be_switched_off(ledger, shop_settings):
    shop_settings(LOG_STOCK_CHANGES=False)
    product = stocked_product(10)
    reservation_id = ledger.record(product.id, StockMovement.TYPE_RESERVATION, 4, status=StockMovement.STATUS_PENDING)

    ledger.expire(reservation_id)

    assert not StockMovement.objects.filter(movement_type=StockMovement.TYPE_RELEASE).exists()


@pytest.mark.django_db
def test_reservation_must_be_recorded_pending(ledger):
    product = stocked_product(10)

    with pytest.raises(InvalidRequest):
        ledger.record(product.id, StockMovement.TYPE_RESERVATION, 1)


@pytest.mark.django_db
def test_low_stock_uses_product_threshold_then_default(ledger):
    plain = stocked_product(5)
    strict = stocked_product(5, low_stock_threshold=2)

    assert ledger.available_stock(plain.id).is_low_stock is True
    assert ledger.available_stock(strict.id).is_low_stock is False


@pytest.mark.django_db
def test_history_is_newest_first(ledger, clock):
    product = stocked_product(0)
    first = ledger.record(product.id, StockMovement.TYPE_INCREASE, 1)
    clock.advance(seconds=1)
    second = ledger.record(product.id, StockMovement.TYPE_INCREASE, 2)

    assert [m.id for m in ledger.history(product.id)] == [second, first]
