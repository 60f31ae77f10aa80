import pytest
from django.core import mail
from orders.models import Order
from orders.services import build_order_state_machine
from orders.tests.factories import OrderFactory


@pytest.fixture
def machine(ledger, clock):
    return build_order_state_machine(ledger=ledger, clock=clock)


@pytest.mark.django_db
def test_customer_facing_transition_sends_email(machine, settings, django_capture_on_commit_callbacks):
    settings.FRONTEND_URL = "https://shop.example.com/"
    order = OrderFactory(email="buyer@example.com", number="ORD-000042")

    with django_capture_on_commit_callbacks(execute=True):
        machine.record_payment(order.id)

    assert len(mail.outbox) == 1
    message = mail.outbox[0]
    assert message.to == ["buyer@example.com"]
    assert message.subject == "Your order ORD-000042 is now processing"
    assert f"https://shop.example.com/orders/{order.id}" in message.body


@pytest.mark.django_db
def test_internal_transition_sends_nothing(machine, django_capture_on_commit_callbacks):
    order = OrderFactory(email="buyer@example.com")

    with django_capture_on_commit_callbacks(execute=True):
        machine.transition(order.id, Order.STATUS_ON_HOLD)

    assert mail.outbox == []


@pytest.mark.django_db
def test_order_without_email_sends_nothing(machine, django_capture_on_commit_callbacks):
    order = OrderFactory(email=None)

    with django_capture_on_commit_callbacks(execute=True):
        machine.transition(order.id, Order.STATUS_CANCELLED)

    assert mail.outbox == []


@pytest.mark.django_db
def test_email_without_frontend_url_omits_link(machine, settings, django_capture_on_commit_callbacks):
    settings.FRONTEND_URL = ""
    order = OrderFactory(email="buyer@example.com", number="ORD-000043")

    with django_capture_on_commit_callbacks(execute=True):
        machine.transition(order.id, Order.STATUS_CANCELLED)

    body = mail.outbox[0].body
    assert "view your order" not in body
    assert body.endswith("Status: Cancelled\n")
