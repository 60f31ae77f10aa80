import factory
from factory.django import DjangoModelFactory
from orders.models import Order


class OrderFactory(DjangoModelFactory):
    class Meta:
        model = Order

    number = factory.Sequence(lambda n: f"ORD-T{n:05d}")
    customer_reference = factory.Sequence(lambda n: f"customer-{n}")
    email = factory.Faker("email")
    status = Order.STATUS_PENDING
