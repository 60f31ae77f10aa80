import factory
from cart.models import Cart
from factory.django import DjangoModelFactory


class CartFactory(DjangoModelFactory):
    class Meta:
        model = Cart

    customer_reference = factory.Sequence(lambda n: f"customer-{n}")
    email = factory.Faker("email")
    status = Cart.STATUS_ACTIVE
