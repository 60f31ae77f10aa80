import factory
from catalog.models import Product
from factory.django import DjangoModelFactory


class ProductFactory(DjangoModelFactory):
    class Meta:
        model = Product

    sku = factory.Sequence(lambda n: f"SKU-{n:05d}")
    title = factory.Faker("sentence", nb_words=3)
    manage_stock = True
    low_stock_threshold = None
