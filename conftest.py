import datetime as dt

import pytest
from django.utils import timezone


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + dt.timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(timezone.now().replace(microsecond=0))


@pytest.fixture
def ledger(clock):
    from inventory.ledger import MovementLedger

    return MovementLedger(clock=clock)


@pytest.fixture
def engine(ledger, clock):
    from inventory.reservations import ReservationEngine

    return ReservationEngine(ledger, clock=clock)


@pytest.fixture
def shop_settings(settings):
    """Return a setter that overrides individual ``SHOP`` keys for one test."""

    def _set(**values):
        settings.SHOP = {**settings.SHOP, **values}

    return _set


@pytest.fixture(autouse=True)
def _clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
