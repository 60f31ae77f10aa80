"""Inventory services: wiring for the ledger and reservation engine.

Callers (cart, orders, sweeper, management commands) receive these objects
explicitly; there is no module-level singleton.
"""

from .ledger import MovementLedger
from .reservations import ReservationEngine


def build_ledger(*, clock=None, config=None, notifier=None) -> MovementLedger:
    return MovementLedger(clock=clock, config=config, notifier=notifier)


def build_reservation_engine(*, clock=None, config=None, notifier=None) -> ReservationEngine:
    ledger = build_ledger(clock=clock, config=config, notifier=notifier)
    return ReservationEngine(ledger, clock=clock, config=config)


# EOF
