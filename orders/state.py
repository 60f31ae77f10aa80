"""Order status transition table and derived predicates.

``can_transition`` is the single authority on which status changes are
allowed; every mutation of ``Order.status`` goes through it.
"""

from common.choices import OrderStatus

S = OrderStatus

ORDER_TRANSITIONS: dict[str, frozenset] = {
    S.PENDING: frozenset({S.PROCESSING, S.ON_HOLD, S.CANCELLED, S.FAILED}),
    S.PROCESSING: frozenset(
        {S.IN_PREPARATION, S.READY_FOR_PICKUP, S.SHIPPED, S.COMPLETED, S.ON_HOLD, S.CANCELLED, S.REFUNDED}
    ),
    S.ON_HOLD: frozenset({S.PENDING, S.PROCESSING, S.CANCELLED}),
    S.IN_PREPARATION: frozenset({S.READY_FOR_PICKUP, S.SHIPPED, S.COMPLETED, S.ON_HOLD, S.CANCELLED}),
    S.READY_FOR_PICKUP: frozenset({S.COMPLETED, S.DELIVERED, S.ON_HOLD, S.CANCELLED}),
    S.SHIPPED: frozenset({S.DELIVERED, S.COMPLETED, S.REFUNDED}),
    # Quasi-terminal: done for fulfillment, may still complete or refund
    S.DELIVERED: frozenset({S.COMPLETED, S.REFUNDED}),
    S.COMPLETED: frozenset({S.REFUNDED}),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
    # Retry path only
    S.FAILED: frozenset({S.PENDING}),
}

ACTIVE_STATUSES = frozenset({S.PENDING, S.PROCESSING, S.ON_HOLD, S.IN_PREPARATION, S.READY_FOR_PICKUP, S.SHIPPED})
FINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED, S.REFUNDED, S.FAILED, S.DELIVERED})
PAID_STATUSES = frozenset({S.PROCESSING, S.IN_PREPARATION, S.READY_FOR_PICKUP, S.SHIPPED, S.DELIVERED, S.COMPLETED})


def _coerce(status) -> OrderStatus | None:
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def allowed_transitions(status) -> frozenset:
    current = _coerce(status)
    if current is None:
        return frozenset()
    return ORDER_TRANSITIONS[current]


def can_transition(from_status, to_status) -> bool:
    target = _coerce(to_status)
    return target is not None and target in allowed_transitions(from_status)


def is_active(status) -> bool:
    return _coerce(status) in ACTIVE_STATUSES


def is_final(status) -> bool:
    return _coerce(status) in FINAL_STATUSES


def requires_payment(status) -> bool:
    return _coerce(status) == S.PENDING


def is_paid(status) -> bool:
    return _coerce(status) in PAID_STATUSES
