import itertools

import pytest
from common.choices import OrderStatus
from orders import state

DOCUMENTED = {
    "pending": {"processing", "on_hold", "cancelled", "failed"},
    "processing": {"in_preparation", "ready_for_pickup", "shipped", "completed", "on_hold", "cancelled", "refunded"},
    "on_hold": {"pending", "processing", "cancelled"},
    "in_preparation": {"ready_for_pickup", "shipped", "completed", "on_hold", "cancelled"},
    "ready_for_pickup": {"completed", "delivered", "on_hold", "cancelled"},
    "shipped": {"delivered", "completed", "refunded"},
    "delivered": {"completed", "refunded"},
    "completed": {"refunded"},
    "cancelled": set(),
    "refunded": set(),
    "failed": {"pending"},
}

ALL = [s.value for s in OrderStatus]


def test_every_status_has_a_row():
    assert set(DOCUMENTED) == set(ALL)
    assert len(ALL) == 11


@pytest.mark.parametrize("from_status,to_status", list(itertools.product(ALL, ALL)))
def test_can_transition_matches_table(from_status, to_status):
    assert state.can_transition(from_status, to_status) is (to_status in DOCUMENTED[from_status])


def test_unknown_statuses_never_transition():
    assert state.can_transition("bogus", "pending") is False
    assert state.can_transition("pending", "bogus") is False
    assert state.allowed_transitions("bogus") == frozenset()


def test_predicates():
    assert state.requires_payment("pending") is True
    assert not any(state.requires_payment(s) for s in ALL if s != "pending")
    assert state.is_paid("shipped") and state.is_paid("delivered") and state.is_paid("completed")
    assert not state.is_paid("pending") and not state.is_paid("refunded")
    assert state.is_final("delivered") and state.is_final("failed")
    assert state.is_active("on_hold") and not state.is_active("cancelled")
    assert state.is_final("unknown") is False


def test_hard_terminal_statuses_have_no_exits():
    for status in ("cancelled", "refunded"):
        assert state.allowed_transitions(status) == frozenset()
