"""Unit tests for the Order status state machine.

Covers:
- Model-level helpers (can_transition_to, is_terminal, is_cancellable).
- Every legal edge is persisted as a conditional update and tracked.
- Every illegal edge raises without touching the repository.
- Cancellation is refused once goods are shipped.
- A stale read (conditional update misses) raises InvalidStatusTransition.
- Tracking failures do not undo the transition.
- Every cancellation goes through the refund callable (a no-op unless paid).
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from django.db import DatabaseError

from modules.orders.constants import (
    CANCELLABLE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import InvalidStatusTransition
from modules.orders.models import Order
from modules.orders.state_machine import OrderStateMachine, describe
from modules.orders.tracking import TrackingLedger

pytestmark = pytest.mark.unit


def _is_legal(current, target):
    if target not in VALID_TRANSITIONS[current]:
        return False
    return target != OrderStatus.CANCELLED or current in CANCELLABLE_STATES


ALL_PAIRS = [(s, t) for s in OrderStatus.values for t in OrderStatus.values]
LEGAL_EDGES = [pair for pair in ALL_PAIRS if _is_legal(*pair)]
ILLEGAL_EDGES = [pair for pair in ALL_PAIRS if not _is_legal(*pair)]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def repo():
    repo = MagicMock()
    repo.update_status.return_value = True
    return repo


@pytest.fixture()
def refund():
    return MagicMock(return_value=True)


@pytest.fixture()
def machine(repo, refund):
    return OrderStateMachine(repo, TrackingLedger(repo), refund=refund)


def _order(status=OrderStatus.PENDING, payment_status=PaymentStatus.PENDING):
    return Order(
        id=uuid4(),
        order_number="ORD-20260101000000-abcd1234",
        buyer_id=uuid4(),
        farmer_id=uuid4(),
        sub_total=Decimal("100.00"),
        status=status,
        payment_status=payment_status,
    )


# ---------------------------------------------------------------------------
# Model helpers
# ---------------------------------------------------------------------------


class TestModelHelpers:
    def test_terminal_states(self):
        for status in OrderStatus.values:
            assert _order(status).is_terminal is (status in TERMINAL_STATES)

    def test_terminal_states_have_no_edges(self):
        for status in TERMINAL_STATES:
            assert VALID_TRANSITIONS[status] == frozenset()

    @pytest.mark.parametrize(
        "status", [OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED]
    )
    def test_cannot_cancel_after_shipping(self, status):
        order = _order(status)
        assert not order.is_cancellable
        assert not order.can_transition_to(OrderStatus.CANCELLED)

    def test_describe(self):
        assert describe(OrderStatus.IN_TRANSIT) == "Order in transit"
        assert describe("confirmed") == "Order confirmed"


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestLegalTransitions:
    @pytest.mark.parametrize("current,target", LEGAL_EDGES)
    def test_edge_is_applied(self, machine, repo, current, target):
        order = _order(current)

        result = machine.transition(order, target)

        assert result.previous_status == current
        assert result.new_status == target
        assert result.tracking_recorded is True
        assert order.status == target
        assert repo.update_status.call_args.args[:3] == (order.id, current, target)

    def test_tracking_entry_carries_new_status(self, machine, repo):
        order = _order()

        machine.transition(order, OrderStatus.CONFIRMED, notes="called buyer")

        repo.add_tracking.assert_called_once_with(
            order_id=order.id,
            status=OrderStatus.CONFIRMED,
            description="Order confirmed",
            notes="called buyer",
            location="",
        )

    def test_delivery_stamps_actual_delivery(self, machine, repo):
        order = _order(OrderStatus.IN_TRANSIT)

        machine.transition(order, OrderStatus.DELIVERED)

        extra = repo.update_status.call_args.args[3]
        assert "actual_delivery" in extra
        assert order.actual_delivery == extra["actual_delivery"]

    def test_cancellation_stamps_cancelled_at(self, machine, repo):
        order = _order(OrderStatus.CONFIRMED)

        machine.transition(order, OrderStatus.CANCELLED)

        extra = repo.update_status.call_args.args[3]
        assert order.cancelled_at == extra["cancelled_at"]


class TestIllegalTransitions:
    @pytest.mark.parametrize("current,target", ILLEGAL_EDGES)
    def test_edge_is_rejected(self, machine, repo, current, target):
        order = _order(current)

        with pytest.raises(InvalidStatusTransition):
            machine.transition(order, target)

        assert order.status == current
        repo.update_status.assert_not_called()
        repo.add_tracking.assert_not_called()

    def test_skipping_a_state(self, machine):
        with pytest.raises(InvalidStatusTransition):
            machine.transition(_order(OrderStatus.PENDING), OrderStatus.SHIPPED)

    def test_stale_read_is_rejected(self, machine, repo):
        repo.update_status.return_value = False
        order = _order(OrderStatus.CONFIRMED)

        with pytest.raises(InvalidStatusTransition, match="no longer"):
            machine.transition(order, OrderStatus.PROCESSING)

        assert order.status == OrderStatus.CONFIRMED
        repo.add_tracking.assert_not_called()


class TestTrackingFailure:
    def test_transition_survives_tracking_error(self, machine, repo):
        repo.add_tracking.side_effect = DatabaseError("disk full")
        order = _order()

        result = machine.transition(order, OrderStatus.CONFIRMED)

        assert result.tracking_recorded is False
        assert order.status == OrderStatus.CONFIRMED


class TestRefundOnCancel:
    def test_paid_order_is_refunded(self, machine, refund):
        order = _order(OrderStatus.CONFIRMED, PaymentStatus.PAID)

        result = machine.transition(order, OrderStatus.CANCELLED)

        refund.assert_called_once_with(order.id)
        assert result.refunded is True
        assert order.payment_status == PaymentStatus.REFUNDED

    def test_unpaid_order_is_not_refunded(self, machine, refund):
        refund.return_value = False
        order = _order()

        result = machine.transition(order, OrderStatus.CANCELLED)

        refund.assert_called_once_with(order.id)
        assert result.refunded is False
        assert order.payment_status == PaymentStatus.PENDING

    def test_payment_captured_after_read_is_refunded(self, machine, refund):
        # The order was read as unpaid; the refund hook sees the stored status.
        order = _order(OrderStatus.CONFIRMED, PaymentStatus.PENDING)

        result = machine.transition(order, OrderStatus.CANCELLED)

        refund.assert_called_once_with(order.id)
        assert result.refunded is True
        assert order.payment_status == PaymentStatus.REFUNDED

    def test_other_transitions_never_refund(self, machine, refund):
        machine.transition(_order(), OrderStatus.CONFIRMED)
        refund.assert_not_called()

    def test_missing_refund_hook_is_logged_not_raised(self, repo):
        machine = OrderStateMachine(repo, TrackingLedger(repo))
        order = _order(OrderStatus.PROCESSING, PaymentStatus.PAID)

        result = machine.transition(order, OrderStatus.CANCELLED)

        assert result.refunded is False
        assert order.payment_status == PaymentStatus.PAID


class TestAnnotate:
    def test_keeps_current_status(self, machine, repo):
        order = _order(OrderStatus.IN_TRANSIT)

        recorded = machine.annotate(order, "Reached Nagpur hub", location="Nagpur")

        assert recorded is True
        repo.update_status.assert_not_called()
        assert repo.add_tracking.call_args.kwargs["status"] == OrderStatus.IN_TRANSIT
