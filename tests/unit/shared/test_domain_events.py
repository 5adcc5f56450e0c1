"""Unit tests for domain events, the in-memory bus and order event handlers.

Covers:
- Event name and log context.
- Subscription is idempotent; a failing handler does not stop the others.
- publish_on_commit waits for the transaction to commit.
- Order handlers are subscribed at app start-up and log their event.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from django.db import transaction

from modules.orders.events import OrderCreated, OrderStatusChanged, PaymentFailed
from modules.orders.handlers import SUBSCRIPTIONS, LoggingEventHandler
from shared.infrastructure.bus import InMemoryEventBus, event_bus

pytestmark = pytest.mark.unit


class TestDomainEvent:
    def test_event_name(self):
        event = OrderStatusChanged(aggregate_id=uuid4(), old_status="pending")
        assert event.event_name == "OrderStatusChanged"

    def test_log_context_is_flat(self):
        order_id = uuid4()
        event = OrderCreated(
            aggregate_id=order_id,
            order_number="ORD-1",
            total_amount=Decimal("1150.00"),
        )

        context = event.to_log_context()

        assert context["aggregate_id"] == str(order_id)
        assert context["total_amount"] == "1150.00"
        assert context["event_name"] == "OrderCreated"
        assert "buyer_id" not in context

    def test_events_are_immutable(self):
        event = PaymentFailed(aggregate_id=uuid4(), reason="timeout")
        with pytest.raises(AttributeError):
            event.reason = "declined"


class TestInMemoryEventBus:
    def test_publish_reaches_subscribers(self):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(PaymentFailed, handler)

        event = PaymentFailed(aggregate_id=uuid4(), reason="timeout")
        bus.publish(event)

        handler.handle.assert_called_once_with(event)

    def test_subscribe_twice_runs_once(self):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(PaymentFailed, handler)
        bus.subscribe(PaymentFailed, handler)

        bus.publish(PaymentFailed(aggregate_id=uuid4()))

        assert handler.handle.call_count == 1

    def test_failing_handler_is_isolated(self):
        bus = InMemoryEventBus()
        broken, healthy = MagicMock(), MagicMock()
        broken.handle.side_effect = RuntimeError("boom")
        bus.subscribe(PaymentFailed, broken)
        bus.subscribe(PaymentFailed, healthy)

        bus.publish(PaymentFailed(aggregate_id=uuid4()))

        healthy.handle.assert_called_once()

    def test_other_event_types_ignored(self):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(PaymentFailed, handler)

        bus.publish(OrderStatusChanged(aggregate_id=uuid4()))

        handler.handle.assert_not_called()

    def test_publish_on_commit(self, django_capture_on_commit_callbacks):
        bus = InMemoryEventBus()
        handler = MagicMock()
        bus.subscribe(PaymentFailed, handler)

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with transaction.atomic():
                bus.publish_on_commit(PaymentFailed(aggregate_id=uuid4()))
                handler.handle.assert_not_called()

        assert len(callbacks) == 1
        handler.handle.assert_called_once()


class TestOrderHandlers:
    def test_every_order_event_is_subscribed(self):
        for event_class, handler in SUBSCRIPTIONS:
            assert handler in event_bus._handlers[event_class]

    def test_handler_logs_event(self):
        handler = LoggingEventHandler("order.event.payment_failed")
        event = PaymentFailed(aggregate_id=uuid4(), reason="timeout")

        with patch("modules.orders.handlers.logger") as logger:
            handler.handle(event)

        logger.info.assert_called_once()
        args, kwargs = logger.info.call_args
        assert args == ("order.event.payment_failed",)
        assert kwargs["reason"] == "timeout"
        assert kwargs["aggregate_id"] == str(event.aggregate_id)
