"""Event handlers for Orders domain events.

Notification delivery lives outside this service; handlers record the
event in the structured log so downstream shippers can pick it up.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderCancelled,
    OrderCreated,
    OrderStatusChanged,
    PaymentCaptured,
    PaymentFailed,
    PaymentRefunded,
    TransporterAssigned,
)
from shared.domain.bus import IEventHandler
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class LoggingEventHandler(IEventHandler[DomainEvent]):
    """Writes one ``order.event.<name>`` log line per event."""

    def __init__(self, log_event: str) -> None:
        self.log_event = log_event

    def handle(self, event: DomainEvent) -> None:
        logger.info(self.log_event, **event.to_log_context())


order_created_handler = LoggingEventHandler("order.event.created")
order_status_changed_handler = LoggingEventHandler("order.event.status_changed")
order_cancelled_handler = LoggingEventHandler("order.event.cancelled")
transporter_assigned_handler = LoggingEventHandler("order.event.transporter_assigned")
payment_captured_handler = LoggingEventHandler("order.event.payment_captured")
payment_failed_handler = LoggingEventHandler("order.event.payment_failed")
payment_refunded_handler = LoggingEventHandler("order.event.payment_refunded")

SUBSCRIPTIONS = (
    (OrderCreated, order_created_handler),
    (OrderStatusChanged, order_status_changed_handler),
    (OrderCancelled, order_cancelled_handler),
    (TransporterAssigned, transporter_assigned_handler),
    (PaymentCaptured, payment_captured_handler),
    (PaymentFailed, payment_failed_handler),
    (PaymentRefunded, payment_refunded_handler),
)
