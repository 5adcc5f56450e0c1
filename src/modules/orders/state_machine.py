"""Order status state machine.

Legal edges live in ``constants.VALID_TRANSITIONS``; cancellation is further
restricted to ``CANCELLABLE_STATES``.  A transition is persisted as a
conditional update on the status the caller read, so two racing callers
cannot both move the order from the same state: the loser gets
``InvalidStatusTransition`` and the stored status is untouched.

Every accepted transition appends a tracking entry (best-effort) and, when
a paid order is cancelled, triggers a refund.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.orders.exceptions import InvalidStatusTransition
from shared.infrastructure.bus import event_bus

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.tracking import TrackingLedger

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    order_id: UUID
    previous_status: str
    new_status: str
    tracking_recorded: bool
    refunded: bool = False


def describe(status: str) -> str:
    return f"Order {OrderStatus(status).label.lower()}"


class OrderStateMachine:
    def __init__(
        self,
        order_repository: IOrderRepository,
        ledger: TrackingLedger,
        refund: Optional[Callable[[UUID], bool]] = None,
    ) -> None:
        self._order_repo = order_repository
        self._ledger = ledger
        self._refund = refund

    @staticmethod
    def check(order: Order, new_status: str) -> None:
        """Raise ``InvalidStatusTransition`` unless *new_status* is a legal
        next state for *order*."""
        if not order.can_transition_to(new_status):
            raise InvalidStatusTransition(
                f"Cannot change order {order.order_number} from "
                f"{order.status} to {new_status}."
            )

    @transaction.atomic
    def transition(
        self,
        order: Order,
        new_status: str,
        notes: str = "",
        description: str = "",
        location: str = "",
    ) -> TransitionResult:
        """Move *order* from the status it was read with to *new_status*.

        Raises:
            InvalidStatusTransition: the edge is not legal, or the stored
                status no longer matches ``order.status``.
        """
        self.check(order, new_status)

        expected = order.status
        log = logger.bind(
            order_id=str(order.id),
            previous_status=expected,
            new_status=new_status,
        )

        now = timezone.now()
        extra = {}
        if new_status == OrderStatus.DELIVERED:
            extra["actual_delivery"] = now
        elif new_status == OrderStatus.CANCELLED:
            extra["cancelled_at"] = now

        if not self._order_repo.update_status(order.id, expected, new_status, extra):
            log.warning("order.transition_conflict")
            raise InvalidStatusTransition(
                f"Order {order.order_number} is no longer {expected}."
            )

        order.status = new_status
        for field, value in extra.items():
            setattr(order, field, value)

        entry = self._ledger.try_append(
            order.id,
            new_status,
            description=description or describe(new_status),
            notes=notes,
            location=location,
        )

        refunded = False
        if new_status == OrderStatus.CANCELLED:
            # payment_status may have moved since the read; refund is conditional
            refunded = self._trigger_refund(order)

        log.info("order.status_changed", tracking_recorded=entry is not None)
        event_bus.publish_on_commit(
            OrderStatusChanged(
                aggregate_id=order.id, old_status=expected, new_status=new_status
            )
        )
        if new_status == OrderStatus.CANCELLED:
            event_bus.publish_on_commit(
                OrderCancelled(aggregate_id=order.id, previous_status=expected)
            )

        return TransitionResult(
            order_id=order.id,
            previous_status=expected,
            new_status=new_status,
            tracking_recorded=entry is not None,
            refunded=refunded,
        )

    def annotate(
        self,
        order: Order,
        description: str,
        notes: str = "",
        location: str = "",
    ) -> bool:
        """Record a tracking entry that keeps the current status."""
        entry = self._ledger.try_append(
            order.id,
            order.status,
            description=description,
            notes=notes,
            location=location,
        )
        return entry is not None

    def _trigger_refund(self, order: Order) -> bool:
        if self._refund is None:
            if order.payment_status == PaymentStatus.PAID:
                logger.error("order.refund_unavailable", order_id=str(order.id))
            return False
        refunded = self._refund(order.id)
        if refunded:
            order.payment_status = PaymentStatus.REFUNDED
        return refunded
