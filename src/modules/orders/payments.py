"""Payment coordination.

``PaymentCoordinator.process`` charges the gateway *outside* any database
transaction, then records the outcome with conditional updates over the
payment-status graph::

    pending -> paid | failed
    failed  -> paid | failed
    paid    -> refunded

A successful charge on a still-pending order advances it to ``confirmed``
through the state machine.  ``refund`` only moves ``paid -> refunded``; it
never re-opens status edges on the order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus
from modules.orders.events import PaymentCaptured, PaymentFailed, PaymentRefunded
from modules.orders.exceptions import (
    AlreadyPaid,
    InvalidPayment,
    InvalidStatusTransition,
    OrderNotFound,
    Unauthorized,
)
from modules.orders.gateways import PaymentGatewayError
from shared.infrastructure.bus import event_bus

if TYPE_CHECKING:
    from modules.orders.dtos import PaymentDTO
    from modules.orders.gateways import PaymentGateway
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.state_machine import OrderStateMachine

logger = structlog.get_logger(__name__)

# Orders in these states cannot take a new payment.
UNPAYABLE_STATES = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.DELIVERED, OrderStatus.REFUNDED}
)
CHARGEABLE_PAYMENT_STATES: List[str] = [PaymentStatus.PENDING, PaymentStatus.FAILED]


@dataclass(frozen=True)
class PaymentOutcome:
    order_id: UUID
    payment_reference: str
    confirmed: bool
    tracking_recorded: bool


class PaymentCoordinator:
    def __init__(
        self,
        order_repository: IOrderRepository,
        gateway: PaymentGateway,
        state_machine: OrderStateMachine,
    ) -> None:
        self._order_repo = order_repository
        self._gateway = gateway
        self._state_machine = state_machine

    def process(self, order_id: UUID, payer_id: UUID, dto: PaymentDTO) -> PaymentOutcome:
        """Charge the order's total and record the result.

        Raises:
            OrderNotFound: the order does not exist.
            Unauthorized: *payer_id* is not the order's buyer.
            AlreadyPaid: payment is already ``paid`` or ``refunded``.
            InvalidStatusTransition: the order is cancelled, delivered or
                refunded.
            InvalidPayment: the gateway declined, failed or timed out.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound()
        if order.buyer_id != payer_id:
            raise Unauthorized("Only the buyer can pay for this order.")
        if order.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            raise AlreadyPaid()
        if order.status in UNPAYABLE_STATES:
            raise InvalidStatusTransition(
                f"Order {order.order_number} is {order.status} and cannot be paid."
            )

        log = logger.bind(
            order_id=str(order.id),
            payment_method=dto.payment_method,
            amount=str(order.total_amount),
        )
        log.info("payment.started")

        try:
            charge = self._gateway.charge(
                order.id, order.total_amount, dto.payment_method, dto.details
            )
        except PaymentGatewayError as exc:
            self._order_repo.update_payment_status(
                order.id, CHARGEABLE_PAYMENT_STATES, PaymentStatus.FAILED
            )
            log.warning("payment.failed", reason=exc.reason)
            event_bus.publish_on_commit(
                PaymentFailed(aggregate_id=order.id, reason=exc.reason)
            )
            raise InvalidPayment() from exc

        return self._record_capture(order.id, charge.reference_id, dto)

    @transaction.atomic
    def _record_capture(
        self, order_id: UUID, reference_id: str, dto: PaymentDTO
    ) -> PaymentOutcome:
        log = logger.bind(order_id=str(order_id), reference_id=reference_id)

        applied = self._order_repo.update_payment_status(
            order_id,
            CHARGEABLE_PAYMENT_STATES,
            PaymentStatus.PAID,
            {
                "payment_reference": reference_id,
                "payment_method": dto.payment_method,
                "paid_at": timezone.now(),
            },
        )
        if not applied:
            # Another request captured this order between our read and now.
            log.error("payment.duplicate_capture")
            raise AlreadyPaid()

        order = self._order_repo.get_by_id(str(order_id))
        confirmed = False
        tracking_recorded = True
        method_note = f"Payment method: {PaymentMethod(dto.payment_method).value}"

        if order.status == OrderStatus.PENDING:
            try:
                result = self._state_machine.transition(
                    order,
                    OrderStatus.CONFIRMED,
                    notes=method_note,
                    description="Payment processed successfully",
                )
            except InvalidStatusTransition:
                log.warning("payment.confirm_skipped", status=order.status)
            else:
                confirmed = True
                tracking_recorded = result.tracking_recorded
        elif order.status == OrderStatus.CANCELLED:
            # Cancelled while the gateway call was in flight.
            self.refund(order.id)
        else:
            tracking_recorded = self._state_machine.annotate(
                order, "Payment processed successfully", notes=method_note
            )

        log.info("payment.captured", confirmed=confirmed)
        event_bus.publish_on_commit(
            PaymentCaptured(
                aggregate_id=order.id,
                payment_reference=reference_id,
                amount=order.total_amount,
            )
        )
        return PaymentOutcome(
            order_id=order.id,
            payment_reference=reference_id,
            confirmed=confirmed,
            tracking_recorded=tracking_recorded,
        )

    def refund(self, order_id: UUID) -> bool:
        """Move payment status ``paid -> refunded``.

        Returns ``False`` when the order was not in ``paid``.
        """
        refunded = self._order_repo.update_payment_status(
            order_id, [PaymentStatus.PAID], PaymentStatus.REFUNDED
        )
        if not refunded:
            logger.info("payment.refund_skipped", order_id=str(order_id))
            return False

        logger.info("payment.refunded", order_id=str(order_id))
        event_bus.publish_on_commit(PaymentRefunded(aggregate_id=order_id))
        return True
