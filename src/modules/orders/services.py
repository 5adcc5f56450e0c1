"""Order service layer (Use Cases).

Facade over the order lifecycle components.  Every entry point loads the
order, checks the relevant authorization predicate, and only then touches
state.

Components (constructor-injected):
- ``PricingEngine``: validates the cart against the catalog and prices it.
- ``StockCoordinator``: atomic reservations, compensating releases.
- ``OrderStateMachine``: conditional status transitions + tracking.
- ``PaymentCoordinator``: gateway charge, payment-status graph, refunds.
- ``TrackingLedger``: append-only audit trail.

Business rules enforced:
- Only buyers place orders; an order belongs to a single farmer.
- Stock never goes negative; failed creations release what they reserved.
- ``total_amount = sub_total + tax_amount + shipping_cost - discount_amount``.
- Status moves only along the transition table; shipped orders cannot be
  cancelled.
- Cancelling a paid order refunds it; cancelling releases the stock.
- Tracking failures never undo a committed change; they surface as the
  ``tracking_unavailable`` warning on the returned view.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.core.authentication import ActorRole
from modules.orders import policies
from modules.orders.constants import (
    DELIVERY_LEAD_DAYS,
    MAX_PAGE_SIZE,
    TERMINAL_STATES,
    TRACKING_UNAVAILABLE,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.dtos import (
    OrderOutputDTO,
    OrderPageDTO,
    OrderSummaryDTO,
    TrackingEntryDTO,
)
from modules.orders.events import OrderCreated, TransporterAssigned
from modules.orders.exceptions import (
    InvalidStatusTransition,
    OrderNotFound,
    Unauthorized,
)
from modules.orders.gateways import build_payment_gateway
from modules.orders.payments import PaymentCoordinator
from modules.orders.pricing import PricingEngine
from modules.orders.state_machine import OrderStateMachine
from modules.orders.stock import StockCoordinator
from modules.orders.tracking import TrackingLedger
from shared.infrastructure.bus import event_bus

if TYPE_CHECKING:
    from modules.core.authentication import Actor
    from modules.orders.dtos import (
        AssignTransporterDTO,
        CreateOrderDTO,
        PaymentDTO,
        TrackingNoteDTO,
        UpdateStatusDTO,
    )
    from modules.orders.gateways import PaymentGateway
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

# Listing scope per role: the order field that must equal the actor id.
SCOPE_FIELDS = {
    ActorRole.BUYER: "buyer_id",
    ActorRole.FARMER: "farmer_id",
    ActorRole.TRANSPORTER: "transporter_id",
    ActorRole.VENDOR: "vendor_id",
}

ASSIGNABLE_STATES = [
    status for status in OrderStatus.values if status not in TERMINAL_STATES
]


class OrderService:
    """Application service for Order use-cases.

    Receives repositories (and optionally the payment gateway) via
    constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        payment_gateway: Optional[PaymentGateway] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._pricing = PricingEngine(product_repository)
        self._stock = StockCoordinator(product_repository)
        self._ledger = TrackingLedger(order_repository)
        self._state_machine = OrderStateMachine(
            order_repository, self._ledger, refund=self._refund
        )
        self._payments = PaymentCoordinator(
            order_repository,
            payment_gateway or build_payment_gateway(),
            self._state_machine,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, actor: Actor, dto: CreateOrderDTO) -> OrderOutputDTO:
        """Turn a buyer's cart into a ``pending`` order.

        Steps:
        1. Price and validate every line against the catalog.
        2. Reserve stock line by line (product-id order); a failed
           reservation releases the earlier ones.
        3. Persist the Order (order number generated on save) and its
           OrderItem snapshots.  A persistence failure releases the stock.
        4. Append the "order created" tracking entry (best-effort).

        Raises:
            Unauthorized: the actor is not a buyer.
            ProductNotFound, ProductUnavailable, InsufficientStock,
            MixedFarmerOrder: the cart failed validation.
        """
        policies.require(policies.can_create(actor), "Only buyers can place orders.")

        log = logger.bind(buyer_id=str(actor.id), item_count=len(dto.items))
        log.info("order.creation_started")

        quote = self._pricing.quote(dto.items, dto.shipping.city)

        with transaction.atomic():
            reserved = self._stock.reserve_all(
                (line.product_id, line.quantity) for line in quote.lines
            )

            order_data = {
                "buyer_id": actor.id,
                "farmer_id": quote.farmer_id,
                "vendor_id": self._product_repo.get_vendor_for_farmer(quote.farmer_id),
                "sub_total": quote.sub_total,
                "tax_amount": quote.tax_amount,
                "shipping_cost": quote.shipping_cost,
                "discount_amount": quote.discount_amount,
                "status": OrderStatus.PENDING,
                "payment_status": PaymentStatus.PENDING,
                "payment_method": dto.payment_method,
                "shipping_address": dto.shipping.address,
                "shipping_city": dto.shipping.city,
                "shipping_state": dto.shipping.state,
                "shipping_zip_code": dto.shipping.zip_code,
                "shipping_notes": dto.shipping.notes,
                "estimated_delivery": (
                    timezone.now() + timedelta(days=DELIVERY_LEAD_DAYS)
                ),
            }
            try:
                with transaction.atomic():
                    order = self._order_repo.create(
                        order_data, [line.snapshot() for line in quote.lines]
                    )
            except DatabaseError:
                log.exception("order.persistence_failed")
                self._stock.release_all(reserved)
                raise

            entry = self._ledger.try_append(
                order.id,
                OrderStatus.PENDING,
                description="Order has been placed successfully",
                location="Order created",
            )

            event_bus.publish_on_commit(
                OrderCreated(
                    aggregate_id=order.id,
                    order_number=order.order_number,
                    buyer_id=order.buyer_id,
                    farmer_id=order.farmer_id,
                    total_amount=order.total_amount,
                )
            )

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        warnings = [] if entry is not None else [TRACKING_UNAVAILABLE]
        return self._view(order.id, warnings)

    def update_status(
        self, order_id: UUID, actor: Actor, dto: UpdateStatusDTO
    ) -> OrderOutputDTO:
        """Move an order along the transition table.

        A move to ``cancelled`` takes the cancellation path (stock release
        and refund).

        Raises:
            OrderNotFound, Unauthorized, InvalidStatusTransition.
        """
        order = self._get(order_id)
        policies.require(policies.can_modify(actor, order))

        if dto.status == OrderStatus.CANCELLED:
            return self._cancel(order, actor, dto.notes)

        result = self._state_machine.transition(order, dto.status, notes=dto.notes)
        return self._view(order.id, self._warnings(result.tracking_recorded))

    def cancel(self, order_id: UUID, actor: Actor, notes: str = "") -> OrderOutputDTO:
        """Cancel an order, release its stock, refund it if it was paid.

        Raises:
            OrderNotFound, Unauthorized, InvalidStatusTransition.
        """
        order = self._get(order_id)
        policies.require(policies.can_modify(actor, order))
        return self._cancel(order, actor, notes)

    def assign_transporter(
        self, order_id: UUID, actor: Actor, dto: AssignTransporterDTO
    ) -> OrderOutputDTO:
        """Attach a transporter, vehicle and ETA to a farmer's open order.

        Raises:
            OrderNotFound, Unauthorized, InvalidStatusTransition (order is
            delivered, cancelled or refunded).
        """
        order = self._get(order_id)
        policies.require(
            policies.can_assign_transporter(actor, order),
            "Only the order's farmer can assign a transporter.",
        )

        data: Dict[str, Any] = {
            "transporter_id": dto.transporter_id,
            "vehicle_id": dto.vehicle_id,
            "estimated_delivery": dto.estimated_delivery,
        }
        if dto.tracking_number:
            data["tracking_number"] = dto.tracking_number
        if dto.tracking_url:
            data["tracking_url"] = dto.tracking_url

        with transaction.atomic():
            if not self._order_repo.set_transporter(order.id, ASSIGNABLE_STATES, data):
                raise InvalidStatusTransition(
                    f"Order {order.order_number} is closed; a transporter "
                    "can no longer be assigned."
                )
            recorded = self._state_machine.annotate(
                order,
                "Transporter assigned to order",
                notes=f"Vehicle ID: {dto.vehicle_id}" if dto.vehicle_id else "",
            )
            event_bus.publish_on_commit(
                TransporterAssigned(
                    aggregate_id=order.id,
                    transporter_id=dto.transporter_id,
                    vehicle_id=dto.vehicle_id,
                )
            )

        logger.info(
            "order.transporter_assigned",
            order_id=str(order.id),
            transporter_id=str(dto.transporter_id),
        )
        return self._view(order.id, self._warnings(recorded))

    def pay(self, order_id: UUID, actor: Actor, dto: PaymentDTO) -> OrderOutputDTO:
        """Charge the order through the payment gateway.

        Not wrapped in a transaction: the gateway call must not hold
        database locks.

        Raises:
            OrderNotFound, Unauthorized, AlreadyPaid,
            InvalidStatusTransition, InvalidPayment.
        """
        outcome = self._payments.process(order_id, actor.id, dto)
        return self._view(outcome.order_id, self._warnings(outcome.tracking_recorded))

    def add_tracking_note(
        self, order_id: UUID, actor: Actor, dto: TrackingNoteDTO
    ) -> OrderOutputDTO:
        """Record a location update that keeps the current status."""
        order = self._get(order_id)
        policies.require(policies.can_annotate(actor, order))
        recorded = self._state_machine.annotate(
            order, dto.description, notes=dto.notes, location=dto.location
        )
        return self._view(order.id, self._warnings(recorded))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: UUID, actor: Actor) -> OrderOutputDTO:
        """Retrieve a single order.

        Raises:
            OrderNotFound: the order does not exist.
            Unauthorized: the actor may not read it.
        """
        order = self._get(order_id)
        policies.require(policies.can_read(actor, order))
        return OrderOutputDTO.from_entity(order)

    def get_order_by_number(self, order_number: str, actor: Actor) -> OrderOutputDTO:
        order = self._order_repo.get_by_order_number(order_number)
        if order is None:
            raise OrderNotFound(f"Order {order_number} not found.")
        policies.require(policies.can_read(actor, order))
        return OrderOutputDTO.from_entity(order)

    def list_orders(
        self,
        actor: Actor,
        scope: Optional[str] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> OrderPageDTO:
        """List the orders the actor takes part in, newest first.

        ``scope`` defaults to the actor's role; non-admin actors can only
        list their own role's scope.  Admins see every order and may narrow
        the result with ``filters`` (see ``OrderFilter``).
        """
        page = max(page, 1)
        page_size = page_size or settings.ORDERS_DEFAULT_PAGE_SIZE
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

        lookup = self._scope_lookup(actor, scope)
        if actor.role != ActorRole.ADMIN:
            filters = None

        orders, total = self._order_repo.list_page(lookup, filters, page, page_size)
        pages = math.ceil(total / page_size) if total else 0
        return OrderPageDTO(
            orders=[OrderOutputDTO.from_entity(order) for order in orders],
            total=total,
            page=page,
            pages=pages,
            has_more=page < pages,
        )

    def tracking_history(self, order_id: UUID, actor: Actor) -> List[TrackingEntryDTO]:
        order = self._get(order_id)
        policies.require(policies.can_read(actor, order))
        return [TrackingEntryDTO.from_entity(e) for e in self._ledger.history(order.id)]

    def order_summary(self, actor: Actor) -> OrderSummaryDTO:
        """Counts and revenue over the actor's orders (all orders for admins).

        Revenue sums ``total_amount`` of paid orders; the average is taken
        over those same orders.
        """
        totals = self._order_repo.summary(self._scope_lookup(actor, None))
        return OrderSummaryDTO(**totals)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, order_id: UUID) -> Order:
        order = self._order_repo.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _view(
        self, order_id: UUID, warnings: Optional[List[str]] = None
    ) -> OrderOutputDTO:
        return OrderOutputDTO.from_entity(self._get(order_id), warnings=warnings)

    @staticmethod
    def _warnings(tracking_recorded: bool) -> List[str]:
        return [] if tracking_recorded else [TRACKING_UNAVAILABLE]

    @staticmethod
    def _scope_lookup(actor: Actor, scope: Optional[str]) -> Dict[str, Any]:
        if actor.role == ActorRole.ADMIN:
            return {}
        scope = scope or actor.role
        if scope != actor.role or scope not in SCOPE_FIELDS:
            raise Unauthorized(f"Cannot list orders in the '{scope}' scope.")
        return {SCOPE_FIELDS[scope]: actor.id}

    def _cancel(self, order: Order, actor: Actor, notes: str) -> OrderOutputDTO:
        items = list(order.items.all())
        with transaction.atomic():
            result = self._state_machine.transition(
                order,
                OrderStatus.CANCELLED,
                notes=notes,
                description="Order has been cancelled",
            )
            for item in items:
                self._stock.release(item.product_id, item.quantity)

        logger.info(
            "order.cancelled",
            order_id=str(order.id),
            cancelled_by=str(actor.id),
            previous_status=result.previous_status,
            refunded=result.refunded,
        )
        return self._view(order.id, self._warnings(result.tracking_recorded))

    def _refund(self, order_id: UUID) -> bool:
        return self._payments.refund(order_id)
