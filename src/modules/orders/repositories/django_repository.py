"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Creation wraps the Order row and its OrderItem snapshots in
``transaction.atomic()`` so the aggregate is persisted as a unit.

Status and payment-status changes never read-modify-write the row.  They
are conditional updates::

    UPDATE orders SET status = :new WHERE id = :id AND status = :expected

and the affected-row count is returned to the caller, who decides whether
a mismatch is an error.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q, QuerySet, Sum
from django.utils import timezone

from modules.orders.constants import OrderStatus, PaymentStatus, to_money
from modules.orders.filters import OrderFilter
from modules.orders.models import Order, OrderItem, OrderTracking
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        """Create an order with its item snapshots atomically.

        ``data`` holds the Order field values; each entry of ``items`` holds
        the OrderItem snapshot fields (``product_id``, ``product_name``,
        ``unit_price``, ``quantity``...).
        """
        order = Order(**data)
        order.save()

        for item_data in items:
            OrderItem(order=order, **item_data).save()

        log = logger.bind(order_id=str(order.id), item_count=len(items))
        log.info("order.persisted", order_number=order.order_number)
        return order

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist (create or update) an order.

        ``status`` and ``payment_status`` are excluded from updates of
        existing rows; use the conditional ``update_*`` methods instead.
        """
        if entity._state.adding:
            entity.save()
        else:
            fields = [
                f.name
                for f in Order._meta.concrete_fields
                if not f.primary_key
                and f.name not in {"status", "payment_status", "created_at"}
            ]
            entity.save(update_fields=fields)
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    # ------------------------------------------------------------------
    # Conditional updates
    # ------------------------------------------------------------------

    def update_status(
        self,
        id: UUID,
        expected: str,
        new: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        updated = Order.objects.filter(id=id, status=expected).update(
            status=new,
            updated_at=timezone.now(),
            **(extra or {}),
        )
        logger.info(
            "order.status_update_attempted",
            order_id=str(id),
            expected=expected,
            new_status=new,
            applied=bool(updated),
        )
        return updated == 1

    def update_payment_status(
        self,
        id: UUID,
        expected: List[str],
        new: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        updated = Order.objects.filter(id=id, payment_status__in=expected).update(
            payment_status=new,
            updated_at=timezone.now(),
            **(extra or {}),
        )
        logger.info(
            "order.payment_status_update_attempted",
            order_id=str(id),
            expected=list(expected),
            new_payment_status=new,
            applied=bool(updated),
        )
        return updated == 1

    def set_transporter(
        self, id: UUID, allowed_statuses: List[str], data: Dict[str, Any]
    ) -> bool:
        updated = Order.objects.filter(id=id, status__in=allowed_statuses).update(
            updated_at=timezone.now(),
            **data,
        )
        return updated == 1

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def add_tracking(
        self,
        order_id: UUID,
        status: str,
        description: str = "",
        notes: str = "",
        location: str = "",
    ) -> OrderTracking:
        entry = OrderTracking(
            order_id=order_id,
            status=status,
            description=description,
            notes=notes,
            location=location,
        )
        entry.save()
        return entry

    def list_tracking(self, order_id: UUID) -> List[OrderTracking]:
        return list(
            OrderTracking.objects.filter(order_id=order_id).order_by("created_at", "id")
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _base_queryset(self) -> QuerySet[Order]:
        return Order.objects.prefetch_related("items", "tracking")

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and tracking entries.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._base_queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        return self._base_queryset().filter(order_number=order_number).first()

    def list_page(
        self,
        scope: Dict[str, Any],
        filters: Optional[Dict[str, Any]],
        page: int,
        page_size: int,
    ) -> Tuple[List[Order], int]:
        """List one page of orders, newest first.

        ``scope`` is applied as plain field lookups (e.g. ``buyer_id``);
        ``filters`` go through ``OrderFilter``.
        """
        queryset = self._base_queryset().filter(**scope)
        if filters:
            queryset = OrderFilter(data=filters, queryset=queryset).qs
        queryset = queryset.order_by("-created_at", "-id")

        total = queryset.count()
        offset = (page - 1) * page_size
        return list(queryset[offset : offset + page_size]), total

    def summary(self, scope: Dict[str, Any]) -> Dict[str, Any]:
        paid = Q(payment_status=PaymentStatus.PAID)
        totals = Order.objects.filter(**scope).aggregate(
            total_orders=Count("id"),
            pending_orders=Count("id", filter=Q(status=OrderStatus.PENDING)),
            completed_orders=Count("id", filter=Q(status=OrderStatus.DELIVERED)),
            cancelled_orders=Count("id", filter=Q(status=OrderStatus.CANCELLED)),
            paid_orders=Count("id", filter=paid),
            total_revenue=Sum("total_amount", filter=paid),
        )
        revenue = to_money(totals.pop("total_revenue") or 0)
        paid_orders = totals.pop("paid_orders")
        totals["total_revenue"] = revenue
        totals["average_order_value"] = (
            to_money(revenue / paid_orders) if paid_orders else Decimal("0.00")
        )
        return totals
