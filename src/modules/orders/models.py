"""Order, OrderItem, and OrderTracking models.

Business rules implemented:
- Order number auto-generated as an immutable human-readable identifier.
- ``total_amount`` is always ``sub_total + tax_amount + shipping_cost -
  discount_amount`` (recalculated on every save, never editable).
- OrderItem snapshots the catalog listing at creation time; nothing is
  re-read from the catalog afterwards.
- OrderItem ``total_price`` is always ``unit_price * quantity``.
- OrderTracking is append-only: updates raise, deletes are refused.
- Orders are never physically deleted; cancellation is a status value.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

import structlog
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    CANCELLABLE_STATES,
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    to_money,
)

logger = structlog.get_logger(__name__)

_MONEY = {"max_digits": 12, "decimal_places": 2}


class Order(BaseModel):
    """Order aggregate root.

    ``order_number`` is a human-readable identifier auto-generated on first
    save (format: ``ORD-YYYYMMDDHHMMSS-xxxxxxxx``).  The UUIDv7 ``id`` is used
    for all internal references and API lookups.

    ``status`` and ``payment_status`` are independent axes: both are only
    ever written through conditional updates in the repository, never by
    assigning the field and calling ``save()``.
    """

    order_number = models.CharField(max_length=40, unique=True, editable=False)

    # Parties
    buyer_id = models.UUIDField()
    farmer_id = models.UUIDField()
    vendor_id = models.UUIDField(null=True, blank=True)
    transporter_id = models.UUIDField(null=True, blank=True)
    vehicle_id = models.CharField(max_length=64, blank=True, default="")

    # Money
    sub_total = models.DecimalField(**_MONEY)
    tax_amount = models.DecimalField(**_MONEY, default=Decimal("0.00"))
    shipping_cost = models.DecimalField(**_MONEY, default=Decimal("0.00"))
    discount_amount = models.DecimalField(**_MONEY, default=Decimal("0.00"))
    total_amount = models.DecimalField(**_MONEY, editable=False)

    # Status
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )

    # Payment
    payment_method = models.CharField(max_length=30, choices=PaymentMethod.choices)
    payment_reference = models.CharField(max_length=255, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)

    # Shipping
    shipping_address = models.TextField()
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_zip_code = models.CharField(max_length=20, blank=True, default="")
    shipping_notes = models.TextField(blank=True, default="")

    # Delivery
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    actual_delivery = models.DateTimeField(null=True, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True, default="")
    tracking_url = models.URLField(blank=True, default="")

    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["buyer_id", "status"], name="orders_buyer_status_idx"),
            models.Index(fields=["farmer_id", "status"], name="orders_farmer_status_idx"),
            models.Index(fields=["transporter_id"], name="orders_transporter_idx"),
            models.Index(fields=["payment_status"], name="orders_payment_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if no further status edge leaves the current state."""
        return self.status in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATES

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        if new_status == OrderStatus.CANCELLED and not self.is_cancellable:
            return False
        return new_status in VALID_TRANSITIONS.get(self.status, frozenset())

    # ------------------------------------------------------------------
    # Money
    # ------------------------------------------------------------------

    def compute_total(self) -> Decimal:
        return to_money(
            self.sub_total + self.tax_amount + self.shipping_cost - self.discount_amount
        )

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDDHHMMSS-xxxxxxxx``."""
        now = timezone.now()
        return f"ORD-{now:%Y%m%d%H%M%S}-{uuid.uuid4().hex[:8]}"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        self.total_amount = self.compute_total()
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "total_amount" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["total_amount"]
        super().save(*args, **kwargs)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status}/{self.payment_status})"


class OrderItem(BaseModel):
    """Line item snapshot of a catalog listing.

    ``unit_price``, ``product_name``, ``product_image``, ``unit``,
    ``quality_grade``, ``organic`` and ``harvest_date`` are copied from the
    product at purchase time and never change, even if the listing does.
    ``product_id`` is a plain reference, not a foreign key: the snapshot
    must survive any later change to the catalog row.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product_id = models.UUIDField(db_index=True)
    product_name = models.CharField(max_length=255)
    product_image = models.TextField(blank=True, default="")
    unit_price = models.DecimalField(**_MONEY)
    unit = models.CharField(max_length=20)
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    total_price = models.DecimalField(**_MONEY, editable=False)
    quality_grade = models.CharField(max_length=20, blank=True, default="")
    organic = models.BooleanField(default=False)
    harvest_date = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="order_items_quantity_positive",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.total_price = to_money(self.unit_price * self.quantity)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product_name} x{self.quantity} {self.unit} ({self.total_price})"


class OrderTracking(BaseModel):
    """Append-only audit trail of an order's lifecycle.

    ``status`` is the order status in effect when the entry was written.
    Entries that do not change the status (transporter assignment, location
    updates) repeat the current status, so reading the trail oldest-first
    always walks the state machine.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="tracking",
    )
    status = models.CharField(max_length=20, choices=OrderStatus.choices)
    location = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_tracking"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="order_tracking_order_idx",
            ),
        ]

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise ValueError("Tracking entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        raise ValueError("Tracking entries are append-only.")

    def __str__(self) -> str:
        return f"{self.order_id} @ {self.status}: {self.description}"
