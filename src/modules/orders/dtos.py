"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

Input:
- ``CreateOrderItemDTO`` / ``ShippingInfoDTO`` / ``CreateOrderDTO``
- ``UpdateStatusDTO``, ``AssignTransporterDTO``, ``PaymentDTO``,
  ``TrackingNoteDTO``

Output:
- ``OrderItemOutputDTO``, ``TrackingEntryDTO``, ``OrderOutputDTO`` (the
  order view), ``OrderPageDTO``, ``OrderSummaryDTO``
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.orders.constants import OrderStatus, PaymentMethod

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderTracking


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderItemDTO(BaseModel):
    """A single (product, quantity) pair from the buyer's cart.

    ``unit_price`` is never accepted from the client; it is resolved from
    the catalog by the pricing engine.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: Decimal

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero.")
        return v


class ShippingInfoDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = ""
    notes: str = ""


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``items`` must contain at least one item.
    - A product may appear only once per order.
    """

    model_config = ConfigDict(frozen=True)

    shipping: ShippingInfoDTO
    payment_method: PaymentMethod
    items: List[CreateOrderItemDTO]

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        return self


class UpdateStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    notes: str = ""


class AssignTransporterDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    transporter_id: UUID
    vehicle_id: str = ""
    estimated_delivery: datetime
    tracking_number: str = ""
    tracking_url: str = ""


class PaymentDTO(BaseModel):
    """Payment request forwarded to the gateway.

    ``details`` is opaque to the order engine (card token, UPI handle...).
    """

    model_config = ConfigDict(frozen=True)

    payment_method: PaymentMethod
    details: Dict[str, Any] = Field(default_factory=dict)


class TrackingNoteDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: str = ""
    description: str = Field(min_length=1)
    notes: str = ""


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderItemOutputDTO(BaseModel):
    """Immutable snapshot of an order line."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    product_id: UUID
    product_name: str
    product_image: str
    unit_price: Decimal
    quantity: Decimal
    unit: str
    total_price: Decimal
    quality_grade: str
    organic: bool
    harvest_date: Optional[datetime]

    @classmethod
    def from_entity(cls, item: OrderItem) -> OrderItemOutputDTO:
        return cls(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            product_image=item.product_image,
            unit_price=item.unit_price,
            quantity=item.quantity,
            unit=item.unit,
            total_price=item.total_price,
            quality_grade=item.quality_grade,
            organic=item.organic,
            harvest_date=item.harvest_date,
        )


class TrackingEntryDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    status: str
    location: str
    description: str
    notes: str
    created_at: datetime

    @classmethod
    def from_entity(cls, entry: OrderTracking) -> TrackingEntryDTO:
        return cls(
            id=entry.id,
            status=entry.status,
            location=entry.location,
            description=entry.description,
            notes=entry.notes,
            created_at=entry.created_at,
        )


class OrderOutputDTO(BaseModel):
    """Order view: every Order field, the line snapshots, and the full
    tracking history (oldest first).

    ``warnings`` lists non-fatal problems of the operation that produced
    the view (e.g. ``tracking_unavailable`` when the audit entry could not
    be written).
    """

    model_config = ConfigDict(frozen=True)

    id: UUID
    order_number: str
    buyer_id: UUID
    farmer_id: UUID
    vendor_id: Optional[UUID]
    transporter_id: Optional[UUID]
    vehicle_id: str
    sub_total: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    status: str
    payment_status: str
    payment_method: str
    payment_reference: str
    paid_at: Optional[datetime]
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_zip_code: str
    shipping_notes: str
    estimated_delivery: Optional[datetime]
    actual_delivery: Optional[datetime]
    tracking_number: str
    tracking_url: str
    cancelled_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOutputDTO]
    tracking_history: List[TrackingEntryDTO]
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_entity(
        cls,
        order: Order,
        history: Optional[List[OrderTracking]] = None,
        warnings: Optional[List[str]] = None,
    ) -> OrderOutputDTO:
        """Build the view from an Order instance.

        Assumes ``items`` is prefetched.  ``history`` defaults to the
        prefetched ``tracking`` relation.
        """
        entries = history if history is not None else list(order.tracking.all())
        return cls(
            id=order.id,
            order_number=order.order_number,
            buyer_id=order.buyer_id,
            farmer_id=order.farmer_id,
            vendor_id=order.vendor_id,
            transporter_id=order.transporter_id,
            vehicle_id=order.vehicle_id,
            sub_total=order.sub_total,
            tax_amount=order.tax_amount,
            shipping_cost=order.shipping_cost,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_reference=order.payment_reference,
            paid_at=order.paid_at,
            shipping_address=order.shipping_address,
            shipping_city=order.shipping_city,
            shipping_state=order.shipping_state,
            shipping_zip_code=order.shipping_zip_code,
            shipping_notes=order.shipping_notes,
            estimated_delivery=order.estimated_delivery,
            actual_delivery=order.actual_delivery,
            tracking_number=order.tracking_number,
            tracking_url=order.tracking_url,
            cancelled_at=order.cancelled_at,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=[OrderItemOutputDTO.from_entity(i) for i in order.items.all()],
            tracking_history=[TrackingEntryDTO.from_entity(e) for e in entries],
            warnings=list(warnings or []),
        )


class OrderPageDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    orders: List[OrderOutputDTO]
    total: int
    page: int
    pages: int
    has_more: bool


class OrderSummaryDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
