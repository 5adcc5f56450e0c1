"""Order DRF serializers for API input.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``; responses are rendered from the
output DTOs.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.core.authentication import ActorRole
from modules.orders.constants import (
    MAX_PAGE_SIZE,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.dtos import (
    AssignTransporterDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    PaymentDTO,
    ShippingInfoDTO,
    TrackingNoteDTO,
    UpdateStatusDTO,
)

# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    """Validates a single item in an order creation request."""

    product_id = serializers.UUIDField()
    quantity = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01")
    )


class ShippingInfoSerializer(serializers.Serializer):
    address = serializers.CharField()
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    zip_code = serializers.CharField(
        max_length=20, required=False, default="", allow_blank=True
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload."""

    shipping = ShippingInfoSerializer()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    items = CreateOrderItemSerializer(many=True, allow_empty=False)

    def validate_items(self, value):
        product_ids = [item["product_id"] for item in value]
        if len(product_ids) != len(set(product_ids)):
            raise serializers.ValidationError(
                "Duplicate product IDs are not allowed in the same order."
            )
        return value

    def to_dto(self) -> CreateOrderDTO:
        data = self.validated_data
        return CreateOrderDTO(
            shipping=ShippingInfoDTO(**data["shipping"]),
            payment_method=data["payment_method"],
            items=[
                CreateOrderItemDTO(
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                )
                for item in data["items"]
            ],
        )


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------


class UpdateStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def to_dto(self) -> UpdateStatusDTO:
        return UpdateStatusDTO(**self.validated_data)


class CancelOrderSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class AssignTransporterSerializer(serializers.Serializer):
    transporter_id = serializers.UUIDField()
    vehicle_id = serializers.CharField(
        max_length=64, required=False, default="", allow_blank=True
    )
    estimated_delivery = serializers.DateTimeField()
    tracking_number = serializers.CharField(
        max_length=100, required=False, default="", allow_blank=True
    )
    tracking_url = serializers.URLField(required=False, default="", allow_blank=True)

    def to_dto(self) -> AssignTransporterDTO:
        return AssignTransporterDTO(**self.validated_data)


class PaymentSerializer(serializers.Serializer):
    """``payment_details`` is passed to the gateway untouched."""

    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_details = serializers.DictField(required=False, default=dict)

    def to_dto(self) -> PaymentDTO:
        data = self.validated_data
        return PaymentDTO(
            payment_method=data["payment_method"],
            details=data["payment_details"],
        )


class TrackingNoteSerializer(serializers.Serializer):
    location = serializers.CharField(
        max_length=255, required=False, default="", allow_blank=True
    )
    description = serializers.CharField()
    notes = serializers.CharField(required=False, default="", allow_blank=True)

    def to_dto(self) -> TrackingNoteDTO:
        return TrackingNoteDTO(**self.validated_data)


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class OrderListQuerySerializer(serializers.Serializer):
    """Query parameters of ``GET /orders/``.

    ``status`` .. ``end_date`` are only honoured for admins.
    """

    scope = serializers.ChoiceField(choices=ActorRole.choices, required=False)
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    page_size = serializers.IntegerField(
        min_value=1, max_value=MAX_PAGE_SIZE, required=False
    )
    status = serializers.ChoiceField(choices=OrderStatus.choices, required=False)
    payment_status = serializers.ChoiceField(
        choices=PaymentStatus.choices, required=False
    )
    buyer = serializers.UUIDField(required=False)
    farmer = serializers.UUIDField(required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    FILTER_FIELDS = (
        "status",
        "payment_status",
        "buyer",
        "farmer",
        "start_date",
        "end_date",
    )

    def filters(self) -> dict:
        return {
            name: str(self.validated_data[name])
            for name in self.FILTER_FIELDS
            if name in self.validated_data
        }
