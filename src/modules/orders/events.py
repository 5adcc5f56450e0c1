"""Domain events for the Orders bounded context.

Published on the in-memory bus after the producing transaction commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import UUID

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""

    order_number: str = ""
    buyer_id: Optional[UUID] = None
    farmer_id: Optional[UUID] = None
    total_amount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order status changes."""

    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order is cancelled."""

    previous_status: str = ""


@dataclass(frozen=True)
class TransporterAssigned(DomainEvent):
    transporter_id: Optional[UUID] = None
    vehicle_id: str = ""


@dataclass(frozen=True)
class PaymentCaptured(DomainEvent):
    payment_reference: str = ""
    amount: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    reason: str = ""


@dataclass(frozen=True)
class PaymentRefunded(DomainEvent):
    payment_reference: str = ""
