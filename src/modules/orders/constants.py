"""Order domain constants.

Defines the closed enumerations of the order aggregate, the status
transition table, the payment-status graph, and the pricing parameters.
"""

from decimal import ROUND_HALF_UP, Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    IN_TRANSIT = "in_transit", "In transit"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PaymentMethod(models.TextChoices):
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    CREDIT_CARD = "credit_card", "Credit card"
    DIGITAL_WALLET = "digital_wallet", "Digital wallet"
    UPI = "upi", "UPI"
    CASH_ON_DELIVERY = "cash_on_delivery", "Cash on delivery"


VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Goods in the carrier's hands cannot be cancelled unilaterally.
CANCELLABLE_STATES: frozenset[str] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}
)

TERMINAL_STATES: frozenset[str] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
)

# Payment status never regresses: no edge leads back to ``pending``.
PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Round *value* to cents, half away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


TAX_RATE = Decimal("0.10")
SHIPPING_BASE_FEE = Decimal("50.00")
FREE_SHIPPING_THRESHOLD = Decimal("1000.00")
REMOTE_AREA_SURCHARGE = Decimal("25.00")
REMOTE_AREA_KEYWORDS: tuple[str, ...] = ("remote", "rural", "mountain")

DELIVERY_LEAD_DAYS = 5

ORDER_NUMBER_MAX_RETRIES = 5

MAX_PAGE_SIZE = 100

# Warning attached to an order view when its tracking entry was not written.
TRACKING_UNAVAILABLE = "tracking_unavailable"
