"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each class
carries a stable ``code``; the API layer (Views) translates codes into
HTTP responses without exposing internal detail.
"""

from __future__ import annotations

from modules.core.exceptions import DomainError


class OrderNotFound(DomainError):
    """The requested order does not exist."""

    code = "not_found"
    default_message = "Order not found."


class ProductNotFound(DomainError):
    """A product referenced by an order item does not exist."""

    code = "product_not_found"
    default_message = "Product not found."


class Unauthorized(DomainError):
    """The actor lacks the relationship or role required by the operation."""

    code = "unauthorized"
    default_message = "You are not allowed to perform this action on this order."


class InvalidStatusTransition(DomainError):
    """The state machine rejected the requested status change."""

    code = "invalid_status_transition"
    default_message = "This status change is not allowed for the order."


class InsufficientStock(DomainError):
    """Not enough stock to fulfil an order line."""

    code = "insufficient_stock"
    default_message = "Insufficient stock."


class ProductUnavailable(DomainError):
    """A product's listing is not in the purchasable state."""

    code = "product_unavailable"
    default_message = "Product is not available for purchase."


class MixedFarmerOrder(DomainError):
    """Order items resolve to more than one farmer."""

    code = "mixed_farmer_order"
    default_message = "All products in an order must come from the same farmer."


class AlreadyPaid(DomainError):
    """The order's payment has already been captured."""

    code = "already_paid"
    default_message = "Order is already paid."


class InvalidPayment(DomainError):
    """The payment gateway declined, failed, or timed out."""

    code = "invalid_payment"
    default_message = "Payment could not be processed."
