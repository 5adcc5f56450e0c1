"""Pricing & validation for new orders.

``PricingEngine.quote`` resolves every requested line against the catalog
and prices the cart.  It only reads from the catalog; stock is reserved
later by the ``StockCoordinator``.

Price composition (all amounts rounded to cents, half up)::

    line total      = unit_price * quantity
    sub_total       = sum(line totals)
    tax_amount      = 10% of sub_total
    shipping_cost   = 0.00 when sub_total > 1000.00, otherwise 50.00
                      (75.00 when the city names a remote area)
    discount_amount = 0.00
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, Tuple
from uuid import UUID

import structlog

from modules.orders.constants import (
    FREE_SHIPPING_THRESHOLD,
    REMOTE_AREA_KEYWORDS,
    REMOTE_AREA_SURCHARGE,
    SHIPPING_BASE_FEE,
    TAX_RATE,
    to_money,
)
from modules.orders.exceptions import (
    InsufficientStock,
    MixedFarmerOrder,
    ProductNotFound,
    ProductUnavailable,
)

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderItemDTO
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


def compute_tax(sub_total: Decimal) -> Decimal:
    return to_money(sub_total * TAX_RATE)


def is_remote_area(city: str) -> bool:
    lowered = (city or "").lower()
    return any(keyword in lowered for keyword in REMOTE_AREA_KEYWORDS)


def compute_shipping(sub_total: Decimal, city: str) -> Decimal:
    """Free strictly above the threshold; otherwise the flat fee plus the
    remote-area surcharge where it applies."""
    if sub_total > FREE_SHIPPING_THRESHOLD:
        return ZERO
    if is_remote_area(city):
        return to_money(SHIPPING_BASE_FEE + REMOTE_AREA_SURCHARGE)
    return to_money(SHIPPING_BASE_FEE)


@dataclass(frozen=True)
class PricedLine:
    """A requested line resolved against its catalog listing."""

    product: Product
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal

    @property
    def product_id(self) -> UUID:
        return self.product.id

    def snapshot(self) -> Dict[str, Any]:
        """OrderItem field values frozen at purchase time."""
        return {
            "product_id": self.product.id,
            "product_name": self.product.name,
            "product_image": self.product.cover_image,
            "unit_price": self.unit_price,
            "unit": self.product.unit,
            "quantity": self.quantity,
            "quality_grade": self.product.quality_grade,
            "organic": self.product.organic,
            "harvest_date": self.product.harvest_date,
        }


@dataclass(frozen=True)
class PriceQuote:
    farmer_id: UUID
    lines: Tuple[PricedLine, ...]
    sub_total: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    discount_amount: Decimal = ZERO

    @property
    def total_amount(self) -> Decimal:
        return to_money(
            self.sub_total + self.tax_amount + self.shipping_cost - self.discount_amount
        )


class PricingEngine:
    """Validates a cart against the catalog and prices it."""

    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    def quote(
        self, items: Iterable[CreateOrderItemDTO], shipping_city: str
    ) -> PriceQuote:
        """Price *items* for delivery to *shipping_city*.

        Raises:
            ProductNotFound: a product id does not resolve.
            ProductUnavailable: a listing is not ``active``.
            InsufficientStock: a quantity exceeds the available stock.
            MixedFarmerOrder: the lines belong to more than one farmer.
        """
        lines = []
        farmer_id = None

        for item in items:
            product = self._product_repo.get_by_id(str(item.product_id))
            if product is None:
                raise ProductNotFound(f"Product {item.product_id} not found.")
            if not product.is_purchasable:
                raise ProductUnavailable(
                    f"Product {product.name} is not available for purchase."
                )
            if item.quantity > product.available_stock:
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}: requested "
                    f"{item.quantity} {product.unit}, available "
                    f"{product.available_stock} {product.unit}."
                )
            if farmer_id is None:
                farmer_id = product.farmer_id
            elif product.farmer_id != farmer_id:
                raise MixedFarmerOrder()

            unit_price = to_money(product.price_per_unit)
            lines.append(
                PricedLine(
                    product=product,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    total_price=to_money(unit_price * item.quantity),
                )
            )

        if not lines:
            raise ValueError("Cannot price an empty order.")

        sub_total = to_money(sum((line.total_price for line in lines), ZERO))
        quote = PriceQuote(
            farmer_id=farmer_id,
            lines=tuple(lines),
            sub_total=sub_total,
            tax_amount=compute_tax(sub_total),
            shipping_cost=compute_shipping(sub_total, shipping_city),
        )
        logger.debug(
            "order.priced",
            farmer_id=str(farmer_id),
            line_count=len(lines),
            sub_total=str(quote.sub_total),
            total_amount=str(quote.total_amount),
        )
        return quote
