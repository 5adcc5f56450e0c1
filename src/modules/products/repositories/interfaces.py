"""Product catalog repository interface.

The narrow contract the order engine consumes from the catalog: snapshot
look-up, the atomic stock primitives, and vendor attribution.
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product catalog."""

    @abstractmethod
    def reserve_stock(self, id: UUID, quantity: Decimal) -> bool:
        """Atomically decrement stock if at least ``quantity`` is available.

        Returns ``False`` (and changes nothing) when stock is insufficient
        or the product does not exist.
        """

    @abstractmethod
    def release_stock(self, id: UUID, quantity: Decimal) -> bool:
        """Atomically give ``quantity`` back to the product's stock."""

    @abstractmethod
    def get_vendor_for_farmer(self, farmer_id: UUID) -> Optional[UUID]:
        """Return the vendor attributed to ``farmer_id``, if any."""
