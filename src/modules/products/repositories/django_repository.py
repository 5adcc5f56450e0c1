"""Django ORM implementation of the Product catalog repository.

Stock changes are single conditional ``UPDATE`` statements built with
``F()`` expressions::

    UPDATE products SET available_stock = available_stock - :q
    WHERE id = :p AND available_stock >= :q

The affected-row count tells whether the reservation happened, so there is
no window between reading the stock and writing it.

Error handling follows the Null Object pattern: look-ups return ``None``
instead of raising; the Service Layer decides how to translate a missing
entity into a domain error.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.products.models import FarmerVendorLink, Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a product by primary key.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        """Persist (create or update) a product.

        ``available_stock`` is excluded from updates of existing rows;
        stock only moves through ``reserve_stock`` / ``release_stock``.
        """
        if entity._state.adding:
            entity.save()
        else:
            fields = [
                f.name
                for f in Product._meta.concrete_fields
                if not f.primary_key and f.name not in {"available_stock", "created_at"}
            ]
            entity.save(update_fields=fields)
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    def reserve_stock(self, id: UUID, quantity: Decimal) -> bool:
        updated = Product.objects.filter(id=id, available_stock__gte=quantity).update(
            available_stock=F("available_stock") - quantity,
            updated_at=timezone.now(),
        )
        logger.info(
            "product.stock_reserve_attempted",
            product_id=str(id),
            quantity=str(quantity),
            reserved=bool(updated),
        )
        return updated == 1

    def release_stock(self, id: UUID, quantity: Decimal) -> bool:
        updated = Product.objects.filter(id=id).update(
            available_stock=F("available_stock") + quantity,
            updated_at=timezone.now(),
        )
        logger.info(
            "product.stock_released",
            product_id=str(id),
            quantity=str(quantity),
            released=bool(updated),
        )
        return updated == 1

    def get_vendor_for_farmer(self, farmer_id: UUID) -> Optional[UUID]:
        return (
            FarmerVendorLink.objects.filter(farmer_id=farmer_id)
            .values_list("vendor_id", flat=True)
            .first()
        )
