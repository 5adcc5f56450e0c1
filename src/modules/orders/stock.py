"""Stock coordination for order creation and cancellation.

Every stock change goes through the catalog's atomic primitives
(``reserve_stock`` / ``release_stock``).  A reservation is permanent once
it succeeds; undoing it is a compensating release.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, List, Tuple
from uuid import UUID

import structlog
from django.db import DatabaseError, transaction

from modules.orders.exceptions import InsufficientStock

if TYPE_CHECKING:
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

StockLine = Tuple[UUID, Decimal]


class StockCoordinator:
    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    def reserve(self, product_id: UUID, quantity: Decimal) -> None:
        """Decrement stock by *quantity* or raise ``InsufficientStock``."""
        with transaction.atomic():
            reserved = self._product_repo.reserve_stock(product_id, quantity)
        if not reserved:
            logger.warning(
                "order.stock_reservation_rejected",
                product_id=str(product_id),
                quantity=str(quantity),
            )
            raise InsufficientStock(
                f"Insufficient stock for product {product_id}: requested {quantity}."
            )
        logger.info(
            "order.stock_reserved",
            product_id=str(product_id),
            quantity=str(quantity),
        )

    def reserve_all(self, lines: Iterable[StockLine]) -> List[StockLine]:
        """Reserve every line, in product-id order.

        On the first failure every reservation already made is released
        and the error is re-raised.  Returns the reserved lines.
        """
        reserved: List[StockLine] = []
        try:
            for product_id, quantity in sorted(lines, key=lambda line: str(line[0])):
                self.reserve(product_id, quantity)
                reserved.append((product_id, quantity))
        except (InsufficientStock, DatabaseError):
            self.release_all(reserved)
            raise
        return reserved

    def release(self, product_id: UUID, quantity: Decimal) -> bool:
        """Give *quantity* back to the product.  Never raises.

        Runs in a savepoint so a failure leaves the caller's transaction
        usable.
        """
        try:
            with transaction.atomic():
                released = self._product_repo.release_stock(product_id, quantity)
        except DatabaseError:
            logger.exception(
                "order.stock_release_failed",
                product_id=str(product_id),
                quantity=str(quantity),
            )
            return False
        if not released:
            logger.error(
                "order.stock_release_failed",
                product_id=str(product_id),
                quantity=str(quantity),
            )
        return released

    def release_all(self, lines: Iterable[StockLine]) -> None:
        for product_id, quantity in lines:
            self.release(product_id, quantity)
