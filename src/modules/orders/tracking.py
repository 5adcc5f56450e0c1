"""Tracking ledger: the append-only audit trail of an order."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator, Optional
from uuid import UUID

import structlog
from django.db import DatabaseError, transaction

if TYPE_CHECKING:
    from modules.orders.models import OrderTracking
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class TrackingLedger:
    """Writes and reads ``OrderTracking`` entries.

    ``append`` does not check state-machine legality; the state machine is
    the component that decides which status an entry carries.
    """

    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    def append(
        self,
        order_id: UUID,
        status: str,
        description: str = "",
        notes: str = "",
        location: str = "",
    ) -> OrderTracking:
        entry = self._order_repo.add_tracking(
            order_id=order_id,
            status=status,
            description=description,
            notes=notes,
            location=location,
        )
        logger.info("order.tracking_appended", order_id=str(order_id), status=status)
        return entry

    def try_append(
        self,
        order_id: UUID,
        status: str,
        description: str = "",
        notes: str = "",
        location: str = "",
    ) -> Optional[OrderTracking]:
        """Append inside a savepoint; log and return ``None`` on failure.

        The surrounding transaction stays usable when the insert fails.
        """
        try:
            with transaction.atomic():
                return self.append(
                    order_id,
                    status,
                    description=description,
                    notes=notes,
                    location=location,
                )
        except DatabaseError:
            logger.exception(
                "order.tracking_append_failed",
                order_id=str(order_id),
                status=status,
            )
            return None

    def history(self, order_id: UUID) -> Iterator[OrderTracking]:
        """Entries oldest first.  Each call runs a fresh query."""
        return iter(self._order_repo.list_tracking(order_id))
