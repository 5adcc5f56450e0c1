"""Order repository interface.

Extends ``IRepository[Order]`` with the methods the order lifecycle needs:
atomic creation with line snapshots, conditional status and payment-status
updates, tracking entries, and scoped listing.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderTracking


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem snapshots and OrderTracking
    entries.  ``status`` and ``payment_status`` are only written through
    the conditional ``update_*`` methods, which report whether the row
    still held the expected value.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any], items: List[Dict[str, Any]]) -> Order:
        """Persist an order and its item snapshots in one transaction."""

    @abstractmethod
    def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """Retrieve an order by its human-readable number."""

    @abstractmethod
    def update_status(
        self,
        id: UUID,
        expected: str,
        new: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set ``status`` to *new* only if it is still *expected*.

        ``extra`` holds side fields written in the same statement.
        Returns ``False`` when no row matched.
        """

    @abstractmethod
    def update_payment_status(
        self,
        id: UUID,
        expected: List[str],
        new: str,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set ``payment_status`` to *new* only if it is one of *expected*."""

    @abstractmethod
    def set_transporter(
        self, id: UUID, allowed_statuses: List[str], data: Dict[str, Any]
    ) -> bool:
        """Write transporter assignment fields while the order is in one of
        *allowed_statuses*."""

    @abstractmethod
    def add_tracking(
        self,
        order_id: UUID,
        status: str,
        description: str = "",
        notes: str = "",
        location: str = "",
    ) -> OrderTracking:
        """Insert a tracking entry."""

    @abstractmethod
    def list_tracking(self, order_id: UUID) -> List[OrderTracking]:
        """Return the tracking entries of an order, oldest first."""

    @abstractmethod
    def list_page(
        self,
        scope: Dict[str, Any],
        filters: Optional[Dict[str, Any]],
        page: int,
        page_size: int,
    ) -> Tuple[List[Order], int]:
        """Return one page of orders matching *scope* and *filters*, plus
        the total match count."""

    @abstractmethod
    def summary(self, scope: Dict[str, Any]) -> Dict[str, Any]:
        """Aggregate counts and revenue over the orders matching *scope*."""
