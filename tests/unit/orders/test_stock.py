"""Unit tests for the stock coordinator.

Covers:
- reserve() raises InsufficientStock when the conditional update misses.
- reserve_all() reserves in product-id order.
- A failed line releases every earlier reservation, then re-raises.
- release() never raises; it reports failure instead.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock, call
from uuid import UUID

import pytest
from django.db import DatabaseError

from modules.orders.exceptions import InsufficientStock
from modules.orders.stock import StockCoordinator

pytestmark = pytest.mark.unit

FIRST = UUID("00000000-0000-7000-8000-000000000001")
SECOND = UUID("00000000-0000-7000-8000-000000000002")
THIRD = UUID("00000000-0000-7000-8000-000000000003")


@pytest.fixture()
def catalog():
    repo = MagicMock()
    repo.reserve_stock.return_value = True
    repo.release_stock.return_value = True
    return repo


@pytest.fixture()
def stock(catalog):
    return StockCoordinator(catalog)


class TestReserve:
    def test_success(self, stock, catalog):
        stock.reserve(FIRST, Decimal("2"))
        catalog.reserve_stock.assert_called_once_with(FIRST, Decimal("2"))

    def test_insufficient(self, stock, catalog):
        catalog.reserve_stock.return_value = False
        with pytest.raises(InsufficientStock):
            stock.reserve(FIRST, Decimal("2"))


class TestReserveAll:
    def test_reserves_in_product_id_order(self, stock, catalog):
        lines = [(THIRD, Decimal("1")), (FIRST, Decimal("2")), (SECOND, Decimal("3"))]

        reserved = stock.reserve_all(lines)

        assert [line[0] for line in reserved] == [FIRST, SECOND, THIRD]
        assert catalog.reserve_stock.call_args_list == [
            call(FIRST, Decimal("2")),
            call(SECOND, Decimal("3")),
            call(THIRD, Decimal("1")),
        ]

    def test_failure_compensates_earlier_lines(self, stock, catalog):
        catalog.reserve_stock.side_effect = [True, True, False]
        lines = [(FIRST, Decimal("2")), (SECOND, Decimal("3")), (THIRD, Decimal("1"))]

        with pytest.raises(InsufficientStock):
            stock.reserve_all(lines)

        assert catalog.release_stock.call_args_list == [
            call(FIRST, Decimal("2")),
            call(SECOND, Decimal("3")),
        ]

    def test_database_error_compensates(self, stock, catalog):
        catalog.reserve_stock.side_effect = [True, DatabaseError("deadlock")]

        with pytest.raises(DatabaseError):
            stock.reserve_all([(FIRST, Decimal("1")), (SECOND, Decimal("1"))])

        catalog.release_stock.assert_called_once_with(FIRST, Decimal("1"))

    def test_first_line_failure_releases_nothing(self, stock, catalog):
        catalog.reserve_stock.return_value = False

        with pytest.raises(InsufficientStock):
            stock.reserve_all([(FIRST, Decimal("1"))])

        catalog.release_stock.assert_not_called()


class TestRelease:
    def test_success(self, stock):
        assert stock.release(FIRST, Decimal("1")) is True

    def test_database_error_is_swallowed(self, stock, catalog):
        catalog.release_stock.side_effect = DatabaseError("connection lost")
        assert stock.release(FIRST, Decimal("1")) is False

    def test_release_all_continues_after_failure(self, stock, catalog):
        catalog.release_stock.side_effect = [DatabaseError("boom"), True]

        stock.release_all([(FIRST, Decimal("1")), (SECOND, Decimal("2"))])

        assert catalog.release_stock.call_count == 2
