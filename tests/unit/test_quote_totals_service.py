"""
Unit Tests for the Quote Edit Service

Reliability Level: L6 Critical
Python 3.8 Compatible

Tests the edit/save helper:
- Raw inputs validated into items with totals and package snapshots
- Persistence payload serialized to floats only at the edge
- Rejections surface as QTE-001 / QTE-002
"""

import pytest
import os
from decimal import Decimal

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from services.quote_totals_service import build_quote_items, price_quote
from services.quote_models import DiscountOutOfRange, DiscountType, InvalidLineItem


CATALOG = {
    "pkg-1": {
        "discountType": "PERCENTAGE",
        "discountValue": 20,
        "items": [
            {"service": {"name": "Coupe", "price": 60}, "quantity": 1},
            {"service": {"name": "Brushing", "price": 20}, "quantity": 2},
        ],
    },
}


class TestBuildQuoteItems:

    def test_item_totals(self) -> None:
        items = build_quote_items([
            {"price": "10.50", "quantity": 2},
            {"price": 25, "quantity": 1},
        ])

        assert [item.total for item in items] == [Decimal("21.00"), Decimal("25")]
        assert not any(item.is_package_item for item in items)

    def test_package_line_uses_base_price_and_snapshot(self) -> None:
        items = build_quote_items([{"packageId": "pkg-1", "quantity": 1}], CATALOG)

        item = items[0]
        assert item.price == Decimal("100")
        assert item.package_id == "pkg-1"
        assert item.package_discount == Decimal("20")
        assert item.total == Decimal("100")

    def test_package_line_with_explicit_price(self) -> None:
        items = build_quote_items([{"package_id": "pkg-1", "price": "90", "quantity": 2}], CATALOG)

        assert items[0].package_discount == Decimal("18")
        assert items[0].total == Decimal("180")

    def test_unknown_package(self) -> None:
        with pytest.raises(InvalidLineItem) as exc_info:
            build_quote_items([{"packageId": "missing", "quantity": 1}], CATALOG)
        assert exc_info.value.index == 0

    def test_price_finer_than_scale(self) -> None:
        with pytest.raises(InvalidLineItem):
            build_quote_items([{"price": "10.505", "quantity": 1}])

    def test_price_fits_wider_scale(self) -> None:
        items = build_quote_items([{"price": "10.505", "quantity": 1}], scale=4)
        assert items[0].total == Decimal("10.505")

    def test_trailing_zeros_are_fine(self) -> None:
        items = build_quote_items([{"price": "10.5000", "quantity": 1}])
        assert items[0].price == Decimal("10.5")

    def test_invalid_quantity(self) -> None:
        with pytest.raises(InvalidLineItem):
            build_quote_items([{"price": "10", "quantity": 0}])


class TestPriceQuote:

    def test_payload(self) -> None:
        payload = price_quote(
            [{"price": "10.50", "quantity": 2}, {"price": "25.00", "quantity": 1}],
            DiscountType.FIXED,
            0,
        )

        assert payload == {
            "items": [
                {"price": 10.5, "quantity": 2, "total": 21.0,
                 "package_id": None, "package_discount": None},
                {"price": 25.0, "quantity": 1, "total": 25.0,
                 "package_id": None, "package_discount": None},
            ],
            "subtotal": 46.0,
            "total": 46.0,
        }

    def test_package_and_global_discount(self) -> None:
        payload = price_quote(
            [{"packageId": "pkg-1", "quantity": 1}], "PERCENTAGE", 10, CATALOG
        )

        assert payload["subtotal"] == 100.0
        assert payload["total"] == 72.0
        assert payload["items"][0]["package_discount"] == 20.0

    def test_float_edge_input(self) -> None:
        payload = price_quote(
            [{"price": 10.10, "quantity": 1}, {"price": 20.20, "quantity": 1}, {"price": 5.55, "quantity": 1}],
            None,
            None,
        )

        assert payload["subtotal"] == 35.85

    def test_rejected_discount(self) -> None:
        with pytest.raises(DiscountOutOfRange):
            price_quote([{"price": "10", "quantity": 1}], "FIXED", -1)

    def test_rejected_item(self) -> None:
        with pytest.raises(InvalidLineItem):
            price_quote([{"price": "-10", "quantity": 1}], "FIXED", 0)
