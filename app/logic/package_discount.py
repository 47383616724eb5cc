"""
============================================================================
Quote Totals Engine - Package Discount Resolver
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Exact Decimal math, no intermediate rounding
Side Effects: None (pure function)

For items that belong to a bundled package, computes that package's
discount against the item's own UNIT price:

    PERCENTAGE: price * clamp(value, 0, 100) / 100
    FIXED:      min(value, price)
    NONE:       0

The per-unit discount is multiplied by the item's quantity, the same way
the item total was derived. Items never interact, even when they share a
package. Standalone items contribute 0.

ERROR CODES:
    - QTE-002: Negative or non-finite package discount (DiscountOutOfRange)

============================================================================
"""

from decimal import Decimal
from typing import Optional, Sequence, Tuple
from dataclasses import dataclass
import logging

from app.money.decimal_gateway import ZERO, ONE_HUNDRED, clamp, percentage_of
from services.quote_models import (
    DiscountOutOfRange,
    DiscountType,
    PackageTerms,
    QuoteItem,
)
from app.logic.line_aggregator import validate_line

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PackageDiscountResolution:
    """Per-item line discounts (input order) and their sum."""
    discounts: Tuple[Decimal, ...]
    total: Decimal


def _check_discount_value(value: Decimal, field_name: str) -> None:
    if not isinstance(value, Decimal) or not value.is_finite():
        raise DiscountOutOfRange(f"{field_name} must be a finite Decimal, got {value!r}")
    if value < 0:
        raise DiscountOutOfRange(f"{field_name} cannot be negative, got {value}")


def resolve_package_discount(price: Decimal, terms: PackageTerms) -> Decimal:
    """
    Per-unit discount granted by a package on one unit of an item.

    Args:
        price: Item unit price (validated, >= 0)
        terms: Package discount descriptor

    Returns:
        Discount in [0, price]

    Raises:
        DiscountOutOfRange: If the package value is negative or not finite
    """
    _check_discount_value(terms.discount_value, "package.discount_value")

    if terms.discount_type is DiscountType.PERCENTAGE:
        percent = clamp(terms.discount_value, ZERO, ONE_HUNDRED)
        return percentage_of(price, percent)

    if terms.discount_type is DiscountType.FIXED:
        return min(terms.discount_value, price)

    return ZERO


def unit_package_discount(
    item: QuoteItem,
    prefer_snapshot: bool = False,
    index: Optional[int] = None
) -> Decimal:
    """
    Per-unit package discount for one item.

    Live package terms win unless prefer_snapshot is set and the item
    carries a snapshot. A snapshot is used as a fallback when the terms
    are unavailable. Snapshots are capped at the unit price.
    """
    validate_line(item.price, item.quantity, index)

    snapshot = item.package_discount
    if snapshot is not None:
        _check_discount_value(snapshot, "package_discount")

    if item.package is not None and not (prefer_snapshot and snapshot is not None):
        return resolve_package_discount(item.price, item.package)

    if snapshot is not None:
        return min(snapshot, item.price)

    if item.package_id is not None:
        logger.debug(
            f"Package terms unavailable, no package discount | "
            f"item_id={item.id} | package_id={item.package_id}"
        )
    return ZERO


def resolve_package_discounts(
    items: Sequence[QuoteItem],
    prefer_snapshot: bool = False
) -> PackageDiscountResolution:
    """
    Line-level package discounts (per-unit discount x quantity) for every item.

    Args:
        items: Quote items in order
        prefer_snapshot: Use per-item snapshots over live package terms

    Returns:
        PackageDiscountResolution; standalone items contribute 0
    """
    discounts = []
    total = ZERO

    for index, item in enumerate(items):
        if not item.is_package_item:
            validate_line(item.price, item.quantity, index)
            discounts.append(ZERO)
            continue

        line_discount = unit_package_discount(item, prefer_snapshot, index) * item.quantity
        discounts.append(line_discount)
        total += line_discount

    return PackageDiscountResolution(discounts=tuple(discounts), total=total)
