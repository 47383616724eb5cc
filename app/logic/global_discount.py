"""
============================================================================
Quote Totals Engine - Global Discount Applier
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Exact Decimal math, no intermediate rounding
Side Effects: None (pure function)

Applies the quote-level discount to the amount left after package
discounts:

    PERCENTAGE: available * clamp(value, 0, 100) / 100
    FIXED:      min(value, available)
    NONE:       0

The result never exceeds the available amount, so the total cannot go
negative.

ERROR CODES:
    - QTE-002: Negative, non-finite or unknown-type discount (DiscountOutOfRange)

============================================================================
"""

from decimal import Decimal
from typing import Union
import logging

from app.money.decimal_gateway import ZERO, ONE_HUNDRED, clamp, percentage_of
from services.quote_models import DiscountOutOfRange, DiscountType

logger = logging.getLogger(__name__)


def discountable_amount(subtotal: Decimal, package_discounts_total: Decimal) -> Decimal:
    """subtotal - package discounts, floored at zero."""
    remaining = subtotal - package_discounts_total
    if remaining < ZERO:
        logger.warning(
            f"Package discounts exceed subtotal, clamping to zero | "
            f"subtotal={subtotal} | package_discounts_total={package_discounts_total}"
        )
        return ZERO
    return remaining


def apply_global_discount(
    available: Decimal,
    discount_type: Union[DiscountType, str, None],
    discount_value: Decimal
) -> Decimal:
    """
    Compute the quote-level discount amount.

    Args:
        available: Subtotal after package discounts (>= 0)
        discount_type: PERCENTAGE, FIXED or NONE
        discount_value: Percentage or absolute amount

    Returns:
        Discount amount in [0, available]

    Raises:
        DiscountOutOfRange: Negative or non-finite value, unknown type
    """
    kind = DiscountType.parse(discount_type)

    if not isinstance(discount_value, Decimal) or not discount_value.is_finite():
        raise DiscountOutOfRange(
            f"discount_value must be a finite Decimal, got {discount_value!r}"
        )
    if discount_value < 0:
        raise DiscountOutOfRange(f"discount_value cannot be negative, got {discount_value}")

    if kind is DiscountType.PERCENTAGE:
        percent = clamp(discount_value, ZERO, ONE_HUNDRED)
        return percentage_of(available, percent)

    if kind is DiscountType.FIXED:
        return min(discount_value, available)

    return ZERO
