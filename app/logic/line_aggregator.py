"""
============================================================================
Quote Totals Engine - Line Aggregator
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: price * quantity computed exactly, no rounding
Side Effects: None (pure function)

Sums item totals (unit price x quantity) into the quote subtotal.
No discount logic lives here.

When an output scale is given, prices with more decimal places than that
scale are rejected, so the rounded subtotal always equals the exact sum
of the item totals.

LIMITS:
    unit price <= MAX_UNIT_PRICE, 1 <= quantity <= MAX_QUANTITY

ERROR CODES:
    - QTE-001: Invalid price or quantity (InvalidLineItem)

============================================================================
"""

from decimal import Decimal
from typing import Iterable, Optional, Tuple
from dataclasses import dataclass
import logging

from app.money.decimal_gateway import ZERO, exceeds_scale
from services.quote_models import InvalidLineItem

logger = logging.getLogger(__name__)


MAX_UNIT_PRICE = Decimal("999999999999.9999")
MAX_QUANTITY = 1000000


@dataclass(frozen=True)
class LineAggregation:
    """Per-item totals (same order as the input) and their exact sum."""
    totals: Tuple[Decimal, ...]
    subtotal: Decimal


def validate_line(
    price: object,
    quantity: object,
    index: Optional[int] = None,
    scale: Optional[int] = None
) -> None:
    """
    Reject lines the caller should never have produced.

    Args:
        price: Unit price
        quantity: Number of units
        index: Item position, carried by the error
        scale: When set, prices finer than this many decimal places fail

    Raises:
        InvalidLineItem: price is not a finite Decimal/int in
            [0, MAX_UNIT_PRICE] (or is finer than scale), or quantity is
            not an int in [1, MAX_QUANTITY]
    """
    if isinstance(price, bool) or not isinstance(price, (Decimal, int)):
        raise InvalidLineItem(
            f"price must be Decimal (convert floats at the edge), got {type(price).__name__}",
            index,
        )
    if isinstance(price, Decimal) and not price.is_finite():
        raise InvalidLineItem(f"price must be finite, got {price}", index)
    if price < 0:
        raise InvalidLineItem(f"price cannot be negative, got {price}", index)
    if price > MAX_UNIT_PRICE:
        raise InvalidLineItem(f"price cannot exceed {MAX_UNIT_PRICE}, got {price}", index)

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidLineItem(
            f"quantity must be an integer, got {type(quantity).__name__}", index
        )
    if quantity < 1:
        raise InvalidLineItem(f"quantity must be at least 1, got {quantity}", index)
    if quantity > MAX_QUANTITY:
        raise InvalidLineItem(f"quantity cannot exceed {MAX_QUANTITY}, got {quantity}", index)

    if scale is not None and exceeds_scale(Decimal(price), scale):
        raise InvalidLineItem(
            f"price has more than {scale} decimal places: {price}", index
        )


def line_total(
    price: Decimal,
    quantity: int,
    index: Optional[int] = None,
    scale: Optional[int] = None
) -> Decimal:
    """Validated price * quantity."""
    validate_line(price, quantity, index, scale)
    return Decimal(price) * quantity


def aggregate_lines(
    lines: Iterable[Tuple[Decimal, int]],
    scale: Optional[int] = None
) -> LineAggregation:
    """
    Compute per-item totals and the subtotal.

    Args:
        lines: Ordered (price, quantity) pairs
        scale: Output scale prices must fit in (no check when None)

    Returns:
        LineAggregation with totals[i] == price_i * quantity_i and
        subtotal == sum(totals)

    Raises:
        InvalidLineItem: On the first invalid line
    """
    totals = []
    subtotal = ZERO

    for index, (price, quantity) in enumerate(lines):
        total = line_total(price, quantity, index, scale)
        totals.append(total)
        subtotal += total

    return LineAggregation(totals=tuple(totals), subtotal=subtotal)
