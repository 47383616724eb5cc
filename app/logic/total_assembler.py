"""
============================================================================
Quote Totals Engine - Total Assembler
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Exact pipeline, ROUND_HALF_UP applied once on output
Side Effects: None (pure function, safe to call concurrently)

PIPELINE:
    items --> Line Aggregator            --> subtotal, item totals
          --> Package Discount Resolver  --> package_discounts_total
          --> Global Discount Applier    --> discount_amount
          --> Total Assembler            --> {subtotal, total}

    total = max(subtotal - package_discounts_total, 0) - discount_amount

Prices finer than the output scale are rejected, and the exact stages run
in a trapped high-precision context (see exact_arithmetic), so rounding
never happens anywhere but on the two output values.

Only subtotal and total are written back to the quote. They are a pure
function of the items and the discount configuration, so computing twice
yields identical values.

============================================================================
"""

from decimal import Decimal, Inexact
from typing import Any, Dict, Iterable, Mapping, Tuple, Union
from dataclasses import dataclass
import logging

from app.money.decimal_gateway import (
    DEFAULT_MONEY_SCALE,
    EXACT_PRECISION,
    exact_arithmetic,
    quantize_money,
)
from app.logic.line_aggregator import aggregate_lines
from app.logic.package_discount import resolve_package_discounts
from app.logic.global_discount import apply_global_discount, discountable_amount
from services.quote_models import (
    DiscountOutOfRange,
    DiscountType,
    InvalidLineItem,
    QuoteItem,
    parse_discount_value,
)

logger = logging.getLogger(__name__)


ItemInput = Union[QuoteItem, Mapping[str, Any]]


@dataclass(frozen=True)
class QuoteTotals:
    """
    Result of the totals pipeline.

    subtotal and total are the persisted fields (quantized at the output
    scale). The other fields are an exact breakdown for display.
    """
    subtotal: Decimal
    total: Decimal
    item_totals: Tuple[Decimal, ...] = ()
    package_discounts_total: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        """Persistence payload (Decimal values)."""
        return {
            "subtotal": self.subtotal,
            "total": self.total,
        }


def normalize_items(items: Iterable[ItemInput]) -> Tuple[QuoteItem, ...]:
    """Accept QuoteItem objects or payload mappings."""
    normalized = []
    for index, item in enumerate(items):
        if isinstance(item, QuoteItem):
            normalized.append(item)
        elif isinstance(item, Mapping):
            normalized.append(QuoteItem.from_mapping(item, index))
        else:
            raise InvalidLineItem(
                f"item must be a QuoteItem or mapping, got {type(item).__name__}", index
            )
    return tuple(normalized)


def compute_quote_totals(
    items: Iterable[ItemInput],
    discount_type: Union[DiscountType, str, None],
    discount_value: Any,
    scale: int = DEFAULT_MONEY_SCALE,
    prefer_snapshot: bool = False
) -> QuoteTotals:
    """
    Compute a quote's subtotal and total from its inputs.

    Args:
        items: QuoteItem objects or mappings with price, quantity and an
            optional package / package_discount
        discount_type: Quote-level discount type
        discount_value: Quote-level discount value (Decimal; int, str and
            float are accepted as external input)
        scale: Output decimal places (2-4)
        prefer_snapshot: Use per-item package discount snapshots over live
            package terms

    Returns:
        QuoteTotals with total >= 0 and subtotal == sum(item totals)

    Raises:
        InvalidLineItem: Price or quantity out of range, or a price with
            more decimal places than scale
        DiscountOutOfRange: Discount with no valid interpretation, or one
            with too many digits to apply exactly
    """
    quote_items = normalize_items(items)
    kind = DiscountType.parse(discount_type)
    value = parse_discount_value(discount_value)

    try:
        with exact_arithmetic():
            lines = aggregate_lines(
                ((item.price, item.quantity) for item in quote_items), scale=scale
            )
            packages = resolve_package_discounts(quote_items, prefer_snapshot=prefer_snapshot)

            available = discountable_amount(lines.subtotal, packages.total)
            discount_amount = apply_global_discount(available, kind, value)
            total = available - discount_amount
    except Inexact:
        # Line totals are bounded well inside EXACT_PRECISION; only a
        # percentage with excessive digits can get here.
        raise DiscountOutOfRange(
            f"discount cannot be applied exactly within {EXACT_PRECISION} significant digits"
        )

    return QuoteTotals(
        subtotal=quantize_money(lines.subtotal, scale),
        total=quantize_money(total, scale),
        item_totals=lines.totals,
        package_discounts_total=packages.total,
        discount_amount=discount_amount,
    )
