"""
============================================================================
Quote Totals Engine v1.0.0
Logic Layer - Monetary Total Computation
============================================================================

Reliability Level: L6 Critical

This package contains the pure totals pipeline:
- Line Aggregator: item totals and subtotal
- Package Discount Resolver: per-item package discounts
- Global Discount Applier: quote-level discount
- Total Assembler: compute_quote_totals()

============================================================================
"""

from app.logic.line_aggregator import (
    MAX_QUANTITY,
    MAX_UNIT_PRICE,
    LineAggregation,
    aggregate_lines,
    line_total,
    validate_line,
)

from app.logic.package_discount import (
    PackageDiscountResolution,
    resolve_package_discount,
    resolve_package_discounts,
    unit_package_discount,
)

from app.logic.global_discount import (
    apply_global_discount,
    discountable_amount,
)

from app.logic.total_assembler import (
    QuoteTotals,
    compute_quote_totals,
    normalize_items,
)

__all__ = [
    # Line Aggregator
    "MAX_QUANTITY",
    "MAX_UNIT_PRICE",
    "LineAggregation",
    "aggregate_lines",
    "line_total",
    "validate_line",
    # Package Discount Resolver
    "PackageDiscountResolution",
    "resolve_package_discount",
    "resolve_package_discounts",
    "unit_package_discount",
    # Global Discount Applier
    "apply_global_discount",
    "discountable_amount",
    # Total Assembler
    "QuoteTotals",
    "compute_quote_totals",
    "normalize_items",
]
