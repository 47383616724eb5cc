"""
============================================================================
Quote Totals Engine - Quote Edit Service
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Decimal inside, float only in the serialized payload
Traceability: Every computation carries a correlation_id

Used by the quote create/edit flow. Turns raw line inputs (as submitted by
a form) into validated QuoteItems and produces the payload persisted with
the quote:

    {
        "items": [{"price", "quantity", "total", "package_id", "package_discount"}],
        "subtotal": ...,
        "total": ...,
    }

Package lines reference a catalog package. Their unit price defaults to
the package base price and the per-unit package discount is captured as
a snapshot so later catalog edits can be audited.

ERROR CODES:
    - QTE-001: Invalid line item (also: price finer than the money scale)
    - QTE-002: Discount out of range

============================================================================
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
import logging
import uuid

from app.money.decimal_gateway import (
    DEFAULT_MONEY_SCALE,
    quantize_money,
    serialize_decimal_fields,
)
from app.logic.line_aggregator import line_total, validate_line
from app.logic.package_discount import unit_package_discount
from app.logic.total_assembler import compute_quote_totals
from app.observability.metrics import record_totals_computed
from services.package_pricing import CatalogPackage, calculate_package_base_price
from services.quote_models import (
    DiscountType,
    InvalidLineItem,
    QuoteItem,
    QuoteTotalsError,
)

logger = logging.getLogger(__name__)


PackageCatalog = Mapping[str, Union[CatalogPackage, Mapping[str, Any]]]


def build_quote_items(
    inputs: Sequence[Mapping[str, Any]],
    packages: Optional[PackageCatalog] = None,
    scale: int = DEFAULT_MONEY_SCALE
) -> List[QuoteItem]:
    """
    Validate raw line inputs and derive each item's total and snapshot.

    Args:
        inputs: Mappings with price, quantity and optional package_id
        packages: Catalog packages by id, for package lines
        scale: Money scale prices must fit in

    Returns:
        QuoteItems with total (and package_discount for package lines) set

    Raises:
        InvalidLineItem: Bad price or quantity, or unknown package id
    """
    catalog = packages or {}
    items = []  # type: List[QuoteItem]

    for index, data in enumerate(inputs):
        package_id = data.get("package_id", data.get("packageId"))
        package = None  # type: Optional[CatalogPackage]

        if package_id is not None:
            raw_package = catalog.get(str(package_id))
            if raw_package is None:
                raise InvalidLineItem(f"unknown package: {package_id}", index)
            package = (
                raw_package if isinstance(raw_package, CatalogPackage)
                else CatalogPackage.from_mapping(raw_package)
            )
            if data.get("price") is None:
                data = dict(data)
                data["price"] = calculate_package_base_price(package)

        item = QuoteItem.from_mapping(data, index)
        validate_line(item.price, item.quantity, index, scale)

        if package is not None:
            item.package_id = str(package_id)
            item.package = package.terms
            item.package_discount = unit_package_discount(item, index=index)

        item.total = line_total(item.price, item.quantity, index)
        items.append(item)

    return items


def price_quote(
    inputs: Sequence[Mapping[str, Any]],
    discount_type: Union[DiscountType, str, None],
    discount_value: Any,
    packages: Optional[PackageCatalog] = None,
    scale: int = DEFAULT_MONEY_SCALE,
    correlation_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Compute the persistence payload for a quote being created or edited.

    Returns:
        Serialized dict (floats) with items, subtotal and total

    Raises:
        InvalidLineItem, DiscountOutOfRange
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    try:
        items = build_quote_items(inputs, packages, scale)
        totals = compute_quote_totals(items, discount_type, discount_value, scale=scale)
    except QuoteTotalsError as e:
        logger.warning(
            f"[{e.error_code}] Quote pricing rejected: {e.message} | "
            f"correlation_id={correlation_id}"
        )
        record_totals_computed(e.error_code, correlation_id)
        raise

    payload = {
        "items": [
            {
                "price": item.price,
                "quantity": item.quantity,
                "total": quantize_money(item.total, scale) if item.total is not None else None,
                "package_id": item.package_id,
                "package_discount": item.package_discount,
            }
            for item in items
        ],
        "subtotal": totals.subtotal,
        "total": totals.total,
    }

    record_totals_computed("ok", correlation_id)
    logger.debug(
        f"Quote priced | items={len(items)} | subtotal={totals.subtotal} | "
        f"total={totals.total} | correlation_id={correlation_id}"
    )

    return serialize_decimal_fields(payload)
