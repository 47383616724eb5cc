"""
============================================================================
Quote Totals Engine - Catalog Package Pricing
============================================================================

Reliability Level: L5 High
Decimal Integrity: All prices are decimal.Decimal, no intermediate rounding
Side Effects: None

A catalog package bundles services, each with a quantity:

    base price  = sum(service.price * quantity)
    discount    = PERCENTAGE: base * clamp(value, 0, 100) / 100
                  FIXED:      min(value, base)
                  NONE:       0
    final price = base - discount

When a package is added to a quote it becomes one quote item priced at the
package base price, with the per-unit package discount captured alongside
(see services.quote_totals_service).

============================================================================
"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union
from dataclasses import dataclass, field
import logging

from app.money.decimal_gateway import ZERO, to_decimal
from app.logic.package_discount import resolve_package_discount
from services.quote_models import (
    DiscountType,
    InvalidLineItem,
    PackageTerms,
    _pick,
    parse_discount_value,
)

logger = logging.getLogger(__name__)

UNKNOWN_SERVICE_NAME = "Service inconnu"


@dataclass
class PackageComponent:
    """One service inside a catalog package."""
    quantity: int
    service_name: Optional[str] = None
    service_price: Optional[Decimal] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PackageComponent":
        service = _pick(data, "service", default={})
        raw_price = _pick(service, "price")
        price = None  # type: Optional[Decimal]
        if raw_price is not None:
            try:
                price = to_decimal(raw_price, field_name="service.price")
            except ValueError as e:
                raise InvalidLineItem(f"service price is not a finite number: {raw_price!r}") from e
        return cls(
            quantity=_pick(data, "quantity", default=1),
            service_name=_pick(service, "name"),
            service_price=price,
        )


@dataclass
class CatalogPackage:
    """A bundle of services sold together with its own discount."""
    discount_type: DiscountType = DiscountType.NONE
    discount_value: Decimal = ZERO
    items: List[PackageComponent] = field(default_factory=list)
    id: Optional[str] = None
    name: Optional[str] = None

    @property
    def terms(self) -> PackageTerms:
        return PackageTerms(self.discount_type, self.discount_value)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CatalogPackage":
        """Build from {"discountType", "discountValue", "items": [{"service", "quantity"}]}."""
        package_id = _pick(data, "id")
        return cls(
            discount_type=DiscountType.parse(_pick(data, "discount_type", "discountType")),
            discount_value=parse_discount_value(
                _pick(data, "discount_value", "discountValue"),
                field_name="package.discount_value",
            ),
            items=[PackageComponent.from_mapping(item) for item in _pick(data, "items", default=[])],
            id=str(package_id) if package_id is not None else None,
            name=_pick(data, "name"),
        )


PackageInput = Union[CatalogPackage, Mapping[str, Any]]


def _as_package(package: PackageInput) -> CatalogPackage:
    if isinstance(package, CatalogPackage):
        return package
    return CatalogPackage.from_mapping(package)


def calculate_package_base_price(package: PackageInput) -> Decimal:
    """
    Base price of a package before its discount.

    Components without a priced service count as 0.

    Raises:
        InvalidLineItem: Negative service price or non-positive quantity
    """
    pkg = _as_package(package)
    base = ZERO
    for index, component in enumerate(pkg.items):
        quantity = component.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidLineItem(f"quantity must be a positive integer, got {quantity!r}", index)
        if component.service_price is None:
            logger.warning(
                f"Package component has no service price, counted as 0 | "
                f"package_id={pkg.id} | component_index={index}"
            )
            continue
        if component.service_price < 0:
            raise InvalidLineItem(
                f"service price cannot be negative, got {component.service_price}", index
            )
        base += component.service_price * quantity
    return base


def calculate_package_discount(package: PackageInput, base_price: Optional[Decimal] = None) -> Decimal:
    """
    Discount granted by a package on its base price.

    Args:
        package: Catalog package
        base_price: Precomputed base price (computed when None)

    Returns:
        Discount in [0, base_price]
    """
    pkg = _as_package(package)
    base = base_price if base_price is not None else calculate_package_base_price(pkg)
    return resolve_package_discount(base, pkg.terms)


def calculate_package_final_price(package: PackageInput) -> Decimal:
    """Package price after its own discount."""
    pkg = _as_package(package)
    base = calculate_package_base_price(pkg)
    return base - calculate_package_discount(pkg, base)


def get_package_pricing(package: PackageInput) -> Dict[str, Decimal]:
    """Pricing breakdown: base_price, discount, final_price."""
    pkg = _as_package(package)
    base = calculate_package_base_price(pkg)
    discount = calculate_package_discount(pkg, base)
    return {
        "base_price": base,
        "discount": discount,
        "final_price": base - discount,
    }


def describe_package_services(package: PackageInput) -> str:
    """Human-readable contents, e.g. "Coupe × 1, Brushing × 2"."""
    pkg = _as_package(package)
    return ", ".join(
        f"{component.service_name or UNKNOWN_SERVICE_NAME} × {component.quantity}"
        for component in pkg.items
    )
