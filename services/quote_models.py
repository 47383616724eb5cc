"""
============================================================================
Quote Totals Engine - Core Data Models
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All monetary fields are decimal.Decimal
Traceability: Batch operations include correlation_id for audit

This module defines the plain records consumed by the totals engine:
- DiscountType: PERCENTAGE / FIXED / NONE
- PackageTerms: a catalog package's discount descriptor (read-only)
- QuoteItem: one line of a quote (unit price, quantity, cached total)
- Quote: a quote with its discount configuration and cached totals

and the error taxonomy shared by the engine and the recomputation job.

INVARIANTS (hold for every Quote at rest):
    - total >= 0
    - subtotal == sum(item.total)
    - subtotal/total are a cache of compute_quote_totals(items, discount)

ERROR CODES:
    - QTE-001: Invalid line item (negative price, non-positive quantity)
    - QTE-002: Discount out of range (negative, non-finite, unknown type)
    - QTE-003: Persistence failure (batch job, single quote)

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List, Mapping, Union
from dataclasses import dataclass, field
from enum import Enum
import logging

from app.money.decimal_gateway import to_decimal, ZERO

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class QuoteTotalsErrorCode:
    """Quote totals error codes for audit logging."""
    INVALID_LINE_ITEM = "QTE-001"
    DISCOUNT_OUT_OF_RANGE = "QTE-002"
    PERSISTENCE_FAIL = "QTE-003"


# =============================================================================
# Exceptions
# =============================================================================

class QuoteTotalsError(Exception):
    """
    Base class for totals engine errors.

    The message is prefixed with the error code, e.g. "[QTE-001] ...".
    """

    error_code = "QTE-000"

    def __init__(self, message: str, error_code: Optional[str] = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message
        super().__init__(f"[{self.error_code}] {message}")


class InvalidLineItem(QuoteTotalsError):
    """
    A line item carries a negative price or a non-positive quantity.

    This is a caller contract violation, never a discount case, so the
    engine refuses to clamp it.
    """

    error_code = QuoteTotalsErrorCode.INVALID_LINE_ITEM

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        if index is not None:
            message = f"{message} | item_index={index}"
        super().__init__(message)


class DiscountOutOfRange(QuoteTotalsError):
    """A discount value has no valid interpretation (negative, NaN, unknown type)."""

    error_code = QuoteTotalsErrorCode.DISCOUNT_OUT_OF_RANGE


class PersistenceFailure(QuoteTotalsError):
    """Writing one quote's totals failed."""

    error_code = QuoteTotalsErrorCode.PERSISTENCE_FAIL

    def __init__(self, message: str, quote_id: Optional[str] = None):
        self.quote_id = quote_id
        if quote_id is not None:
            message = f"{message} | quote_id={quote_id}"
        super().__init__(message)


# =============================================================================
# Enums
# =============================================================================

class DiscountType(Enum):
    """
    Discount semantics for quotes and packages.

    PERCENTAGE: value is a percentage of the discountable amount
    FIXED: value is an absolute amount
    NONE: no discount regardless of value
    """
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    NONE = "NONE"

    @classmethod
    def parse(cls, value: Union["DiscountType", str, None]) -> "DiscountType":
        """
        Parse a discount type from an enum member or its string name.

        None maps to NONE. Unknown names raise DiscountOutOfRange.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NONE
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise DiscountOutOfRange(f"Unknown discount type: {value!r}")


# =============================================================================
# Helpers
# =============================================================================

def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key (snake_case or camelCase payloads)."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_discount_value(value: Any, field_name: str = "discount_value") -> Decimal:
    """
    Convert a discount value to Decimal.

    None means "no discount" (zero). Unconvertible or non-finite values
    raise DiscountOutOfRange.
    """
    try:
        return to_decimal(value, field_name=field_name, allow_none=True)
    except ValueError as e:
        raise DiscountOutOfRange(f"{field_name} is not a finite number: {value!r}") from e


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class PackageTerms:
    """
    Discount descriptor of a catalog package.

    Read-only to the engine; several items may reference the same terms.
    """
    discount_type: DiscountType
    discount_value: Decimal

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PackageTerms":
        """Build terms from {"discount_type"/"discountType", "discount_value"/"discountValue"}."""
        return cls(
            discount_type=DiscountType.parse(_pick(data, "discount_type", "discountType")),
            discount_value=parse_discount_value(
                _pick(data, "discount_value", "discountValue"),
                field_name="package.discount_value",
            ),
        )


@dataclass
class QuoteItem:
    """
    One line of a quote.

    price is the unit price, total the stored cache of price * quantity.
    An item belongs to a package (package_id set) or stands alone.
    package carries the catalog's current terms; package_discount is the
    per-unit discount captured when the item was added, when available.
    """
    price: Decimal
    quantity: int
    total: Optional[Decimal] = None
    id: Optional[str] = None
    package_id: Optional[str] = None
    package: Optional[PackageTerms] = None
    package_discount: Optional[Decimal] = None

    @property
    def is_package_item(self) -> bool:
        """True when the item is eligible for a package discount."""
        return (
            self.package_id is not None
            or self.package is not None
            or self.package_discount is not None
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], index: Optional[int] = None) -> "QuoteItem":
        """
        Build an item from a payload mapping.

        Accepts snake_case or camelCase keys. Price conversion failures
        raise InvalidLineItem.
        """
        raw_price = _pick(data, "price")
        try:
            price = to_decimal(raw_price, field_name="price")
        except ValueError as e:
            raise InvalidLineItem(f"price is not a finite number: {raw_price!r}", index) from e

        raw_total = _pick(data, "total")
        total = None  # type: Optional[Decimal]
        if raw_total is not None:
            try:
                total = to_decimal(raw_total, field_name="total")
            except ValueError as e:
                raise InvalidLineItem(f"total is not a finite number: {raw_total!r}", index) from e

        package_data = _pick(data, "package")
        package = None  # type: Optional[PackageTerms]
        if isinstance(package_data, PackageTerms):
            package = package_data
        elif package_data is not None:
            package = PackageTerms.from_mapping(package_data)

        raw_package_discount = _pick(data, "package_discount", "packageDiscount")
        package_discount = None  # type: Optional[Decimal]
        if raw_package_discount is not None:
            package_discount = parse_discount_value(
                raw_package_discount, field_name="package_discount"
            )

        item_id = _pick(data, "id")
        package_id = _pick(data, "package_id", "packageId")

        return cls(
            price=price,
            quantity=_pick(data, "quantity", default=1),
            total=total,
            id=str(item_id) if item_id is not None else None,
            package_id=str(package_id) if package_id is not None else None,
            package=package,
            package_discount=package_discount,
        )


@dataclass
class Quote:
    """
    A persisted quote with its items and cached totals.

    subtotal and total are the values currently stored; the engine never
    reads them when computing.
    """
    id: str
    discount_type: DiscountType = DiscountType.FIXED
    discount_value: Decimal = ZERO
    subtotal: Decimal = ZERO
    total: Decimal = ZERO
    business_id: Optional[str] = None
    items: List[QuoteItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "id": self.id,
            "business_id": self.business_id,
            "discount_type": self.discount_type.value,
            "discount_value": str(self.discount_value),
            "subtotal": str(self.subtotal),
            "total": str(self.total),
            "item_count": len(self.items),
        }
