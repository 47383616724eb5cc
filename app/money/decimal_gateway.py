# ============================================================================
# Quote Totals Engine v1.0.0
# Decimal Gateway - Exact Money Boundary
# ============================================================================
#
# Reliability Level: L6 Critical
# Purpose: Ensures every monetary quantity is a decimal.Decimal
#
# MANDATE:
#   - Float values are accepted ONLY when entering the system (deserialization)
#   - Float values are produced ONLY when leaving the system (serialization)
#   - Rounding (ROUND_HALF_UP) happens once, on externally visible values
#   - Division exists only as "percent of amount" (always terminating)
#
# Error Codes:
#   - MONEY-001: Decimal conversion failed
#   - MONEY-002: Invalid output scale
#   - MONEY-003: Value too large to quantize exactly
#
# ============================================================================

from datetime import date, datetime
from contextlib import contextmanager
from decimal import Context, Decimal, Inexact, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Iterator, Optional, Union
import logging
import math

logger = logging.getLogger(__name__)


Numeric = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE_HUNDRED = Decimal("100")

# Output scale bounds (2-4 decimal places)
MIN_MONEY_SCALE = 2
MAX_MONEY_SCALE = 4
DEFAULT_MONEY_SCALE = 2

# Working precision of the totals pipeline (significant digits)
EXACT_PRECISION = 60

_OUTPUT_CONTEXT = Context(prec=EXACT_PRECISION)


class DecimalGatewayErrorCode:
    """Decimal gateway error codes for audit logging."""
    CONVERSION_FAIL = "MONEY-001"
    INVALID_SCALE = "MONEY-002"
    MAGNITUDE_FAIL = "MONEY-003"


def scale_to_exponent(scale: int) -> Decimal:
    """
    Convert a number of decimal places into a quantize exponent.

    Args:
        scale: Decimal places (2-4)

    Returns:
        Exponent such as Decimal("0.01") for scale 2

    Raises:
        ValueError: If scale is outside [2, 4] (MONEY-002)
    """
    if isinstance(scale, bool) or not isinstance(scale, int):
        raise ValueError(
            f"{DecimalGatewayErrorCode.INVALID_SCALE}: scale must be an int, "
            f"got {type(scale).__name__}"
        )
    if scale < MIN_MONEY_SCALE or scale > MAX_MONEY_SCALE:
        raise ValueError(
            f"{DecimalGatewayErrorCode.INVALID_SCALE}: scale must be between "
            f"{MIN_MONEY_SCALE} and {MAX_MONEY_SCALE}, got {scale}"
        )
    return Decimal(1).scaleb(-scale)


def _quantize(value: Decimal, exponent: Decimal) -> Decimal:
    try:
        return value.quantize(exponent, rounding=ROUND_HALF_UP, context=_OUTPUT_CONTEXT)
    except InvalidOperation:
        raise ValueError(
            f"{DecimalGatewayErrorCode.MAGNITUDE_FAIL}: {value} exceeds "
            f"{EXACT_PRECISION} significant digits at exponent {exponent}"
        )


class DecimalGateway:
    """
    Central conversion layer for monetary values.

    Reliability Level: L6 Critical
    Input Constraints: int, str, Decimal, or float (float only at the edge)
    Side Effects: Logs MONEY-001 on conversion failure

    Example Usage:
        gateway = DecimalGateway()

        # Float input (common from JSON payloads)
        price = gateway.to_decimal(33.33)      # Decimal('33.33')

        # Externally visible value
        total = gateway.quantize_money(Decimal("99.985"))   # Decimal('99.99')

        # Serialization edge
        payload = {"total": gateway.to_float(total)}
    """

    def __init__(self, scale: int = DEFAULT_MONEY_SCALE):
        """
        Initialize DecimalGateway.

        Args:
            scale: Output decimal places for externally visible values
        """
        self.scale = scale
        self._exponent = scale_to_exponent(scale)

    def to_decimal(
        self,
        value: Any,
        field_name: str = "value",
        allow_none: bool = False,
        correlation_id: Optional[str] = None
    ) -> Decimal:
        """
        Convert an incoming value to Decimal without rounding.

        Floats go through str() so that 0.1 becomes Decimal("0.1") instead of
        the binary expansion. This is the only point where a float's
        precision loss is accepted.

        Args:
            value: int, str, Decimal or float
            field_name: Field being converted (for logging)
            allow_none: Treat None as zero instead of failing
            correlation_id: Audit trail identifier

        Returns:
            Exact Decimal

        Raises:
            ValueError: If value cannot be converted or is not finite (MONEY-001)
        """
        if value is None and allow_none:
            return ZERO

        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, bool) or value is None:
            result = None
        elif isinstance(value, int):
            result = Decimal(value)
        elif isinstance(value, float):
            result = None if not math.isfinite(value) else Decimal(str(value))
        elif isinstance(value, str):
            try:
                result = Decimal(value.strip())
            except InvalidOperation:
                result = None
        else:
            # Decimal-like objects from database drivers expose __str__
            try:
                result = Decimal(str(value))
            except (InvalidOperation, ValueError, TypeError):
                result = None

        if result is None or not result.is_finite():
            logger.error(
                f"[{DecimalGatewayErrorCode.CONVERSION_FAIL}] Decimal conversion failed | "
                f"field={field_name} | value={value!r} | type={type(value).__name__} | "
                f"correlation_id={correlation_id}"
            )
            raise ValueError(
                f"{DecimalGatewayErrorCode.CONVERSION_FAIL}: Cannot convert "
                f"{field_name}={value!r} to Decimal"
            )

        return result

    def to_float(self, value: Decimal) -> float:
        """
        One-way conversion for serialization and display.

        Values that have passed through the pipeline must never be converted
        back with to_decimal().
        """
        if not isinstance(value, Decimal):
            raise TypeError(
                f"{DecimalGatewayErrorCode.CONVERSION_FAIL}: to_float expects Decimal, "
                f"got {type(value).__name__}"
            )
        return float(value)

    def quantize_money(self, value: Decimal) -> Decimal:
        """Round an externally visible value with ROUND_HALF_UP at the output scale."""
        return _quantize(value, self._exponent)

    def format_currency(self, value: Numeric, symbol: str = "€") -> str:
        """
        Format value as "123.45 €".

        Fixed format only; locale-aware display is out of scope.
        """
        amount = value if isinstance(value, Decimal) else self.to_decimal(value)
        return f"{self.quantize_money(amount)} {symbol}"


# ============================================================================
# Arithmetic helpers (exact)
# ============================================================================

def percentage_of(amount: Decimal, percent: Decimal) -> Decimal:
    """
    Return amount * percent / 100.

    Dividing a finite decimal by 100 only shifts the exponent, so the
    result is always exact and terminating.
    """
    return (amount * percent).scaleb(-2)


@contextmanager
def exact_arithmetic() -> Iterator[Context]:
    """
    Local Decimal context for the totals pipeline.

    Precision is raised to EXACT_PRECISION and Inexact is trapped: an
    operation that would have to round raises decimal.Inexact instead of
    silently dropping digits.
    """
    with localcontext() as ctx:
        ctx.prec = EXACT_PRECISION
        ctx.traps[Inexact] = True
        yield ctx


def exceeds_scale(value: Decimal, scale: int) -> bool:
    """True when value carries more significant decimal places than scale."""
    return value != value.quantize(scale_to_exponent(scale), context=_OUTPUT_CONTEXT)


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    """Clamp value into [low, high]."""
    if high < low:
        raise ValueError(f"clamp bounds inverted: low={low} high={high}")
    if value < low:
        return low
    if value > high:
        return high
    return value


def serialize_decimal_fields(data: Any) -> Any:
    """
    Recursively convert Decimal to float and dates to ISO strings.

    Used on outbound payloads only. Mappings, lists and tuples are walked;
    callables are dropped; everything else is returned unchanged.
    """
    if data is None:
        return None
    if isinstance(data, Decimal):
        return float(data)
    if isinstance(data, (datetime, date)):
        return data.isoformat()
    if isinstance(data, dict):
        return {
            key: serialize_decimal_fields(value)
            for key, value in data.items()
            if not callable(value)
        }
    if isinstance(data, (list, tuple)):
        return [serialize_decimal_fields(item) for item in data]
    return data


# ============================================================================
# Module-level convenience functions
# ============================================================================

_gateway = DecimalGateway()


def to_decimal(
    value: Any,
    field_name: str = "value",
    allow_none: bool = False,
    correlation_id: Optional[str] = None
) -> Decimal:
    """Module-level convenience function for Decimal conversion."""
    return _gateway.to_decimal(value, field_name, allow_none, correlation_id)


def to_float(value: Decimal) -> float:
    """Module-level convenience function for the serialization edge."""
    return _gateway.to_float(value)


def quantize_money(value: Decimal, scale: int = DEFAULT_MONEY_SCALE) -> Decimal:
    """Round value with ROUND_HALF_UP at the given scale."""
    return _quantize(value, scale_to_exponent(scale))


def format_currency(value: Numeric, symbol: str = "€") -> str:
    """Module-level convenience function for "123.45 €" formatting."""
    return _gateway.format_currency(value, symbol)
