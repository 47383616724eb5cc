# ============================================================================
# Quote Totals Engine v1.0.0
# Money Module - Exact Decimal Values
# ============================================================================

from app.money.decimal_gateway import (
    DecimalGateway,
    DecimalGatewayErrorCode,
    ZERO,
    ONE_HUNDRED,
    DEFAULT_MONEY_SCALE,
    EXACT_PRECISION,
    clamp,
    exact_arithmetic,
    exceeds_scale,
    format_currency,
    percentage_of,
    quantize_money,
    scale_to_exponent,
    serialize_decimal_fields,
    to_decimal,
    to_float,
)

__all__ = [
    "DecimalGateway",
    "DecimalGatewayErrorCode",
    "ZERO",
    "ONE_HUNDRED",
    "DEFAULT_MONEY_SCALE",
    "EXACT_PRECISION",
    "clamp",
    "exact_arithmetic",
    "exceeds_scale",
    "format_currency",
    "percentage_of",
    "quantize_money",
    "scale_to_exponent",
    "serialize_decimal_fields",
    "to_decimal",
    "to_float",
]
