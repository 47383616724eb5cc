"""
============================================================================
Quote Totals Engine - Services Layer
============================================================================

Quote records, configuration, persistence and the edit/catalog helpers
built on the totals pipeline in app.logic.

Import the helper modules directly (services.quote_repository,
services.package_pricing, services.quote_totals_service); only the
dependency-free records are re-exported here.

Reliability Level: L6 Critical
============================================================================
"""

from services.quote_models import (
    DiscountOutOfRange,
    DiscountType,
    InvalidLineItem,
    PackageTerms,
    PersistenceFailure,
    Quote,
    QuoteItem,
    QuoteTotalsError,
    QuoteTotalsErrorCode,
)

from services.quote_config import (
    QuoteTotalsConfig,
    QuoteTotalsConfigurationError,
    get_quote_totals_config,
    reset_quote_totals_config,
)

__all__ = [
    # Models
    "DiscountOutOfRange",
    "DiscountType",
    "InvalidLineItem",
    "PackageTerms",
    "PersistenceFailure",
    "Quote",
    "QuoteItem",
    "QuoteTotalsError",
    "QuoteTotalsErrorCode",
    # Config
    "QuoteTotalsConfig",
    "QuoteTotalsConfigurationError",
    "get_quote_totals_config",
    "reset_quote_totals_config",
]
