"""
============================================================================
Quote Totals Engine - Configuration
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Drift epsilon parsed as decimal.Decimal

This module provides configuration management for the totals engine and
the recomputation job:
- Environment variable parsing with type safety (.env supported)
- Default values for optional configuration
- Validation with fail-closed behavior (CFG-001)

ENVIRONMENT VARIABLES:
    - QUOTE_MONEY_SCALE: Output decimal places, 2-4 (default: 2)
    - QUOTE_DRIFT_EPSILON: Stored/computed difference treated as equal
      (default: 0.0001)
    - QUOTE_PACKAGE_TERMS_SOURCE: "live" or "snapshot" (default: live)

ERROR CODES:
    - CFG-001: Invalid configuration

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, List
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

from app.money.decimal_gateway import (
    DEFAULT_MONEY_SCALE,
    MIN_MONEY_SCALE,
    MAX_MONEY_SCALE,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class QuoteConfigErrorCode:
    """Configuration error codes for audit logging."""
    CONFIG_INVALID = "CFG-001"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_DRIFT_EPSILON = Decimal("0.0001")

PACKAGE_TERMS_LIVE = "live"
PACKAGE_TERMS_SNAPSHOT = "snapshot"
PACKAGE_TERMS_SOURCES = (PACKAGE_TERMS_LIVE, PACKAGE_TERMS_SNAPSHOT)

DEFAULT_PACKAGE_TERMS_SOURCE = PACKAGE_TERMS_LIVE


# =============================================================================
# Configuration Exception
# =============================================================================

class QuoteTotalsConfigurationError(Exception):
    """Raised when configuration is invalid (CFG-001)."""

    def __init__(self, message: str, error_code: str = QuoteConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# QuoteTotalsConfig Class
# =============================================================================

@dataclass
class QuoteTotalsConfig:
    """
    Totals engine configuration.

    - money_scale: decimal places of persisted subtotal/total (2-4)
    - drift_epsilon: differences at or below this are not drift
    - package_terms_source: "live" uses the catalog's current package
      terms, "snapshot" prefers the per-item discount captured at edit time
    """

    money_scale: int = DEFAULT_MONEY_SCALE
    drift_epsilon: Decimal = field(default_factory=lambda: DEFAULT_DRIFT_EPSILON)
    package_terms_source: str = DEFAULT_PACKAGE_TERMS_SOURCE

    def __post_init__(self) -> None:
        if not isinstance(self.drift_epsilon, Decimal):
            self.drift_epsilon = Decimal(str(self.drift_epsilon))
        self.package_terms_source = str(self.package_terms_source).strip().lower()

    @property
    def prefer_snapshot(self) -> bool:
        """True when per-item snapshots take precedence over live package terms."""
        return self.package_terms_source == PACKAGE_TERMS_SNAPSHOT

    def validate(self) -> None:
        """
        Validate configuration.

        Raises:
            QuoteTotalsConfigurationError: If any value is out of range
        """
        errors: List[str] = []

        if (
            isinstance(self.money_scale, bool)
            or not isinstance(self.money_scale, int)
            or not MIN_MONEY_SCALE <= self.money_scale <= MAX_MONEY_SCALE
        ):
            errors.append(
                f"QUOTE_MONEY_SCALE must be between {MIN_MONEY_SCALE} and "
                f"{MAX_MONEY_SCALE}, got: {self.money_scale}"
            )

        if not self.drift_epsilon.is_finite() or self.drift_epsilon < Decimal("0"):
            errors.append(
                f"QUOTE_DRIFT_EPSILON must be a non-negative number, got: {self.drift_epsilon}"
            )

        if self.package_terms_source not in PACKAGE_TERMS_SOURCES:
            errors.append(
                f"QUOTE_PACKAGE_TERMS_SOURCE must be one of {PACKAGE_TERMS_SOURCES}, "
                f"got: {self.package_terms_source}"
            )

        if errors:
            error_msg = "Quote totals configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{QuoteConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise QuoteTotalsConfigurationError(error_msg)

        logger.info(
            f"[QUOTE-CONFIG] Configuration validated | "
            f"money_scale={self.money_scale} | "
            f"drift_epsilon={self.drift_epsilon} | "
            f"package_terms_source={self.package_terms_source}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "QuoteTotalsConfig":
        """
        Load configuration from environment variables (and .env).

        Unparseable values fall back to defaults with a warning.

        Raises:
            QuoteTotalsConfigurationError: If validation fails (CFG-001)
        """
        load_dotenv()

        scale_str = os.environ.get("QUOTE_MONEY_SCALE", str(DEFAULT_MONEY_SCALE))
        try:
            money_scale = int(scale_str.strip())
        except ValueError:
            logger.warning(
                f"[QUOTE-CONFIG] Invalid QUOTE_MONEY_SCALE value: {scale_str}, "
                f"using default: {DEFAULT_MONEY_SCALE}"
            )
            money_scale = DEFAULT_MONEY_SCALE

        epsilon_str = os.environ.get("QUOTE_DRIFT_EPSILON", str(DEFAULT_DRIFT_EPSILON))
        try:
            drift_epsilon = Decimal(epsilon_str.strip())
        except InvalidOperation:
            logger.warning(
                f"[QUOTE-CONFIG] Invalid QUOTE_DRIFT_EPSILON value: {epsilon_str}, "
                f"using default: {DEFAULT_DRIFT_EPSILON}"
            )
            drift_epsilon = DEFAULT_DRIFT_EPSILON

        package_terms_source = os.environ.get(
            "QUOTE_PACKAGE_TERMS_SOURCE", DEFAULT_PACKAGE_TERMS_SOURCE
        )

        logger.info(
            f"[QUOTE-CONFIG] Loading configuration from environment | "
            f"QUOTE_MONEY_SCALE={money_scale} | "
            f"QUOTE_DRIFT_EPSILON={drift_epsilon} | "
            f"QUOTE_PACKAGE_TERMS_SOURCE={package_terms_source}"
        )

        config = cls(
            money_scale=money_scale,
            drift_epsilon=drift_epsilon,
            package_terms_source=package_terms_source,
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for logging."""
        return {
            "money_scale": self.money_scale,
            "drift_epsilon": str(self.drift_epsilon),
            "package_terms_source": self.package_terms_source,
        }


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[QuoteTotalsConfig] = None


def get_quote_totals_config(validate: bool = True) -> QuoteTotalsConfig:
    """Get the global configuration, loading it from the environment on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = QuoteTotalsConfig.from_environment(validate=validate)

    return _config_instance


def reset_quote_totals_config() -> None:
    """Clear the global configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[QUOTE-CONFIG] Configuration instance reset")
