"""
============================================================================
Quote Totals Engine v1.0.0
Prometheus Metrics - Totals Computation & Recomputation Job
============================================================================

Reliability Level: L6 Critical
Input Constraints: All currency values must be Decimal
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- quote_totals_computed_total: Counter of live computations by outcome
- quote_recompute_quotes_total: Counter of quotes processed by the job, by outcome
- quote_recompute_drift: Histogram of absolute drift among updated quotes
- quote_recompute_last_run_failures: Gauge of failures in the last job run

ZERO-FLOAT MANDATE
------------------
Decimal values are converted to float ONLY at the Prometheus boundary.

============================================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

TOTALS_COMPUTED = Counter(
    "quote_totals_computed_total",
    "Total number of live quote totals computations",
    ["status"]
)

RECOMPUTE_QUOTES = Counter(
    "quote_recompute_quotes_total",
    "Quotes processed by the recomputation job",
    ["outcome"]
)

# Buckets: 1 cent up to 1000 currency units
RECOMPUTE_DRIFT = Histogram(
    "quote_recompute_drift",
    "Absolute drift between stored and recomputed totals (updated quotes)",
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 50, 100, 1000]
)

RECOMPUTE_LAST_RUN_FAILURES = Gauge(
    "quote_recompute_last_run_failures",
    "Number of quotes that failed in the last recomputation run"
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_totals_computed(status: str, correlation_id: Optional[str] = None) -> None:
    """
    Record a live computation.

    Args:
        status: "ok" or the error code that rejected the edit
        correlation_id: Optional tracking ID
    """
    try:
        TOTALS_COMPUTED.labels(status=status).inc()
        logger.debug(
            "Metric: totals_computed | status=%s | correlation_id=%s",
            status, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record totals_computed metric | error=%s",
            str(e)
        )


def record_recompute_outcome(
    outcome: str,
    drift: Optional[Decimal] = None,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record one quote processed by the recomputation job.

    ZERO-FLOAT MANDATE: drift converted to float at the Prometheus boundary.

    Args:
        outcome: "updated", "unchanged" or "failed"
        drift: Absolute drift for updated quotes (Decimal)
        correlation_id: Optional tracking ID
    """
    try:
        RECOMPUTE_QUOTES.labels(outcome=outcome).inc()
        if drift is not None:
            if not isinstance(drift, Decimal):
                logger.error(
                    "[OBS-000] drift must be Decimal, got %s",
                    type(drift).__name__
                )
                return
            RECOMPUTE_DRIFT.observe(float(drift))
        logger.debug(
            "Metric: recompute_outcome | outcome=%s | drift=%s | correlation_id=%s",
            outcome, drift, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record recompute_outcome metric | error=%s",
            str(e)
        )


def update_last_run_failures(failures: int, correlation_id: Optional[str] = None) -> None:
    """Set the failure gauge at the end of a job run."""
    try:
        RECOMPUTE_LAST_RUN_FAILURES.set(failures)
        logger.debug(
            "Metric: last_run_failures | value=%s | correlation_id=%s",
            failures, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to update last_run_failures metric | error=%s",
            str(e)
        )
