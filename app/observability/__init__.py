"""
============================================================================
Quote Totals Engine v1.0.0
Observability Module - Prometheus Metrics
============================================================================

Reliability Level: L6 Critical
Input Constraints: None
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    TOTALS_COMPUTED,
    RECOMPUTE_QUOTES,
    RECOMPUTE_DRIFT,
    RECOMPUTE_LAST_RUN_FAILURES,
    record_totals_computed,
    record_recompute_outcome,
    update_last_run_failures,
)

__all__ = [
    "TOTALS_COMPUTED",
    "RECOMPUTE_QUOTES",
    "RECOMPUTE_DRIFT",
    "RECOMPUTE_LAST_RUN_FAILURES",
    "record_totals_computed",
    "record_recompute_outcome",
    "update_last_run_failures",
]
