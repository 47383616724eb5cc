"""
Quote Totals Engine - Jobs Module

Offline jobs run by operators:
- recompute_quote_totals: Recompute cached quote totals and repair drift

Reliability Level: Offline Job (Cold Path)
"""

from jobs.recompute_quote_totals import (
    QuoteTotalsRecomputer,
    QuoteRecomputeResult,
    RecomputeOutcome,
    RecomputeReport,
    RecomputeJobErrorCode,
    recompute_all_quotes,
)

__all__ = [
    "QuoteTotalsRecomputer",
    "QuoteRecomputeResult",
    "RecomputeOutcome",
    "RecomputeReport",
    "RecomputeJobErrorCode",
    "recompute_all_quotes",
]
