"""
Quote Totals Engine - Batch Recomputation Job

Operator-run repair tool. Walks every persisted quote, recomputes its
subtotal/total with the live pipeline, writes back only the quotes whose
stored values drifted, and reports aggregate drift statistics.

The process:
1. Load all quotes with items and package terms from the repository
2. For each quote, compute canonical totals (compute_quote_totals)
3. Compare against stored subtotal/total (drift epsilon from config)
4. Persist corrected values for drifted quotes (skipped in dry-run)
5. Report scanned / updated / unchanged / failed, average and max delta

Reliability Level: Offline Job
Decimal Integrity: Drift statistics computed in Decimal
Traceability: Every run carries a correlation_id

Failure handling: an error on one quote is logged with its id and the job
moves on; the CLI exits non-zero when any quote failed. Cancellation
(SIGINT/SIGTERM) is honoured between quotes, never mid-quote. Running the
job twice in a row yields zero updates on the second run.

Usage:
    python -m jobs.recompute_quote_totals --dry-run
    python -m jobs.recompute_quote_totals --business-id <id> --verbose
"""

import argparse
import logging
import signal
import sys
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from app.logic.total_assembler import QuoteTotals, compute_quote_totals
from app.money.decimal_gateway import ZERO
from app.observability.metrics import record_recompute_outcome, update_last_run_failures
from services.quote_config import QuoteTotalsConfig, get_quote_totals_config
from services.quote_models import PersistenceFailure, Quote, QuoteTotalsError
from services.quote_repository import QuoteRepository

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Report precision for the average delta
PRECISION_DELTA = Decimal("0.0001")

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CANCELLED = 3


# =============================================================================
# Error Codes
# =============================================================================

class RecomputeJobErrorCode:
    """Recomputation job error codes for audit logging."""
    LOAD_FAIL = "RCP-001"
    COMPUTE_FAIL = "RCP-002"
    PERSIST_FAIL = "RCP-003"
    UNEXPECTED_FAIL = "RCP-004"


# =============================================================================
# Enums & Data Classes
# =============================================================================

class RecomputeOutcome(Enum):
    """Per-quote result of a recomputation."""
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class QuoteRecomputeResult:
    """Outcome for a single quote."""
    quote_id: str
    outcome: RecomputeOutcome
    delta: Decimal = ZERO
    totals: Optional[QuoteTotals] = None
    item_drift: int = 0


@dataclass
class RecomputeReport:
    """
    Aggregate statistics for one job run.

    In dry-run mode, updated counts the quotes that would be updated.
    """
    scanned: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    avg_delta: Decimal = ZERO
    max_delta: Decimal = ZERO
    item_drift: int = 0
    cancelled: bool = False
    dry_run: bool = False
    correlation_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "scanned": self.scanned,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "avg_delta": str(self.avg_delta),
            "max_delta": str(self.max_delta),
            "item_drift": self.item_drift,
            "cancelled": self.cancelled,
            "dry_run": self.dry_run,
            "correlation_id": self.correlation_id,
            "errors": list(self.errors),
        }


# =============================================================================
# Recomputer
# =============================================================================

class QuoteTotalsRecomputer:
    """
    Recomputes and repairs cached quote totals.

    Reliability Level: Offline Job
    Input Constraints: Repository implementing QuoteRepository
    Side Effects: Updates drifted quotes through the repository
    """

    def __init__(
        self,
        repository: QuoteRepository,
        config: Optional[QuoteTotalsConfig] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Args:
            repository: Quote persistence
            config: Engine configuration (environment when None)
            cancel_event: Set to stop the run before the next quote
        """
        self.repository = repository
        self.config = config if config is not None else get_quote_totals_config()
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()

    def _count_item_drift(self, quote: Quote, totals: QuoteTotals, correlation_id: str) -> int:
        drifted = 0
        for item, computed in zip(quote.items, totals.item_totals):
            if item.total is None:
                continue
            if abs(item.total - computed) > self.config.drift_epsilon:
                drifted += 1
                logger.warning(
                    f"Item total drift | quote_id={quote.id} | item_id={item.id} | "
                    f"stored={item.total} | computed={computed} | "
                    f"correlation_id={correlation_id}"
                )
        return drifted

    def recompute_quote(
        self,
        quote: Quote,
        dry_run: bool = False,
        correlation_id: Optional[str] = None
    ) -> QuoteRecomputeResult:
        """
        Recompute one quote and persist it if it drifted.

        Raises:
            InvalidLineItem, DiscountOutOfRange: Stored inputs are invalid
            PersistenceFailure: The write did not apply
        """
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        totals = compute_quote_totals(
            quote.items,
            quote.discount_type,
            quote.discount_value,
            scale=self.config.money_scale,
            prefer_snapshot=self.config.prefer_snapshot,
        )
        item_drift = self._count_item_drift(quote, totals, correlation_id)

        subtotal_delta = abs(totals.subtotal - quote.subtotal)
        total_delta = abs(totals.total - quote.total)
        delta = max(subtotal_delta, total_delta)

        if delta <= self.config.drift_epsilon:
            return QuoteRecomputeResult(
                quote_id=quote.id,
                outcome=RecomputeOutcome.UNCHANGED,
                totals=totals,
                item_drift=item_drift,
            )

        if not dry_run:
            self.repository.update_quote_totals(
                quote.id,
                totals.subtotal,
                totals.total,
                expected=(quote.subtotal, quote.total),
            )

        logger.info(
            f"Quote totals {'would be ' if dry_run else ''}corrected | "
            f"quote_id={quote.id} | "
            f"subtotal={quote.subtotal}->{totals.subtotal} | "
            f"total={quote.total}->{totals.total} | "
            f"delta={delta} | correlation_id={correlation_id}"
        )

        return QuoteRecomputeResult(
            quote_id=quote.id,
            outcome=RecomputeOutcome.UPDATED,
            delta=delta,
            totals=totals,
            item_drift=item_drift,
        )

    def run(
        self,
        dry_run: bool = False,
        business_id: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> RecomputeReport:
        """
        Recompute every quote (optionally one tenant's).

        Returns:
            RecomputeReport

        Raises:
            Exception: Only if the quote listing itself fails
        """
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())

        start_time = datetime.now(timezone.utc)
        report = RecomputeReport(dry_run=dry_run, correlation_id=correlation_id)

        logger.info(
            f"Recomputation starting | dry_run={dry_run} | business_id={business_id} | "
            f"config={self.config.to_dict()} | correlation_id={correlation_id}"
        )

        try:
            quotes = self.repository.list_all_quotes(business_id=business_id)
        except Exception as e:
            logger.error(
                f"[{RecomputeJobErrorCode.LOAD_FAIL}] Failed to load quotes: {str(e)} | "
                f"correlation_id={correlation_id}"
            )
            raise

        total_delta = ZERO

        for quote in quotes:
            if self.cancel_event.is_set():
                report.cancelled = True
                logger.warning(
                    f"Recomputation cancelled by operator | "
                    f"processed={report.scanned} | remaining={len(quotes) - report.scanned} | "
                    f"correlation_id={correlation_id}"
                )
                break

            report.scanned += 1

            try:
                result = self.recompute_quote(quote, dry_run, correlation_id)
            except PersistenceFailure as e:
                self._record_failure(report, quote, RecomputeJobErrorCode.PERSIST_FAIL, e, correlation_id)
                continue
            except QuoteTotalsError as e:
                self._record_failure(report, quote, RecomputeJobErrorCode.COMPUTE_FAIL, e, correlation_id)
                continue
            except Exception as e:
                self._record_failure(report, quote, RecomputeJobErrorCode.UNEXPECTED_FAIL, e, correlation_id)
                continue

            report.item_drift += result.item_drift

            if result.outcome is RecomputeOutcome.UPDATED:
                report.updated += 1
                total_delta += result.delta
                if result.delta > report.max_delta:
                    report.max_delta = result.delta
                record_recompute_outcome("updated", result.delta, correlation_id)
            else:
                report.unchanged += 1
                record_recompute_outcome("unchanged", correlation_id=correlation_id)

        if report.updated > 0:
            report.avg_delta = (total_delta / report.updated).quantize(
                PRECISION_DELTA, rounding=ROUND_HALF_UP
            )

        update_last_run_failures(report.failed, correlation_id)

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.info(
            f"Recomputation complete | "
            f"scanned={report.scanned} | "
            f"{'to_update' if dry_run else 'updated'}={report.updated} | "
            f"unchanged={report.unchanged} | "
            f"failed={report.failed} | "
            f"avg_delta={report.avg_delta} | "
            f"max_delta={report.max_delta} | "
            f"item_drift={report.item_drift} | "
            f"cancelled={report.cancelled} | "
            f"duration={duration:.2f}s | "
            f"correlation_id={correlation_id}"
        )

        return report

    def _record_failure(
        self,
        report: RecomputeReport,
        quote: Quote,
        error_code: str,
        error: Exception,
        correlation_id: str
    ) -> None:
        report.failed += 1
        message = f"quote_id={quote.id}: {error}"
        report.errors.append(message)
        logger.error(
            f"[{error_code}] Quote skipped: {str(error)} | "
            f"quote_id={quote.id} | correlation_id={correlation_id}",
            exc_info=error_code == RecomputeJobErrorCode.UNEXPECTED_FAIL,
        )
        record_recompute_outcome("failed", correlation_id=correlation_id)


def recompute_all_quotes(
    repository: QuoteRepository,
    dry_run: bool = False,
    business_id: Optional[str] = None,
    config: Optional[QuoteTotalsConfig] = None,
    cancel_event: Optional[threading.Event] = None,
    correlation_id: Optional[str] = None
) -> RecomputeReport:
    """Run the recomputation job once over the repository."""
    recomputer = QuoteTotalsRecomputer(repository, config=config, cancel_event=cancel_event)
    return recomputer.run(dry_run=dry_run, business_id=business_id, correlation_id=correlation_id)


def exit_code_for(report: RecomputeReport) -> int:
    """0 on a clean run, 1 if any quote failed, 3 if cancelled."""
    if report.has_failures:
        return EXIT_FAILURES
    if report.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK


# =============================================================================
# CLI Entry Point
# =============================================================================

def install_cancel_handlers(cancel_event: threading.Event) -> None:
    """Stop the run between quotes on SIGINT/SIGTERM."""

    def _handler(signum, frame):
        logger.warning(f"Received signal {signum} - stopping after the current quote")
        cancel_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the recomputation job."""
    parser = argparse.ArgumentParser(
        description="Recompute cached quote subtotal/total and repair drifted quotes"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report drift without writing any changes"
    )
    parser.add_argument(
        "--business-id",
        type=str,
        default=None,
        help="Only recompute quotes of this business"
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (default: DATABASE_URL / DB_* environment)"
    )
    parser.add_argument(
        "--correlation-id",
        type=str,
        default=None,
        help="Correlation ID for the audit trail (auto-generated if not provided)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    from app.database.session import (
        check_database_connection,
        dispose_engine,
        get_session_factory,
        init_engine,
    )
    from services.quote_repository import SqlQuoteRepository

    cancel_event = threading.Event()
    install_cancel_handlers(cancel_event)

    try:
        init_engine(args.database_url)
        check_database_connection()
    except Exception as e:
        logger.error(f"[{RecomputeJobErrorCode.LOAD_FAIL}] Database unavailable: {str(e)}")
        dispose_engine()
        return EXIT_FAILURES

    session = get_session_factory()()

    try:
        report = recompute_all_quotes(
            SqlQuoteRepository(session),
            dry_run=args.dry_run,
            business_id=args.business_id,
            cancel_event=cancel_event,
            correlation_id=args.correlation_id,
        )
    except Exception as e:
        logger.error(f"Recomputation aborted: {str(e)}", exc_info=True)
        return EXIT_FAILURES
    finally:
        session.close()
        dispose_engine()

    return exit_code_for(report)


if __name__ == "__main__":
    sys.exit(main())
