"""
============================================================================
Quote Totals Engine - Quote Repository
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Numeric columns read through the Decimal gateway,
                   written as strings (no float round-trip)
Side Effects: Reads "Quote"/"QuoteItem"/"Package", updates "Quote" totals

The recomputation job depends only on the abstract QuoteRepository:
    - list_all_quotes(business_id=None)
    - update_quote_totals(quote_id, subtotal, total, expected=None)

SqlQuoteRepository implements it with raw SQL (sqlalchemy.text) against
the application's tables. Package terms are read at query time (live
terms); the per-item packageDiscount snapshot is read alongside.

The optimistic write guard compares the stored subtotal/total only. The
schema has no version column on "Quote", so a concurrent item edit that
keeps the stored totals identical is not detected.

ERROR CODES:
    - QTE-003: Persistence failure (update failed, quote missing, or quote
      modified between read and write)

============================================================================
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import text

from app.money.decimal_gateway import to_decimal
from services.quote_models import (
    DiscountType,
    PackageTerms,
    PersistenceFailure,
    Quote,
    QuoteItem,
    QuoteTotalsErrorCode,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Abstract Repository
# =============================================================================

class QuoteRepository(ABC):
    """Persistence contract consumed by the recomputation job."""

    @abstractmethod
    def list_all_quotes(self, business_id: Optional[str] = None) -> List[Quote]:
        """
        Return every quote with its items and, for package items, the
        package's current discount terms.
        """

    @abstractmethod
    def update_quote_totals(
        self,
        quote_id: str,
        subtotal: Decimal,
        total: Decimal,
        expected: Optional[Tuple[Decimal, Decimal]] = None
    ) -> None:
        """
        Persist corrected totals for one quote.

        Args:
            quote_id: Quote identifier
            subtotal: New subtotal
            total: New total
            expected: (subtotal, total) read before computing; when given,
                the write only applies if the row still holds these values.
                Only the stored totals are compared: an item edit that left
                the stored totals unchanged goes unnoticed, and the next run
                repairs whatever this write got wrong.

        Raises:
            PersistenceFailure: If the write did not apply
        """


# =============================================================================
# SQL Repository
# =============================================================================

_QUOTES_QUERY = """
    SELECT q."id", q."businessId", q."discountType", q."discount",
           q."subtotal", q."total"
    FROM "Quote" q
    {where}
    ORDER BY q."id"
"""

_ITEMS_QUERY = """
    SELECT qi."id", qi."quoteId", qi."price", qi."quantity", qi."total",
           qi."packageId", qi."packageDiscount",
           p."discountType", p."discountValue"
    FROM "QuoteItem" qi
    JOIN "Quote" q ON q."id" = qi."quoteId"
    LEFT JOIN "Package" p ON p."id" = qi."packageId"
    {where}
    ORDER BY qi."quoteId", qi."id"
"""


class SqlQuoteRepository(QuoteRepository):
    """
    QuoteRepository backed by a SQLAlchemy session.

    Reliability Level: L6 Critical
    Input Constraints: Session bound to the application database
    Side Effects: One commit per successful update, rollback on failure
    """

    def __init__(self, db_session: Any):
        """
        Args:
            db_session: SQLAlchemy session
        """
        self.db_session = db_session

    def list_all_quotes(self, business_id: Optional[str] = None) -> List[Quote]:
        where = ""
        params = {}  # type: Dict[str, Any]
        if business_id is not None:
            where = 'WHERE q."businessId" = :business_id'
            params["business_id"] = business_id

        quote_rows = self.db_session.execute(
            text(_QUOTES_QUERY.format(where=where)), params
        ).fetchall()

        quotes = []  # type: List[Quote]
        by_id = {}  # type: Dict[str, Quote]
        for row in quote_rows:
            quote = Quote(
                id=str(row[0]),
                business_id=str(row[1]) if row[1] is not None else None,
                discount_type=DiscountType.parse(row[2]),
                discount_value=to_decimal(row[3], field_name="discount", allow_none=True),
                subtotal=to_decimal(row[4], field_name="subtotal", allow_none=True),
                total=to_decimal(row[5], field_name="total", allow_none=True),
            )
            quotes.append(quote)
            by_id[quote.id] = quote

        item_rows = self.db_session.execute(
            text(_ITEMS_QUERY.format(where=where)), params
        ).fetchall()

        for row in item_rows:
            quote = by_id.get(str(row[1]))
            if quote is None:
                continue
            quote.items.append(self._row_to_item(row))

        logger.info(
            f"Loaded quotes | count={len(quotes)} | items={len(item_rows)} | "
            f"business_id={business_id}"
        )
        return quotes

    def _row_to_item(self, row: Any) -> QuoteItem:
        package = None  # type: Optional[PackageTerms]
        if row[5] is not None and row[7] is not None:
            package = PackageTerms(
                discount_type=DiscountType.parse(row[7]),
                discount_value=to_decimal(row[8], field_name="discountValue", allow_none=True),
            )

        package_discount = None  # type: Optional[Decimal]
        if row[5] is not None and row[6] is not None:
            package_discount = to_decimal(row[6], field_name="packageDiscount")

        return QuoteItem(
            id=str(row[0]),
            price=to_decimal(row[2], field_name="price"),
            quantity=int(row[3]),
            total=to_decimal(row[4], field_name="total", allow_none=True),
            package_id=str(row[5]) if row[5] is not None else None,
            package=package,
            package_discount=package_discount,
        )

    def update_quote_totals(
        self,
        quote_id: str,
        subtotal: Decimal,
        total: Decimal,
        expected: Optional[Tuple[Decimal, Decimal]] = None
    ) -> None:
        query = 'UPDATE "Quote" SET "subtotal" = :subtotal, "total" = :total WHERE "id" = :id'
        params = {
            "id": quote_id,
            "subtotal": str(subtotal),
            "total": str(total),
        }  # type: Dict[str, Any]
        if expected is not None:
            query += ' AND "subtotal" = :expected_subtotal AND "total" = :expected_total'
            params["expected_subtotal"] = str(expected[0])
            params["expected_total"] = str(expected[1])

        try:
            result = self.db_session.execute(text(query), params)
            if result.rowcount == 0:
                self.db_session.rollback()
                raise PersistenceFailure(
                    "Quote not found or modified since it was read", quote_id
                )
            self.db_session.commit()
        except PersistenceFailure:
            raise
        except Exception as e:
            self.db_session.rollback()
            logger.error(
                f"[{QuoteTotalsErrorCode.PERSIST_FAIL}] Failed to persist totals: {str(e)} | "
                f"quote_id={quote_id}"
            )
            raise PersistenceFailure(f"Failed to persist totals: {e}", quote_id) from e
