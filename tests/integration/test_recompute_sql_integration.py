"""
Integration Tests for Quote Totals Recomputation over SQL

Reliability Level: Offline Job
Python 3.8 Compatible

Runs the recomputation job against a real SQLAlchemy session on a SQLite
file database with the application's "Quote" / "QuoteItem" / "Package"
tables:
- Live package terms are joined in and applied
- Drifted quotes are repaired, others untouched
- Second run is a no-op
- Tenant filter, dry-run, optimistic write guard
- CLI entry point exit codes
"""

import pytest
import os
from decimal import Decimal
from typing import Dict

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.database import session as session_module
from jobs import recompute_quote_totals
from jobs.recompute_quote_totals import EXIT_FAILURES, EXIT_OK, main, recompute_all_quotes
from services.quote_config import QuoteTotalsConfig
from services.quote_models import DiscountType, PersistenceFailure
from services.quote_repository import SqlQuoteRepository


SCHEMA = [
    """
    CREATE TABLE "Package" (
        "id" TEXT PRIMARY KEY,
        "discountType" TEXT NOT NULL,
        "discountValue" TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE "Quote" (
        "id" TEXT PRIMARY KEY,
        "businessId" TEXT NOT NULL,
        "discountType" TEXT,
        "discount" TEXT,
        "subtotal" TEXT NOT NULL,
        "total" TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE "QuoteItem" (
        "id" TEXT PRIMARY KEY,
        "quoteId" TEXT NOT NULL REFERENCES "Quote"("id"),
        "price" TEXT NOT NULL,
        "quantity" INTEGER NOT NULL,
        "total" TEXT NOT NULL,
        "packageId" TEXT REFERENCES "Package"("id"),
        "packageDiscount" TEXT
    )
    """,
]

PACKAGES = [
    {"id": "pkg-20", "discountType": "PERCENTAGE", "discountValue": "20"},
]

QUOTES = [
    # consistent
    {"id": "q-1", "businessId": "biz-1", "discountType": "FIXED", "discount": "0",
     "subtotal": "46.00", "total": "46.00"},
    # global percentage never applied
    {"id": "q-2", "businessId": "biz-1", "discountType": "PERCENTAGE", "discount": "10",
     "subtotal": "100.00", "total": "100.00"},
    # package discount never applied
    {"id": "q-3", "businessId": "biz-1", "discountType": None, "discount": None,
     "subtotal": "100.00", "total": "100.00"},
    # other tenant, subtotal drifted by float rounding
    {"id": "q-4", "businessId": "biz-2", "discountType": "FIXED", "discount": "0",
     "subtotal": "35.84", "total": "35.84"},
]

ITEMS = [
    {"id": "i-1", "quoteId": "q-1", "price": "10.50", "quantity": 2, "total": "21.00",
     "packageId": None, "packageDiscount": None},
    {"id": "i-2", "quoteId": "q-1", "price": "25.00", "quantity": 1, "total": "25.00",
     "packageId": None, "packageDiscount": None},
    {"id": "i-3", "quoteId": "q-2", "price": "100.00", "quantity": 1, "total": "100.00",
     "packageId": None, "packageDiscount": None},
    {"id": "i-4", "quoteId": "q-3", "price": "100.00", "quantity": 1, "total": "100.00",
     "packageId": "pkg-20", "packageDiscount": "20.00"},
    {"id": "i-5", "quoteId": "q-4", "price": "10.10", "quantity": 1, "total": "10.10",
     "packageId": None, "packageDiscount": None},
    {"id": "i-6", "quoteId": "q-4", "price": "20.20", "quantity": 1, "total": "20.20",
     "packageId": None, "packageDiscount": None},
    {"id": "i-7", "quoteId": "q-4", "price": "5.55", "quantity": 1, "total": "5.55",
     "packageId": None, "packageDiscount": None},
]


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite:///{tmp_path / 'quotes.db'}"
    engine = create_engine(url)
    with engine.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))
        conn.execute(
            text('INSERT INTO "Package" VALUES (:id, :discountType, :discountValue)'),
            PACKAGES,
        )
        conn.execute(
            text('INSERT INTO "Quote" VALUES '
                 '(:id, :businessId, :discountType, :discount, :subtotal, :total)'),
            QUOTES,
        )
        conn.execute(
            text('INSERT INTO "QuoteItem" VALUES '
                 '(:id, :quoteId, :price, :quantity, :total, :packageId, :packageDiscount)'),
            ITEMS,
        )
    engine.dispose()
    return url


@pytest.fixture
def session(database_url):
    engine = create_engine(database_url)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture
def config() -> QuoteTotalsConfig:
    return QuoteTotalsConfig()


def stored_totals(session) -> Dict[str, tuple]:
    rows = session.execute(text('SELECT "id", "subtotal", "total" FROM "Quote"')).fetchall()
    return {row[0]: (row[1], row[2]) for row in rows}


# =============================================================================
# Repository
# =============================================================================

class TestSqlQuoteRepository:

    def test_loads_quotes_items_and_terms(self, session) -> None:
        quotes = {quote.id: quote for quote in SqlQuoteRepository(session).list_all_quotes()}

        assert set(quotes) == {"q-1", "q-2", "q-3", "q-4"}
        assert [item.id for item in quotes["q-1"].items] == ["i-1", "i-2"]
        assert quotes["q-2"].discount_type is DiscountType.PERCENTAGE
        assert quotes["q-3"].discount_type is DiscountType.NONE

        package_item = quotes["q-3"].items[0]
        assert package_item.package_id == "pkg-20"
        assert package_item.package.discount_type is DiscountType.PERCENTAGE
        assert package_item.package.discount_value == Decimal("20")
        assert package_item.package_discount == Decimal("20.00")
        assert package_item.price == Decimal("100.00")

    def test_business_filter(self, session) -> None:
        quotes = SqlQuoteRepository(session).list_all_quotes(business_id="biz-2")

        assert [quote.id for quote in quotes] == ["q-4"]
        assert len(quotes[0].items) == 3

    def test_update_with_guard(self, session) -> None:
        repository = SqlQuoteRepository(session)

        repository.update_quote_totals(
            "q-2", Decimal("100.00"), Decimal("90.00"),
            expected=(Decimal("100.00"), Decimal("100.00")),
        )

        assert stored_totals(session)["q-2"] == ("100.00", "90.00")

    def test_stale_guard_raises(self, session) -> None:
        repository = SqlQuoteRepository(session)

        with pytest.raises(PersistenceFailure) as exc_info:
            repository.update_quote_totals(
                "q-2", Decimal("100.00"), Decimal("90.00"),
                expected=(Decimal("100.00"), Decimal("95.00")),
            )

        assert exc_info.value.quote_id == "q-2"
        assert stored_totals(session)["q-2"] == ("100.00", "100.00")

    def test_guard_compares_stored_totals_only(self, session, config) -> None:
        repository = SqlQuoteRepository(session)
        stale = {quote.id: quote for quote in repository.list_all_quotes()}["q-2"]
        session.execute(text('UPDATE "QuoteItem" SET "price" = :price WHERE "id" = :id'),
                        {"price": "50.00", "id": "i-3"})
        session.commit()

        # item edit left the stored totals alone, so the stale write applies
        repository.update_quote_totals(
            "q-2", Decimal("100.00"), Decimal("90.00"),
            expected=(stale.subtotal, stale.total),
        )
        assert stored_totals(session)["q-2"] == ("100.00", "90.00")

        recompute_all_quotes(repository, config=config)

        assert stored_totals(session)["q-2"] == ("50.00", "45.00")

    def test_missing_quote_raises(self, session) -> None:
        with pytest.raises(PersistenceFailure):
            SqlQuoteRepository(session).update_quote_totals(
                "nope", Decimal("1.00"), Decimal("1.00")
            )


# =============================================================================
# Job
# =============================================================================

class TestRecomputeOverSql:

    def test_repairs_drift(self, session, config) -> None:
        report = recompute_all_quotes(SqlQuoteRepository(session), config=config)

        assert report.scanned == 4
        assert report.updated == 3
        assert report.unchanged == 1
        assert report.failed == 0

        stored = stored_totals(session)
        assert stored["q-1"] == ("46.00", "46.00")
        assert stored["q-2"] == ("100.00", "90.00")
        assert stored["q-3"] == ("100.00", "80.00")
        assert stored["q-4"] == ("35.85", "35.85")

    def test_second_run_is_noop(self, session, config) -> None:
        repository = SqlQuoteRepository(session)

        recompute_all_quotes(repository, config=config)
        second = recompute_all_quotes(repository, config=config)

        assert second.updated == 0
        assert second.unchanged == 4

    def test_dry_run_leaves_database_untouched(self, session, config) -> None:
        before = stored_totals(session)

        report = recompute_all_quotes(SqlQuoteRepository(session), dry_run=True, config=config)

        assert report.updated == 3
        assert stored_totals(session) == before

    def test_tenant_filter(self, session, config) -> None:
        report = recompute_all_quotes(
            SqlQuoteRepository(session), business_id="biz-2", config=config
        )

        assert report.scanned == 1
        assert stored_totals(session)["q-2"] == ("100.00", "100.00")

    def test_deleted_package_falls_back_to_snapshot(self, session, config) -> None:
        session.execute(text('UPDATE "QuoteItem" SET "packageId" = :pid WHERE "id" = :id'),
                        {"pid": "pkg-gone", "id": "i-4"})
        session.commit()

        recompute_all_quotes(SqlQuoteRepository(session), config=config)

        assert stored_totals(session)["q-3"] == ("100.00", "80.00")


# =============================================================================
# CLI
# =============================================================================

class TestCommandLine:

    @pytest.fixture(autouse=True)
    def no_signal_handlers(self, monkeypatch):
        monkeypatch.setattr(recompute_quote_totals, "install_cancel_handlers", lambda event: None)

    def test_clean_run_exits_zero(self, database_url) -> None:
        assert main(["--database-url", database_url]) == EXIT_OK

    def test_dry_run_flag(self, database_url, session) -> None:
        assert main(["--database-url", database_url, "--dry-run"]) == EXIT_OK
        assert stored_totals(session)["q-2"] == ("100.00", "100.00")

    def test_invalid_record_exits_non_zero(self, database_url, session) -> None:
        session.execute(text('UPDATE "QuoteItem" SET "price" = :price WHERE "id" = :id'),
                        {"price": "-1", "id": "i-3"})
        session.commit()

        assert main(["--database-url", database_url, "--business-id", "biz-1"]) == EXIT_FAILURES
        # the other quotes of the tenant were still repaired
        assert stored_totals(session)["q-3"] == ("100.00", "80.00")

    def test_unreachable_database_exits_non_zero(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'missing' / 'quotes.db'}"
        assert main(["--database-url", url]) == EXIT_FAILURES

    def test_process_engine_released_after_run(self, database_url) -> None:
        assert main(["--database-url", database_url]) == EXIT_OK
        assert session_module._engine is None
        assert session_module._session_factory is None

    def test_finer_than_scale_price_exits_non_zero(self, database_url, session) -> None:
        session.execute(text('UPDATE "QuoteItem" SET "price" = :price WHERE "id" = :id'),
                        {"price": "0.125", "id": "i-3"})
        session.commit()

        assert main(["--database-url", database_url]) == EXIT_FAILURES
