"""
============================================================================
Property-Based Tests for Batch Recomputation Idempotence
============================================================================

Reliability Level: Offline Job
Python 3.8 Compatible

Properties tested:
- A second run over the repaired dataset performs zero updates
- After a run, every stored quote equals its freshly computed totals
- updated + unchanged + failed == scanned
- max_delta >= avg_delta >= 0

============================================================================
"""

import copy
from decimal import Decimal
from typing import List, Optional, Tuple

import pytest
from hypothesis import given, settings, HealthCheck
from hypothesis import strategies as st

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.logic.total_assembler import compute_quote_totals
from jobs.recompute_quote_totals import recompute_all_quotes
from services.quote_config import QuoteTotalsConfig
from services.quote_models import DiscountType, PackageTerms, Quote, QuoteItem
from services.quote_repository import QuoteRepository


# =============================================================================
# Test Doubles
# =============================================================================

class DictQuoteRepository(QuoteRepository):
    """In-memory repository; reads return copies."""

    def __init__(self, quotes: List[Quote]):
        self.quotes = {quote.id: quote for quote in quotes}

    def list_all_quotes(self, business_id: Optional[str] = None) -> List[Quote]:
        return [copy.deepcopy(quote) for quote in self.quotes.values()]

    def update_quote_totals(
        self,
        quote_id: str,
        subtotal: Decimal,
        total: Decimal,
        expected: Optional[Tuple[Decimal, Decimal]] = None
    ) -> None:
        self.quotes[quote_id].subtotal = subtotal
        self.quotes[quote_id].total = total


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

money_strategy = st.decimals(
    min_value=Decimal("0.00"),
    max_value=Decimal("5000.00"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)

discount_type_strategy = st.sampled_from(list(DiscountType))


@st.composite
def quote_strategy(draw) -> Quote:
    items = []
    for _ in range(draw(st.integers(min_value=0, max_value=6))):
        terms = draw(st.one_of(
            st.none(),
            st.builds(PackageTerms, discount_type_strategy, money_strategy),
        ))
        items.append(QuoteItem(
            price=draw(money_strategy),
            quantity=draw(st.integers(min_value=1, max_value=20)),
            package_id="pkg" if terms is not None else None,
            package=terms,
        ))
    return Quote(
        id=f"q-{draw(st.uuids())}",
        discount_type=draw(discount_type_strategy),
        discount_value=draw(money_strategy),
        subtotal=draw(money_strategy),
        total=draw(money_strategy),
        items=items,
    )


dataset_strategy = st.lists(quote_strategy(), min_size=0, max_size=8, unique_by=lambda q: q.id)


# =============================================================================
# PROPERTIES
# =============================================================================

class TestRecomputeIdempotence:

    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    @given(quotes=dataset_strategy, scale=st.sampled_from([2, 3, 4]))
    def test_second_run_updates_nothing(self, quotes: List[Quote], scale: int) -> None:
        repository = DictQuoteRepository(quotes)
        config = QuoteTotalsConfig(money_scale=scale)

        first = recompute_all_quotes(repository, config=config)
        second = recompute_all_quotes(repository, config=config)

        assert first.failed == 0
        assert second.updated == 0
        assert second.unchanged == len(quotes)

    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    @given(quotes=dataset_strategy)
    def test_stored_totals_match_computation(self, quotes: List[Quote]) -> None:
        repository = DictQuoteRepository(quotes)

        recompute_all_quotes(repository, config=QuoteTotalsConfig())

        for quote in repository.quotes.values():
            totals = compute_quote_totals(quote.items, quote.discount_type, quote.discount_value)
            assert quote.subtotal == totals.subtotal
            assert quote.total == totals.total
            assert quote.total >= 0

    @settings(max_examples=100, suppress_health_check=[HealthCheck.too_slow])
    @given(quotes=dataset_strategy)
    def test_report_counts_are_consistent(self, quotes: List[Quote]) -> None:
        report = recompute_all_quotes(
            DictQuoteRepository(quotes), dry_run=True, config=QuoteTotalsConfig()
        )

        assert report.scanned == len(quotes)
        assert report.updated + report.unchanged + report.failed == report.scanned
        assert report.max_delta >= report.avg_delta - Decimal("0.00005")
        assert report.avg_delta >= 0
