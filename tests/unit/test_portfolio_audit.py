"""
Unit Tests for the Portfolio Auditor

Reliability Level: L6 Critical
Python 3.8 Compatible

Key Test Cases:
- Recomputed aggregates within tolerance PASS, outside FAIL
- Missing market price falls back to the holding's average cost
- Empty portfolio is trivially consistent
- Unreadable holdings raise AuditInfrastructureError
"""

from decimal import Decimal

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from audit_fakes import (
    FakeRepository,
    StaticPriceSource,
    agreeing_feed,
    make_feed,
    make_holding,
    run,
)
from tradeaudit.errors import AuditInfrastructureError
from tradeaudit.logic.models import PORTFOLIO_METRICS, Verdict
from tradeaudit.logic.portfolio_audit import METRIC_LABELS, PortfolioAuditor


def _btc_holding(current_value: str, unrealized_pnl: str):
    return make_holding(
        asset="BTC",
        quantity="1",
        average_cost="100",
        current_value=current_value,
        invested_total="100",
        unrealized_pnl=unrealized_pnl,
    )


class TestPortfolioTolerance:

    def test_half_percent_drift_passes(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [_btc_holding("10050", "9950")]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000"))

        record = run(auditor.audit_portfolio("user-1"))

        total_value = record.metric_results["total_value"]
        assert total_value.calculated == Decimal("10000")
        assert total_value.stored == Decimal("10050")
        assert total_value.verdict is Verdict.PASS
        assert record.overall_verdict is Verdict.PASS
        assert record.holdings_count == 1

    def test_three_percent_drift_fails(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [_btc_holding("10300", "10200")]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000"))

        record = run(auditor.audit_portfolio("user-1"))

        assert record.metric_results["total_value"].verdict is Verdict.FAIL
        assert record.metric_results["total_invested"].verdict is Verdict.PASS
        assert record.overall_verdict is Verdict.FAIL

    def test_all_five_metrics_reported_with_labels(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [_btc_holding("10000", "9900")]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000"))

        record = run(auditor.audit_portfolio("user-1"))

        assert tuple(record.metric_results) == PORTFOLIO_METRICS
        for name, result in record.metric_results.items():
            assert result.label == METRIC_LABELS[name]

    def test_multiple_holdings_are_summed(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [
            make_holding("BTC", "2", "100", "20000", "200", "19800", "5"),
            make_holding("ETH", "10", "50", "30000", "500", "29500", "-5"),
        ]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000", eth="3000"))

        record = run(auditor.audit_portfolio("user-1"))

        assert record.metric_results["total_value"].calculated == Decimal("50000")
        assert record.metric_results["total_invested"].calculated == Decimal("700")
        assert record.metric_results["realized_pnl"].calculated == Decimal("0")
        assert record.overall_verdict is Verdict.PASS

    def test_custom_tolerance_is_used(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [_btc_holding("10050", "9950")]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000"), tolerance_percent=Decimal("0.1"))

        record = run(auditor.audit_portfolio("user-1"))

        assert record.metric_results["total_value"].tolerance_used == Decimal("0.1")
        assert record.metric_results["total_value"].verdict is Verdict.FAIL


class TestPriceFallback:

    def test_unknown_asset_uses_average_cost(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [make_holding("XRP", "10", "2", "20", "20", "0")]
        auditor = PortfolioAuditor(repo, agreeing_feed())

        record = run(auditor.audit_portfolio("user-1"))

        assert record.metric_results["total_value"].calculated == Decimal("20")
        assert record.overall_verdict is Verdict.PASS

    def test_all_sources_down_uses_average_cost(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [make_holding("BTC", "1", "100", "100", "100", "0")]
        feed = make_feed(StaticPriceSource("alpha", {}, fail=True))
        auditor = PortfolioAuditor(repo, feed)

        record = run(auditor.audit_portfolio("user-1"))

        assert record.metric_results["total_value"].calculated == Decimal("100")
        assert record.overall_verdict is Verdict.PASS


class TestEdgeCases:

    def test_empty_portfolio_is_trivially_consistent(self) -> None:
        repo = FakeRepository()
        auditor = PortfolioAuditor(repo, agreeing_feed())

        record = run(auditor.audit_portfolio("nobody"))

        assert record.holdings_count == 0
        assert record.overall_verdict is Verdict.PASS
        for result in record.metric_results.values():
            assert result.calculated == Decimal("0")
            assert result.percentage_diff == Decimal("0")

    def test_unreadable_holdings_raise_infrastructure_error(self) -> None:
        repo = FakeRepository()
        repo.failing.add("get_holdings")
        auditor = PortfolioAuditor(repo, agreeing_feed())

        with pytest.raises(AuditInfrastructureError) as exc_info:
            run(auditor.audit_portfolio("user-1"))

        assert exc_info.value.error_code == "AUD-INFRA-001"

    def test_record_serializes_figures_as_strings(self) -> None:
        repo = FakeRepository()
        repo.holdings["user-1"] = [_btc_holding("10050", "9950")]
        auditor = PortfolioAuditor(repo, agreeing_feed(btc="10000"))

        body = run(auditor.audit_portfolio("user-1")).to_dict()

        assert body["overall_verdict"] == "PASS"
        assert body["metrics"]["total_value"]["calculated"] == "10000"
        assert body["metrics"]["total_value"]["stored"] == "10050"
