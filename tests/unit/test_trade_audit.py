"""
Unit Tests for the Trade Execution Auditor

Reliability Level: L6 Critical
Python 3.8 Compatible

Key Test Cases:
- Limit orders compare against the limit price
- Market orders compare against the live price of their pair
- Invalid pair references fall back to the first active pair
- Fee recomputation at the configured rate
- Placeholder checks PASS and say so in their labels
"""

from decimal import Decimal

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from audit_fakes import (
    BTC_PAIR,
    ETH_PAIR,
    FakeRepository,
    StaticPriceSource,
    agreeing_feed,
    make_execution,
    make_feed,
    make_order,
    run,
)
from tradeaudit.errors import AuditInfrastructureError
from tradeaudit.logic.models import Verdict
from tradeaudit.logic.trade_audit import TradeAuditor


def _repo_with(order, execution, pairs=(BTC_PAIR, ETH_PAIR)) -> FakeRepository:
    repo = FakeRepository()
    repo.add_pairs(pairs)
    repo.add_trade(order, execution)
    return repo


class TestLimitOrders:

    def test_fee_within_tolerance_passes(self) -> None:
        repo = _repo_with(
            make_order(price="100"),
            make_execution(price="100", fees="0.1005"),
        )
        auditor = TradeAuditor(repo, agreeing_feed())

        record = run(auditor.audit_trade("order-1"))

        assert record.fees_result.calculated == Decimal("0.1000")
        assert record.fees_result.verdict is Verdict.PASS
        assert record.execution_price_result.verdict is Verdict.PASS
        assert record.overall_verdict is Verdict.PASS

    def test_limit_price_is_expected_price(self) -> None:
        repo = _repo_with(
            make_order(price="100"),
            make_execution(price="103", fees="0.103"),
        )
        auditor = TradeAuditor(repo, agreeing_feed())

        record = run(auditor.audit_trade("order-1"))

        assert record.execution_price_result.calculated == Decimal("100")
        assert record.execution_price_result.stored == Decimal("103")
        assert record.execution_price_result.verdict is Verdict.FAIL
        assert record.overall_verdict is Verdict.FAIL

    def test_overcharged_fee_fails(self) -> None:
        repo = _repo_with(
            make_order(quantity="2", price="100"),
            make_execution(price="100", quantity="2", fees="0.3"),
        )
        auditor = TradeAuditor(repo, agreeing_feed())

        record = run(auditor.audit_trade("order-1"))

        assert record.fees_result.calculated == Decimal("0.2000")
        assert record.fees_result.verdict is Verdict.FAIL

    def test_custom_fee_rate(self) -> None:
        repo = _repo_with(
            make_order(price="100"),
            make_execution(price="100", fees="0.2"),
        )
        auditor = TradeAuditor(repo, agreeing_feed(), fee_rate=Decimal("0.002"))

        record = run(auditor.audit_trade("order-1"))

        assert record.fees_result.verdict is Verdict.PASS


class TestMarketOrders:

    def test_market_order_uses_live_price(self) -> None:
        repo = _repo_with(
            make_order(order_type="market", price=None, trading_pair_id="pair-btc"),
            make_execution(price="50100", fees="50.1"),
        )
        auditor = TradeAuditor(repo, agreeing_feed(btc="50000"))

        record = run(auditor.audit_trade("order-1"))

        assert record.execution_price_result.calculated == Decimal("50000")
        assert record.execution_price_result.verdict is Verdict.PASS

    def test_market_order_far_from_live_price_fails(self) -> None:
        repo = _repo_with(
            make_order(order_type="MARKET", price=None),
            make_execution(price="52000", fees="52"),
        )
        auditor = TradeAuditor(repo, agreeing_feed(btc="50000"))

        record = run(auditor.audit_trade("order-1"))

        assert record.execution_price_result.verdict is Verdict.FAIL

    def test_invalid_pair_falls_back_to_first_active_pair(self) -> None:
        alpha = StaticPriceSource("alpha", {"ETH": "3000"})
        repo = _repo_with(
            make_order(order_type="market", price=None, trading_pair_id="missing"),
            make_execution(price="3000", fees="3"),
            pairs=(ETH_PAIR,),
        )
        auditor = TradeAuditor(repo, make_feed(alpha))

        record = run(auditor.audit_trade("order-1"))

        assert alpha.calls == ["ETH/USDT"]
        assert record.execution_price_result.calculated == Decimal("3000")
        assert record.overall_verdict is Verdict.PASS

    def test_no_pairs_and_no_price_uses_order_price(self) -> None:
        repo = _repo_with(
            make_order(order_type="market", price="100", trading_pair_id=None),
            make_execution(price="100", fees="0.1"),
            pairs=(),
        )
        auditor = TradeAuditor(repo, agreeing_feed())

        record = run(auditor.audit_trade("order-1"))

        assert record.execution_price_result.calculated == Decimal("100")
        assert record.overall_verdict is Verdict.PASS

    def test_price_feed_outage_uses_order_price(self) -> None:
        repo = _repo_with(
            make_order(order_type="market", price="100"),
            make_execution(price="100", fees="0.1"),
        )
        feed = make_feed(StaticPriceSource("alpha", {}, fail=True))
        auditor = TradeAuditor(repo, feed)

        record = run(auditor.audit_trade("order-1"))

        assert record.execution_price_result.calculated == Decimal("100")

    def test_unreadable_pairs_raise_infrastructure_error(self) -> None:
        repo = _repo_with(
            make_order(order_type="market", price=None),
            make_execution(price="100", fees="0.1"),
        )
        repo.failing.add("get_trading_pair")
        auditor = TradeAuditor(repo, agreeing_feed())

        with pytest.raises(AuditInfrastructureError):
            run(auditor.audit_trade("order-1"))


class TestPlaceholdersAndErrors:

    def test_placeholders_are_labelled(self) -> None:
        repo = _repo_with(make_order(), make_execution())
        auditor = TradeAuditor(repo, agreeing_feed())

        record = run(auditor.audit_trade("order-1"))

        assert record.portfolio_update_result.verdict is Verdict.PASS
        assert record.balance_update_result.verdict is Verdict.PASS
        assert "unverified placeholder" in record.portfolio_update_result.label
        assert "unverified placeholder" in record.balance_update_result.label

    def test_missing_order_raises(self) -> None:
        auditor = TradeAuditor(FakeRepository(), agreeing_feed())

        with pytest.raises(AuditInfrastructureError):
            run(auditor.audit_trade("nope"))

    def test_order_without_execution_raises(self) -> None:
        repo = _repo_with(make_order(), None)
        auditor = TradeAuditor(repo, agreeing_feed())

        with pytest.raises(AuditInfrastructureError):
            run(auditor.audit_trade("order-1"))

    def test_unreadable_order_raises(self) -> None:
        repo = _repo_with(make_order(), make_execution())
        repo.failing.add("get_order")
        auditor = TradeAuditor(repo, agreeing_feed())

        with pytest.raises(AuditInfrastructureError):
            run(auditor.audit_trade("order-1"))
