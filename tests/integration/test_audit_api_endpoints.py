"""
============================================================================
Trade Audit Engine v1.0.0
Integration Test: Audit API Endpoints
============================================================================

Reliability Level: L5 High
Input Constraints: FastAPI TestClient, in-memory collaborators
Side Effects: None (no database, no network)

Covers:
- Comprehensive run: findings, assessment, exports, 409 while running,
  500 with partial findings when a phase aborts
- System sweep, portfolio, trade, user and probability endpoints
- 502 with the standard error body when audit inputs are unreadable

Python 3.8 Compatible - No union type hints (X | None)
============================================================================
"""

from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from audit_fakes import (
    BTC_PAIR,
    ETH_PAIR,
    FakeProbe,
    FakeRepository,
    agreeing_feed,
    make_execution,
    make_holding,
    make_order,
)
from tradeaudit.api.audit import RUN_IN_PROGRESS_CODE, get_audit_service
from tradeaudit.api.audit import router as audit_router
from tradeaudit.config import AuditConfig
from tradeaudit.logic.models import LiquidityZone, MarketSnapshot, TradingPair
from tradeaudit.logic.scenarios import ScenarioGenerator, ScriptedScenarioGenerator
from tradeaudit.service import AuditService


# ============================================================================
# Test App Setup
# ============================================================================

class HeldLock:
    """Stands in for a lock another request is holding."""

    def locked(self) -> bool:
        return True


class ExplodingScenarios(ScenarioGenerator):

    def generate_trade(self, index, notional):
        raise RuntimeError("scenario engine crashed")


def seeded_repository() -> FakeRepository:
    repo = FakeRepository()
    repo.add_pairs([BTC_PAIR, ETH_PAIR] + [
        TradingPair(pair_id=f"pair-{a.lower()}", symbol=f"{a}/USDT", base_asset=a, quote_asset="USDT")
        for a in ("SOL", "BNB", "XRP")
    ])
    repo.holdings["user-1"] = [make_holding("BTC", "1", "100", "50000", "100", "49900")]
    repo.add_trade(make_order(price="100"), make_execution(price="100", fees="0.1"))
    repo.snapshots["pair-btc"] = MarketSnapshot(
        trading_pair_id="pair-btc", price=Decimal("50000"), price_change_24h=Decimal("-4")
    )
    repo.zones["pair-btc"] = [
        LiquidityZone(zone_type="resistance", price_level=Decimal("50500"), strength="strong")
    ]
    return repo


def create_test_app(service: AuditService) -> FastAPI:
    app = FastAPI(title="Audit API Test")
    app.include_router(audit_router, prefix="/api/audit")
    app.dependency_overrides[get_audit_service] = lambda: service
    return app


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def repo() -> FakeRepository:
    return seeded_repository()


@pytest.fixture
def service(repo: FakeRepository) -> AuditService:
    return AuditService(
        repo,
        agreeing_feed(),
        FakeProbe(),
        config=AuditConfig(),
        scenario_generator=ScriptedScenarioGenerator([True]),
    )


@pytest.fixture
def client(service: AuditService):
    return TestClient(create_test_app(service))


# ============================================================================
# Comprehensive Audit
# ============================================================================

class TestComprehensiveEndpoint:

    def test_run_returns_findings_assessment_and_exports(self, client, repo) -> None:
        response = client.post("/api/audit/comprehensive", json={"correlation_id": "run-42"})

        assert response.status_code == 200
        body = response.json()
        assert body["correlation_id"] == "run-42"
        assert len(body["findings"]) == 20
        assert body["assessment"]["final_recommendation"] in ("GO", "NO-GO")
        assert set(body["exports"]) == {"csv", "json", "markdown"}
        assert body["exports"]["csv"].startswith("ID,Audit Area,Component,Status,Score,Notes")
        assert repo.audit_entries[-1][0] == "COMPREHENSIVE_AUDIT"

    def test_scores_are_strings(self, client) -> None:
        body = client.post("/api/audit/comprehensive").json()

        assert isinstance(body["assessment"]["overall_score"], str)
        assert isinstance(body["findings"][0]["score"], str)

    def test_exports_can_be_skipped(self, client) -> None:
        body = client.post("/api/audit/comprehensive", json={"include_exports": False}).json()

        assert "exports" not in body

    def test_concurrent_run_is_rejected(self, client, service) -> None:
        service.comprehensive_run_lock = HeldLock()

        response = client.post("/api/audit/comprehensive")

        assert response.status_code == 409
        assert response.json()["detail"]["error_code"] == RUN_IN_PROGRESS_CODE

    def test_aborted_run_returns_partial_findings(self, repo) -> None:
        service = AuditService(
            repo,
            agreeing_feed(),
            FakeProbe(),
            config=AuditConfig(),
            scenario_generator=ExplodingScenarios(),
        )
        client = TestClient(create_test_app(service))

        response = client.post("/api/audit/comprehensive")

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error_code"] == "AUD-RUN-001"
        assert detail["phase"] == "Simulated Trading"
        assert len(detail["partial_findings"]) == 13
        assert service.comprehensive_run_lock.locked() is False


# ============================================================================
# Per-Item and Sweep Audits
# ============================================================================

class TestAuditEndpoints:

    def test_system_sweep(self, client) -> None:
        response = client.post("/api/audit/system", json={"correlation_id": "sweep-7"})

        assert response.status_code == 200
        body = response.json()
        assert body["correlation_id"] == "sweep-7"
        assert body["summary"]["total_portfolios"] == 1
        assert body["summary"]["total_trades"] == 1
        assert body["summary"]["overall_health"] == "HEALTHY"

    def test_system_sweep_enumeration_failure(self, client, repo) -> None:
        repo.failing.add("list_users_with_holdings")

        response = client.post("/api/audit/system")

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "AUD-INFRA-001"

    def test_portfolio_audit(self, client) -> None:
        response = client.get("/api/audit/portfolio/user-1")

        assert response.status_code == 200
        body = response.json()
        assert body["overall_verdict"] == "PASS"
        assert body["metrics"]["total_value"]["stored"] == "50000"

    def test_portfolio_audit_storage_down(self, client, repo) -> None:
        repo.failing.add("get_holdings")

        response = client.get("/api/audit/portfolio/user-1")

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["error_code"] == "AUD-INFRA-001"
        assert detail["correlation_id"]

    def test_trade_audit(self, client) -> None:
        response = client.get("/api/audit/trade/order-1")

        assert response.status_code == 200
        body = response.json()
        assert body["overall_verdict"] == "PASS"
        assert "unverified placeholder" in body["balance_update"]["label"]

    def test_unknown_trade_is_502(self, client) -> None:
        response = client.get("/api/audit/trade/missing")

        assert response.status_code == 502

    def test_user_audit(self, client) -> None:
        response = client.get("/api/audit/user/user-1")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == "user-1"
        assert body["results"][0]["category"] == "PORTFOLIO"

    def test_trade_probability(self, client) -> None:
        response = client.get("/api/audit/probability/pair-btc", params={"direction": "short"})

        assert response.status_code == 200
        body = response.json()
        assert body["direction"] == "short"
        assert body["probability"] == "0.84"

    def test_invalid_direction_is_rejected(self, client) -> None:
        response = client.get("/api/audit/probability/pair-btc", params={"direction": "up"})

        assert response.status_code == 422
