"""
============================================================================
Trade Audit Engine - Audit Service Wiring
============================================================================

Reliability Level: L5 High
Input Constraints: Collaborators implementing the repository interfaces
Side Effects: None at construction; each operation creates per-request
              auditors bound to a correlation_id

One object the HTTP layer talks to. It owns the collaborators and the
configuration and hands out freshly built auditors per request, so no
audit state outlives the call that produced it.
============================================================================
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

from tradeaudit.config import AuditConfig, get_audit_config
from tradeaudit.database.repositories import (
    AccountReader,
    AuditLogWriter,
    HoldingsReader,
    MarketContextReader,
    OrderExecutionReader,
    PlatformProbe,
    SqlAuditRepository,
    SystemProbe,
)
from tradeaudit.exchange.price_feed import MultiSourcePriceFeed, build_default_price_feed
from tradeaudit.logic.account_audit import UserAuditReport, UserTradingAuditor
from tradeaudit.logic.comprehensive_audit import AuditRunReport, ComprehensiveAuditEngine
from tradeaudit.logic.models import PortfolioAuditRecord, TradeAuditRecord
from tradeaudit.logic.portfolio_audit import PortfolioAuditor
from tradeaudit.logic.scenarios import ScenarioGenerator
from tradeaudit.logic.system_audit import SystemAuditResult, SystemAuditRunner
from tradeaudit.logic.trade_audit import TradeAuditor
from tradeaudit.logic.trade_probability import (
    ProbabilityAssessment,
    TradeDirection,
    TradeProbabilityCalculator,
)
from tradeaudit.observability.metrics import record_audit_run

logger = logging.getLogger(__name__)


def _new_correlation_id(correlation_id: Optional[str]) -> str:
    return correlation_id or str(uuid.uuid4())


class AuditService:
    """
    Facade over every audit operation.

    The repository argument must implement HoldingsReader,
    OrderExecutionReader, AuditLogWriter, MarketContextReader and
    AccountReader (SqlAuditRepository does).
    """

    def __init__(
        self,
        repository: Any,
        price_feed: MultiSourcePriceFeed,
        probe: SystemProbe,
        config: Optional[AuditConfig] = None,
        scenario_generator: Optional[ScenarioGenerator] = None,
    ):
        self.repository = repository
        self.price_feed = price_feed
        self.probe = probe
        self.config = config or get_audit_config()
        self.scenario_generator = scenario_generator
        self.comprehensive_run_lock = asyncio.Lock()

    @property
    def holdings(self) -> HoldingsReader:
        return self.repository

    @property
    def orders(self) -> OrderExecutionReader:
        return self.repository

    @property
    def audit_log(self) -> AuditLogWriter:
        return self.repository

    @property
    def market(self) -> MarketContextReader:
        return self.repository

    @property
    def accounts(self) -> AccountReader:
        return self.repository

    # ------------------------------------------------------------------------
    # Auditor factories
    # ------------------------------------------------------------------------

    def portfolio_auditor(self, correlation_id: Optional[str] = None) -> PortfolioAuditor:
        return PortfolioAuditor(
            self.holdings,
            self.price_feed,
            tolerance_percent=self.config.tolerance_percent,
            correlation_id=correlation_id,
        )

    def trade_auditor(self, correlation_id: Optional[str] = None) -> TradeAuditor:
        return TradeAuditor(
            self.orders,
            self.price_feed,
            tolerance_percent=self.config.tolerance_percent,
            fee_rate=self.config.fee_rate,
            correlation_id=correlation_id,
        )

    # ------------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------------

    async def audit_portfolio(
        self, user_id: str, correlation_id: Optional[str] = None
    ) -> PortfolioAuditRecord:
        record = await self.portfolio_auditor(correlation_id).audit_portfolio(user_id)
        record_audit_run("portfolio", record.overall_verdict.value, correlation_id=correlation_id)
        return record

    async def audit_trade(
        self, order_id: str, correlation_id: Optional[str] = None
    ) -> TradeAuditRecord:
        record = await self.trade_auditor(correlation_id).audit_trade(order_id)
        record_audit_run("trade", record.overall_verdict.value, correlation_id=correlation_id)
        return record

    async def run_system_audit(self, correlation_id: Optional[str] = None) -> SystemAuditResult:
        correlation_id = _new_correlation_id(correlation_id)
        runner = SystemAuditRunner(
            self.holdings,
            self.orders,
            self.portfolio_auditor(correlation_id),
            self.trade_auditor(correlation_id),
            audit_log=self.audit_log,
            recent_trades_limit=self.config.recent_trades_limit,
            correlation_id=correlation_id,
        )
        return await runner.run_system_audit()

    async def run_comprehensive_audit(self, correlation_id: Optional[str] = None) -> AuditRunReport:
        engine = ComprehensiveAuditEngine(
            self.probe,
            self.price_feed,
            self.orders,
            scenario_generator=self.scenario_generator,
            audit_log=self.audit_log,
            config=self.config,
        )
        return await engine.run_full_audit(_new_correlation_id(correlation_id))

    async def audit_user(self, user_id: str, correlation_id: Optional[str] = None) -> UserAuditReport:
        auditor = UserTradingAuditor(
            self.accounts,
            portfolio_auditor=self.portfolio_auditor(correlation_id),
            fee_rate=self.config.fee_rate,
            tolerance_percent=self.config.tolerance_percent,
            correlation_id=correlation_id,
        )
        return await auditor.audit_user(user_id)

    async def trade_probability(
        self,
        trading_pair_id: str,
        direction: TradeDirection,
        timeframe: str = "1h",
        correlation_id: Optional[str] = None,
    ) -> ProbabilityAssessment:
        calculator = TradeProbabilityCalculator(self.market, self.orders, correlation_id)
        return await calculator.calculate_enhanced(trading_pair_id, direction, timeframe)


def build_audit_service(
    config: Optional[AuditConfig] = None,
    emergency_stop: Optional[Callable[[], Any]] = None,
) -> AuditService:
    """
    Production wiring: SQLAlchemy repository, Binance + CoinGecko feed.

    Side Effects: Creates the shared database engine (no connection yet)
    """
    from tradeaudit.database.session import get_engine

    config = config or get_audit_config()
    repository = SqlAuditRepository(get_engine())
    price_feed = build_default_price_feed(timeout_seconds=config.price_timeout_seconds)
    probe = PlatformProbe(repository, price_feed, emergency_stop=emergency_stop)

    logger.info(
        f"[AUDIT-SERVICE] Audit service wired | sources="
        f"{[source.name for source in price_feed.sources]} | config={config.to_dict()}"
    )
    return AuditService(repository, price_feed, probe, config=config)
