"""
============================================================================
Trade Audit Engine - System-Wide Audit Runner
============================================================================

Reliability Level: L6 Critical
Input Constraints: Portfolio and trade auditors sharing one correlation_id
Side Effects: Reads every portfolio and the recent executions; one
              audit_trail entry per run (fire-and-forget)

Health classification:
    HEALTHY   zero failed portfolios AND zero failed trades, with at least
              one audit of each type
    CRITICAL  failed portfolios > 50% of portfolios OR
              failed trades > 50% of trades
    DEGRADED  everything else

Items are audited one after another so report order is reproducible.
A single failing user or trade is logged and omitted; it never aborts
the sweep.
============================================================================
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from tradeaudit.database.repositories import AuditLogWriter, HoldingsReader, OrderExecutionReader
from tradeaudit.errors import AuditInfrastructureError, CollaboratorError
from tradeaudit.logic.models import (
    PortfolioAuditRecord,
    SystemHealth,
    TradeAuditRecord,
    Verdict,
    utc_now,
)
from tradeaudit.logic.portfolio_audit import PortfolioAuditor
from tradeaudit.logic.trade_audit import TradeAuditor
from tradeaudit.observability.metrics import record_audit_run

logger = logging.getLogger(__name__)

DEFAULT_RECENT_TRADES_LIMIT = 10
CRITICAL_FAILURE_RATIO = Decimal("0.5")


@dataclass(frozen=True)
class SystemAuditSummary:
    """Pass / warning / fail counts and the derived health verdict."""
    total_portfolios: int
    passed_portfolios: int
    warning_portfolios: int
    failed_portfolios: int
    total_trades: int
    passed_trades: int
    warning_trades: int
    failed_trades: int
    overall_health: SystemHealth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_portfolios": self.total_portfolios,
            "passed_portfolios": self.passed_portfolios,
            "warning_portfolios": self.warning_portfolios,
            "failed_portfolios": self.failed_portfolios,
            "total_trades": self.total_trades,
            "passed_trades": self.passed_trades,
            "warning_trades": self.warning_trades,
            "failed_trades": self.failed_trades,
            "overall_health": self.overall_health.value,
        }


@dataclass(frozen=True)
class SystemAuditResult:
    """Outcome of one system-wide sweep."""
    portfolio_audits: List[PortfolioAuditRecord]
    trade_audits: List[TradeAuditRecord]
    summary: SystemAuditSummary
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "summary": self.summary.to_dict(),
            "portfolio_audits": [r.to_dict() for r in self.portfolio_audits],
            "trade_audits": [r.to_dict() for r in self.trade_audits],
        }


def _count(verdicts: Sequence[Verdict], wanted: Verdict) -> int:
    return sum(1 for v in verdicts if v is wanted)


def classify_health(
    total_portfolios: int,
    failed_portfolios: int,
    total_trades: int,
    failed_trades: int,
) -> SystemHealth:
    """Derive overall health from failure counts."""
    portfolio_critical = (
        total_portfolios > 0
        and Decimal(failed_portfolios) > CRITICAL_FAILURE_RATIO * total_portfolios
    )
    trade_critical = (
        total_trades > 0
        and Decimal(failed_trades) > CRITICAL_FAILURE_RATIO * total_trades
    )
    if portfolio_critical or trade_critical:
        return SystemHealth.CRITICAL

    if (
        failed_portfolios == 0
        and failed_trades == 0
        and total_portfolios > 0
        and total_trades > 0
    ):
        return SystemHealth.HEALTHY
    return SystemHealth.DEGRADED


def summarize(
    portfolio_audits: Sequence[PortfolioAuditRecord],
    trade_audits: Sequence[TradeAuditRecord],
) -> SystemAuditSummary:
    """Aggregate per-item verdicts into a SystemAuditSummary."""
    portfolio_verdicts = [r.overall_verdict for r in portfolio_audits]
    trade_verdicts = [r.overall_verdict for r in trade_audits]

    failed_portfolios = _count(portfolio_verdicts, Verdict.FAIL)
    failed_trades = _count(trade_verdicts, Verdict.FAIL)

    return SystemAuditSummary(
        total_portfolios=len(portfolio_verdicts),
        passed_portfolios=_count(portfolio_verdicts, Verdict.PASS),
        warning_portfolios=_count(portfolio_verdicts, Verdict.WARNING),
        failed_portfolios=failed_portfolios,
        total_trades=len(trade_verdicts),
        passed_trades=_count(trade_verdicts, Verdict.PASS),
        warning_trades=_count(trade_verdicts, Verdict.WARNING),
        failed_trades=failed_trades,
        overall_health=classify_health(
            len(portfolio_verdicts), failed_portfolios, len(trade_verdicts), failed_trades
        ),
    )


class SystemAuditRunner:
    """
    Best-effort sweep over every portfolio and the most recent trades.

    Reliability Level: L6 Critical
    Input Constraints: Collaborators and per-item auditors
    Side Effects: One audit_trail entry per completed run
    """

    def __init__(
        self,
        holdings: HoldingsReader,
        orders: OrderExecutionReader,
        portfolio_auditor: PortfolioAuditor,
        trade_auditor: TradeAuditor,
        audit_log: Optional[AuditLogWriter] = None,
        recent_trades_limit: int = DEFAULT_RECENT_TRADES_LIMIT,
        correlation_id: Optional[str] = None,
    ):
        self._holdings = holdings
        self._orders = orders
        self._portfolio_auditor = portfolio_auditor
        self._trade_auditor = trade_auditor
        self._audit_log = audit_log
        self.recent_trades_limit = recent_trades_limit
        self.correlation_id = correlation_id

    async def run_system_audit(self) -> SystemAuditResult:
        """
        Run the sweep.

        Raises:
            AuditInfrastructureError: Users or executions could not be listed
        """
        started = time.perf_counter()
        logger.info(
            f"[AUD-SYS-001] System audit started | "
            f"recent_trades_limit={self.recent_trades_limit} | "
            f"correlation_id={self.correlation_id}"
        )

        try:
            user_ids = await self._holdings.list_users_with_holdings()
            executions = await self._orders.get_recent_executions(self.recent_trades_limit)
        except CollaboratorError as e:
            record_audit_run("system", "ERROR", correlation_id=self.correlation_id)
            raise AuditInfrastructureError(f"Could not enumerate audit targets: {e}") from e

        portfolio_audits: List[PortfolioAuditRecord] = []
        for user_id in user_ids:
            try:
                portfolio_audits.append(await self._portfolio_auditor.audit_portfolio(user_id))
            except Exception as e:
                logger.error(
                    f"[AUD-SYS-002] Portfolio audit failed, omitting | user_id={user_id} | "
                    f"error={e} | correlation_id={self.correlation_id}"
                )

        trade_audits: List[TradeAuditRecord] = []
        for execution in executions:
            if not execution.order_id:
                logger.warning(
                    f"[AUD-SYS-002] Execution without order, omitting | "
                    f"execution_id={execution.execution_id} | correlation_id={self.correlation_id}"
                )
                continue
            try:
                trade_audits.append(await self._trade_auditor.audit_trade(execution.order_id))
            except Exception as e:
                logger.error(
                    f"[AUD-SYS-002] Trade audit failed, omitting | order_id={execution.order_id} | "
                    f"error={e} | correlation_id={self.correlation_id}"
                )

        summary = summarize(portfolio_audits, trade_audits)
        result = SystemAuditResult(
            portfolio_audits=portfolio_audits,
            trade_audits=trade_audits,
            summary=summary,
        )

        duration = time.perf_counter() - started
        record_audit_run(
            "system", summary.overall_health.value, duration, correlation_id=self.correlation_id
        )

        log_message = (
            f"[AUD-SYS-003] System audit complete | health={summary.overall_health.value} | "
            f"portfolios={summary.total_portfolios} (failed {summary.failed_portfolios}) | "
            f"trades={summary.total_trades} (failed {summary.failed_trades}) | "
            f"correlation_id={self.correlation_id}"
        )
        if summary.overall_health is SystemHealth.CRITICAL:
            logger.critical(log_message)
        else:
            logger.info(log_message)

        if self._audit_log is not None:
            await self._audit_log.record(
                "SYSTEM_AUDIT",
                "system",
                self.correlation_id or "system",
                summary.to_dict(),
            )
        return result
