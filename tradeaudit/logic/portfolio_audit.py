"""
============================================================================
Trade Audit Engine - Portfolio Audit
============================================================================

Reliability Level: L6 Critical
Input Constraints: user_id of a portfolio owner
Side Effects: Read-only (holdings + price feed); never writes corrections

Recomputes the five portfolio aggregates from the holding rows and
compares each with the aggregate of the persisted fields:

    total_value     sum(quantity * current_price)
    total_invested  sum(quantity * average_cost)
    unrealized_pnl  total_value - total_invested
    realized_pnl    sum(realized_pnl)
    total_pnl       unrealized_pnl + realized_pnl

current_price comes from the price feed and falls back to the holding's
average cost when the feed has no answer.
============================================================================
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from tradeaudit.database.repositories import HoldingsReader
from tradeaudit.errors import AuditInfrastructureError, CollaboratorError
from tradeaudit.exchange.price_feed import PriceFeedReader
from tradeaudit.logic.models import (
    PORTFOLIO_METRICS,
    Holding,
    PortfolioAuditRecord,
    ToleranceResult,
    Verdict,
)
from tradeaudit.logic.tolerance import DEFAULT_TOLERANCE_PERCENT, compare
from tradeaudit.observability.metrics import record_tolerance_verdict

logger = logging.getLogger(__name__)

METRIC_LABELS = {
    "total_value": "Total Portfolio Value",
    "total_invested": "Total Invested",
    "unrealized_pnl": "Unrealized P&L",
    "realized_pnl": "Realized P&L",
    "total_pnl": "Total P&L",
}

_ZERO = Decimal("0")


class PortfolioAuditor:
    """
    Tolerance audit of one user's portfolio aggregates.

    Reliability Level: L6 Critical
    Input Constraints: Holdings reader and price feed collaborators
    Side Effects: Logging and metrics only

    Example Usage:
        auditor = PortfolioAuditor(repo, price_feed)
        record = await auditor.audit_portfolio("user-123")
        if record.overall_verdict is Verdict.FAIL:
            ...
    """

    def __init__(
        self,
        holdings_reader: HoldingsReader,
        price_feed: PriceFeedReader,
        tolerance_percent: Decimal = DEFAULT_TOLERANCE_PERCENT,
        correlation_id: Optional[str] = None,
    ):
        self._holdings = holdings_reader
        self._price_feed = price_feed
        self.tolerance_percent = tolerance_percent
        self.correlation_id = correlation_id

    async def audit_portfolio(self, user_id: str) -> PortfolioAuditRecord:
        """
        Audit a single portfolio.

        Raises:
            AuditInfrastructureError: Holdings could not be read (AUD-INFRA-001)
        """
        try:
            holdings = await self._holdings.get_holdings(user_id)
        except Exception as e:
            logger.error(
                f"[AUD-INFRA-001] Holdings read failed | user_id={user_id} | "
                f"error={e} | correlation_id={self.correlation_id}"
            )
            raise AuditInfrastructureError(
                f"Could not read holdings for user {user_id}: {e}"
            ) from e

        if not holdings:
            logger.info(
                f"[AUD-PORT-001] No holdings, trivially consistent | "
                f"user_id={user_id} | correlation_id={self.correlation_id}"
            )
            results = {
                name: compare(_ZERO, _ZERO, self.tolerance_percent, METRIC_LABELS[name])
                for name in PORTFOLIO_METRICS
            }
            return PortfolioAuditRecord(user_id=user_id, metric_results=results, holdings_count=0)

        calculated = await self._calculate(holdings)
        stored = self._stored_aggregates(holdings)

        results: Dict[str, ToleranceResult] = {}
        for name in PORTFOLIO_METRICS:
            result = compare(calculated[name], stored[name], self.tolerance_percent, METRIC_LABELS[name])
            record_tolerance_verdict(name, result.verdict.value)
            if result.verdict is not Verdict.PASS:
                logger.warning(
                    f"[AUD-PORT-002] Tolerance breach | user_id={user_id} | "
                    f"metric={name} | calculated={result.calculated} | "
                    f"stored={result.stored} | diff_pct={result.percentage_diff} | "
                    f"verdict={result.verdict.value} | correlation_id={self.correlation_id}"
                )
            results[name] = result

        record = PortfolioAuditRecord(
            user_id=user_id,
            metric_results=results,
            holdings_count=len(holdings),
        )
        logger.info(
            f"[AUD-PORT-003] Portfolio audit complete | user_id={user_id} | "
            f"holdings={len(holdings)} | verdict={record.overall_verdict.value} | "
            f"correlation_id={self.correlation_id}"
        )
        return record

    async def _calculate(self, holdings: List[Holding]) -> Dict[str, Decimal]:
        total_value = _ZERO
        total_invested = _ZERO
        realized = _ZERO

        for holding in holdings:
            price = await self._current_price(holding)
            total_value += holding.quantity * price
            total_invested += holding.quantity * holding.average_cost
            realized += holding.realized_pnl

        unrealized = total_value - total_invested
        return {
            "total_value": total_value,
            "total_invested": total_invested,
            "unrealized_pnl": unrealized,
            "realized_pnl": realized,
            "total_pnl": unrealized + realized,
        }

    async def _current_price(self, holding: Holding) -> Decimal:
        try:
            price = await self._price_feed.get_price(holding.asset)
        except CollaboratorError as e:
            logger.warning(
                f"[AUD-PORT-004] Price feed error, using average cost | "
                f"asset={holding.asset} | error={e} | correlation_id={self.correlation_id}"
            )
            return holding.average_cost

        if price is None:
            logger.warning(
                f"[AUD-PORT-004] No market price, using average cost | "
                f"asset={holding.asset} | correlation_id={self.correlation_id}"
            )
            return holding.average_cost
        return price

    @staticmethod
    def _stored_aggregates(holdings: List[Holding]) -> Dict[str, Decimal]:
        value = sum((h.current_value for h in holdings), _ZERO)
        invested = sum((h.invested_total for h in holdings), _ZERO)
        unrealized = sum((h.unrealized_pnl for h in holdings), _ZERO)
        realized = sum((h.realized_pnl for h in holdings), _ZERO)
        return {
            "total_value": value,
            "total_invested": invested,
            "unrealized_pnl": unrealized,
            "realized_pnl": realized,
            "total_pnl": unrealized + realized,
        }
