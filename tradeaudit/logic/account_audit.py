"""
============================================================================
Trade Audit Engine - User Trading Audit
============================================================================

Reliability Level: L5 High
Input Constraints: user_id of a platform user
Side Effects: Read-only; an unexpected error becomes an AUDIT_ERROR result

Categorised checks over one user's trading history:

    PORTFOLIO            portfolio aggregate tolerance audit (optional)
    ORDER_FEES           per-order fee vs quantity * price * fee_rate
    ORDER_FILLS          filled quantity vs ordered quantity
    P&L_CALCULATION      executions with positive quantity and price
    FEE_CALCULATION      fee errors across filled orders (< 10% WARNING)
    BALANCE_CALCULATION  paper balance vs 10000 - buys + sells
    MARKET_DATA          freshness (< 60s PASS, < 300s WARNING) and anomalies

A figure is validated only when every result of its category passed.
============================================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from tradeaudit.database.repositories import AccountReader
from tradeaudit.logic.models import MarketSnapshot, OrderRecord, Verdict, utc_now, worst_verdict
from tradeaudit.logic.portfolio_audit import PortfolioAuditor
from tradeaudit.logic.tolerance import DEFAULT_FEE_RATE, DEFAULT_TOLERANCE_PERCENT
from tradeaudit.observability.metrics import record_audit_run

logger = logging.getLogger(__name__)

PAPER_ACCOUNT_TYPE = "paper"
PAPER_INITIAL_BALANCE = Decimal("10000")
ERROR_RATIO_WARNING = Decimal("0.1")
FRESH_DATA_SECONDS = 60
STALE_DATA_SECONDS = 300
ANOMALY_HIGH_FACTOR = Decimal("1.1")
ANOMALY_LOW_FACTOR = Decimal("0.9")

ORDER_HISTORY_LIMIT = 100
EXECUTION_HISTORY_LIMIT = 100
MARKET_DATA_LIMIT = 100

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AccountAuditResult:
    """One categorised observation."""
    category: str
    status: Verdict
    message: str
    actual_value: Optional[Decimal] = None
    expected_value: Optional[Decimal] = None
    deviation: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        def _str(value: Optional[Decimal]) -> Optional[str]:
            return None if value is None else str(value)

        return {
            "category": self.category,
            "status": self.status.value,
            "message": self.message,
            "actual_value": _str(self.actual_value),
            "expected_value": _str(self.expected_value),
            "deviation": _str(self.deviation),
        }


@dataclass(frozen=True)
class UserAuditReport:
    user_id: str
    overall_status: Verdict
    results: List[AccountAuditResult]
    figure_validation: Dict[str, bool]
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "overall_status": self.overall_status.value,
            "timestamp": self.timestamp.isoformat(),
            "results": [r.to_dict() for r in self.results],
            "figure_validation": dict(self.figure_validation),
        }


def error_ratio_status(errors: int, total: int) -> Verdict:
    """0 errors PASS, fewer than 10% of items WARNING, else FAIL."""
    if errors == 0:
        return Verdict.PASS
    if Decimal(errors) < Decimal(total) * ERROR_RATIO_WARNING:
        return Verdict.WARNING
    return Verdict.FAIL


def figure_validation(results: List[AccountAuditResult]) -> Dict[str, bool]:
    validation: Dict[str, bool] = {}
    for result in results:
        passed = result.status is Verdict.PASS
        validation[result.category] = validation.get(result.category, True) and passed
    return validation


def _effective_price(order: OrderRecord) -> Decimal:
    if order.average_fill_price:
        return order.average_fill_price
    return order.price or _ZERO


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserTradingAuditor:
    """
    Audit of one user's orders, fees, balances and the market data they see.

    Example Usage:
        auditor = UserTradingAuditor(repo, portfolio_auditor=PortfolioAuditor(repo, feed))
        report = await auditor.audit_user("user-123")
    """

    def __init__(
        self,
        accounts: AccountReader,
        portfolio_auditor: Optional[PortfolioAuditor] = None,
        fee_rate: Decimal = DEFAULT_FEE_RATE,
        tolerance_percent: Decimal = DEFAULT_TOLERANCE_PERCENT,
        now: Callable[[], datetime] = utc_now,
        correlation_id: Optional[str] = None,
    ):
        self._accounts = accounts
        self._portfolio_auditor = portfolio_auditor
        self.fee_rate = fee_rate
        self.tolerance = tolerance_percent / _HUNDRED
        self._now = now
        self.correlation_id = correlation_id

    async def audit_user(self, user_id: str) -> UserAuditReport:
        logger.info(
            f"[AUD-USER-001] User trading audit started | user_id={user_id} | "
            f"correlation_id={self.correlation_id}"
        )
        results: List[AccountAuditResult] = []
        try:
            if self._portfolio_auditor is not None:
                results.append(await self._portfolio_check(user_id))
            orders = await self._accounts.get_filled_orders(user_id, ORDER_HISTORY_LIMIT)
            results.extend(self._order_checks(orders))
            results.append(await self._pnl_check(user_id))
            results.append(self._fee_check(orders))
            results.extend(await self._balance_checks(user_id))
            results.extend(await self._market_data_checks())
        except Exception as e:
            logger.error(
                f"[AUD-USER-002] User trading audit failed | user_id={user_id} | "
                f"error={e} | correlation_id={self.correlation_id}"
            )
            results.append(
                AccountAuditResult(
                    category="AUDIT_ERROR",
                    status=Verdict.FAIL,
                    message=f"Audit system error: {e}",
                )
            )
            record_audit_run("user", "ERROR", correlation_id=self.correlation_id)
            return UserAuditReport(
                user_id=user_id,
                overall_status=Verdict.FAIL,
                results=results,
                figure_validation={},
            )

        report = UserAuditReport(
            user_id=user_id,
            overall_status=worst_verdict(r.status for r in results),
            results=results,
            figure_validation=figure_validation(results),
        )
        record_audit_run("user", report.overall_status.value, correlation_id=self.correlation_id)
        logger.info(
            f"[AUD-USER-003] User trading audit complete | user_id={user_id} | "
            f"status={report.overall_status.value} | "
            f"failures={sum(1 for r in results if r.status is Verdict.FAIL)} | "
            f"correlation_id={self.correlation_id}"
        )
        return report

    async def _portfolio_check(self, user_id: str) -> AccountAuditResult:
        record = await self._portfolio_auditor.audit_portfolio(user_id)
        failing = [
            name for name, result in record.metric_results.items()
            if result.verdict is not Verdict.PASS
        ]
        message = f"Portfolio aggregates checked over {record.holdings_count} holdings"
        if failing:
            message += f"; outside tolerance: {', '.join(failing)}"
        return AccountAuditResult(
            category="PORTFOLIO",
            status=record.overall_verdict,
            message=message,
        )

    def _order_checks(self, orders: List[OrderRecord]) -> List[AccountAuditResult]:
        fee_errors = 0
        fill_errors = 0
        for order in orders:
            expected_fees = order.quantity * _effective_price(order) * self.fee_rate
            if abs((order.fees or _ZERO) - expected_fees) > expected_fees * self.tolerance:
                fee_errors += 1
            filled = order.filled_quantity or _ZERO
            if abs(filled - order.quantity) > order.quantity * self.tolerance:
                fill_errors += 1

        total = len(orders)
        return [
            AccountAuditResult(
                category="ORDER_FEES",
                status=error_ratio_status(fee_errors, total),
                message=f"Fee calculation accuracy: {fee_errors} errors in {total} orders",
                actual_value=Decimal(fee_errors),
            ),
            AccountAuditResult(
                category="ORDER_FILLS",
                status=Verdict.PASS if fill_errors == 0 else Verdict.FAIL,
                message=f"Order fill accuracy: {fill_errors} errors in {total} orders",
                actual_value=Decimal(fill_errors),
            ),
        ]

    async def _pnl_check(self, user_id: str) -> AccountAuditResult:
        executions = await self._accounts.get_user_executions(user_id, EXECUTION_HISTORY_LIMIT)
        if not executions:
            return AccountAuditResult(
                category="P&L_CALCULATION",
                status=Verdict.WARNING,
                message="No trade executions found for P&L validation",
            )

        total_pnl = _ZERO
        valid = 0
        for execution in executions:
            if execution.quantity > _ZERO and execution.price > _ZERO:
                total_pnl += execution.profit_loss or _ZERO
                valid += 1
        return AccountAuditResult(
            category="P&L_CALCULATION",
            status=Verdict.PASS if valid > 0 else Verdict.FAIL,
            message=f"Validated {valid} trades with total P&L: ${total_pnl:.2f}",
            actual_value=total_pnl,
        )

    def _fee_check(self, orders: List[OrderRecord]) -> AccountAuditResult:
        if not orders:
            return AccountAuditResult(
                category="FEE_CALCULATION",
                status=Verdict.WARNING,
                message="No filled orders found for fee validation",
            )

        calculated_total = _ZERO
        actual_total = _ZERO
        errors = 0
        for order in orders:
            calculated = order.quantity * _effective_price(order) * self.fee_rate
            actual = order.fees or _ZERO
            calculated_total += calculated
            actual_total += actual
            if abs(actual - calculated) > calculated * self.tolerance:
                errors += 1

        deviation = abs(calculated_total - actual_total)
        accuracy = _ZERO
        if actual_total > _ZERO:
            accuracy = (1 - deviation / actual_total) * _HUNDRED
        return AccountAuditResult(
            category="FEE_CALCULATION",
            status=error_ratio_status(errors, len(orders)),
            message=f"Fee calculation accuracy: {accuracy:.2f}%, Errors: {errors}/{len(orders)}",
            actual_value=actual_total,
            expected_value=calculated_total,
            deviation=deviation,
        )

    async def _balance_checks(self, user_id: str) -> List[AccountAuditResult]:
        accounts = await self._accounts.get_trading_accounts(user_id)
        if not accounts:
            return [
                AccountAuditResult(
                    category="BALANCE_CALCULATION",
                    status=Verdict.WARNING,
                    message="No trading accounts found for balance validation",
                )
            ]

        results = []
        for account in accounts:
            if account.account_type != PAPER_ACCOUNT_TYPE:
                continue
            spent = _ZERO
            received = _ZERO
            for order in await self._accounts.get_account_filled_orders(account.account_id):
                value = order.quantity * (order.price or _ZERO) + (order.fees or _ZERO)
                if order.side == "buy":
                    spent += value
                else:
                    received += value

            expected = PAPER_INITIAL_BALANCE - spent + received
            deviation = abs(account.balance_usd - expected)
            accurate = deviation <= expected * self.tolerance
            results.append(
                AccountAuditResult(
                    category="BALANCE_CALCULATION",
                    status=Verdict.PASS if accurate else Verdict.FAIL,
                    message=f"Account {account.account_id[:8]}... balance validation",
                    actual_value=account.balance_usd,
                    expected_value=expected,
                    deviation=deviation,
                )
            )
        return results

    async def _market_data_checks(self) -> List[AccountAuditResult]:
        rows = await self._accounts.get_recent_market_data(MARKET_DATA_LIMIT)
        if not rows:
            return [
                AccountAuditResult(
                    category="MARKET_DATA",
                    status=Verdict.FAIL,
                    message="No market data found in database",
                )
            ]

        results = []
        latest = rows[0].timestamp
        if latest is not None:
            age = Decimal(str(round((self._now() - _as_utc(latest)).total_seconds(), 3)))
            if age < FRESH_DATA_SECONDS:
                status = Verdict.PASS
            elif age < STALE_DATA_SECONDS:
                status = Verdict.WARNING
            else:
                status = Verdict.FAIL
            results.append(
                AccountAuditResult(
                    category="MARKET_DATA",
                    status=status,
                    message=f"Market data age: {age:.0f} seconds",
                    actual_value=age,
                )
            )
        else:
            results.append(
                AccountAuditResult(
                    category="MARKET_DATA",
                    status=Verdict.FAIL,
                    message="Latest market data row has no timestamp",
                )
            )

        anomalies = sum(1 for row in rows if self._is_anomalous(row))
        results.append(
            AccountAuditResult(
                category="MARKET_DATA",
                status=error_ratio_status(anomalies, len(rows)),
                message=f"Price anomalies detected: {anomalies}/{len(rows)}",
                actual_value=Decimal(anomalies),
            )
        )
        return results

    @staticmethod
    def _is_anomalous(row: MarketSnapshot) -> bool:
        if row.price <= _ZERO:
            return True
        if row.high_24h > _ZERO and row.low_24h > _ZERO:
            return (
                row.price > row.high_24h * ANOMALY_HIGH_FACTOR
                or row.price < row.low_24h * ANOMALY_LOW_FACTOR
            )
        return False
