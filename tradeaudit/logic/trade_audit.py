"""
Trade Execution Audit

Reliability Level: L6 Critical
Input Constraints: order_id with a matched execution
Side Effects: Read-only (orders, executions, trading pairs, price feed)

Recomputes what an execution should have cost and compares it with what
was recorded:
- expected price: current market price for market orders, the order's
  limit price otherwise
- expected fees: order.quantity * execution.price * fee_rate

The portfolio-update and balance-update checks are unimplemented
placeholders that always PASS; their labels say so in every report.

Python 3.8 Compatible - No union type hints (X | None)
"""

import logging
from decimal import Decimal
from typing import Optional

from tradeaudit.database.repositories import OrderExecutionReader
from tradeaudit.errors import AuditInfrastructureError, CollaboratorError
from tradeaudit.exchange.price_feed import PriceFeedReader
from tradeaudit.logic.models import OrderRecord, TradeAuditRecord, TradingPair, Verdict
from tradeaudit.logic.tolerance import (
    DEFAULT_FEE_RATE,
    DEFAULT_TOLERANCE_PERCENT,
    compare,
    placeholder_pass,
)
from tradeaudit.observability.metrics import record_tolerance_verdict

logger = logging.getLogger(__name__)


class TradeAuditor:
    """
    Tolerance audit of a single order / execution pair.

    Example Usage:
        auditor = TradeAuditor(repo, price_feed)
        record = await auditor.audit_trade("order-42")
    """

    def __init__(
        self,
        orders: OrderExecutionReader,
        price_feed: PriceFeedReader,
        tolerance_percent: Decimal = DEFAULT_TOLERANCE_PERCENT,
        fee_rate: Decimal = DEFAULT_FEE_RATE,
        correlation_id: Optional[str] = None,
    ):
        self._orders = orders
        self._price_feed = price_feed
        self.tolerance_percent = tolerance_percent
        self.fee_rate = fee_rate
        self.correlation_id = correlation_id

    async def audit_trade(self, order_id: str) -> TradeAuditRecord:
        """
        Audit one trade.

        Raises:
            AuditInfrastructureError: Order or execution missing or unreadable
        """
        try:
            order = await self._orders.get_order(order_id)
            execution = await self._orders.get_execution_for_order(order_id)
        except CollaboratorError as e:
            logger.error(
                f"[AUD-INFRA-001] Order / execution read failed | order_id={order_id} | "
                f"error={e} | correlation_id={self.correlation_id}"
            )
            raise AuditInfrastructureError(f"Could not read trade {order_id}: {e}") from e

        if order is None:
            raise AuditInfrastructureError(f"Order not found: {order_id}")
        if execution is None:
            raise AuditInfrastructureError(f"No execution recorded for order: {order_id}")

        expected_price = await self._expected_price(order)
        expected_fees = order.quantity * execution.price * self.fee_rate

        price_result = compare(
            expected_price, execution.price, self.tolerance_percent, "Execution Price"
        )
        fees_result = compare(
            expected_fees, execution.fees, self.tolerance_percent, "Trading Fees"
        )
        logger.debug(
            f"[AUD-TRADE-003] Portfolio / balance update checks not implemented, "
            f"reporting placeholders | order_id={order_id}"
        )
        record = TradeAuditRecord(
            order_id=order_id,
            execution_price_result=price_result,
            fees_result=fees_result,
            portfolio_update_result=placeholder_pass("Portfolio Update", self.tolerance_percent),
            balance_update_result=placeholder_pass("Balance Update", self.tolerance_percent),
        )

        record_tolerance_verdict("execution_price", price_result.verdict.value)
        record_tolerance_verdict("fees", fees_result.verdict.value)

        if record.overall_verdict is not Verdict.PASS:
            logger.warning(
                f"[AUD-TRADE-004] Trade outside tolerance | order_id={order_id} | "
                f"price_verdict={price_result.verdict.value} | "
                f"fees_verdict={fees_result.verdict.value} | "
                f"correlation_id={self.correlation_id}"
            )
        else:
            logger.info(
                f"[AUD-TRADE-005] Trade audit complete | order_id={order_id} | "
                f"verdict=PASS | correlation_id={self.correlation_id}"
            )
        return record

    async def _expected_price(self, order: OrderRecord) -> Decimal:
        limit_price = order.price if order.price is not None else Decimal("0")
        if not order.is_market:
            return limit_price

        try:
            pair = await self._resolve_pair(order)
        except CollaboratorError as e:
            raise AuditInfrastructureError(
                f"Could not read trading pair for order {order.order_id}: {e}"
            ) from e
        if pair is None:
            logger.warning(
                f"[AUD-TRADE-002] No trading pair available, comparing against order price | "
                f"order_id={order.order_id} | correlation_id={self.correlation_id}"
            )
            return limit_price

        try:
            market_price = await self._price_feed.get_price(pair.symbol)
        except CollaboratorError as e:
            logger.warning(
                f"[AUD-TRADE-002] Price feed error, comparing against order price | "
                f"symbol={pair.symbol} | error={e} | correlation_id={self.correlation_id}"
            )
            return limit_price

        if market_price is None:
            logger.warning(
                f"[AUD-TRADE-002] No market price, comparing against order price | "
                f"symbol={pair.symbol} | correlation_id={self.correlation_id}"
            )
            return limit_price
        return market_price

    async def _resolve_pair(self, order: OrderRecord) -> Optional[TradingPair]:
        """Order's trading pair, or the first active pair when the reference is invalid."""
        pair = None
        if order.trading_pair_id:
            pair = await self._orders.get_trading_pair(order.trading_pair_id)
        if pair is not None:
            return pair

        active = await self._orders.list_active_trading_pairs()
        if not active:
            return None
        logger.warning(
            f"[AUD-TRADE-001] Invalid trading pair reference, substituting first active pair | "
            f"order_id={order.order_id} | trading_pair_id={order.trading_pair_id} | "
            f"substitute={active[0].symbol} | correlation_id={self.correlation_id}"
        )
        return active[0]
