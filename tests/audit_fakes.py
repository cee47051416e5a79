"""
In-memory collaborators for audit tests.

Python 3.8 Compatible

No network or database is touched: the repository, price sources and
system probe below implement the production interfaces over plain dicts.
"""

import asyncio
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from tradeaudit.database.repositories import (
    AccountReader,
    AuditLogWriter,
    HoldingsReader,
    MarketContextReader,
    OrderExecutionReader,
    SystemProbe,
)
from tradeaudit.errors import CollaboratorError
from tradeaudit.exchange.price_feed import MultiSourcePriceFeed, PriceSource, base_asset
from tradeaudit.logic.models import (
    ExecutionRecord,
    Holding,
    LiquidityZone,
    MarketSnapshot,
    OrderRecord,
    TradingAccount,
    TradingPair,
)


def run(coro):
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def D(value) -> Decimal:
    return Decimal(str(value))


def make_holding(
    asset: str = "BTC",
    quantity="1",
    average_cost="100",
    current_value="100",
    invested_total="100",
    unrealized_pnl="0",
    realized_pnl="0",
) -> Holding:
    return Holding(
        asset=asset,
        quantity=D(quantity),
        average_cost=D(average_cost),
        current_value=D(current_value),
        invested_total=D(invested_total),
        unrealized_pnl=D(unrealized_pnl),
        realized_pnl=D(realized_pnl),
    )


def make_order(
    order_id: str = "order-1",
    order_type: str = "limit",
    side: str = "buy",
    quantity="1",
    price="100",
    trading_pair_id: Optional[str] = "pair-btc",
    **kwargs: Any
) -> OrderRecord:
    return OrderRecord(
        order_id=order_id,
        order_type=order_type,
        side=side,
        quantity=D(quantity),
        price=None if price is None else D(price),
        trading_pair_id=trading_pair_id,
        **kwargs
    )


def make_execution(
    order_id: str = "order-1",
    price="100",
    quantity="1",
    fees="0.1",
    execution_id: Optional[str] = None,
    profit_loss=None,
) -> ExecutionRecord:
    return ExecutionRecord(
        execution_id=execution_id or f"exec-{order_id}",
        order_id=order_id,
        price=D(price),
        quantity=D(quantity),
        fees=D(fees),
        profit_loss=None if profit_loss is None else D(profit_loss),
    )


BTC_PAIR = TradingPair(pair_id="pair-btc", symbol="BTC/USDT", base_asset="BTC", quote_asset="USDT")
ETH_PAIR = TradingPair(pair_id="pair-eth", symbol="ETH/USDT", base_asset="ETH", quote_asset="USDT")


class FakeRepository(
    HoldingsReader,
    OrderExecutionReader,
    AuditLogWriter,
    MarketContextReader,
    AccountReader,
):
    """
    Dict-backed implementation of every repository interface.

    Method names listed in `failing` raise CollaboratorError.
    """

    def __init__(self) -> None:
        self.holdings: Dict[str, List[Holding]] = {}
        self.orders: Dict[str, OrderRecord] = {}
        self.executions: Dict[str, ExecutionRecord] = {}
        self.recent_executions: List[ExecutionRecord] = []
        self.pairs: Dict[str, TradingPair] = {}
        self.snapshots: Dict[str, MarketSnapshot] = {}
        self.zones: Dict[str, List[LiquidityZone]] = {}
        self.fibonacci: Dict[str, List[Any]] = {}
        self.user_orders: Dict[str, List[OrderRecord]] = {}
        self.user_executions: Dict[str, List[ExecutionRecord]] = {}
        self.accounts: Dict[str, List[TradingAccount]] = {}
        self.account_orders: Dict[str, List[OrderRecord]] = {}
        self.market_rows: List[MarketSnapshot] = []
        self.audit_entries: List[Tuple[str, str, str, Dict[str, Any]]] = []
        self.failing: set = set()
        self.failing_users: set = set()

    def _check(self, name: str) -> None:
        if name in self.failing:
            raise CollaboratorError(f"{name} unavailable")

    def add_pairs(self, pairs: Iterable[TradingPair]) -> None:
        for pair in pairs:
            self.pairs[pair.pair_id] = pair

    def add_trade(self, order: OrderRecord, execution: Optional[ExecutionRecord]) -> None:
        self.orders[order.order_id] = order
        if execution is not None:
            self.executions[order.order_id] = execution
            self.recent_executions.append(execution)

    async def get_holdings(self, user_id: str) -> List[Holding]:
        self._check("get_holdings")
        if user_id in self.failing_users:
            raise CollaboratorError(f"holdings of {user_id} unavailable")
        return list(self.holdings.get(user_id, []))

    async def list_users_with_holdings(self) -> List[str]:
        self._check("list_users_with_holdings")
        return sorted(user for user, rows in self.holdings.items() if rows)

    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        self._check("get_order")
        return self.orders.get(order_id)

    async def get_execution_for_order(self, order_id: str) -> Optional[ExecutionRecord]:
        self._check("get_execution_for_order")
        return self.executions.get(order_id)

    async def get_recent_executions(self, limit: int) -> List[ExecutionRecord]:
        self._check("get_recent_executions")
        return self.recent_executions[:limit]

    async def get_trading_pair(self, pair_id: str) -> Optional[TradingPair]:
        self._check("get_trading_pair")
        return self.pairs.get(pair_id)

    async def list_active_trading_pairs(self) -> List[TradingPair]:
        self._check("list_active_trading_pairs")
        return [pair for pair in self.pairs.values() if pair.is_active]

    async def record(self, action, resource_type, resource_id, payload) -> None:
        self.audit_entries.append((action, resource_type, resource_id, payload))

    async def get_market_snapshot(self, trading_pair_id: str) -> Optional[MarketSnapshot]:
        self._check("get_market_snapshot")
        return self.snapshots.get(trading_pair_id)

    async def get_liquidity_zones(self, trading_pair_id: str) -> List[LiquidityZone]:
        self._check("get_liquidity_zones")
        return list(self.zones.get(trading_pair_id, []))

    async def get_fibonacci_levels(self, trading_pair_id: str, timeframe: str) -> List[Any]:
        self._check("get_fibonacci_levels")
        return list(self.fibonacci.get(trading_pair_id, []))

    async def get_filled_orders(self, user_id: str, limit: int) -> List[OrderRecord]:
        self._check("get_filled_orders")
        return list(self.user_orders.get(user_id, []))[:limit]

    async def get_user_executions(self, user_id: str, limit: int) -> List[ExecutionRecord]:
        self._check("get_user_executions")
        return list(self.user_executions.get(user_id, []))[:limit]

    async def get_trading_accounts(self, user_id: str) -> List[TradingAccount]:
        self._check("get_trading_accounts")
        return list(self.accounts.get(user_id, []))

    async def get_account_filled_orders(self, account_id: str) -> List[OrderRecord]:
        self._check("get_account_filled_orders")
        return list(self.account_orders.get(account_id, []))

    async def get_recent_market_data(self, limit: int) -> List[MarketSnapshot]:
        self._check("get_recent_market_data")
        return self.market_rows[:limit]


class StaticPriceSource(PriceSource):
    """Price source answering from a dict keyed by base asset."""

    def __init__(self, name: str, prices: Dict[str, Any], fail: bool = False):
        self.name = name
        self.prices = {asset: D(price) for asset, price in prices.items()}
        self.fail = fail
        self.depth: Dict[str, Tuple[int, int]] = {}
        self.calls: List[str] = []

    async def fetch_price(self, symbol: str) -> Decimal:
        self.calls.append(symbol)
        if self.fail:
            raise CollaboratorError(f"{self.name} down")
        asset = base_asset(symbol)
        if asset not in self.prices:
            raise CollaboratorError(f"{self.name} has no price for {symbol}")
        return self.prices[asset]

    async def fetch_order_book_depth(self, symbol: str) -> Tuple[int, int]:
        if self.fail:
            raise CollaboratorError(f"{self.name} down")
        return self.depth.get(base_asset(symbol), (0, 0))


def make_feed(*sources: PriceSource) -> MultiSourcePriceFeed:
    return MultiSourcePriceFeed(list(sources))


def agreeing_feed(btc="50000", eth="3000") -> MultiSourcePriceFeed:
    """Two sources quoting identical prices."""
    prices = {"BTC": btc, "ETH": eth}
    return make_feed(StaticPriceSource("alpha", prices), StaticPriceSource("beta", prices))


class FakeProbe(SystemProbe):
    """Configurable platform diagnostics."""

    def __init__(
        self,
        storage_ok: bool = True,
        bots: Tuple[int, int] = (3, 2),
        order_books: Optional[Iterable[str]] = ("BTC", "ETH"),
        emergency_stop: bool = True,
    ):
        self.storage_ok = storage_ok
        self.bots = bots
        self.order_books = set(order_books or ())
        self.emergency_stop = emergency_stop
        self.pings = 0

    async def ping_storage(self) -> None:
        self.pings += 1
        if not self.storage_ok:
            raise CollaboratorError("storage unreachable")

    async def count_bots(self) -> Tuple[int, int]:
        return self.bots

    async def order_book_available(self, symbol: str) -> bool:
        return base_asset(symbol) in self.order_books

    async def emergency_stop_available(self) -> bool:
        return self.emergency_stop
