# ============================================================================
# Trade Audit Engine v1.0.0
# Audit Repositories - Collaborator Interfaces & SQL Implementation
# ============================================================================
#
# Reliability Level: L6 Critical
# Purpose: Read access to the trading tables audited by the engine and the
#          append-only audit_trail sink
#
# Interfaces (abstract base classes, swapped for fakes in tests):
#   - HoldingsReader: user_trading_portfolios
#   - OrderExecutionReader: user_orders, trade_executions, trading_pairs
#   - AuditLogWriter: audit_trail (fire-and-forget)
#   - MarketContextReader: market_data_live, liquidity_zones, fibonacci_levels
#   - AccountReader: trading_accounts and per-user order history
#   - SystemProbe: storage ping, bot counts, order book, emergency stop
#
# Error Codes:
#   - AUD-COLLAB-001: Storage unreachable or query failed
#   - AUD-LOG-001: Audit trail write failed (logged, never raised)
#
# ============================================================================

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tradeaudit.errors import CollaboratorError
from tradeaudit.exchange.decimal_gateway import DecimalGateway
from tradeaudit.logic.models import (
    ExecutionRecord,
    Holding,
    LiquidityZone,
    MarketSnapshot,
    OrderRecord,
    TradingAccount,
    TradingPair,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Interfaces
# ============================================================================

class HoldingsReader(ABC):
    """Read access to portfolio holdings."""

    @abstractmethod
    async def get_holdings(self, user_id: str) -> List[Holding]:
        """Return every holding row of a user (possibly empty)."""

    @abstractmethod
    async def list_users_with_holdings(self) -> List[str]:
        """Return the distinct user IDs owning at least one holding."""


class OrderExecutionReader(ABC):
    """Read access to orders, executions and trading pairs."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        """Return an order or None."""

    @abstractmethod
    async def get_execution_for_order(self, order_id: str) -> Optional[ExecutionRecord]:
        """Return the matched execution of an order or None."""

    @abstractmethod
    async def get_recent_executions(self, limit: int) -> List[ExecutionRecord]:
        """Return the most recent executions, newest first."""

    @abstractmethod
    async def get_trading_pair(self, pair_id: str) -> Optional[TradingPair]:
        """Return a trading pair definition or None."""

    @abstractmethod
    async def list_active_trading_pairs(self) -> List[TradingPair]:
        """Return all active trading pairs."""


class AuditLogWriter(ABC):
    """Append-only sink recording that an audit ran."""

    @abstractmethod
    async def record(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        payload: Dict[str, Any],
    ) -> None:
        """Append an entry. Implementations must not raise."""


class MarketContextReader(ABC):
    """Market context used by the trade probability heuristic."""

    @abstractmethod
    async def get_market_snapshot(self, trading_pair_id: str) -> Optional[MarketSnapshot]:
        """Latest market data row for a pair."""

    @abstractmethod
    async def get_liquidity_zones(self, trading_pair_id: str) -> List[LiquidityZone]:
        """Known liquidity zones for a pair."""

    @abstractmethod
    async def get_fibonacci_levels(self, trading_pair_id: str, timeframe: str) -> List[Any]:
        """Latest active Fibonacci retracement levels (may contain None)."""


class AccountReader(ABC):
    """Per-user order / account history used by the user trading audit."""

    @abstractmethod
    async def get_filled_orders(self, user_id: str, limit: int) -> List[OrderRecord]:
        """Filled orders of a user."""

    @abstractmethod
    async def get_user_executions(self, user_id: str, limit: int) -> List[ExecutionRecord]:
        """Trade executions of a user."""

    @abstractmethod
    async def get_trading_accounts(self, user_id: str) -> List[TradingAccount]:
        """Trading accounts of a user."""

    @abstractmethod
    async def get_account_filled_orders(self, account_id: str) -> List[OrderRecord]:
        """Filled orders placed through one trading account."""

    @abstractmethod
    async def get_recent_market_data(self, limit: int) -> List[MarketSnapshot]:
        """Most recent market data rows, newest first."""


# ============================================================================
# SQL Implementation
# ============================================================================

_ORDER_COLUMNS = """
    id, order_type, side, quantity, price, trading_pair_id, status,
    filled_quantity, average_fill_price, fees, trading_account_id
"""

_EXECUTION_COLUMNS = """
    id, order_id, price, quantity, fees, executed_at, profit_loss
"""

_MARKET_COLUMNS = """
    trading_pair_id, price, price_change_24h, high_24h, low_24h, timestamp
"""


class SqlAuditRepository(
    HoldingsReader,
    OrderExecutionReader,
    AuditLogWriter,
    MarketContextReader,
    AccountReader,
):
    """
    SQLAlchemy implementation of every audit collaborator.

    Reliability Level: L6 Critical
    Input Constraints: Engine bound to the trading database
    Side Effects: SELECT queries; INSERT into audit_trail only

    Example Usage:
        repo = SqlAuditRepository(get_engine())
        holdings = await repo.get_holdings("user-123")
    """

    def __init__(self, engine: Engine, correlation_id: Optional[str] = None):
        self._engine = engine
        self.correlation_id = correlation_id
        self._gateway = DecimalGateway()

    # ------------------------------------------------------------------------
    # Query plumbing
    # ------------------------------------------------------------------------

    def _fetch_all(self, sql: str, params: Dict[str, Any]) -> Sequence[Any]:
        try:
            with self._engine.connect() as conn:
                return conn.execute(text(sql), params).fetchall()
        except SQLAlchemyError as e:
            logger.error(
                f"[AUD-COLLAB-001] Storage query failed | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            raise CollaboratorError(f"Storage query failed: {e}") from e

    def _fetch_one(self, sql: str, params: Dict[str, Any]) -> Optional[Any]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def ping(self) -> None:
        """Run SELECT 1; raises CollaboratorError when storage is down."""
        self._fetch_all("SELECT 1", {})

    # ------------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------------

    def _dec(self, value: Any):
        return self._gateway.to_decimal(value)

    def _optional_dec(self, value: Any):
        return None if value is None else self._gateway.to_decimal(value)

    def _to_order(self, row: Any) -> OrderRecord:
        return OrderRecord(
            order_id=str(row[0]),
            order_type=row[1] or "",
            side=row[2] or "",
            quantity=self._dec(row[3]),
            price=self._optional_dec(row[4]),
            trading_pair_id=None if row[5] is None else str(row[5]),
            status=row[6],
            filled_quantity=self._optional_dec(row[7]),
            average_fill_price=self._optional_dec(row[8]),
            fees=self._optional_dec(row[9]),
            trading_account_id=None if row[10] is None else str(row[10]),
        )

    def _to_execution(self, row: Any) -> ExecutionRecord:
        return ExecutionRecord(
            execution_id=str(row[0]),
            order_id=None if row[1] is None else str(row[1]),
            price=self._dec(row[2]),
            quantity=self._dec(row[3]),
            fees=self._dec(row[4]),
            executed_at=row[5],
            profit_loss=self._optional_dec(row[6]),
        )

    def _to_pair(self, row: Any) -> TradingPair:
        return TradingPair(
            pair_id=str(row[0]),
            symbol=row[1],
            base_asset=row[2],
            quote_asset=row[3],
            is_active=bool(row[4]) if row[4] is not None else True,
        )

    def _to_snapshot(self, row: Any) -> MarketSnapshot:
        return MarketSnapshot(
            trading_pair_id=None if row[0] is None else str(row[0]),
            price=self._dec(row[1]),
            price_change_24h=self._dec(row[2]),
            high_24h=self._dec(row[3]),
            low_24h=self._dec(row[4]),
            timestamp=row[5],
        )

    # ------------------------------------------------------------------------
    # HoldingsReader
    # ------------------------------------------------------------------------

    async def get_holdings(self, user_id: str) -> List[Holding]:
        rows = self._fetch_all(
            """
            SELECT asset, quantity, average_cost, current_value,
                   total_invested, unrealized_pnl, realized_pnl
            FROM user_trading_portfolios
            WHERE user_id = :user_id
            """,
            {"user_id": user_id},
        )
        return [
            Holding(
                asset=row[0],
                quantity=self._dec(row[1]),
                average_cost=self._dec(row[2]),
                current_value=self._dec(row[3]),
                invested_total=self._dec(row[4]),
                unrealized_pnl=self._dec(row[5]),
                realized_pnl=self._dec(row[6]),
            )
            for row in rows
        ]

    async def list_users_with_holdings(self) -> List[str]:
        rows = self._fetch_all(
            "SELECT DISTINCT user_id FROM user_trading_portfolios ORDER BY user_id",
            {},
        )
        return [str(row[0]) for row in rows]

    # ------------------------------------------------------------------------
    # OrderExecutionReader
    # ------------------------------------------------------------------------

    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        row = self._fetch_one(
            f"SELECT {_ORDER_COLUMNS} FROM user_orders WHERE id = :order_id",
            {"order_id": order_id},
        )
        return self._to_order(row) if row else None

    async def get_execution_for_order(self, order_id: str) -> Optional[ExecutionRecord]:
        row = self._fetch_one(
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM trade_executions
            WHERE order_id = :order_id
            ORDER BY executed_at DESC
            LIMIT 1
            """,
            {"order_id": order_id},
        )
        return self._to_execution(row) if row else None

    async def get_recent_executions(self, limit: int) -> List[ExecutionRecord]:
        rows = self._fetch_all(
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM trade_executions
            ORDER BY executed_at DESC
            LIMIT :limit
            """,
            {"limit": limit},
        )
        return [self._to_execution(row) for row in rows]

    async def get_trading_pair(self, pair_id: str) -> Optional[TradingPair]:
        row = self._fetch_one(
            """
            SELECT id, symbol, base_asset, quote_asset, is_active
            FROM trading_pairs WHERE id = :pair_id
            """,
            {"pair_id": pair_id},
        )
        return self._to_pair(row) if row else None

    async def list_active_trading_pairs(self) -> List[TradingPair]:
        rows = self._fetch_all(
            """
            SELECT id, symbol, base_asset, quote_asset, is_active
            FROM trading_pairs WHERE is_active = TRUE
            ORDER BY symbol
            """,
            {},
        )
        return [self._to_pair(row) for row in rows]

    # ------------------------------------------------------------------------
    # Bots (system diagnostics)
    # ------------------------------------------------------------------------

    def count_bots(self) -> Tuple[int, int]:
        """Return (configured, active) AI trading bot counts."""
        row = self._fetch_one(
            """
            SELECT COUNT(*), COALESCE(SUM(CASE WHEN is_active THEN 1 ELSE 0 END), 0)
            FROM ai_trading_bots
            """,
            {},
        )
        if row is None:
            return 0, 0
        return int(row[0] or 0), int(row[1] or 0)

    # ------------------------------------------------------------------------
    # AuditLogWriter
    # ------------------------------------------------------------------------

    async def record(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        payload: Dict[str, Any],
    ) -> None:
        try:
            with self._engine.connect() as conn:
                conn.execute(
                    text(
                        """
                        INSERT INTO audit_trail (action, resource_type, resource_id, new_values)
                        VALUES (:action, :resource_type, :resource_id, :new_values)
                        """
                    ),
                    {
                        "action": action,
                        "resource_type": resource_type,
                        "resource_id": resource_id,
                        "new_values": json.dumps(payload, default=str),
                    },
                )
                conn.commit()
        except Exception as e:
            logger.error(
                f"[AUD-LOG-001] Failed to record audit trail entry | "
                f"action={action} | resource_id={resource_id} | error={e} | "
                f"correlation_id={self.correlation_id}"
            )

    # ------------------------------------------------------------------------
    # MarketContextReader
    # ------------------------------------------------------------------------

    async def get_market_snapshot(self, trading_pair_id: str) -> Optional[MarketSnapshot]:
        row = self._fetch_one(
            f"""
            SELECT {_MARKET_COLUMNS} FROM market_data_live
            WHERE trading_pair_id = :pair_id
            ORDER BY timestamp DESC
            LIMIT 1
            """,
            {"pair_id": trading_pair_id},
        )
        return self._to_snapshot(row) if row else None

    async def get_liquidity_zones(self, trading_pair_id: str) -> List[LiquidityZone]:
        rows = self._fetch_all(
            """
            SELECT zone_type, price_level, strength FROM liquidity_zones
            WHERE trading_pair_id = :pair_id
            """,
            {"pair_id": trading_pair_id},
        )
        return [
            LiquidityZone(zone_type=row[0], price_level=self._dec(row[1]), strength=row[2])
            for row in rows
        ]

    async def get_fibonacci_levels(self, trading_pair_id: str, timeframe: str) -> List[Any]:
        row = self._fetch_one(
            """
            SELECT level_236, level_382, level_500, level_618, level_786
            FROM fibonacci_levels
            WHERE trading_pair_id = :pair_id AND timeframe = :timeframe
              AND is_active = TRUE
            ORDER BY created_at DESC
            LIMIT 1
            """,
            {"pair_id": trading_pair_id, "timeframe": timeframe},
        )
        if row is None:
            return []
        return [self._optional_dec(value) for value in row]

    # ------------------------------------------------------------------------
    # AccountReader
    # ------------------------------------------------------------------------

    async def get_filled_orders(self, user_id: str, limit: int) -> List[OrderRecord]:
        rows = self._fetch_all(
            f"""
            SELECT {_ORDER_COLUMNS} FROM user_orders
            WHERE user_id = :user_id AND status = 'filled'
            LIMIT :limit
            """,
            {"user_id": user_id, "limit": limit},
        )
        return [self._to_order(row) for row in rows]

    async def get_user_executions(self, user_id: str, limit: int) -> List[ExecutionRecord]:
        rows = self._fetch_all(
            f"""
            SELECT {_EXECUTION_COLUMNS} FROM trade_executions
            WHERE user_id = :user_id
            LIMIT :limit
            """,
            {"user_id": user_id, "limit": limit},
        )
        return [self._to_execution(row) for row in rows]

    async def get_trading_accounts(self, user_id: str) -> List[TradingAccount]:
        rows = self._fetch_all(
            """
            SELECT id, account_type, balance_usd FROM trading_accounts
            WHERE user_id = :user_id
            """,
            {"user_id": user_id},
        )
        return [
            TradingAccount(
                account_id=str(row[0]),
                account_type=row[1] or "",
                balance_usd=self._dec(row[2]),
            )
            for row in rows
        ]

    async def get_account_filled_orders(self, account_id: str) -> List[OrderRecord]:
        rows = self._fetch_all(
            f"""
            SELECT {_ORDER_COLUMNS} FROM user_orders
            WHERE trading_account_id = :account_id AND status = 'filled'
            """,
            {"account_id": account_id},
        )
        return [self._to_order(row) for row in rows]

    async def get_recent_market_data(self, limit: int) -> List[MarketSnapshot]:
        rows = self._fetch_all(
            f"""
            SELECT {_MARKET_COLUMNS} FROM market_data_live
            ORDER BY timestamp DESC
            LIMIT :limit
            """,
            {"limit": limit},
        )
        return [self._to_snapshot(row) for row in rows]


# ============================================================================
# System Probe (comprehensive-engine diagnostics)
# ============================================================================

class SystemProbe(ABC):
    """Platform diagnostics consumed by the system diagnostics phase."""

    @abstractmethod
    async def ping_storage(self) -> None:
        """Raise CollaboratorError when storage does not answer."""

    @abstractmethod
    async def count_bots(self) -> Tuple[int, int]:
        """Return (configured, active) trading bot counts."""

    @abstractmethod
    async def order_book_available(self, symbol: str) -> bool:
        """True when order-book depth exists for the symbol."""

    @abstractmethod
    async def emergency_stop_available(self) -> bool:
        """True when an emergency-stop control is wired in."""


class PlatformProbe(SystemProbe):
    """
    SystemProbe backed by the SQL repository and the price feed.

    Args:
        repository: SqlAuditRepository used for storage checks
        price_feed: Object exposing async has_order_book(symbol)
        emergency_stop: Optional callable halting all trading
    """

    def __init__(
        self,
        repository: SqlAuditRepository,
        price_feed: Any,
        emergency_stop: Optional[Callable[[], Any]] = None,
    ):
        self._repository = repository
        self._price_feed = price_feed
        self._emergency_stop = emergency_stop

    async def ping_storage(self) -> None:
        self._repository.ping()

    async def count_bots(self) -> Tuple[int, int]:
        return self._repository.count_bots()

    async def order_book_available(self, symbol: str) -> bool:
        return await self._price_feed.has_order_book(symbol)

    async def emergency_stop_available(self) -> bool:
        return callable(self._emergency_stop)
