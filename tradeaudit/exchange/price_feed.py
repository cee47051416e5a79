# ============================================================================
# Trade Audit Engine v1.0.0
# Price Feed - Independent Public Price Sources
# ============================================================================
#
# Reliability Level: L5 High
# Purpose: Read current prices from independent public sources so audits
#          can value holdings and cross-validate feeds
#
# MANDATE:
#   - Read-only public endpoints (no API keys, no order placement)
#   - Every price crosses the DecimalGateway (no float arithmetic)
#   - Per-request timeout; retries are left to the caller
#
# Error Codes:
#   - AUD-FEED-001: Source unreachable or returned an error status
#   - AUD-FEED-002: Source returned a payload without a usable price
#
# ============================================================================

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from tradeaudit.errors import CollaboratorError
from tradeaudit.exchange.decimal_gateway import DecimalGateway

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

BINANCE_BASE_URL = "https://api.binance.com"
COINGECKO_BASE_URL = "https://api.coingecko.com"
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_QUOTE_ASSET = "USDT"

_QUOTE_SUFFIXES = ("USDT", "USDC", "USD")

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "ADA": "cardano",
    "DOGE": "dogecoin",
    "DOT": "polkadot",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "LINK": "chainlink",
    "LTC": "litecoin",
}


def base_asset(symbol: str) -> str:
    """
    Normalize "BTC", "btc", "BTC/USDT", "BTC-USD" or "BTCUSDT" to "BTC".
    """
    cleaned = symbol.strip().upper()
    for separator in ("/", "-", "_"):
        if separator in cleaned:
            return cleaned.split(separator)[0]
    for suffix in _QUOTE_SUFFIXES:
        if cleaned.endswith(suffix) and len(cleaned) > len(suffix):
            return cleaned[: -len(suffix)]
    return cleaned


# ============================================================================
# Interfaces
# ============================================================================

class PriceFeedReader(ABC):
    """Current price lookup used by the per-item audits."""

    @abstractmethod
    async def get_price(self, symbol: str) -> Optional[Decimal]:
        """Return the current price or None when no source can answer."""


class PriceSource(ABC):
    """A single named, independent price source."""

    name: str = "unknown"

    @abstractmethod
    async def fetch_price(self, symbol: str) -> Decimal:
        """
        Fetch the current USD price of an asset.

        Raises:
            CollaboratorError: Source unreachable or payload unusable
        """


class _HttpPriceSource(PriceSource):
    """Shared httpx plumbing for public JSON endpoints."""

    base_url = ""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        correlation_id: Optional[str] = None,
    ):
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.correlation_id = correlation_id
        self._gateway = DecimalGateway()

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.get(url, params=params, timeout=self.timeout_seconds)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                f"[AUD-FEED-001] Price source request failed | source={self.name} | "
                f"path={path} | error={e} | correlation_id={self.correlation_id}"
            )
            raise CollaboratorError(f"{self.name} request failed: {e}") from e

    def _price_from(self, raw: Any, symbol: str) -> Decimal:
        try:
            price = self._gateway.to_decimal(raw, correlation_id=self.correlation_id)
        except ValueError as e:
            raise CollaboratorError(f"{self.name} returned an invalid price for {symbol}") from e
        if price <= Decimal("0"):
            logger.warning(
                f"[AUD-FEED-002] Non-positive price | source={self.name} | "
                f"symbol={symbol} | price={price} | correlation_id={self.correlation_id}"
            )
            raise CollaboratorError(f"{self.name} returned no usable price for {symbol}")
        return price


# ============================================================================
# Binance
# ============================================================================

class BinancePriceSource(_HttpPriceSource):
    """
    Binance public ticker and order-book depth.

    Reliability Level: L5 High
    Side Effects: HTTPS GET to api.binance.com
    """

    name = "binance"
    base_url = BINANCE_BASE_URL

    def __init__(self, quote_asset: str = DEFAULT_QUOTE_ASSET, **kwargs):
        super().__init__(**kwargs)
        self.quote_asset = quote_asset

    def _market(self, symbol: str) -> str:
        return f"{base_asset(symbol)}{self.quote_asset}"

    async def fetch_price(self, symbol: str) -> Decimal:
        payload = await self._get_json("/api/v3/ticker/price", {"symbol": self._market(symbol)})
        if not isinstance(payload, dict) or "price" not in payload:
            raise CollaboratorError(f"binance returned no price for {symbol}")
        return self._price_from(payload["price"], symbol)

    async def fetch_order_book_depth(self, symbol: str, limit: int = 5) -> Tuple[int, int]:
        """Return (bid levels, ask levels) of the top of the order book."""
        payload = await self._get_json(
            "/api/v3/depth", {"symbol": self._market(symbol), "limit": limit}
        )
        if not isinstance(payload, dict):
            raise CollaboratorError(f"binance returned no order book for {symbol}")
        return len(payload.get("bids") or []), len(payload.get("asks") or [])


# ============================================================================
# CoinGecko
# ============================================================================

class CoinGeckoPriceSource(_HttpPriceSource):
    """CoinGecko simple price endpoint (USD)."""

    name = "coingecko"
    base_url = COINGECKO_BASE_URL

    async def fetch_price(self, symbol: str) -> Decimal:
        asset = base_asset(symbol)
        coin_id = COINGECKO_IDS.get(asset, asset.lower())
        payload = await self._get_json(
            "/api/v3/simple/price", {"ids": coin_id, "vs_currencies": "usd"}
        )
        try:
            raw = payload[coin_id]["usd"]
        except (KeyError, TypeError) as e:
            raise CollaboratorError(f"coingecko returned no price for {symbol}") from e
        return self._price_from(raw, symbol)


# ============================================================================
# Multi-Source Feed
# ============================================================================

class MultiSourcePriceFeed(PriceFeedReader):
    """
    Ordered set of independent price sources.

    get_price() answers from the first source that responds; quotes()
    asks every source so callers can cross-validate them.

    Example Usage:
        feed = MultiSourcePriceFeed([BinancePriceSource(), CoinGeckoPriceSource()])
        price = await feed.get_price("BTC")
    """

    def __init__(
        self,
        sources: Sequence[PriceSource],
        correlation_id: Optional[str] = None,
    ):
        self.sources: List[PriceSource] = list(sources)
        self.correlation_id = correlation_id

    async def get_price(self, symbol: str) -> Optional[Decimal]:
        for source in self.sources:
            try:
                return await source.fetch_price(symbol)
            except CollaboratorError as e:
                logger.warning(
                    f"[AUD-FEED-001] Falling back to next price source | "
                    f"source={source.name} | symbol={symbol} | error={e} | "
                    f"correlation_id={self.correlation_id}"
                )
        return None

    async def quotes(self, symbol: str) -> Dict[str, Optional[Decimal]]:
        """Ask every source; unreachable sources map to None."""
        results: Dict[str, Optional[Decimal]] = {}
        for source in self.sources:
            try:
                results[source.name] = await source.fetch_price(symbol)
            except CollaboratorError:
                results[source.name] = None
        return results

    async def check_sources(self, symbol: str = "BTC") -> Tuple[int, int]:
        """Return (working sources, total sources)."""
        quotes = await self.quotes(symbol)
        working = sum(1 for price in quotes.values() if price is not None)
        return working, len(self.sources)

    async def has_order_book(self, symbol: str) -> bool:
        """True when a depth-capable source reports bids and asks."""
        for source in self.sources:
            fetch_depth = getattr(source, "fetch_order_book_depth", None)
            if fetch_depth is None:
                continue
            try:
                bids, asks = await fetch_depth(symbol)
            except CollaboratorError:
                continue
            return bids > 0 and asks > 0
        return False


def build_default_price_feed(
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    correlation_id: Optional[str] = None,
) -> MultiSourcePriceFeed:
    """Binance first, CoinGecko as the independent second source."""
    return MultiSourcePriceFeed(
        [
            BinancePriceSource(timeout_seconds=timeout_seconds, correlation_id=correlation_id),
            CoinGeckoPriceSource(timeout_seconds=timeout_seconds, correlation_id=correlation_id),
        ],
        correlation_id=correlation_id,
    )
