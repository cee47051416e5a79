"""
============================================================================
Trade Audit Engine - Trade Probability Heuristic
============================================================================

Reliability Level: L4 Standard (advisory only, never gates execution)
Input Constraints: trading_pair_id, direction long|short, timeframe label
Side Effects: Read-only market context lookups

PROBABILITY MODEL
-----------------
Start at 0.5 and adjust:
    liquidity zone within 2% of price
        support + long or resistance + short:  strong +0.30,
                                               medium +0.15, any other +0.05
    Fibonacci level within 1% of price:        long +0.10, short -0.10
    24h change:   long  and change > 0  +min(change / 100, 0.20)
                  short and change < 0  +min(|change| / 100, 0.20)
Clamp to [0.1, 0.9]. Missing data or a read failure yields 0.5.

confidence = clamp(|p - 0.5| * 2, 0.1, 0.95)
============================================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from tradeaudit.database.repositories import MarketContextReader, OrderExecutionReader
from tradeaudit.logic.models import MarketSnapshot

logger = logging.getLogger(__name__)

NEUTRAL_PROBABILITY = Decimal("0.5")
MIN_PROBABILITY = Decimal("0.1")
MAX_PROBABILITY = Decimal("0.9")
MIN_CONFIDENCE = Decimal("0.1")
MAX_CONFIDENCE = Decimal("0.95")

ZONE_PROXIMITY = Decimal("0.02")
FIBONACCI_PROXIMITY = Decimal("0.01")
FIBONACCI_WEIGHT = Decimal("0.1")
MOMENTUM_CAP = Decimal("0.2")

ZONE_WEIGHTS = {
    "strong": Decimal("0.30"),
    "medium": Decimal("0.15"),
    "weak": Decimal("0.05"),
}

INVALID_PAIR_FACTOR = "Invalid trading pair ID"

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class TradeDirection(Enum):
    LONG = "long"
    SHORT = "short"


# zone type that supports each direction
_SUPPORTING_ZONE = {
    TradeDirection.LONG: "support",
    TradeDirection.SHORT: "resistance",
}


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ProbabilityAssessment:
    """Probability with a confidence measure and the signals behind it."""
    trading_pair_id: str
    direction: TradeDirection
    probability: Decimal
    confidence: Decimal
    factors: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trading_pair_id": self.trading_pair_id,
            "direction": self.direction.value,
            "probability": str(self.probability),
            "confidence": str(self.confidence),
            "factors": list(self.factors),
        }


def score_probability(
    snapshot: MarketSnapshot,
    zones: List[Any],
    fibonacci_levels: List[Optional[Decimal]],
    direction: TradeDirection,
) -> Decimal:
    """Pure heuristic over already-loaded market context."""
    price = snapshot.price
    if price <= _ZERO:
        return NEUTRAL_PROBABILITY

    probability = NEUTRAL_PROBABILITY

    wanted_zone = _SUPPORTING_ZONE[direction]
    for zone in zones:
        if abs(zone.price_level - price) / price >= ZONE_PROXIMITY:
            continue
        if (zone.zone_type or "").lower() == wanted_zone:
            probability += ZONE_WEIGHTS.get((zone.strength or "").lower(), ZONE_WEIGHTS["weak"])

    for level in fibonacci_levels:
        if level is None:
            continue
        if abs(level - price) / price < FIBONACCI_PROXIMITY:
            if direction is TradeDirection.LONG:
                probability += FIBONACCI_WEIGHT
            else:
                probability -= FIBONACCI_WEIGHT

    change = snapshot.price_change_24h
    if direction is TradeDirection.LONG and change > _ZERO:
        probability += min(change / _HUNDRED, MOMENTUM_CAP)
    elif direction is TradeDirection.SHORT and change < _ZERO:
        probability += min(abs(change) / _HUNDRED, MOMENTUM_CAP)

    return _clamp(probability, MIN_PROBABILITY, MAX_PROBABILITY)


def confidence_for(probability: Decimal) -> Decimal:
    return _clamp(abs(probability - NEUTRAL_PROBABILITY) * 2, MIN_CONFIDENCE, MAX_CONFIDENCE)


def describe_factors(probability: Decimal, confidence: Decimal) -> List[str]:
    factors = []
    if probability > Decimal("0.7"):
        factors.append("Strong bullish signals")
    elif probability < Decimal("0.3"):
        factors.append("Strong bearish signals")
    if confidence < Decimal("0.3"):
        factors.append("Low data quality")
    elif confidence > Decimal("0.8"):
        factors.append("High confidence indicators")
    return factors


class TradeProbabilityCalculator:
    """
    Probability of a trade working out, from persisted market context.

    Example Usage:
        calculator = TradeProbabilityCalculator(repo, repo)
        p = await calculator.calculate("pair-1", TradeDirection.LONG)
    """

    def __init__(
        self,
        market: MarketContextReader,
        pairs: OrderExecutionReader,
        correlation_id: Optional[str] = None,
    ):
        self._market = market
        self._pairs = pairs
        self.correlation_id = correlation_id

    async def calculate(
        self,
        trading_pair_id: str,
        direction: TradeDirection,
        timeframe: str = "1h",
    ) -> Decimal:
        """Heuristic probability; 0.5 when data is missing or unreadable."""
        try:
            snapshot = await self._market.get_market_snapshot(trading_pair_id)
            if snapshot is None:
                logger.warning(
                    f"[AUD-PROB-001] No market data, neutral probability | "
                    f"trading_pair_id={trading_pair_id} | correlation_id={self.correlation_id}"
                )
                return NEUTRAL_PROBABILITY
            zones = await self._market.get_liquidity_zones(trading_pair_id)
            levels = await self._market.get_fibonacci_levels(trading_pair_id, timeframe)
        except Exception as e:
            logger.error(
                f"[AUD-PROB-002] Market context read failed, neutral probability | "
                f"trading_pair_id={trading_pair_id} | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            return NEUTRAL_PROBABILITY

        return score_probability(snapshot, zones, levels, direction)

    async def calculate_enhanced(
        self,
        trading_pair_id: str,
        direction: TradeDirection,
        timeframe: str = "1h",
    ) -> ProbabilityAssessment:
        """
        Probability plus confidence and factor labels.

        An unknown trading pair is replaced by the first active pair; with no
        active pair the neutral assessment is returned.
        """
        pair_id = await self._resolve_pair_id(trading_pair_id)
        if pair_id is None:
            return ProbabilityAssessment(
                trading_pair_id=trading_pair_id,
                direction=direction,
                probability=NEUTRAL_PROBABILITY,
                confidence=MIN_CONFIDENCE,
                factors=(INVALID_PAIR_FACTOR,),
            )

        probability = await self.calculate(pair_id, direction, timeframe)
        confidence = confidence_for(probability)
        return ProbabilityAssessment(
            trading_pair_id=pair_id,
            direction=direction,
            probability=probability,
            confidence=confidence,
            factors=tuple(describe_factors(probability, confidence)),
        )

    async def _resolve_pair_id(self, trading_pair_id: str) -> Optional[str]:
        try:
            pair = None
            if trading_pair_id and trading_pair_id.strip():
                pair = await self._pairs.get_trading_pair(trading_pair_id)
            if pair is not None:
                return pair.pair_id
            active = await self._pairs.list_active_trading_pairs()
        except Exception as e:
            logger.error(
                f"[AUD-PROB-002] Trading pair lookup failed | "
                f"trading_pair_id={trading_pair_id} | error={e} | "
                f"correlation_id={self.correlation_id}"
            )
            return None

        if not active:
            logger.warning(
                f"[AUD-PROB-003] Invalid trading pair and no active pair to substitute | "
                f"trading_pair_id={trading_pair_id} | correlation_id={self.correlation_id}"
            )
            return None
        logger.warning(
            f"[AUD-PROB-003] Invalid trading pair, substituting first active pair | "
            f"trading_pair_id={trading_pair_id} | substitute={active[0].pair_id} | "
            f"correlation_id={self.correlation_id}"
        )
        return active[0].pair_id
