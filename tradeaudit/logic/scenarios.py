"""
Simulated Trading Scenarios

Reliability Level: L4 Standard
Input Constraints: success_rate between 0 and 1, positive notional
Side Effects: None (RandomScenarioGenerator consumes its own RNG)

The simulated trading phase never touches an exchange. It asks a
ScenarioGenerator for the outcome of each synthetic trade:

- RandomScenarioGenerator: seeded RNG, roughly success_rate winners
- ScriptedScenarioGenerator: fixed outcome sequence for reproducible runs
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Sequence

DEFAULT_SUCCESS_RATE = Decimal("0.90")

SIMULATED_SYMBOLS = ("BTC/USDT", "ETH/USDT", "SOL/USDT", "BNB/USDT")

# Outcome ranges as fractions of the notional
WIN_RANGE = (0.002, 0.03)
LOSS_RANGE = (0.005, 0.02)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class SimulatedTrade:
    """Outcome of one synthetic trade."""
    index: int
    symbol: str
    side: str
    notional: Decimal
    success: bool
    profit_loss: Decimal


class ScenarioGenerator(ABC):
    """Source of synthetic trade outcomes for the simulated trading phase."""

    @abstractmethod
    def generate_trade(self, index: int, notional: Decimal) -> SimulatedTrade:
        """Produce the outcome of synthetic trade number `index`."""


class RandomScenarioGenerator(ScenarioGenerator):
    """
    Randomised outcomes with an intended success rate.

    Args:
        success_rate: Intended share of winning trades (default 0.90)
        seed: Optional RNG seed
    """

    def __init__(self, success_rate: Decimal = DEFAULT_SUCCESS_RATE, seed: Optional[int] = None):
        self.success_rate = success_rate
        self._rng = random.Random(seed)

    def generate_trade(self, index: int, notional: Decimal) -> SimulatedTrade:
        success = self._rng.random() < float(self.success_rate)
        low, high = WIN_RANGE if success else LOSS_RANGE
        fraction = Decimal(str(round(self._rng.uniform(low, high), 6)))
        amount = (notional * fraction).quantize(_CENT, rounding=ROUND_HALF_EVEN)
        return SimulatedTrade(
            index=index,
            symbol=self._rng.choice(SIMULATED_SYMBOLS),
            side=self._rng.choice(("buy", "sell")),
            notional=notional,
            success=success,
            profit_loss=amount if success else -amount,
        )


class ScriptedScenarioGenerator(ScenarioGenerator):
    """
    Replays a fixed outcome sequence, cycling when exhausted.

    Winners earn `win_fraction` of the notional; losers lose `loss_fraction`.
    """

    def __init__(
        self,
        outcomes: Sequence[bool],
        win_fraction: Decimal = Decimal("0.01"),
        loss_fraction: Decimal = Decimal("0.01"),
    ):
        if not outcomes:
            raise ValueError("ScriptedScenarioGenerator needs at least one outcome")
        self.outcomes = list(outcomes)
        self.win_fraction = win_fraction
        self.loss_fraction = loss_fraction

    def generate_trade(self, index: int, notional: Decimal) -> SimulatedTrade:
        success = self.outcomes[index % len(self.outcomes)]
        fraction = self.win_fraction if success else -self.loss_fraction
        return SimulatedTrade(
            index=index,
            symbol=SIMULATED_SYMBOLS[index % len(SIMULATED_SYMBOLS)],
            side="buy",
            notional=notional,
            success=success,
            profit_loss=(notional * fraction).quantize(_CENT, rounding=ROUND_HALF_EVEN),
        )
