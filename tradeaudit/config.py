"""
============================================================================
Trade Audit Engine - Configuration
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Tolerances and rates are decimal.Decimal percentages
Traceability: Configuration loading is logged

This module provides configuration management for the audit engine:
- Environment variable parsing with type safety (.env supported)
- Default values for every setting
- Fail-closed validation (AUD-CFG-001)

ENVIRONMENT VARIABLES:
    - AUDIT_TOLERANCE_PERCENT: Allowed deviation in percent (default: 1.0)
    - AUDIT_FEE_RATE_PERCENT: Assumed trading fee in percent (default: 0.1)
    - AUDIT_RECENT_TRADES_LIMIT: Executions audited per sweep (default: 10)
    - AUDIT_SIMULATED_TRADES: Synthetic trades per session (default: 10)
    - AUDIT_SIMULATED_SUCCESS_RATE: Intended success ratio (default: 0.90)
    - AUDIT_SIMULATED_NOTIONAL: Notional per synthetic trade (default: 1000)
    - AUDIT_MIN_ACTIVE_PAIRS: Expected active trading pairs (default: 5)
    - AUDIT_CROSS_CHECK_SYMBOLS: Comma-separated assets (default: BTC,ETH)
    - AUDIT_PRICE_TIMEOUT_SECONDS: Price source HTTP timeout (default: 5)

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, List
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

from tradeaudit.errors import AuditConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_TOLERANCE_PERCENT = Decimal("1.0")
DEFAULT_FEE_RATE_PERCENT = Decimal("0.1")
DEFAULT_RECENT_TRADES_LIMIT = 10
DEFAULT_SIMULATED_TRADES = 10
DEFAULT_SIMULATED_SUCCESS_RATE = Decimal("0.90")
DEFAULT_SIMULATED_NOTIONAL = Decimal("1000")
DEFAULT_MIN_ACTIVE_PAIRS = 5
DEFAULT_CROSS_CHECK_SYMBOLS = ["BTC", "ETH"]
DEFAULT_PRICE_TIMEOUT_SECONDS = 5.0


# =============================================================================
# AuditConfig
# =============================================================================

@dataclass
class AuditConfig:
    """
    Audit engine configuration.

    Reliability Level: L6 Critical
    Input Constraints: Percentages non-negative, counts positive
    Side Effects: Logs configuration on load
    """

    tolerance_percent: Decimal = field(default_factory=lambda: DEFAULT_TOLERANCE_PERCENT)
    fee_rate_percent: Decimal = field(default_factory=lambda: DEFAULT_FEE_RATE_PERCENT)
    recent_trades_limit: int = DEFAULT_RECENT_TRADES_LIMIT
    simulated_trades: int = DEFAULT_SIMULATED_TRADES
    simulated_success_rate: Decimal = field(
        default_factory=lambda: DEFAULT_SIMULATED_SUCCESS_RATE
    )
    simulated_notional: Decimal = field(default_factory=lambda: DEFAULT_SIMULATED_NOTIONAL)
    min_active_pairs: int = DEFAULT_MIN_ACTIVE_PAIRS
    cross_check_symbols: List[str] = field(
        default_factory=lambda: list(DEFAULT_CROSS_CHECK_SYMBOLS)
    )
    price_timeout_seconds: float = DEFAULT_PRICE_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        for name in (
            "tolerance_percent",
            "fee_rate_percent",
            "simulated_success_rate",
            "simulated_notional",
        ):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                setattr(self, name, Decimal(str(value)))

    @property
    def fee_rate(self) -> Decimal:
        """Fee rate as a fraction (0.1% -> 0.001)."""
        return self.fee_rate_percent / Decimal("100")

    def validate(self) -> None:
        """
        Validate configuration.

        Raises:
            AuditConfigurationError: If any setting is out of range (AUD-CFG-001)
        """
        errors: List[str] = []

        if self.tolerance_percent < Decimal("0"):
            errors.append(
                f"AUDIT_TOLERANCE_PERCENT must be non-negative, got: {self.tolerance_percent}"
            )
        if self.fee_rate_percent < Decimal("0"):
            errors.append(
                f"AUDIT_FEE_RATE_PERCENT must be non-negative, got: {self.fee_rate_percent}"
            )
        if self.recent_trades_limit <= 0:
            errors.append(
                f"AUDIT_RECENT_TRADES_LIMIT must be positive, got: {self.recent_trades_limit}"
            )
        if self.simulated_trades <= 0:
            errors.append(
                f"AUDIT_SIMULATED_TRADES must be positive, got: {self.simulated_trades}"
            )
        if self.simulated_notional <= Decimal("0"):
            errors.append(
                f"AUDIT_SIMULATED_NOTIONAL must be positive, got: {self.simulated_notional}"
            )
        if not Decimal("0") <= self.simulated_success_rate <= Decimal("1"):
            errors.append(
                "AUDIT_SIMULATED_SUCCESS_RATE must be between 0 and 1, "
                f"got: {self.simulated_success_rate}"
            )
        if self.min_active_pairs <= 0:
            errors.append(
                f"AUDIT_MIN_ACTIVE_PAIRS must be positive, got: {self.min_active_pairs}"
            )
        if self.price_timeout_seconds <= 0:
            errors.append(
                f"AUDIT_PRICE_TIMEOUT_SECONDS must be positive, got: {self.price_timeout_seconds}"
            )

        if errors:
            error_msg = "Audit configuration validation failed: " + "; ".join(errors)
            logger.error(f"[AUD-CFG-001] {error_msg}")
            raise AuditConfigurationError(error_msg)

        logger.info(
            f"[AUDIT-CONFIG] Configuration validated | "
            f"tolerance={self.tolerance_percent}% | "
            f"fee_rate={self.fee_rate_percent}% | "
            f"recent_trades={self.recent_trades_limit} | "
            f"simulated_trades={self.simulated_trades}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "AuditConfig":
        """
        Load configuration from environment variables (and .env if present).

        Invalid values log a warning and fall back to the default.

        Raises:
            AuditConfigurationError: If validation is requested and fails
        """
        load_dotenv()

        config = cls(
            tolerance_percent=_read_decimal(
                "AUDIT_TOLERANCE_PERCENT", DEFAULT_TOLERANCE_PERCENT
            ),
            fee_rate_percent=_read_decimal(
                "AUDIT_FEE_RATE_PERCENT", DEFAULT_FEE_RATE_PERCENT
            ),
            recent_trades_limit=_read_int(
                "AUDIT_RECENT_TRADES_LIMIT", DEFAULT_RECENT_TRADES_LIMIT
            ),
            simulated_trades=_read_int("AUDIT_SIMULATED_TRADES", DEFAULT_SIMULATED_TRADES),
            simulated_success_rate=_read_decimal(
                "AUDIT_SIMULATED_SUCCESS_RATE", DEFAULT_SIMULATED_SUCCESS_RATE
            ),
            simulated_notional=_read_decimal(
                "AUDIT_SIMULATED_NOTIONAL", DEFAULT_SIMULATED_NOTIONAL
            ),
            min_active_pairs=_read_int("AUDIT_MIN_ACTIVE_PAIRS", DEFAULT_MIN_ACTIVE_PAIRS),
            cross_check_symbols=_read_list(
                "AUDIT_CROSS_CHECK_SYMBOLS", DEFAULT_CROSS_CHECK_SYMBOLS
            ),
            price_timeout_seconds=_read_float(
                "AUDIT_PRICE_TIMEOUT_SECONDS", DEFAULT_PRICE_TIMEOUT_SECONDS
            ),
        )

        logger.info(
            f"[AUDIT-CONFIG] Loaded configuration from environment | "
            f"tolerance={config.tolerance_percent}% | "
            f"cross_check_symbols={config.cross_check_symbols}"
        )

        if validate:
            config.validate()
        return config

    def to_dict(self) -> dict:
        """Convert configuration to a dict for logging / API responses."""
        return {
            "tolerance_percent": str(self.tolerance_percent),
            "fee_rate_percent": str(self.fee_rate_percent),
            "recent_trades_limit": self.recent_trades_limit,
            "simulated_trades": self.simulated_trades,
            "simulated_success_rate": str(self.simulated_success_rate),
            "simulated_notional": str(self.simulated_notional),
            "min_active_pairs": self.min_active_pairs,
            "cross_check_symbols": list(self.cross_check_symbols),
            "price_timeout_seconds": self.price_timeout_seconds,
        }


# =============================================================================
# Environment Parsing Helpers
# =============================================================================

def _read_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name, str(default))
    try:
        return Decimal(raw.strip())
    except (InvalidOperation, ValueError):
        logger.warning(f"[AUDIT-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _read_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[AUDIT-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"[AUDIT-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _read_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name, "")
    items = [item.strip().upper() for item in raw.split(",") if item.strip()]
    return items or list(default)


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[AuditConfig] = None


def get_audit_config(validate: bool = True) -> AuditConfig:
    """Get the process-wide audit configuration, loading it on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = AuditConfig.from_environment(validate=validate)
    return _config_instance


def reset_audit_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[AUDIT-CONFIG] Configuration instance reset")


__all__ = [
    "AuditConfig",
    "DEFAULT_TOLERANCE_PERCENT",
    "DEFAULT_FEE_RATE_PERCENT",
    "DEFAULT_RECENT_TRADES_LIMIT",
    "DEFAULT_SIMULATED_TRADES",
    "DEFAULT_MIN_ACTIVE_PAIRS",
    "get_audit_config",
    "reset_audit_config",
]
