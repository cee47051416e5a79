"""
============================================================================
Trade Audit Engine - Audit Data Models
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All figures and scores are decimal.Decimal
Side Effects: None (immutable dataclasses)

This module defines the records produced by every audit:
- Verdict / FindingStatus / AuditArea enumerations with lookup tables
- ToleranceResult: one calculated-vs-stored comparison
- PortfolioAuditRecord / TradeAuditRecord: composite per-item audits
- AuditFinding: one scored observation of the comprehensive engine
- GoNoGoAssessment: the final readiness projection

Records are frozen: created once per audit and never mutated afterward.
============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple


def utc_now() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class Verdict(Enum):
    """Two-tier audit verdict. Severity: FAIL > WARNING > PASS."""
    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"

    @property
    def severity(self) -> int:
        return _VERDICT_SEVERITY[self]


_VERDICT_SEVERITY = {
    Verdict.PASS: 0,
    Verdict.WARNING: 1,
    Verdict.FAIL: 2,
}


def worst_verdict(verdicts: Iterable[Verdict]) -> Verdict:
    """
    Return the most severe verdict (FAIL > WARNING > PASS).

    An empty iterable yields PASS.
    """
    worst = Verdict.PASS
    for verdict in verdicts:
        if verdict.severity > worst.severity:
            worst = verdict
    return worst


class FindingStatus(Enum):
    """Comprehensive-engine finding status."""
    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"
    CRITICAL = "CRITICAL"

    @property
    def badge(self) -> str:
        return _STATUS_BADGES[self]


_STATUS_BADGES = {
    FindingStatus.PASS: "[PASS]",
    FindingStatus.WARNING: "[WARN]",
    FindingStatus.FAIL: "[FAIL]",
    FindingStatus.CRITICAL: "[CRIT]",
}


class AuditArea(Enum):
    """Audit phases of the comprehensive engine, in execution order."""
    INFRASTRUCTURE = "INFRASTRUCTURE"
    DATA_INTEGRITY = "DATA_INTEGRITY"
    STRATEGY_VALIDATION = "STRATEGY_VALIDATION"
    SIMULATED_TRADING = "SIMULATED_TRADING"
    SECURITY = "SECURITY"

    @property
    def label(self) -> str:
        return _AREA_LABELS[self]

    @property
    def id_prefix(self) -> str:
        return _AREA_ID_PREFIXES[self]


_AREA_LABELS = {
    AuditArea.INFRASTRUCTURE: "Infrastructure",
    AuditArea.DATA_INTEGRITY: "Data Integrity",
    AuditArea.STRATEGY_VALIDATION: "Strategy Validation",
    AuditArea.SIMULATED_TRADING: "Simulated Trading",
    AuditArea.SECURITY: "Security",
}

_AREA_ID_PREFIXES = {
    AuditArea.INFRASTRUCTURE: "sys",
    AuditArea.DATA_INTEGRITY: "data",
    AuditArea.STRATEGY_VALIDATION: "strat",
    AuditArea.SIMULATED_TRADING: "sim",
    AuditArea.SECURITY: "sec",
}


class SystemHealth(Enum):
    """Overall health of a system-wide audit sweep."""
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    CRITICAL = "CRITICAL"


class Recommendation(Enum):
    """Final GO / NO-GO recommendation."""
    GO = "GO"
    NO_GO = "NO-GO"


class IntegrityLevel(Enum):
    """Data integrity grade."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# =============================================================================
# TOLERANCE AUDIT RECORDS
# =============================================================================

@dataclass(frozen=True)
class ToleranceResult:
    """
    One calculated-vs-stored comparison.

    The verdict is a deterministic function of percentage_diff versus
    tolerance_used (<= 1x PASS, <= 2x WARNING, otherwise FAIL).
    """
    calculated: Decimal
    stored: Decimal
    difference: Decimal
    percentage_diff: Decimal
    tolerance_used: Decimal
    verdict: Verdict
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "calculated": str(self.calculated),
            "stored": str(self.stored),
            "difference": str(self.difference),
            "percentage_diff": str(self.percentage_diff),
            "tolerance_used": str(self.tolerance_used),
            "verdict": self.verdict.value,
        }


PORTFOLIO_METRICS = (
    "total_value",
    "total_invested",
    "unrealized_pnl",
    "realized_pnl",
    "total_pnl",
)


@dataclass(frozen=True)
class PortfolioAuditRecord:
    """Recomputed portfolio aggregates compared against stored ones."""
    user_id: str
    metric_results: Mapping[str, ToleranceResult]
    holdings_count: int
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def overall_verdict(self) -> Verdict:
        return worst_verdict(r.verdict for r in self.metric_results.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "holdings_count": self.holdings_count,
            "overall_verdict": self.overall_verdict.value,
            "timestamp": self.timestamp.isoformat(),
            "metrics": {
                name: result.to_dict() for name, result in self.metric_results.items()
            },
        }


@dataclass(frozen=True)
class TradeAuditRecord:
    """Recomputed execution price / fees compared against the execution."""
    order_id: str
    execution_price_result: ToleranceResult
    fees_result: ToleranceResult
    portfolio_update_result: ToleranceResult
    balance_update_result: ToleranceResult
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def component_results(self) -> Tuple[ToleranceResult, ...]:
        return (
            self.execution_price_result,
            self.fees_result,
            self.portfolio_update_result,
            self.balance_update_result,
        )

    @property
    def overall_verdict(self) -> Verdict:
        return worst_verdict(r.verdict for r in self.component_results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "overall_verdict": self.overall_verdict.value,
            "timestamp": self.timestamp.isoformat(),
            "execution_price": self.execution_price_result.to_dict(),
            "fees": self.fees_result.to_dict(),
            "portfolio_update": self.portfolio_update_result.to_dict(),
            "balance_update": self.balance_update_result.to_dict(),
        }


# =============================================================================
# COMPREHENSIVE ENGINE RECORDS
# =============================================================================

@dataclass(frozen=True)
class AuditFinding:
    """A single scored observation produced by one audit check."""
    id: str
    audit_area: AuditArea
    component: str
    status: FindingStatus
    score: Decimal
    notes: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "audit_area": self.audit_area.label,
            "component": self.component,
            "status": self.status.value,
            "score": str(self.score),
            "notes": list(self.notes),
            "recommendations": list(self.recommendations),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class DetailedScores:
    """Per-category mean scores of a finding list."""
    security: Decimal
    accuracy: Decimal
    stability: Decimal
    profitability: Decimal
    risk_protection: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            "security": str(self.security),
            "accuracy": str(self.accuracy),
            "stability": str(self.stability),
            "profitability": str(self.profitability),
            "risk_protection": str(self.risk_protection),
        }


@dataclass(frozen=True)
class GoNoGoAssessment:
    """Readiness projection computed on demand from a finding list."""
    ready_for_real_money: bool
    main_issues: Tuple[str, ...]
    recommended_fixes: Tuple[str, ...]
    simulated_roi: str
    data_integrity_level: IntegrityLevel
    security_grade: Decimal
    final_recommendation: Recommendation
    detailed_scores: DetailedScores
    overall_score: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ready_for_real_money": self.ready_for_real_money,
            "main_issues": list(self.main_issues),
            "recommended_fixes": list(self.recommended_fixes),
            "simulated_roi": self.simulated_roi,
            "data_integrity": self.data_integrity_level.value,
            "security_grade": str(self.security_grade),
            "final_recommendation": self.final_recommendation.value,
            "detailed_scores": self.detailed_scores.to_dict(),
            "overall_score": str(self.overall_score),
        }


# =============================================================================
# COLLABORATOR RECORDS
# =============================================================================

@dataclass(frozen=True)
class Holding:
    """A persisted portfolio holding row."""
    asset: str
    quantity: Decimal
    average_cost: Decimal
    current_value: Decimal
    invested_total: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal


@dataclass(frozen=True)
class OrderRecord:
    """A persisted user order."""
    order_id: str
    order_type: str
    side: str
    quantity: Decimal
    price: Optional[Decimal]
    trading_pair_id: Optional[str]
    status: Optional[str] = None
    filled_quantity: Optional[Decimal] = None
    average_fill_price: Optional[Decimal] = None
    fees: Optional[Decimal] = None
    trading_account_id: Optional[str] = None

    @property
    def is_market(self) -> bool:
        return self.order_type.lower() == "market"


@dataclass(frozen=True)
class ExecutionRecord:
    """A matched trade execution."""
    execution_id: str
    order_id: Optional[str]
    price: Decimal
    quantity: Decimal
    fees: Decimal
    executed_at: Optional[datetime] = None
    profit_loss: Optional[Decimal] = None


@dataclass(frozen=True)
class TradingPair:
    """Trading pair definition."""
    pair_id: str
    symbol: str
    base_asset: str
    quote_asset: str
    is_active: bool = True


@dataclass(frozen=True)
class MarketSnapshot:
    """Latest persisted market data row for a trading pair."""
    trading_pair_id: Optional[str]
    price: Decimal
    price_change_24h: Decimal = Decimal("0")
    high_24h: Decimal = Decimal("0")
    low_24h: Decimal = Decimal("0")
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class LiquidityZone:
    """Support / resistance band near which price tends to react."""
    zone_type: str
    price_level: Decimal
    strength: str


@dataclass(frozen=True)
class TradingAccount:
    """A user trading account (paper or live)."""
    account_id: str
    account_type: str
    balance_usd: Decimal


__all__: List[str] = [
    "Verdict",
    "worst_verdict",
    "FindingStatus",
    "AuditArea",
    "SystemHealth",
    "Recommendation",
    "IntegrityLevel",
    "ToleranceResult",
    "PORTFOLIO_METRICS",
    "PortfolioAuditRecord",
    "TradeAuditRecord",
    "AuditFinding",
    "DetailedScores",
    "GoNoGoAssessment",
    "Holding",
    "OrderRecord",
    "ExecutionRecord",
    "TradingPair",
    "MarketSnapshot",
    "LiquidityZone",
    "TradingAccount",
    "utc_now",
]
