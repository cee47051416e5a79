"""
============================================================================
Trade Audit Engine - GO / NO-GO Assessment
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Means are exact Decimal; display values quantized 0.01
Side Effects: None (pure projection of a finding list)

DECISION RULE
-------------
    GO  iff  zero CRITICAL findings
        AND  at most 2 FAIL findings
        AND  mean score of all findings >= 75

Detailed scores are the mean score of the findings of one audit area:
    security        <- Security
    accuracy        <- Data Integrity
    stability       <- Infrastructure
    profitability   <- Simulated Trading
    risk_protection <- Strategy Validation
An area without findings scores 0.

DATA INTEGRITY LEVEL
--------------------
Graded on the overall mean score of all findings:
    High    overall mean > 85
    Medium  overall mean > 70
    Low     otherwise
============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import List, Sequence

from tradeaudit.exchange.decimal_gateway import DecimalGateway
from tradeaudit.logic.models import (
    AuditArea,
    AuditFinding,
    DetailedScores,
    FindingStatus,
    GoNoGoAssessment,
    IntegrityLevel,
    Recommendation,
)

GO_MIN_MEAN_SCORE = Decimal("75")
GO_MAX_FAIL_FINDINGS = 2
INTEGRITY_HIGH_THRESHOLD = Decimal("85")
INTEGRITY_MEDIUM_THRESHOLD = Decimal("70")

_ZERO = Decimal("0")
_gateway = DecimalGateway()


def mean_score(findings: Sequence[AuditFinding]) -> Decimal:
    """Exact mean of finding scores; 0 for an empty sequence."""
    if not findings:
        return _ZERO
    return sum((f.score for f in findings), _ZERO) / Decimal(len(findings))


def area_score(findings: Sequence[AuditFinding], area: AuditArea) -> Decimal:
    """Exact mean score of one audit area."""
    return mean_score([f for f in findings if f.audit_area is area])


def _display(value: Decimal) -> Decimal:
    return value.quantize(_gateway.SCORE_PRECISION, rounding=ROUND_HALF_EVEN)


def integrity_level(score: Decimal) -> IntegrityLevel:
    if score > INTEGRITY_HIGH_THRESHOLD:
        return IntegrityLevel.HIGH
    if score > INTEGRITY_MEDIUM_THRESHOLD:
        return IntegrityLevel.MEDIUM
    return IntegrityLevel.LOW


def decide(findings: Sequence[AuditFinding]) -> Recommendation:
    """Apply the GO / NO-GO rule to a finding list."""
    critical = sum(1 for f in findings if f.status is FindingStatus.CRITICAL)
    failed = sum(1 for f in findings if f.status is FindingStatus.FAIL)
    if critical == 0 and failed <= GO_MAX_FAIL_FINDINGS and mean_score(findings) >= GO_MIN_MEAN_SCORE:
        return Recommendation.GO
    return Recommendation.NO_GO


def generate_assessment(
    findings: Sequence[AuditFinding],
    simulated_roi: Decimal = _ZERO,
) -> GoNoGoAssessment:
    """
    Project a finding list onto a GoNoGoAssessment.

    Args:
        findings: Findings of one audit run, in run order
        simulated_roi: ROI of the simulated trading session, in percent

    Returns:
        Fresh immutable assessment; the findings are not modified
    """
    main_issues: List[str] = [
        f.component
        for f in findings
        if f.status in (FindingStatus.CRITICAL, FindingStatus.FAIL)
    ]
    recommended_fixes: List[str] = [
        recommendation for f in findings for recommendation in f.recommendations
    ]

    detailed = DetailedScores(
        security=_display(area_score(findings, AuditArea.SECURITY)),
        accuracy=_display(area_score(findings, AuditArea.DATA_INTEGRITY)),
        stability=_display(area_score(findings, AuditArea.INFRASTRUCTURE)),
        profitability=_display(area_score(findings, AuditArea.SIMULATED_TRADING)),
        risk_protection=_display(area_score(findings, AuditArea.STRATEGY_VALIDATION)),
    )
    overall = mean_score(findings)
    recommendation = decide(findings)

    return GoNoGoAssessment(
        ready_for_real_money=recommendation is Recommendation.GO,
        main_issues=tuple(main_issues),
        recommended_fixes=tuple(recommended_fixes),
        simulated_roi=_gateway.format_percentage(simulated_roi),
        data_integrity_level=integrity_level(overall),
        security_grade=detailed.security,
        final_recommendation=recommendation,
        detailed_scores=detailed,
        overall_score=_display(overall),
    )
