"""
Unit Tests for the GO / NO-GO Assessment

Reliability Level: L6 Critical
Python 3.8 Compatible
"""

from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from tradeaudit.logic.assessment import (
    area_score,
    decide,
    generate_assessment,
    integrity_level,
    mean_score,
)
from tradeaudit.logic.models import (
    AuditArea,
    AuditFinding,
    FindingStatus,
    IntegrityLevel,
    Recommendation,
)


def finding(area, status, score, component="Check", recommendations=()):
    return AuditFinding(
        id=f"{area.id_prefix}-001",
        audit_area=area,
        component=component,
        status=status,
        score=Decimal(score),
        recommendations=tuple(recommendations),
    )


class TestDecisionRule:

    def test_clean_high_scores_are_go(self) -> None:
        findings = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "90")] * 4

        assert decide(findings) is Recommendation.GO

    def test_any_critical_is_no_go(self) -> None:
        findings = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "100")] * 9
        findings.append(finding(AuditArea.SECURITY, FindingStatus.CRITICAL, "100"))

        assert decide(findings) is Recommendation.NO_GO

    def test_two_failures_still_go(self) -> None:
        findings = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "100")] * 8
        findings += [finding(AuditArea.SECURITY, FindingStatus.FAIL, "50")] * 2

        assert decide(findings) is Recommendation.GO

    def test_three_failures_are_no_go(self) -> None:
        findings = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "100")] * 7
        findings += [finding(AuditArea.SECURITY, FindingStatus.FAIL, "90")] * 3

        assert decide(findings) is Recommendation.NO_GO

    def test_mean_boundary_is_inclusive(self) -> None:
        at_threshold = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.WARNING, "75")]
        below = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.WARNING, "74.99")]

        assert decide(at_threshold) is Recommendation.GO
        assert decide(below) is Recommendation.NO_GO

    def test_empty_findings_are_no_go(self) -> None:
        assert decide([]) is Recommendation.NO_GO


class TestScores:

    def test_mean_of_empty_is_zero(self) -> None:
        assert mean_score([]) == Decimal("0")

    def test_area_score_only_counts_its_area(self) -> None:
        findings = [
            finding(AuditArea.SECURITY, FindingStatus.PASS, "90"),
            finding(AuditArea.SECURITY, FindingStatus.WARNING, "70"),
            finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "10"),
        ]

        assert area_score(findings, AuditArea.SECURITY) == Decimal("80")
        assert area_score(findings, AuditArea.STRATEGY_VALIDATION) == Decimal("0")

    def test_integrity_levels(self) -> None:
        assert integrity_level(Decimal("85.01")) is IntegrityLevel.HIGH
        assert integrity_level(Decimal("85")) is IntegrityLevel.MEDIUM
        assert integrity_level(Decimal("70.01")) is IntegrityLevel.MEDIUM
        assert integrity_level(Decimal("70")) is IntegrityLevel.LOW


class TestGenerateAssessment:

    def test_projection_of_mixed_findings(self) -> None:
        findings = [
            finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "100", "Database Connectivity"),
            finding(AuditArea.DATA_INTEGRITY, FindingStatus.PASS, "92", "Historical Data"),
            finding(AuditArea.SECURITY, FindingStatus.FAIL, "30", "Emergency Stop",
                    ["Implement an emergency stop"]),
            finding(AuditArea.SIMULATED_TRADING, FindingStatus.PASS, "90", "Trade Simulation"),
        ]

        assessment = generate_assessment(findings, Decimal("1.5"))

        assert assessment.main_issues == ("Emergency Stop",)
        assert assessment.recommended_fixes == ("Implement an emergency stop",)
        assert assessment.detailed_scores.security == Decimal("30.00")
        assert assessment.detailed_scores.accuracy == Decimal("92.00")
        assert assessment.detailed_scores.risk_protection == Decimal("0.00")
        assert assessment.security_grade == Decimal("30.00")
        assert assessment.data_integrity_level is IntegrityLevel.MEDIUM
        assert assessment.overall_score == Decimal("78.00")
        assert assessment.simulated_roi == "+1.50%"

    def test_integrity_level_follows_overall_mean_not_area_mean(self) -> None:
        findings = [finding(AuditArea.INFRASTRUCTURE, FindingStatus.PASS, "100")] * 8
        findings.append(finding(AuditArea.DATA_INTEGRITY, FindingStatus.WARNING, "65"))

        assessment = generate_assessment(findings)

        assert assessment.detailed_scores.accuracy == Decimal("65.00")
        assert assessment.overall_score == Decimal("96.11")
        assert assessment.data_integrity_level is IntegrityLevel.HIGH
        assert assessment.final_recommendation is Recommendation.GO
        assert assessment.ready_for_real_money is True

    def test_display_scores_are_quantized(self) -> None:
        findings = [
            finding(AuditArea.SECURITY, FindingStatus.PASS, "100"),
            finding(AuditArea.SECURITY, FindingStatus.PASS, "100"),
            finding(AuditArea.SECURITY, FindingStatus.PASS, "90"),
        ]

        assessment = generate_assessment(findings)

        assert assessment.overall_score == Decimal("96.67")
        assert str(assessment.detailed_scores.security) == "96.67"

    def test_negative_roi_formatting(self) -> None:
        assessment = generate_assessment([], Decimal("-3.104"))

        assert assessment.simulated_roi == "-3.10%"
        assert assessment.final_recommendation is Recommendation.NO_GO

    def test_findings_are_not_modified(self) -> None:
        findings = [finding(AuditArea.SECURITY, FindingStatus.CRITICAL, "0", "Key Exposure")]
        before = list(findings)

        generate_assessment(findings)

        assert findings == before

    def test_serialized_recommendation_uses_hyphen(self) -> None:
        findings = [finding(AuditArea.SECURITY, FindingStatus.CRITICAL, "0")]

        body = generate_assessment(findings).to_dict()

        assert body["final_recommendation"] == "NO-GO"
        assert body["ready_for_real_money"] is False
