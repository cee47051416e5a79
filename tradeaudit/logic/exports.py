"""
Audit Report Exports

Reliability Level: L4 Standard
Side Effects: None (string rendering only)

Renders the findings of one comprehensive run as CSV, JSON or Markdown.
CSV columns are fixed: ID, Audit Area, Component, Status, Score, Notes
(notes joined with "; ").
"""

import csv
import io
import json
from typing import Any, Dict, List, Optional, Sequence

from tradeaudit.logic.models import AuditArea, AuditFinding, GoNoGoAssessment, utc_now

CSV_HEADER = ["ID", "Audit Area", "Component", "Status", "Score", "Notes"]
NOTES_SEPARATOR = "; "


def to_csv(findings: Sequence[AuditFinding]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for finding in findings:
        writer.writerow([
            finding.id,
            finding.audit_area.label,
            finding.component,
            finding.status.value,
            str(finding.score),
            NOTES_SEPARATOR.join(finding.notes),
        ])
    return buffer.getvalue()


def to_json(
    findings: Sequence[AuditFinding],
    assessment: Optional[GoNoGoAssessment] = None,
) -> str:
    payload: Dict[str, Any] = {
        "generated_at": utc_now().isoformat(),
        "findings": [f.to_dict() for f in findings],
    }
    if assessment is not None:
        payload["assessment"] = assessment.to_dict()
    return json.dumps(payload, indent=2)


def to_markdown(
    findings: Sequence[AuditFinding],
    assessment: Optional[GoNoGoAssessment] = None,
) -> str:
    """Human-readable report: summary, per-area findings, recommendations."""
    lines: List[str] = [
        "# Comprehensive Trading System Audit Report",
        "",
        f"Generated: {utc_now().isoformat()}",
        "",
        "> Simulation-only assessment. No real orders were placed.",
        "",
    ]

    if assessment is not None:
        scores = assessment.detailed_scores
        lines.extend([
            "## Executive Summary",
            "",
            f"- **Final Recommendation:** {assessment.final_recommendation.value}",
            f"- **Ready for Real Money:** {'Yes' if assessment.ready_for_real_money else 'No'}",
            f"- **Overall Score:** {assessment.overall_score}",
            f"- **Simulated ROI:** {assessment.simulated_roi}",
            f"- **Data Integrity:** {assessment.data_integrity_level.value}",
            f"- **Security Grade:** {assessment.security_grade}",
            "",
            "| Category | Score |",
            "|---|---|",
            f"| Security | {scores.security} |",
            f"| Accuracy | {scores.accuracy} |",
            f"| Stability | {scores.stability} |",
            f"| Profitability | {scores.profitability} |",
            f"| Risk Protection | {scores.risk_protection} |",
            "",
        ])

    for area in AuditArea:
        area_findings = [f for f in findings if f.audit_area is area]
        if not area_findings:
            continue
        lines.extend([f"## {area.label}", ""])
        for finding in area_findings:
            lines.append(
                f"### {finding.status.badge} {finding.component} ({finding.score}/100)"
            )
            lines.append("")
            for note in finding.notes:
                lines.append(f"- {note}")
            for recommendation in finding.recommendations:
                lines.append(f"- Recommendation: {recommendation}")
            lines.append("")

    if assessment is not None and assessment.main_issues:
        lines.extend(["## Main Issues", ""])
        lines.extend(f"- {issue}" for issue in assessment.main_issues)
        lines.append("")

    if assessment is not None and assessment.recommended_fixes:
        lines.extend(["## Recommended Fixes", ""])
        lines.extend(
            f"{n}. {fix}" for n, fix in enumerate(assessment.recommended_fixes, start=1)
        )
        lines.append("")

    return "\n".join(lines)


def export_results(
    findings: Sequence[AuditFinding],
    assessment: Optional[GoNoGoAssessment] = None,
) -> Dict[str, str]:
    """All three renderings keyed by format name."""
    return {
        "csv": to_csv(findings),
        "json": to_json(findings, assessment),
        "markdown": to_markdown(findings, assessment),
    }
