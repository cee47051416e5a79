"""
============================================================================
Trade Audit Engine v1.0.0
Prometheus Metrics - Audit Observability
============================================================================

Reliability Level: L5 High
Input Constraints: Scores and figures arrive as Decimal
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- audit_runs_total: Counter of audit runs by type and outcome
- audit_tolerance_verdicts_total: Counter of tolerance verdicts by metric
- audit_findings_total: Counter of comprehensive findings by area / status
- audit_overall_score: Mean score of the last comprehensive run
- audit_go_decision: 1 when the last assessment was GO, else 0
- audit_run_duration_seconds: Distribution of audit run durations

ZERO-FLOAT MANDATE
------------------
Scores are converted from Decimal to float ONLY at the Prometheus
boundary. Recording functions never raise.

============================================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

AUDIT_RUNS = Counter(
    "audit_runs_total",
    "Total number of audit runs by audit type and outcome",
    ["audit_type", "outcome"]
)

TOLERANCE_VERDICTS = Counter(
    "audit_tolerance_verdicts_total",
    "Tolerance comparisons by compared figure and verdict",
    ["metric", "verdict"]
)

FINDINGS = Counter(
    "audit_findings_total",
    "Comprehensive audit findings by audit area and status",
    ["audit_area", "status"]
)

OVERALL_SCORE_GAUGE = Gauge(
    "audit_overall_score",
    "Mean finding score of the last comprehensive audit run"
)

GO_DECISION_GAUGE = Gauge(
    "audit_go_decision",
    "1 when the last comprehensive audit recommended GO, 0 for NO-GO"
)

RUN_DURATION_HISTOGRAM = Histogram(
    "audit_run_duration_seconds",
    "Wall-clock duration of audit runs",
    ["audit_type"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)


# ============================================================================
# RECORDING FUNCTIONS
# ============================================================================

def record_audit_run(
    audit_type: str,
    outcome: str,
    duration_seconds: Optional[float] = None,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record one completed (or aborted) audit run.

    Args:
        audit_type: "portfolio", "trade", "system", "comprehensive" or "user"
        outcome: Verdict / health / recommendation, or "ERROR"
        duration_seconds: Optional wall-clock duration
        correlation_id: Optional tracking ID
    """
    try:
        AUDIT_RUNS.labels(audit_type=audit_type, outcome=outcome).inc()
        if duration_seconds is not None:
            RUN_DURATION_HISTOGRAM.labels(audit_type=audit_type).observe(duration_seconds)
        logger.debug(
            "Metric: audit_run | audit_type=%s | outcome=%s | correlation_id=%s",
            audit_type, outcome, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-101] Failed to record audit_run metric | error=%s",
            str(e)
        )


def record_tolerance_verdict(metric: str, verdict: str) -> None:
    """Count one tolerance comparison outcome."""
    try:
        TOLERANCE_VERDICTS.labels(metric=metric, verdict=verdict).inc()
    except Exception as e:
        logger.error(
            "[OBS-102] Failed to record tolerance verdict metric | error=%s",
            str(e)
        )


def record_finding(audit_area: str, status: str) -> None:
    """Count one comprehensive audit finding."""
    try:
        FINDINGS.labels(audit_area=audit_area, status=status).inc()
    except Exception as e:
        logger.error(
            "[OBS-103] Failed to record finding metric | error=%s",
            str(e)
        )


def update_assessment(
    overall_score: Decimal,
    is_go: bool,
    correlation_id: Optional[str] = None
) -> None:
    """
    Publish the latest GO / NO-GO assessment.

    Side Effects: Sets the overall score and GO decision gauges
    """
    try:
        OVERALL_SCORE_GAUGE.set(float(overall_score))
        GO_DECISION_GAUGE.set(1 if is_go else 0)
        logger.debug(
            "Metric: assessment | overall_score=%s | go=%s | correlation_id=%s",
            overall_score, is_go, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-104] Failed to update assessment metrics | error=%s",
            str(e)
        )
