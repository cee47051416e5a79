"""
============================================================================
Trade Audit Engine - Comprehensive Audit & Scoring Engine
============================================================================

Reliability Level: L6 Critical
Input Constraints: System probe, price feed, order reader, scenario generator
Side Effects: Read-only checks against storage and price sources; one
              audit_trail entry per completed run

PHASES (sequential, in this order)
----------------------------------
1. System Diagnostics      storage, price APIs, trading pairs, bots, order book
2. Data Integrity          cross-source price accuracy + placeholder checks
3. Strategy Validation     fixed placeholder findings
4. Simulated Trading       synthetic trade batch + execution speed timing
5. Security                key exposure, access control, rate limiting,
                           fallbacks, emergency stop

RUN LIFECYCLE
-------------
Every run_full_audit() call owns a fresh AuditRunContext. Findings are
appended to that context only, so two runs never share state.

FAILURE SEMANTICS
-----------------
- CollaboratorError inside a check: CRITICAL finding with score 0, the
  run continues
- Any other exception: remaining phases are skipped and AuditRunError is
  raised carrying the partial context
============================================================================
"""

import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from tradeaudit.config import AuditConfig
from tradeaudit.database.repositories import AuditLogWriter, OrderExecutionReader, SystemProbe
from tradeaudit.errors import AuditRunError, CollaboratorError
from tradeaudit.exchange.decimal_gateway import DecimalGateway
from tradeaudit.exchange.price_feed import MultiSourcePriceFeed
from tradeaudit.logic.assessment import generate_assessment
from tradeaudit.logic.exports import export_results
from tradeaudit.logic.models import (
    AuditArea,
    AuditFinding,
    FindingStatus,
    GoNoGoAssessment,
    Recommendation,
    Verdict,
    utc_now,
)
from tradeaudit.logic.scenarios import RandomScenarioGenerator, ScenarioGenerator
from tradeaudit.logic.tolerance import compare
from tradeaudit.observability.metrics import record_audit_run, record_finding, update_assessment

logger = logging.getLogger(__name__)


# ============================================================================
# Constants
# ============================================================================

# Ratio score -> status
PASS_SCORE = Decimal("80")
WARNING_SCORE = Decimal("60")

# Execution speed thresholds (milliseconds) and scores
SPEED_PASS_MS = 500
SPEED_WARNING_MS = 1000
SPEED_SCORES = {
    FindingStatus.PASS: Decimal("90"),
    FindingStatus.WARNING: Decimal("70"),
    FindingStatus.FAIL: Decimal("40"),
}

# (component, status, score, note, recommendation) for checks that are not
# measured yet and report a fixed outcome
PLACEHOLDER_CHECKS = {
    AuditArea.DATA_INTEGRITY: (
        ("Historical Data Consistency", FindingStatus.PASS, Decimal("92"),
         "Placeholder check: historical candles not re-validated", None),
        ("Order Book Integrity", FindingStatus.PASS, Decimal("90"),
         "Placeholder check: bid/ask ordering not re-validated", None),
        ("Balance Synchronization", FindingStatus.PASS, Decimal("95"),
         "Placeholder check: balances not reconciled against exchange", None),
    ),
    AuditArea.STRATEGY_VALIDATION: (
        ("Risk Management", FindingStatus.PASS, Decimal("85"),
         "Fixed score: stop-loss and position sizing rules present", None),
        ("Backtesting Quality", FindingStatus.PASS, Decimal("80"),
         "Fixed score: backtests not re-run", None),
        ("Alpha Generation", FindingStatus.WARNING, Decimal("65"),
         "Fixed score: no measured edge over buy-and-hold",
         "Validate strategy alpha on out-of-sample data before live trading"),
        ("Strategy Logic", FindingStatus.PASS, Decimal("88"),
         "Fixed score: entry/exit rules not re-derived", None),
    ),
}

SECURITY_PLACEHOLDERS = (
    ("Database Access Control", FindingStatus.WARNING, Decimal("70"),
     "Fixed score: row-level security policies not inspected",
     "Review row-level security policies on every trading table"),
    ("Rate Limiting", FindingStatus.WARNING, Decimal("65"),
     "Fixed score: no request rate limiting verified",
     "Add request rate limiting in front of trading endpoints"),
)

PUBLIC_ENV_PREFIXES = ("VITE_", "PUBLIC_", "NEXT_PUBLIC_", "REACT_APP_")
SECRET_MARKERS = ("SECRET", "PRIVATE", "API_KEY", "PASSWORD")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def status_for_score(score: Decimal) -> FindingStatus:
    """Ratio score -> status: >= 80 PASS, >= 60 WARNING, > 0 FAIL, 0 CRITICAL."""
    if score >= PASS_SCORE:
        return FindingStatus.PASS
    if score >= WARNING_SCORE:
        return FindingStatus.WARNING
    if score > _ZERO:
        return FindingStatus.FAIL
    return FindingStatus.CRITICAL


def find_exposed_secrets(environment: Mapping[str, str]) -> List[str]:
    """Names of non-empty secrets published under a client-visible prefix."""
    exposed = []
    for name, value in environment.items():
        upper = name.upper()
        if not value or not upper.startswith(PUBLIC_ENV_PREFIXES):
            continue
        if any(marker in upper for marker in SECRET_MARKERS):
            exposed.append(name)
    return sorted(exposed)


# ============================================================================
# Run Context & Report
# ============================================================================

@dataclass(frozen=True)
class CheckOutcome:
    """Result of one check before it becomes an AuditFinding."""
    score: Decimal
    notes: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    status: Optional[FindingStatus] = None


@dataclass
class AuditRunContext:
    """
    Run-scoped accumulator passed through every phase.

    Created by run_full_audit() and never shared between runs.
    """
    correlation_id: str
    started_at: datetime = field(default_factory=utc_now)
    findings: List[AuditFinding] = field(default_factory=list)
    completed_phases: List[str] = field(default_factory=list)
    simulated_trades: int = 0
    simulated_successes: int = 0
    simulated_pnl: Decimal = _ZERO
    simulated_roi: Decimal = _ZERO
    finished_at: Optional[datetime] = None

    def next_id(self, area: AuditArea) -> str:
        sequence = sum(1 for f in self.findings if f.audit_area is area) + 1
        return f"{area.id_prefix}-{sequence:03d}"

    def add(self, finding: AuditFinding) -> None:
        self.findings.append(finding)

    def findings_for(self, area: AuditArea) -> List[AuditFinding]:
        return [f for f in self.findings if f.audit_area is area]


@dataclass(frozen=True)
class AuditRunReport:
    """Completed run: its context, the assessment and the exports."""
    context: AuditRunContext
    assessment: GoNoGoAssessment

    @property
    def findings(self) -> List[AuditFinding]:
        return list(self.context.findings)

    def export_results(self) -> Dict[str, str]:
        return export_results(self.context.findings, self.assessment)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "correlation_id": self.context.correlation_id,
            "started_at": self.context.started_at.isoformat(),
            "finished_at": (
                self.context.finished_at.isoformat() if self.context.finished_at else None
            ),
            "completed_phases": list(self.context.completed_phases),
            "simulated_trading": {
                "trades": self.context.simulated_trades,
                "successes": self.context.simulated_successes,
                "total_pnl": str(self.context.simulated_pnl),
                "roi_percent": str(self.context.simulated_roi),
            },
            "findings": [f.to_dict() for f in self.context.findings],
            "assessment": self.assessment.to_dict(),
        }


PhaseFn = Callable[[AuditRunContext], Awaitable[None]]
CheckFn = Callable[[AuditRunContext], Awaitable[CheckOutcome]]


# ============================================================================
# Engine
# ============================================================================

class ComprehensiveAuditEngine:
    """
    Five-phase readiness audit ending in a GO / NO-GO assessment.

    Reliability Level: L6 Critical
    Input Constraints: Collaborators honour their interfaces
    Side Effects: Network / storage reads, metrics, audit_trail entry

    Example Usage:
        engine = ComprehensiveAuditEngine(probe, feed, repo)
        report = await engine.run_full_audit()
        print(report.assessment.final_recommendation.value)
    """

    def __init__(
        self,
        probe: SystemProbe,
        price_feed: MultiSourcePriceFeed,
        orders: OrderExecutionReader,
        scenario_generator: Optional[ScenarioGenerator] = None,
        audit_log: Optional[AuditLogWriter] = None,
        config: Optional[AuditConfig] = None,
        environment: Optional[Mapping[str, str]] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self._probe = probe
        self._price_feed = price_feed
        self._orders = orders
        self.config = config or AuditConfig()
        self._scenarios = scenario_generator or RandomScenarioGenerator(
            self.config.simulated_success_rate
        )
        self._audit_log = audit_log
        self._environment = environment
        self._clock = clock
        self._gateway = DecimalGateway()

    def _phases(self) -> Sequence[Tuple[str, PhaseFn]]:
        return (
            ("System Diagnostics", self._system_diagnostics),
            ("Data Integrity", self._data_integrity),
            ("Strategy Validation", self._strategy_validation),
            ("Simulated Trading", self._simulated_trading),
            ("Security", self._security),
        )

    async def run_full_audit(self, correlation_id: Optional[str] = None) -> AuditRunReport:
        """
        Run every phase in order and assess the findings.

        Raises:
            AuditRunError: A phase raised something other than CollaboratorError
                           (AUD-RUN-001); error.context holds the partial findings
        """
        context = AuditRunContext(correlation_id=correlation_id or str(uuid.uuid4()))
        started = time.perf_counter()
        logger.info(
            f"[AUD-RUN-000] Comprehensive audit started | "
            f"correlation_id={context.correlation_id}"
        )

        for phase_name, phase in self._phases():
            try:
                await phase(context)
            except Exception as e:
                context.finished_at = utc_now()
                record_audit_run("comprehensive", "ERROR", correlation_id=context.correlation_id)
                logger.error(
                    f"[AUD-RUN-001] Comprehensive audit aborted | phase={phase_name} | "
                    f"findings_so_far={len(context.findings)} | error={e} | "
                    f"correlation_id={context.correlation_id}"
                )
                raise AuditRunError(
                    f"Audit aborted during {phase_name}: {e}", phase=phase_name, context=context
                ) from e
            context.completed_phases.append(phase_name)

        context.finished_at = utc_now()
        assessment = generate_assessment(context.findings, context.simulated_roi)
        is_go = assessment.final_recommendation is Recommendation.GO

        update_assessment(assessment.overall_score, is_go, context.correlation_id)
        record_audit_run(
            "comprehensive",
            assessment.final_recommendation.value,
            time.perf_counter() - started,
            correlation_id=context.correlation_id,
        )

        log_message = (
            f"[AUD-RUN-002] Comprehensive audit complete | "
            f"recommendation={assessment.final_recommendation.value} | "
            f"overall_score={assessment.overall_score} | findings={len(context.findings)} | "
            f"main_issues={list(assessment.main_issues)} | "
            f"correlation_id={context.correlation_id}"
        )
        if is_go:
            logger.info(log_message)
        else:
            logger.critical(log_message)

        if self._audit_log is not None:
            await self._audit_log.record(
                "COMPREHENSIVE_AUDIT",
                "system",
                context.correlation_id,
                {
                    "final_recommendation": assessment.final_recommendation.value,
                    "overall_score": str(assessment.overall_score),
                    "findings": len(context.findings),
                },
            )
        return AuditRunReport(context=context, assessment=assessment)

    # ------------------------------------------------------------------------
    # Finding plumbing
    # ------------------------------------------------------------------------

    def _add_finding(
        self,
        context: AuditRunContext,
        area: AuditArea,
        component: str,
        outcome: CheckOutcome,
    ) -> AuditFinding:
        score = self._gateway.to_score(outcome.score)
        finding = AuditFinding(
            id=context.next_id(area),
            audit_area=area,
            component=component,
            status=outcome.status or status_for_score(score),
            score=score,
            notes=tuple(outcome.notes),
            recommendations=tuple(outcome.recommendations),
        )
        context.add(finding)
        record_finding(area.value, finding.status.value)
        if finding.status in (FindingStatus.FAIL, FindingStatus.CRITICAL):
            logger.warning(
                f"[AUD-FIND-001] {finding.status.value} finding | id={finding.id} | "
                f"component={component} | score={score} | "
                f"correlation_id={context.correlation_id}"
            )
        return finding

    async def _run_check(
        self,
        context: AuditRunContext,
        area: AuditArea,
        component: str,
        check: CheckFn,
    ) -> AuditFinding:
        try:
            outcome = await check(context)
        except CollaboratorError as e:
            logger.error(
                f"[AUD-COLLAB-001] Check could not reach its collaborator | "
                f"component={component} | error={e} | correlation_id={context.correlation_id}"
            )
            outcome = CheckOutcome(
                score=_ZERO,
                notes=(f"Collaborator unavailable: {e.message}",),
                recommendations=(f"Restore {component.lower()} before going live",),
                status=FindingStatus.CRITICAL,
            )
        return self._add_finding(context, area, component, outcome)

    def _add_fixed(self, context: AuditRunContext, area: AuditArea, checks) -> None:
        for component, status, score, note, recommendation in checks:
            self._add_finding(
                context,
                area,
                component,
                CheckOutcome(
                    score=score,
                    notes=(note,),
                    recommendations=(recommendation,) if recommendation else (),
                    status=status,
                ),
            )

    # ------------------------------------------------------------------------
    # Phase 1: System Diagnostics
    # ------------------------------------------------------------------------

    async def _system_diagnostics(self, context: AuditRunContext) -> None:
        area = AuditArea.INFRASTRUCTURE
        await self._run_check(context, area, "Database Connectivity", self._check_storage)
        await self._run_check(context, area, "Price Feed APIs", self._check_price_apis)
        await self._run_check(context, area, "Trading Pairs", self._check_trading_pairs)
        await self._run_check(context, area, "AI Trading Bots", self._check_bots)
        await self._run_check(context, area, "Order Book Data", self._check_order_books)

    async def _check_storage(self, context: AuditRunContext) -> CheckOutcome:
        await self._probe.ping_storage()
        return CheckOutcome(score=_HUNDRED, notes=("Storage answered the connectivity probe",))

    async def _check_price_apis(self, context: AuditRunContext) -> CheckOutcome:
        symbol = self.config.cross_check_symbols[0] if self.config.cross_check_symbols else "BTC"
        working, total = await self._price_feed.check_sources(symbol)
        recommendations = ()
        if working < total:
            recommendations = ("Investigate unreachable price sources",)
        return CheckOutcome(
            score=self._gateway.ratio_score(working, total),
            notes=(f"{working}/{total} price sources responding",),
            recommendations=recommendations,
        )

    async def _check_trading_pairs(self, context: AuditRunContext) -> CheckOutcome:
        active = await self._orders.list_active_trading_pairs()
        expected = self.config.min_active_pairs
        recommendations = ()
        if len(active) < expected:
            recommendations = (f"Activate at least {expected} trading pairs",)
        return CheckOutcome(
            score=self._gateway.ratio_score(len(active), expected),
            notes=(f"{len(active)} active trading pairs (expected at least {expected})",),
            recommendations=recommendations,
        )

    async def _check_bots(self, context: AuditRunContext) -> CheckOutcome:
        configured, active = await self._probe.count_bots()
        if configured > 0:
            return CheckOutcome(
                score=_HUNDRED,
                notes=(f"{configured} bots configured, {active} active",),
                status=FindingStatus.PASS,
            )
        return CheckOutcome(
            score=Decimal("60"),
            notes=("No trading bots configured",),
            recommendations=("Configure at least one trading bot",),
            status=FindingStatus.WARNING,
        )

    async def _check_order_books(self, context: AuditRunContext) -> CheckOutcome:
        symbols = self.config.cross_check_symbols
        available = 0
        for symbol in symbols:
            if await self._probe.order_book_available(symbol):
                available += 1
        recommendations = ()
        if available < len(symbols):
            recommendations = ("Restore order-book depth data for every audited pair",)
        return CheckOutcome(
            score=self._gateway.ratio_score(available, len(symbols)),
            notes=(f"Order-book depth available for {available}/{len(symbols)} pairs",),
            recommendations=recommendations,
        )

    # ------------------------------------------------------------------------
    # Phase 2: Data Integrity
    # ------------------------------------------------------------------------

    async def _data_integrity(self, context: AuditRunContext) -> None:
        area = AuditArea.DATA_INTEGRITY
        await self._run_check(context, area, "Price Feed Accuracy", self._check_price_accuracy)
        self._add_fixed(context, area, PLACEHOLDER_CHECKS[area])

    async def _check_price_accuracy(self, context: AuditRunContext) -> CheckOutcome:
        checked = 0
        agreeing = 0
        notes: List[str] = []
        for symbol in self.config.cross_check_symbols:
            quotes = await self._price_feed.quotes(symbol)
            available = [(name, price) for name, price in quotes.items() if price is not None]
            if len(available) < 2:
                notes.append(f"{symbol}: fewer than two sources available, not cross-checked")
                continue
            (first_name, first_price), (second_name, second_price) = available[0], available[1]
            result = compare(
                first_price, second_price, self.config.tolerance_percent, f"{symbol} price"
            )
            checked += 1
            if result.verdict is Verdict.PASS:
                agreeing += 1
            notes.append(
                f"{symbol}: {first_name}={first_price} {second_name}={second_price} "
                f"diff={result.percentage_diff.quantize(Decimal('0.0001'))}% "
                f"({result.verdict.value})"
            )

        recommendations = ()
        if agreeing < checked or checked == 0:
            recommendations = ("Investigate price discrepancies between feed sources",)
        return CheckOutcome(
            score=self._gateway.ratio_score(agreeing, checked),
            notes=tuple(notes),
            recommendations=recommendations,
        )

    # ------------------------------------------------------------------------
    # Phase 3: Strategy Validation
    # ------------------------------------------------------------------------

    async def _strategy_validation(self, context: AuditRunContext) -> None:
        area = AuditArea.STRATEGY_VALIDATION
        self._add_fixed(context, area, PLACEHOLDER_CHECKS[area])

    # ------------------------------------------------------------------------
    # Phase 4: Simulated Trading
    # ------------------------------------------------------------------------

    async def _simulated_trading(self, context: AuditRunContext) -> None:
        area = AuditArea.SIMULATED_TRADING
        self._run_simulated_session(context)
        await self._run_check(context, area, "Execution Speed", self._check_execution_speed)

    def _run_simulated_session(self, context: AuditRunContext) -> AuditFinding:
        count = self.config.simulated_trades
        notional = self.config.simulated_notional
        total_pnl = _ZERO
        successes = 0
        for index in range(count):
            trade = self._scenarios.generate_trade(index, notional)
            total_pnl += trade.profit_loss
            if trade.success:
                successes += 1

        success_rate = Decimal(successes) / Decimal(count) * _HUNDRED
        context.simulated_trades = count
        context.simulated_successes = successes
        context.simulated_pnl = total_pnl
        context.simulated_roi = total_pnl / (Decimal(count) * notional) * _HUNDRED

        if success_rate >= PASS_SCORE:
            status = FindingStatus.PASS
        elif success_rate >= WARNING_SCORE:
            status = FindingStatus.WARNING
        else:
            status = FindingStatus.FAIL

        recommendations = ()
        if status is not FindingStatus.PASS:
            recommendations = ("Review strategy parameters; simulated success rate is low",)

        logger.info(
            f"[AUD-SIM-001] Simulated session complete | trades={count} | "
            f"successes={successes} | total_pnl={total_pnl} | "
            f"roi={self._gateway.format_percentage(context.simulated_roi)} | "
            f"correlation_id={context.correlation_id}"
        )
        return self._add_finding(
            context,
            AuditArea.SIMULATED_TRADING,
            "Trade Simulation",
            CheckOutcome(
                score=success_rate,
                notes=(
                    f"{successes}/{count} simulated trades successful",
                    f"Total simulated P&L: {total_pnl}",
                    f"Simulated ROI: {self._gateway.format_percentage(context.simulated_roi)}",
                ),
                recommendations=recommendations,
                status=status,
            ),
        )

    async def _check_execution_speed(self, context: AuditRunContext) -> CheckOutcome:
        started = self._clock()
        await self._probe.ping_storage()
        for symbol in self.config.cross_check_symbols:
            await self._price_feed.get_price(symbol)
        elapsed_ms = (self._clock() - started) * 1000

        if elapsed_ms < SPEED_PASS_MS:
            status = FindingStatus.PASS
        elif elapsed_ms < SPEED_WARNING_MS:
            status = FindingStatus.WARNING
        else:
            status = FindingStatus.FAIL

        recommendations = ()
        if status is not FindingStatus.PASS:
            recommendations = ("Reduce storage and price feed latency",)
        return CheckOutcome(
            score=SPEED_SCORES[status],
            notes=(f"Storage ping and price fetches took {elapsed_ms:.0f} ms",),
            recommendations=recommendations,
            status=status,
        )

    # ------------------------------------------------------------------------
    # Phase 5: Security & Fault Tolerance
    # ------------------------------------------------------------------------

    async def _security(self, context: AuditRunContext) -> None:
        area = AuditArea.SECURITY
        await self._run_check(context, area, "API Key Exposure", self._check_key_exposure)
        self._add_fixed(context, area, SECURITY_PLACEHOLDERS)
        await self._run_check(context, area, "Fallback Mechanisms", self._check_fallbacks)
        await self._run_check(context, area, "Emergency Stop", self._check_emergency_stop)

    async def _check_key_exposure(self, context: AuditRunContext) -> CheckOutcome:
        environment = self._environment if self._environment is not None else os.environ
        exposed = find_exposed_secrets(environment)
        if not exposed:
            return CheckOutcome(
                score=Decimal("95"),
                notes=("No secrets found under client-visible prefixes",),
                status=FindingStatus.PASS,
            )
        return CheckOutcome(
            score=Decimal("30"),
            notes=(f"Secrets exposed to the client bundle: {', '.join(exposed)}",),
            recommendations=("Move secret keys to server-side configuration",),
            status=FindingStatus.FAIL,
        )

    async def _check_fallbacks(self, context: AuditRunContext) -> CheckOutcome:
        sources = len(self._price_feed.sources)
        if sources >= 2:
            return CheckOutcome(
                score=Decimal("90"),
                notes=(f"{sources} independent price sources configured",),
                status=FindingStatus.PASS,
            )
        return CheckOutcome(
            score=Decimal("40"),
            notes=(f"Only {sources} price source configured",),
            recommendations=("Configure a second independent price source",),
            status=FindingStatus.FAIL,
        )

    async def _check_emergency_stop(self, context: AuditRunContext) -> CheckOutcome:
        if await self._probe.emergency_stop_available():
            return CheckOutcome(
                score=_HUNDRED,
                notes=("Emergency stop control is wired in",),
                status=FindingStatus.PASS,
            )
        return CheckOutcome(
            score=Decimal("30"),
            notes=("No emergency stop control found",),
            recommendations=("Implement an emergency stop that halts all trading",),
            status=FindingStatus.FAIL,
        )
