"""
============================================================================
Trade Audit Engine v1.0.0
Audit API Endpoints
============================================================================

Reliability Level: L5 High
Input Constraints: Identifiers as path parameters; all figures returned
                   as strings (Decimal, never float)
Side Effects:
    - Read-only audits against storage and price sources
    - audit_trail entries for system / comprehensive runs
    - Prometheus metrics updates

ENDPOINTS:
    POST /api/audit/comprehensive                 - Five-phase GO / NO-GO audit
    POST /api/audit/system                        - System-wide tolerance sweep
    GET  /api/audit/portfolio/{user_id}           - Single portfolio audit
    GET  /api/audit/trade/{order_id}              - Single trade audit
    GET  /api/audit/user/{user_id}                - User trading audit
    GET  /api/audit/probability/{trading_pair_id} - Trade probability

ERROR CODES:
    AUD-API-409: A comprehensive audit is already running
    AUD-RUN-001: Comprehensive audit aborted (partial findings attached)
    AUD-INFRA-001 / AUD-COLLAB-001: Audit inputs unreadable (502)

An audit that finds problems is a successful call (200). Only an audit
that could not run returns an error status.
============================================================================
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from tradeaudit.errors import AuditError, AuditRunError
from tradeaudit.logic.trade_probability import TradeDirection
from tradeaudit.service import AuditService, build_audit_service

logger = logging.getLogger(__name__)


# ============================================================================
# Router Configuration
# ============================================================================

router = APIRouter()

RUN_IN_PROGRESS_CODE = "AUD-API-409"


# ============================================================================
# Service Dependency
# ============================================================================

_audit_service: Optional[AuditService] = None


def set_audit_service(service: Optional[AuditService]) -> None:
    """Install the process-wide service (called by the application lifespan)."""
    global _audit_service
    _audit_service = service


def get_audit_service() -> AuditService:
    """
    Return the process-wide AuditService, wiring it on first use.

    Tests replace this dependency through app.dependency_overrides.
    """
    global _audit_service
    if _audit_service is None:
        logger.warning("[AUDIT-API] Audit service not initialised, wiring default service")
        _audit_service = build_audit_service()
    return _audit_service


# ============================================================================
# Request/Response Models
# ============================================================================

class AuditRunRequest(BaseModel):
    """Optional body for audit runs."""
    correlation_id: Optional[str] = Field(
        default=None,
        description="Caller-supplied correlation ID (generated when omitted)"
    )
    include_exports: bool = Field(
        default=True,
        description="Attach CSV / JSON / Markdown renderings to the response"
    )


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error_code: str
    message: str
    timestamp: str
    correlation_id: Optional[str] = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _raise_audit_error(
    error: AuditError, correlation_id: str, status_code: int = 502
) -> NoReturn:
    raise HTTPException(
        status_code=status_code,
        detail={
            "error_code": error.error_code,
            "message": error.message,
            "timestamp": _timestamp(),
            "correlation_id": correlation_id,
        },
    )


# ============================================================================
# Endpoints
# ============================================================================

@router.post(
    "/comprehensive",
    summary="Run Comprehensive Audit",
    description=(
        "Runs system diagnostics, data integrity, strategy validation, "
        "simulated trading and security checks, then returns the findings "
        "and the GO / NO-GO assessment.\n\n"
        "**Concurrency:** one run at a time (AUD-API-409 otherwise)"
    ),
    responses={
        200: {"description": "Audit completed (findings may include failures)"},
        409: {"model": ErrorResponse, "description": "Audit already running (AUD-API-409)"},
        500: {"description": "Audit aborted (AUD-RUN-001) with partial findings"},
    },
    tags=["Audit"]
)
async def run_comprehensive_audit(
    request: Optional[AuditRunRequest] = None,
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    request = request or AuditRunRequest()
    correlation_id = request.correlation_id or str(uuid.uuid4())

    lock = service.comprehensive_run_lock
    if lock.locked():
        logger.warning(
            f"[{RUN_IN_PROGRESS_CODE}] Comprehensive audit rejected, run in progress | "
            f"correlation_id={correlation_id}"
        )
        raise HTTPException(
            status_code=409,
            detail={
                "error_code": RUN_IN_PROGRESS_CODE,
                "message": "A comprehensive audit is already running",
                "timestamp": _timestamp(),
                "correlation_id": correlation_id,
            },
        )

    logger.info(f"[AUDIT-API] POST /comprehensive | correlation_id={correlation_id}")
    async with lock:
        try:
            report = await service.run_comprehensive_audit(correlation_id)
        except AuditRunError as e:
            partial = []
            if e.context is not None:
                partial = [f.to_dict() for f in e.context.findings]
            raise HTTPException(
                status_code=500,
                detail={
                    "error_code": e.error_code,
                    "message": e.message,
                    "phase": e.phase,
                    "partial_findings": partial,
                    "timestamp": _timestamp(),
                    "correlation_id": correlation_id,
                },
            )

    body = report.to_dict()
    if request.include_exports:
        body["exports"] = report.export_results()
    return body


@router.post(
    "/system",
    summary="Run System-Wide Audit",
    description="Audits every portfolio and the most recent trade executions.",
    responses={
        200: {"description": "Sweep completed"},
        502: {"model": ErrorResponse, "description": "Audit targets unreadable"},
    },
    tags=["Audit"]
)
async def run_system_audit(
    request: Optional[AuditRunRequest] = None,
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    correlation_id = (request.correlation_id if request else None) or str(uuid.uuid4())
    logger.info(f"[AUDIT-API] POST /system | correlation_id={correlation_id}")
    try:
        result = await service.run_system_audit(correlation_id)
    except AuditError as e:
        _raise_audit_error(e, correlation_id)
    body = result.to_dict()
    body["correlation_id"] = correlation_id
    return body


@router.get(
    "/portfolio/{user_id}",
    summary="Audit Portfolio",
    responses={502: {"model": ErrorResponse, "description": "Holdings unreadable"}},
    tags=["Audit"]
)
async def audit_portfolio(
    user_id: str,
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    correlation_id = str(uuid.uuid4())
    try:
        record = await service.audit_portfolio(user_id, correlation_id)
    except AuditError as e:
        _raise_audit_error(e, correlation_id)
    return record.to_dict()


@router.get(
    "/trade/{order_id}",
    summary="Audit Trade Execution",
    responses={502: {"model": ErrorResponse, "description": "Order or execution unreadable"}},
    tags=["Audit"]
)
async def audit_trade(
    order_id: str,
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    correlation_id = str(uuid.uuid4())
    try:
        record = await service.audit_trade(order_id, correlation_id)
    except AuditError as e:
        _raise_audit_error(e, correlation_id)
    return record.to_dict()


@router.get(
    "/user/{user_id}",
    summary="Audit User Trading Figures",
    tags=["Audit"]
)
async def audit_user(
    user_id: str,
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    report = await service.audit_user(user_id, str(uuid.uuid4()))
    return report.to_dict()


@router.get(
    "/probability/{trading_pair_id}",
    summary="Trade Probability",
    description="Advisory probability that a long or short trade works out.",
    tags=["Audit"]
)
async def trade_probability(
    trading_pair_id: str,
    direction: TradeDirection = Query(TradeDirection.LONG),
    timeframe: str = Query("1h", min_length=1),
    service: AuditService = Depends(get_audit_service)
) -> Dict[str, Any]:
    assessment = await service.trade_probability(
        trading_pair_id, direction, timeframe, str(uuid.uuid4())
    )
    return assessment.to_dict()
