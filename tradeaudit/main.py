"""
============================================================================
Trade Audit Engine v1.0.0
FastAPI Application Entry Point
============================================================================

Reliability Level: L5 High
Input Constraints: None
Side Effects: Wires the audit service on startup; database pings on /health

MANDATE:
- Simulation-only: no endpoint places or routes orders
- Every audit result is a 200; only an audit that cannot run errors out
- Figures leave the service as strings (Decimal, never float)

Run locally:
    uvicorn tradeaudit.main:app --port 8090
    python -m tradeaudit.main
============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tradeaudit import __version__
from tradeaudit.api.audit import router as audit_router
from tradeaudit.api.audit import set_audit_service
from tradeaudit.config import get_audit_config
from tradeaudit.database.session import check_database_connection
from tradeaudit.service import build_audit_service

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: validate configuration and wire the audit service.
    Shutdown: release the service.
    """
    config = get_audit_config()
    set_audit_service(build_audit_service(config))
    logger.info(f"[AUD-MAIN] Trade audit service v{__version__} started")
    yield
    set_audit_service(None)
    logger.info("[AUD-MAIN] Trade audit service stopped")


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="Trade Audit Engine",
    description=(
        "Tolerance audits of persisted trading figures and a five-phase "
        "GO / NO-GO readiness assessment.\n\n"
        "**Simulation-only:** no endpoint places real orders."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("AUDIT_CORS_ORIGINS", "*").split(",")],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Correlation-ID"],
)


@app.exception_handler(Exception)
async def unhandled_audit_error(request: Request, exc: Exception):
    """Anything the router did not map becomes a logged AUD-SYS-500."""
    logger.error(
        f"[AUD-SYS-500] Unhandled exception | path={request.url.path} | "
        f"error_type={type(exc).__name__} | error={exc}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "AUD-SYS-500",
            "message": "Audit service failed unexpectedly; see service logs.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": request.headers.get("X-Correlation-ID"),
        }
    )


app.include_router(audit_router, prefix="/api/audit", tags=["Audit"])


@app.get("/health", tags=["System"], summary="Audit service liveness and storage reachability")
async def health_check():
    try:
        check_database_connection()
    except Exception as e:
        logger.warning(f"[AUD-MAIN] Health check failed | error={e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)}
        )
    return {"status": "healthy", "database": "connected", "version": __version__}


@app.get("/metrics", tags=["Observability"], summary="Audit metrics in Prometheus text format")
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tradeaudit.main:app",
        host=os.getenv("AUDIT_HOST", "0.0.0.0"),
        port=int(os.getenv("AUDIT_PORT", "8090")),
    )
