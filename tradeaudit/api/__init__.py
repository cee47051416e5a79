# ============================================================================
# Trade Audit Engine v1.0.0
# API Routes Module
# ============================================================================

from tradeaudit.api.audit import router as audit_router

__all__ = ["audit_router"]
