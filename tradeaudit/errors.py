"""
============================================================================
Trade Audit Engine - Error Taxonomy
============================================================================

Reliability Level: L6 Critical
Input Constraints: None
Side Effects: None

ERROR CODES:
    - AUD-INFRA-001: Per-item audit could not read its collaborator data
    - AUD-COLLAB-001: Collaborator (storage / price feed) unreachable
    - AUD-RUN-001: Comprehensive audit run aborted
    - AUD-CFG-001: Invalid audit configuration

A tolerance breach is NOT an error. It is a normal PASS / WARNING / FAIL
outcome and never raises.
============================================================================
"""

from typing import Any, Optional


class AuditErrorCode:
    """Audit error codes for log correlation."""
    INFRASTRUCTURE = "AUD-INFRA-001"
    COLLABORATOR = "AUD-COLLAB-001"
    RUN_ABORTED = "AUD-RUN-001"
    CONFIG_INVALID = "AUD-CFG-001"


class AuditError(Exception):
    """Base class for all audit errors."""

    error_code = "AUD-000"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(f"[{self.error_code}] {message}")


class AuditInfrastructureError(AuditError):
    """
    Raised when a single portfolio / trade audit cannot read its inputs.

    Batch runners catch this and omit the item; direct callers see it.
    """

    error_code = AuditErrorCode.INFRASTRUCTURE


class CollaboratorError(AuditError):
    """
    Raised by storage and network adapters when the backend is unreachable.

    The comprehensive engine converts it into a CRITICAL finding.
    """

    error_code = AuditErrorCode.COLLABORATOR


class AuditConfigurationError(AuditError):
    """Raised when audit configuration fails validation."""

    error_code = AuditErrorCode.CONFIG_INVALID


class AuditRunError(AuditError):
    """
    Raised when a comprehensive audit run aborts mid-phase.

    Carries the run context so findings accumulated before the failure
    remain available to the caller.
    """

    error_code = AuditErrorCode.RUN_ABORTED

    def __init__(self, message: str, phase: str, context: Any = None):
        self.phase = phase
        self.context = context
        super().__init__(message)
