"""
Error taxonomy for the filing workflow engine.

Every error carries a stable ``kind`` (used by API clients to branch) and the
HTTP status the API layer answers with.
"""

from typing import Any, Optional


class WorkflowError(Exception):
    """Base exception for all workflow engine errors."""

    kind = "workflow_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "kind": self.kind}


class ValidationError(WorkflowError):
    """Raised when data is missing, malformed or under a completion threshold."""

    kind = "validation_error"
    status_code = 400

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out


class AccessDeniedError(WorkflowError):
    """Raised on a role, capability or ownership mismatch."""

    kind = "access_denied"
    status_code = 403


class NotFoundError(WorkflowError):
    """Raised when an application or section does not exist."""

    kind = "not_found"
    status_code = 404


class StateTransitionError(WorkflowError):
    """Raised when an action is not allowed from the application's current status."""

    kind = "state_transition_error"
    status_code = 409

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        target_status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["currentStatus"] = self.current_status
        if self.target_status is not None:
            out["targetStatus"] = self.target_status
        return out


class ConcurrencyConflictError(WorkflowError):
    """Raised when a writer presents a stale version of a row."""

    kind = "concurrency_conflict"
    status_code = 409

    def __init__(self, message: str, current_version: Optional[int] = None) -> None:
        super().__init__(message)
        self.current_version = current_version

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["currentVersion"] = self.current_version
        return out
