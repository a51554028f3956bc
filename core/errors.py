# ============================================================================
# ENGINE ERRORS
# ============================================================================
# STATUS: Core - Error taxonomy
# PURPOSE: Typed errors with stable codes for executor and orchestrator
# CREATED: 19 OCT 2026
# ============================================================================
"""
Engine Errors

Every failure that crosses a public boundary carries a stable string
code. The executor turns these into failed ExecutionResults; the
get/cancel/retry/resume operations raise them directly.

Client-class errors (status < 500) are logged as warnings by the
executor, everything else as errors.
"""

from typing import Any, Dict, Iterable, Optional


# ============================================================================
# ERROR CODES
# ============================================================================

NOT_FOUND = "NOT_FOUND"
INACTIVE = "INACTIVE"
INVALID_STATUS = "INVALID_STATUS"
INVALID_INPUT = "INVALID_INPUT"
MISSING_INSTRUCTION = "MISSING_INSTRUCTION"
TRIGGER_MISMATCH = "TRIGGER_MISMATCH"
EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"
WORKFLOW_CREATE_FAILED = "WORKFLOW_CREATE_FAILED"
STEP_EXECUTION_ERROR = "STEP_EXECUTION_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class EngineError(Exception):
    """Base exception for all engine errors."""

    code: str = UNKNOWN_ERROR
    status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        retriable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.details = details or {}
        self.retriable = retriable

    @property
    def is_client_error(self) -> bool:
        return self.status < 500

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "status": self.status,
            "details": self.details,
            "retriable": self.retriable,
        }


class NotFoundError(EngineError):
    """Raised when a task, execution or workflow does not exist."""
    code = NOT_FOUND
    status = 404

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} not found: {identifier}",
            details={"resource": resource, "id": identifier},
        )


class InactiveTaskError(EngineError):
    """Raised when a persisted task is switched off."""
    code = INACTIVE
    status = 403

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Task is not active: {slug}", details={"slug": slug})


class InvalidStatusError(EngineError):
    """Raised when an operation is not allowed from the current status."""
    code = INVALID_STATUS
    status = 400

    def __init__(self, action: str, current: str, allowed: Iterable[str]):
        self.current = current
        self.allowed = [str(a) for a in allowed]
        super().__init__(
            f"Cannot {action} in {current} status",
            details={"current_status": current, "allowed_statuses": self.allowed},
        )


class InvalidInputError(EngineError):
    """Raised when a task payload fails validation."""
    code = INVALID_INPUT
    status = 400


class MissingInstructionError(EngineError):
    """Raised when a task has neither a handler nor instruction text."""
    code = MISSING_INSTRUCTION
    status = 500

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(
            f"Task {slug} has no handler and no instruction text",
            details={"slug": slug},
        )


class TriggerMismatchError(EngineError):
    """Raised when a trigger event does not match the workflow definition."""
    code = TRIGGER_MISMATCH
    status = 400

    def __init__(self, workflow_id: str, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Workflow {workflow_id} expects trigger {expected}, received {received}",
            details={"expected": expected, "received": received},
        )


class ExternalServiceError(EngineError):
    """Raised when a collaborator (text generation, email) fails."""
    code = EXTERNAL_SERVICE_ERROR
    status = 502

    def __init__(self, service: str, cause: BaseException, retriable: bool = True):
        self.service = service
        super().__init__(
            f"{service} failed: {cause}",
            details={"service": service},
            retriable=retriable,
        )


class StorageError(EngineError):
    """Raised when the audit store cannot be read or written."""
    code = STORAGE_ERROR
    status = 500

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        super().__init__(
            f"Database error during {operation}: {cause}",
            details={"operation": operation},
        )


class WorkflowCreateError(EngineError):
    """Raised when the workflow audit record cannot be created."""
    code = WORKFLOW_CREATE_FAILED
    status = 500

    def __init__(self, workflow_id: str, cause: BaseException):
        super().__init__(
            f"Failed to create workflow execution for {workflow_id}: {cause}",
            details={"workflow_id": workflow_id},
        )


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "NOT_FOUND",
    "INACTIVE",
    "INVALID_STATUS",
    "INVALID_INPUT",
    "MISSING_INSTRUCTION",
    "TRIGGER_MISMATCH",
    "EXTERNAL_SERVICE_ERROR",
    "STORAGE_ERROR",
    "WORKFLOW_CREATE_FAILED",
    "STEP_EXECUTION_ERROR",
    "UNKNOWN_ERROR",
    "EngineError",
    "NotFoundError",
    "InactiveTaskError",
    "InvalidStatusError",
    "InvalidInputError",
    "MissingInstructionError",
    "TriggerMismatchError",
    "ExternalServiceError",
    "StorageError",
    "WorkflowCreateError",
]
