# ============================================================================
# EXECUTION MODELS
# ============================================================================
# STATUS: Core model - Task execution request, result and audit record
# PURPOSE: Define what goes into the executor and what comes back out
# CREATED: 19 OCT 2026
# EXPORTS: ExecuteTaskRequest, ExecutionResult, ExecutionRecord
# DEPENDENCIES: pydantic
# ============================================================================
"""
Execution Models

Three shapes:
- ExecuteTaskRequest: what a caller (API, cron, workflow) asks for
- ExecutionResult: what the executor returns, exactly once per invocation
- ExecutionRecord: the audit row in ai_task_executions

Every invocation gets its own record. Retrying a failed execution creates
a new record; the failed one is never rewritten.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import CorrelationIds, ExecutionStatus, TriggerSource
from core.models.base import new_id, utc_now


class ExecuteTaskRequest(BaseModel):
    """Request to run one task."""
    task_slug: str = Field(..., max_length=64)
    trigger_source: TriggerSource = TriggerSource.API
    input: Dict[str, Any] = Field(default_factory=dict)
    correlation: CorrelationIds = Field(default_factory=CorrelationIds)
    triggered_by: Optional[str] = Field(default=None, max_length=128)


@dataclass
class ExecutionResult:
    """
    Outcome of a single task invocation.

    Handlers return this; the executor returns it to callers.
    """
    success: bool = True
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_code: Optional[str] = None
    tokens_used: Optional[int] = None
    warnings: List[str] = field(default_factory=list)

    # Set by the executor once the audit record exists
    execution_id: Optional[str] = None

    @classmethod
    def success_result(
        cls,
        output: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> "ExecutionResult":
        """Create a success result."""
        return cls(success=True, output=output or {}, **kwargs)

    @classmethod
    def failure_result(
        cls,
        error: str,
        error_code: Optional[str] = None,
        output: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> "ExecutionResult":
        """Create a failure result."""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            output=output or {},
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "error_code": self.error_code,
            "tokens_used": self.tokens_used,
            "warnings": list(self.warnings),
            "execution_id": self.execution_id,
        }


class ExecutionRecord(BaseModel):
    """
    Audit row for one task invocation.

    Maps to the ai_task_executions table. Created in RUNNING state,
    moved to a terminal state when the invocation finishes.
    """
    __sql_table__: ClassVar[str] = "ai_task_executions"
    __sql_primary_key__: ClassVar[str] = "id"

    id: str = Field(default_factory=new_id)
    task_slug: str = Field(..., max_length=64)
    trigger_source: TriggerSource = TriggerSource.API
    triggered_by: Optional[str] = None
    listing_id: Optional[str] = None
    campaign_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    tokens_used: Optional[int] = None
    duration_ms: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def correlation(self) -> CorrelationIds:
        return CorrelationIds(listing_id=self.listing_id, campaign_id=self.campaign_id)

    @classmethod
    def from_request(cls, request: ExecuteTaskRequest) -> "ExecutionRecord":
        return cls(
            task_slug=request.task_slug,
            trigger_source=request.trigger_source,
            triggered_by=request.triggered_by,
            listing_id=request.correlation.listing_id,
            campaign_id=request.correlation.campaign_id,
            status=ExecutionStatus.RUNNING,
            input=dict(request.input),
        )

    def to_request(self) -> ExecuteTaskRequest:
        """Rebuild the request that produced this record (used by retry)."""
        return ExecuteTaskRequest(
            task_slug=self.task_slug,
            trigger_source=self.trigger_source,
            input=dict(self.input),
            correlation=self.correlation,
            triggered_by=self.triggered_by,
        )


__all__ = [
    "ExecuteTaskRequest",
    "ExecutionResult",
    "ExecutionRecord",
]
