# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# STATUS: Foundation - Core enums and base contracts
# PURPOSE: Status, category and trigger enums shared by every layer
# CREATED: 19 OCT 2026
# EXPORTS: ExecutionStatus, WorkflowStatus, StepStatus, TriggerSource,
#          TaskCategory, ExecutionMode, ErrorPolicy, ResourceKind,
#          CorrelationIds
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the agent engine.

These cross three boundaries:
- SQL (PostgreSQL audit tables)
- Python (in-process executor and orchestrator)
- YAML (workflow definitions)
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


# ============================================================================
# STATUS ENUMS
# ============================================================================

class ExecutionStatus(str, Enum):
    """
    Lifecycle of a single task execution record.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
                           -> CANCELLED
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (no further transitions)."""
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


# Statuses from which an execution may still be cancelled
CANCELLABLE_STATUSES = (ExecutionStatus.PENDING, ExecutionStatus.RUNNING)


class WorkflowStatus(str, Enum):
    """
    Lifecycle of a workflow execution record.

    State transitions:
        PENDING -> RUNNING -> COMPLETED
                           -> FAILED
        PENDING/RUNNING -> PAUSED (manual only)
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"

    def is_terminal(self) -> bool:
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)


PAUSABLE_STATUSES = (WorkflowStatus.PENDING, WorkflowStatus.RUNNING)


class StepStatus(str, Enum):
    """Per-step audit status inside a workflow execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"      # Condition not met, step skipped


# ============================================================================
# CLASSIFICATION ENUMS
# ============================================================================

class TriggerSource(str, Enum):
    """What started an execution."""
    WEBHOOK = "webhook"
    CRON = "cron"
    MANUAL = "manual"
    API = "api"
    WORKFLOW = "workflow"


class TaskCategory(str, Enum):
    """Business category of a task."""
    OPERATIONS = "operations"
    CONTENT = "content"
    DEVELOPMENT = "development"
    LIFESTYLE = "lifestyle"


class ExecutionMode(str, Enum):
    """How a task is expected to be invoked."""
    SYNC = "sync"
    ASYNC = "async"
    SCHEDULED = "scheduled"


class ErrorPolicy(str, Enum):
    """What a workflow does when a required step fails."""
    STOP = "stop"
    CONTINUE = "continue"


class ResourceKind(str, Enum):
    """Business resource a workflow can be correlated with."""
    LISTING = "listing"
    CAMPAIGN = "campaign"

    @property
    def column(self) -> str:
        """Correlation column on the audit tables."""
        return f"{self.value}_id"


# ============================================================================
# BASE DATA CONTRACTS
# ============================================================================

class CorrelationIds(BaseModel):
    """
    Business identifiers an execution is linked to.

    Both are optional; they are copied onto every audit record.
    """
    listing_id: Optional[str] = Field(default=None, max_length=64)
    campaign_id: Optional[str] = Field(default=None, max_length=64)

    model_config = {"frozen": True}

    def for_kind(self, kind: ResourceKind) -> Optional[str]:
        return self.listing_id if kind == ResourceKind.LISTING else self.campaign_id

    def to_dict(self) -> Dict[str, Any]:
        return {"listing_id": self.listing_id, "campaign_id": self.campaign_id}


__all__ = [
    "ExecutionStatus",
    "CANCELLABLE_STATUSES",
    "WorkflowStatus",
    "PAUSABLE_STATUSES",
    "StepStatus",
    "TriggerSource",
    "TaskCategory",
    "ExecutionMode",
    "ErrorPolicy",
    "ResourceKind",
    "CorrelationIds",
]
