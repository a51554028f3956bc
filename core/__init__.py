# ============================================================================
# CORE MODULE
# ============================================================================
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# CREATED: 19 OCT 2026
# ============================================================================

from core.contracts import (
    ExecutionStatus,
    WorkflowStatus,
    StepStatus,
    TriggerSource,
    TaskCategory,
    ExecutionMode,
    ErrorPolicy,
    ResourceKind,
    CorrelationIds,
)
from core.errors import EngineError
from core.models import (
    TaskConfig,
    PersistedTask,
    ExecuteTaskRequest,
    ExecutionResult,
    ExecutionRecord,
    WorkflowDefinition,
    WorkflowStep,
    WorkflowTrigger,
    WorkflowResult,
)

__all__ = [
    # Enums
    "ExecutionStatus",
    "WorkflowStatus",
    "StepStatus",
    "TriggerSource",
    "TaskCategory",
    "ExecutionMode",
    "ErrorPolicy",
    "ResourceKind",
    "CorrelationIds",
    # Errors
    "EngineError",
    # Models
    "TaskConfig",
    "PersistedTask",
    "ExecuteTaskRequest",
    "ExecutionResult",
    "ExecutionRecord",
    "WorkflowDefinition",
    "WorkflowStep",
    "WorkflowTrigger",
    "WorkflowResult",
]
