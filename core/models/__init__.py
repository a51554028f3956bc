# ============================================================================
# MODELS MODULE
# ============================================================================
# STATUS: Model exports
# PURPOSE: Central export point for all engine models
# CREATED: 19 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

Persisted models carry their table name in a __sql_table__ ClassVar;
repositories and the DDL bootstrap read it from there.
"""

from core.models.task import (
    TaskConfig,
    PersistedTask,
    TaskMetrics,
    TaskFilter,
    merge_task_config,
)
from core.models.execution import ExecuteTaskRequest, ExecutionResult, ExecutionRecord
from core.models.workflow import (
    StepPredicate,
    StepInputMapper,
    StepCompletionHook,
    WorkflowStep,
    WorkflowDefinition,
    WorkflowTrigger,
    WorkflowContext,
    WorkflowExecutionStep,
    WorkflowExecutionRecord,
    WorkflowResult,
)

__all__ = [
    # Task
    "TaskConfig",
    "PersistedTask",
    "TaskMetrics",
    "TaskFilter",
    "merge_task_config",
    # Execution
    "ExecuteTaskRequest",
    "ExecutionResult",
    "ExecutionRecord",
    # Workflow
    "StepPredicate",
    "StepInputMapper",
    "StepCompletionHook",
    "WorkflowStep",
    "WorkflowDefinition",
    "WorkflowTrigger",
    "WorkflowContext",
    "WorkflowExecutionStep",
    "WorkflowExecutionRecord",
    "WorkflowResult",
]
