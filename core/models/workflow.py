# ============================================================================
# WORKFLOW MODELS
# ============================================================================
# STATUS: Core model - Workflow definitions, runtime context, audit records
# PURPOSE: Define workflow structure loaded from YAML and its run state
# CREATED: 19 OCT 2026
# EXPORTS: WorkflowStep, WorkflowDefinition, WorkflowTrigger, WorkflowContext,
#          WorkflowExecutionStep, WorkflowExecutionRecord, WorkflowResult
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Models

A WorkflowDefinition is an ordered list of steps, each naming a task slug.
Steps sharing a `parallel` tag form one group and run concurrently;
untagged steps run alone. Groups run strictly in order.

Step behaviour is declared as data so it survives serialization:
- condition: expression evaluated against the workflow context
- inputs:    template mapping rendered against the workflow context
- publish:   shared-context key -> dotted path into the step result

Steps may also carry strategy objects for logic that does not fit an
expression. These are excluded from serialization:
- predicate:    has `async evaluate(context) -> bool`
- input_mapper: has `async build(context) -> dict`
- on_complete:  has `async on_complete(result, context) -> None`
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.contracts import (
    CorrelationIds,
    ErrorPolicy,
    StepStatus,
    WorkflowStatus,
)
from core.models.base import new_id, utc_now
from core.models.execution import ExecutionResult


# ============================================================================
# STEP STRATEGY PROTOCOLS
# ============================================================================

class StepPredicate(Protocol):
    async def evaluate(self, context: "WorkflowContext") -> bool: ...


class StepInputMapper(Protocol):
    async def build(self, context: "WorkflowContext") -> Dict[str, Any]: ...


class StepCompletionHook(Protocol):
    async def on_complete(self, result: ExecutionResult, context: "WorkflowContext") -> None: ...


def _require_method(value: Any, method: str, role: str) -> Any:
    if value is not None and not callable(getattr(value, method, None)):
        raise ValueError(f"{role} must provide a callable '{method}' method")
    return value


# ============================================================================
# DEFINITIONS
# ============================================================================

class WorkflowStep(BaseModel):
    """One step of a workflow: a task slug plus how to run it."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    task_slug: str = Field(..., max_length=64)
    required: bool = True
    parallel: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Steps with the same tag run concurrently as one group",
    )
    condition: Optional[str] = Field(
        default=None,
        description="Expression; step is skipped when it evaluates false",
    )
    inputs: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Input mapping with {{ template }} expressions",
    )
    publish: Dict[str, str] = Field(
        default_factory=dict,
        description="shared key -> dotted path into the step result",
    )
    description: Optional[str] = None

    predicate: Optional[Any] = Field(default=None, exclude=True)
    input_mapper: Optional[Any] = Field(default=None, exclude=True)
    on_complete: Optional[Any] = Field(default=None, exclude=True)

    @field_validator("predicate")
    @classmethod
    def _check_predicate(cls, v):
        return _require_method(v, "evaluate", "predicate")

    @field_validator("input_mapper")
    @classmethod
    def _check_input_mapper(cls, v):
        return _require_method(v, "build", "input_mapper")

    @field_validator("on_complete")
    @classmethod
    def _check_on_complete(cls, v):
        return _require_method(v, "on_complete", "on_complete")


class WorkflowDefinition(BaseModel):
    """
    Complete workflow definition loaded from YAML or built in code.

    Immutable once loaded.
    """
    model_config = ConfigDict(frozen=True)

    workflow_id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    version: int = Field(default=1, ge=1)
    description: Optional[str] = None
    trigger_event: str = Field(..., max_length=64)
    steps: List[WorkflowStep] = Field(default_factory=list)
    on_error: ErrorPolicy = ErrorPolicy.STOP

    def get_step(self, task_slug: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.task_slug == task_slug:
                return step
        return None

    def validate_structure(self) -> List[str]:
        """
        Validate workflow structure.

        Returns list of validation errors (empty if valid).
        """
        errors = []

        if not self.steps:
            errors.append("Workflow must have at least one step")

        seen = set()
        for index, step in enumerate(self.steps):
            if not step.task_slug.strip():
                errors.append(f"Step {index} has an empty task slug")
                continue
            # Results and outputs are keyed by slug
            if step.task_slug in seen:
                errors.append(f"Step '{step.task_slug}' appears more than once")
            seen.add(step.task_slug)

        if not self.trigger_event.strip():
            errors.append("Workflow must declare a trigger event")

        return errors


class WorkflowTrigger(BaseModel):
    """Event that starts a workflow run."""
    event: str = Field(..., max_length=64)
    correlation: CorrelationIds = Field(default_factory=CorrelationIds)
    data: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# RUNTIME CONTEXT
# ============================================================================

@dataclass
class WorkflowContext:
    """
    Mutable state of one workflow run.

    `shared` is the only multi-writer structure: each successful step
    merges its output under "<slug>_output" and publish mappings write
    their keys. Steps in the same group read from a snapshot taken at
    group start, never from each other.
    """
    workflow_execution_id: str
    workflow_id: str
    trigger_event: str
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    correlation: CorrelationIds = field(default_factory=CorrelationIds)
    current_step: int = 0
    group_index: int = 0
    step_results: Dict[str, ExecutionResult] = field(default_factory=dict)
    shared: Dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> "WorkflowContext":
        """Copy safe for concurrent readers within one group."""
        return WorkflowContext(
            workflow_execution_id=self.workflow_execution_id,
            workflow_id=self.workflow_id,
            trigger_event=self.trigger_event,
            trigger_data=copy.deepcopy(self.trigger_data),
            correlation=self.correlation,
            current_step=self.current_step,
            group_index=self.group_index,
            step_results=dict(self.step_results),
            shared=copy.deepcopy(self.shared),
        )

    def to_template_dict(self) -> Dict[str, Any]:
        """Variables available to conditions and input templates."""
        return {
            "trigger": {"event": self.trigger_event, "data": self.trigger_data},
            "correlation": self.correlation.to_dict(),
            "shared": self.shared,
            "steps": {slug: r.to_dict() for slug, r in self.step_results.items()},
            "workflow": {
                "id": self.workflow_id,
                "execution_id": self.workflow_execution_id,
                "group_index": self.group_index,
            },
        }


# ============================================================================
# AUDIT RECORDS
# ============================================================================

class WorkflowExecutionStep(BaseModel):
    """Per-step audit entry stored on the workflow record."""
    task_slug: str
    group_index: int = 0
    status: StepStatus = StepStatus.PENDING
    execution_id: Optional[str] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class WorkflowExecutionRecord(BaseModel):
    """
    Audit row for one workflow run.

    Maps to the ai_workflow_executions table.
    """
    __sql_table__: ClassVar[str] = "ai_workflow_executions"
    __sql_primary_key__: ClassVar[str] = "id"

    id: str = Field(default_factory=new_id)
    definition_id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    trigger_event: str = Field(..., max_length=64)
    status: WorkflowStatus = WorkflowStatus.PENDING
    listing_id: Optional[str] = None
    campaign_id: Optional[str] = None
    current_step: int = 0
    steps: List[WorkflowExecutionStep] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def correlation(self) -> CorrelationIds:
        return CorrelationIds(listing_id=self.listing_id, campaign_id=self.campaign_id)


@dataclass
class WorkflowResult:
    """Outcome of one workflow run."""
    workflow_execution_id: str
    workflow_id: str
    status: WorkflowStatus
    completed_steps: int
    total_steps: int
    step_results: Dict[str, ExecutionResult] = field(default_factory=dict)
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == WorkflowStatus.COMPLETED


__all__ = [
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
