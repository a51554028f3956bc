# ============================================================================
# TASK MODELS
# ============================================================================
# STATUS: Core model - Persisted task metadata, config and metrics
# PURPOSE: Shapes read from ai_tasks and the ai_task_metrics view
# CREATED: 19 OCT 2026
# EXPORTS: TaskConfig, PersistedTask, TaskMetrics, TaskFilter,
#          merge_task_config
# DEPENDENCIES: pydantic
# ============================================================================
"""
Task Models

A task ("agent") is identified by its slug. Two halves describe it:
- PersistedTask: the row in ai_tasks (activation flag, instruction text,
  config overrides). Managed by operators.
- TaskDefinition (handlers.registry): the in-code half with the handler.

TaskConfig values are layered at execution time:

    defaults < persisted row < in-code definition
"""

from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.config.defaults import TaskConfigDefaults
from core.contracts import ExecutionMode, TaskCategory
from core.models.base import utc_now


class TaskConfig(BaseModel):
    """
    Generation settings for a task.

    Every field is optional so that a layer only overrides what it sets.
    Accepts camelCase (as stored by the admin UI) or snake_case keys.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    max_tokens: Optional[int] = Field(default=None, ge=1)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    timeout_ms: Optional[int] = Field(default=None, ge=1)
    retry_attempts: Optional[int] = Field(default=None, ge=0)
    model: Optional[str] = None

    def overrides(self) -> Dict[str, Any]:
        """Fields this layer actually sets."""
        return self.model_dump(exclude_none=True)

    @property
    def timeout_seconds(self) -> Optional[float]:
        return self.timeout_ms / 1000.0 if self.timeout_ms is not None else None


def merge_task_config(
    defaults: TaskConfigDefaults,
    *layers: Optional[TaskConfig],
) -> TaskConfig:
    """
    Merge config layers over the defaults, later layers winning.

    Args:
        defaults: Environment defaults
        *layers: Config layers in increasing precedence (None entries skipped)

    Returns:
        Fully-populated TaskConfig
    """
    merged: Dict[str, Any] = {
        "max_tokens": defaults.max_tokens,
        "temperature": defaults.temperature,
        "timeout_ms": defaults.timeout_ms,
        "retry_attempts": defaults.retry_attempts,
        "model": defaults.model,
    }
    for layer in layers:
        if layer is not None:
            merged.update(layer.overrides())
    return TaskConfig(**merged)


class PersistedTask(BaseModel):
    """
    Operator-managed task metadata.

    Maps to the ai_tasks table.
    """
    __sql_table__: ClassVar[str] = "ai_tasks"
    __sql_primary_key__: ClassVar[str] = "slug"

    slug: str = Field(..., max_length=64)
    name: str = Field(..., max_length=128)
    description: Optional[str] = None
    category: TaskCategory = TaskCategory.OPERATIONS
    is_active: bool = True
    execution_mode: ExecutionMode = ExecutionMode.ASYNC
    system_prompt: Optional[str] = None
    config: TaskConfig = Field(default_factory=TaskConfig)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TaskMetrics(BaseModel):
    """Aggregated execution statistics for one task (ai_task_metrics view)."""
    slug: str
    name: str
    category: TaskCategory
    is_active: bool = True
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    avg_duration_ms: Optional[float] = None
    total_tokens_used: int = 0
    last_execution: Optional[datetime] = None

    @property
    def success_rate(self) -> Optional[float]:
        if not self.total_executions:
            return None
        return self.successful_executions / self.total_executions


class TaskFilter(BaseModel):
    """Optional filters for listing persisted tasks."""
    model_config = ConfigDict(frozen=True)

    category: Optional[TaskCategory] = None
    is_active: Optional[bool] = None
    execution_mode: Optional[ExecutionMode] = None

    def matches(self, task: PersistedTask) -> bool:
        if self.category is not None and task.category != self.category:
            return False
        if self.is_active is not None and task.is_active != self.is_active:
            return False
        if self.execution_mode is not None and task.execution_mode != self.execution_mode:
            return False
        return True

    def cache_key(self) -> str:
        return (
            f"{self.category.value if self.category else '*'}:"
            f"{self.is_active if self.is_active is not None else '*'}:"
            f"{self.execution_mode.value if self.execution_mode else '*'}"
        )
