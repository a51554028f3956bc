# ============================================================================
# IN-MEMORY STORAGE
# ============================================================================
# STATUS: Core - Dict-backed storage backend
# PURPOSE: Same contracts as the Postgres repositories, for tests and local runs
# CREATED: 19 OCT 2026
# ============================================================================
"""
In-memory storage backend.

Records are stored as pydantic model copies so callers can never mutate
stored state by accident. Conditional updates behave like their SQL
counterparts (status must be in the allowed set).
"""

import copy
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from core.contracts import CANCELLABLE_STATUSES, ExecutionStatus, ResourceKind, WorkflowStatus
from core.models import (
    ExecutionRecord,
    PersistedTask,
    TaskConfig,
    TaskFilter,
    TaskMetrics,
    WorkflowExecutionRecord,
    WorkflowExecutionStep,
)
from core.models.base import utc_now
from .base import Storage


class InMemoryExecutionStore:
    """Execution audit rows keyed by id."""

    def __init__(self) -> None:
        self._records: Dict[str, ExecutionRecord] = {}

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        record = self._records.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def finish(
        self,
        execution_id: str,
        *,
        status: ExecutionStatus,
        output: Optional[Dict[str, Any]],
        error_message: Optional[str],
        tokens_used: Optional[int],
        duration_ms: int,
        completed_at: datetime,
    ) -> bool:
        current = self._records.get(execution_id)
        if current is None or current.status not in CANCELLABLE_STATUSES:
            return False
        self._records[execution_id] = current.model_copy(
            update={
                "status": status,
                "output": copy.deepcopy(output),
                "error_message": error_message,
                "tokens_used": tokens_used,
                "duration_ms": duration_ms,
                "completed_at": completed_at,
            }
        )
        return True

    async def update_status_if(
        self,
        execution_id: str,
        status: ExecutionStatus,
        allowed: Iterable[ExecutionStatus],
    ) -> bool:
        current = self._records.get(execution_id)
        if current is None or current.status not in set(allowed):
            return False
        update: Dict[str, Any] = {"status": status}
        if status.is_terminal():
            update["completed_at"] = utc_now()
        self._records[execution_id] = current.model_copy(update=update)
        return True

    def all(self) -> List[ExecutionRecord]:
        return [r.model_copy(deep=True) for r in self._records.values()]


class InMemoryTaskStore:
    """
    Persisted task rows keyed by slug.

    Metrics are computed from the execution store, mirroring the
    ai_task_metrics view.
    """

    def __init__(self, executions: InMemoryExecutionStore) -> None:
        self._tasks: Dict[str, PersistedTask] = {}
        self._executions = executions

    async def get(self, slug: str) -> Optional[PersistedTask]:
        task = self._tasks.get(slug)
        return task.model_copy(deep=True) if task else None

    async def list_tasks(self, task_filter: Optional[TaskFilter] = None) -> List[PersistedTask]:
        task_filter = task_filter or TaskFilter()
        tasks = [t for t in self._tasks.values() if task_filter.matches(t)]
        tasks.sort(key=lambda t: (t.category.value, t.name))
        return [t.model_copy(deep=True) for t in tasks]

    async def upsert(self, task: PersistedTask) -> PersistedTask:
        self._tasks[task.slug] = task.model_copy(deep=True)
        return task

    async def set_active(self, slug: str, is_active: bool) -> bool:
        current = self._tasks.get(slug)
        if current is None:
            return False
        self._tasks[slug] = current.model_copy(update={"is_active": is_active, "updated_at": utc_now()})
        return True

    async def update_config(self, slug: str, patch: Dict[str, Any]) -> bool:
        current = self._tasks.get(slug)
        if current is None:
            return False
        merged = {**current.config.overrides(), **TaskConfig.model_validate(patch).overrides()}
        self._tasks[slug] = current.model_copy(
            update={"config": TaskConfig(**merged), "updated_at": utc_now()}
        )
        return True

    async def get_metrics(self, slug: Optional[str] = None) -> List[TaskMetrics]:
        tasks = [self._tasks[slug]] if slug in self._tasks else []
        if slug is None:
            tasks = sorted(self._tasks.values(), key=lambda t: t.slug)

        metrics = []
        for task in tasks:
            runs = [r for r in self._executions.all() if r.task_slug == task.slug]
            durations = [r.duration_ms for r in runs if r.duration_ms is not None]
            metrics.append(TaskMetrics(
                slug=task.slug,
                name=task.name,
                category=task.category,
                is_active=task.is_active,
                total_executions=len(runs),
                successful_executions=sum(1 for r in runs if r.status == ExecutionStatus.COMPLETED),
                failed_executions=sum(1 for r in runs if r.status == ExecutionStatus.FAILED),
                avg_duration_ms=sum(durations) / len(durations) if durations else None,
                total_tokens_used=sum(r.tokens_used or 0 for r in runs),
                last_execution=max((r.created_at for r in runs), default=None),
            ))
        return metrics


class InMemoryWorkflowExecutionStore:
    """Workflow audit rows keyed by id."""

    def __init__(self) -> None:
        self._records: Dict[str, WorkflowExecutionRecord] = {}

    async def create(self, record: WorkflowExecutionRecord) -> WorkflowExecutionRecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def get(self, workflow_execution_id: str) -> Optional[WorkflowExecutionRecord]:
        record = self._records.get(workflow_execution_id)
        return record.model_copy(deep=True) if record else None

    def _update(self, workflow_execution_id: str, **fields) -> bool:
        current = self._records.get(workflow_execution_id)
        if current is None:
            return False
        fields.setdefault("updated_at", utc_now())
        self._records[workflow_execution_id] = current.model_copy(update=copy.deepcopy(fields))
        return True

    async def set_status(self, workflow_execution_id: str, status: WorkflowStatus) -> bool:
        return self._update(workflow_execution_id, status=status)

    async def update_status_if(
        self,
        workflow_execution_id: str,
        status: WorkflowStatus,
        allowed: Iterable[WorkflowStatus],
    ) -> bool:
        current = self._records.get(workflow_execution_id)
        if current is None or current.status not in set(allowed):
            return False
        return self._update(workflow_execution_id, status=status)

    async def save_progress(
        self,
        workflow_execution_id: str,
        current_step: int,
        steps: List[WorkflowExecutionStep],
    ) -> bool:
        return self._update(workflow_execution_id, current_step=current_step, steps=list(steps))

    async def finish(
        self,
        workflow_execution_id: str,
        *,
        status: WorkflowStatus,
        current_step: int,
        steps: List[WorkflowExecutionStep],
        context: Dict[str, Any],
        error_message: Optional[str],
        completed_at: datetime,
    ) -> bool:
        return self._update(
            workflow_execution_id,
            status=status,
            current_step=current_step,
            steps=list(steps),
            context=context,
            error_message=error_message,
            completed_at=completed_at,
            updated_at=completed_at,
        )

    async def list_for_resource(
        self,
        kind: ResourceKind,
        resource_id: str,
    ) -> List[WorkflowExecutionRecord]:
        matches = [
            r for r in self._records.values()
            if r.correlation.for_kind(kind) == resource_id
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in matches]


class InMemoryRecordStore:
    """Business tables as lists of dict rows."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in filters.items())

    async def fetch_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for row in self.tables.get(table, []):
            if self._matches(row, filters):
                return copy.deepcopy(row)
        return None

    async def count(self, table: str, filters: Dict[str, Any]) -> int:
        return sum(1 for row in self.tables.get(table, []) if self._matches(row, filters))

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        row = {"id": str(uuid.uuid4()), "created_at": utc_now(), **copy.deepcopy(values)}
        self.tables.setdefault(table, []).append(row)
        return copy.deepcopy(row)


def create_memory_storage(
    tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
) -> Storage:
    """Build a Storage bundle backed entirely by memory."""
    executions = InMemoryExecutionStore()
    return Storage(
        tasks=InMemoryTaskStore(executions),
        executions=executions,
        workflows=InMemoryWorkflowExecutionStore(),
        records=InMemoryRecordStore(tables),
    )


__all__ = [
    "InMemoryExecutionStore",
    "InMemoryTaskStore",
    "InMemoryWorkflowExecutionStore",
    "InMemoryRecordStore",
    "create_memory_storage",
]
