# ============================================================================
# STORAGE INTERFACES
# ============================================================================
# STATUS: Core - Repository protocols
# PURPOSE: Storage contracts shared by the Postgres and in-memory backends
# CREATED: 19 OCT 2026
# ============================================================================
"""
Storage Interfaces

The executor, registry and orchestrator only talk to these protocols.
Two backends implement them:
- repositories.*_repo: PostgreSQL via psycopg3
- repositories.memory: dict-backed, for tests and local runs

Conventions:
- single-row reads return None when the row does not exist
- conditional status updates take the allowed statuses explicitly and
  return whether a row changed
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from core.contracts import ExecutionStatus, ResourceKind, WorkflowStatus
from core.models import (
    ExecutionRecord,
    PersistedTask,
    TaskFilter,
    TaskMetrics,
    WorkflowExecutionRecord,
    WorkflowExecutionStep,
)


class TaskStore(Protocol):
    async def get(self, slug: str) -> Optional[PersistedTask]: ...

    async def list_tasks(self, task_filter: Optional[TaskFilter] = None) -> List[PersistedTask]: ...

    async def upsert(self, task: PersistedTask) -> PersistedTask: ...

    async def set_active(self, slug: str, is_active: bool) -> bool: ...

    async def update_config(self, slug: str, patch: Dict[str, Any]) -> bool: ...

    async def get_metrics(self, slug: Optional[str] = None) -> List[TaskMetrics]: ...


class ExecutionStore(Protocol):
    async def create(self, record: ExecutionRecord) -> ExecutionRecord: ...

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]: ...

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
    ) -> bool: ...

    async def update_status_if(
        self,
        execution_id: str,
        status: ExecutionStatus,
        allowed: Iterable[ExecutionStatus],
    ) -> bool: ...


class WorkflowExecutionStore(Protocol):
    async def create(self, record: WorkflowExecutionRecord) -> WorkflowExecutionRecord: ...

    async def get(self, workflow_execution_id: str) -> Optional[WorkflowExecutionRecord]: ...

    async def set_status(self, workflow_execution_id: str, status: WorkflowStatus) -> bool: ...

    async def update_status_if(
        self,
        workflow_execution_id: str,
        status: WorkflowStatus,
        allowed: Iterable[WorkflowStatus],
    ) -> bool: ...

    async def save_progress(
        self,
        workflow_execution_id: str,
        current_step: int,
        steps: List[WorkflowExecutionStep],
    ) -> bool: ...

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
    ) -> bool: ...

    async def list_for_resource(
        self,
        kind: ResourceKind,
        resource_id: str,
    ) -> List[WorkflowExecutionRecord]: ...


class RecordStore(Protocol):
    """Generic access to business tables read by hand-written tasks."""

    async def fetch_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    async def count(self, table: str, filters: Dict[str, Any]) -> int: ...

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]: ...


@dataclass
class Storage:
    """Bundle of stores handed to the engine and to task handlers."""
    tasks: TaskStore
    executions: ExecutionStore
    workflows: WorkflowExecutionStore
    records: RecordStore


__all__ = [
    "TaskStore",
    "ExecutionStore",
    "WorkflowExecutionStore",
    "RecordStore",
    "Storage",
]
