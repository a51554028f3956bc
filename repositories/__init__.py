# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# STATUS: Core - Database access layer
# PURPOSE: Storage for task metadata and the execution audit trail
# CREATED: 19 OCT 2026
# ============================================================================
"""
Repositories Module

Provides storage for engine entities. Uses psycopg3 async with
connection pooling; an in-memory backend implements the same protocols.

Usage:
    from repositories import DatabasePool, create_postgres_storage

    async with DatabasePool() as pool:
        storage = create_postgres_storage(pool)
        record = await storage.executions.get(execution_id)
"""

from psycopg_pool import AsyncConnectionPool

from .base import (
    Storage,
    TaskStore,
    ExecutionStore,
    WorkflowExecutionStore,
    RecordStore,
)
from .database import get_pool, init_pool, close_pool, DatabasePool
from .task_repo import TaskRepository
from .execution_repo import ExecutionRepository
from .workflow_repo import WorkflowExecutionRepository
from .record_repo import RecordRepository
from .memory import create_memory_storage
from .schema import initialize_schema


def create_postgres_storage(pool: AsyncConnectionPool) -> Storage:
    """Build a Storage bundle backed by PostgreSQL."""
    return Storage(
        tasks=TaskRepository(pool),
        executions=ExecutionRepository(pool),
        workflows=WorkflowExecutionRepository(pool),
        records=RecordRepository(pool),
    )


__all__ = [
    "Storage",
    "TaskStore",
    "ExecutionStore",
    "WorkflowExecutionStore",
    "RecordStore",
    "get_pool",
    "init_pool",
    "close_pool",
    "DatabasePool",
    "TaskRepository",
    "ExecutionRepository",
    "WorkflowExecutionRepository",
    "RecordRepository",
    "create_memory_storage",
    "create_postgres_storage",
    "initialize_schema",
]
