# ============================================================================
# TASK REPOSITORY
# ============================================================================
# STATUS: Core - Persisted task metadata and metrics
# PURPOSE: Database access for ai_tasks and the ai_task_metrics view
# CREATED: 19 OCT 2026
# ============================================================================
"""
Task Repository

Reads operator-managed task rows and aggregated metrics. Writes are
limited to activation, config patches and upserts used for seeding.
"""

import logging
from typing import Any, Dict, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import ExecutionMode, TaskCategory
from core.models import PersistedTask, TaskConfig, TaskFilter, TaskMetrics
from .database import TABLE_TASKS, VIEW_TASK_METRICS

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for PersistedTask entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self, slug: str) -> Optional[PersistedTask]:
        """
        Get a task by slug.

        Returns:
            PersistedTask or None
        """
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE slug = %s").format(TABLE_TASKS),
                (slug,),
            )
            row = await result.fetchone()

            if row is None:
                return None

            return self._row_to_task(row)

    async def list_tasks(self, task_filter: Optional[TaskFilter] = None) -> List[PersistedTask]:
        """
        List tasks, optionally filtered by category, activation, mode.

        Returns:
            List ordered by category then name
        """
        task_filter = task_filter or TaskFilter()
        clauses = []
        params: List[Any] = []
        if task_filter.category is not None:
            clauses.append(sql.SQL("category = %s"))
            params.append(task_filter.category.value)
        if task_filter.is_active is not None:
            clauses.append(sql.SQL("is_active = %s"))
            params.append(task_filter.is_active)
        if task_filter.execution_mode is not None:
            clauses.append(sql.SQL("execution_mode = %s"))
            params.append(task_filter.execution_mode.value)

        where = sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses) if clauses else sql.SQL("")

        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {}{} ORDER BY category, name").format(TABLE_TASKS, where),
                params,
            )
            rows = await result.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def upsert(self, task: PersistedTask) -> PersistedTask:
        """Insert or replace a task row by slug."""
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    slug, name, description, category, is_active,
                    execution_mode, system_prompt, config, created_at, updated_at
                ) VALUES (
                    %(slug)s, %(name)s, %(description)s, %(category)s, %(is_active)s,
                    %(execution_mode)s, %(system_prompt)s, %(config)s,
                    %(created_at)s, %(updated_at)s
                )
                ON CONFLICT (slug) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    category = EXCLUDED.category,
                    is_active = EXCLUDED.is_active,
                    execution_mode = EXCLUDED.execution_mode,
                    system_prompt = EXCLUDED.system_prompt,
                    config = EXCLUDED.config,
                    updated_at = EXCLUDED.updated_at
                """).format(TABLE_TASKS),
                {
                    "slug": task.slug,
                    "name": task.name,
                    "description": task.description,
                    "category": task.category.value,
                    "is_active": task.is_active,
                    "execution_mode": task.execution_mode.value,
                    "system_prompt": task.system_prompt,
                    "config": Json(task.config.model_dump(by_alias=True, exclude_none=True)),
                    "created_at": task.created_at,
                    "updated_at": task.updated_at,
                },
            )
            logger.info(f"Task upserted: {task.slug}")
            return task

    async def set_active(self, slug: str, is_active: bool) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET is_active = %s, updated_at = NOW()
                WHERE slug = %s
                """).format(TABLE_TASKS),
                (is_active, slug),
            )
            return result.rowcount > 0

    async def update_config(self, slug: str, patch: Dict[str, Any]) -> bool:
        """
        Shallow-merge a patch into the task's config JSON.

        Keys are normalized to the stored camelCase form.
        """
        normalized = TaskConfig.model_validate(patch).model_dump(by_alias=True, exclude_none=True)
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET config = COALESCE(config, '{{}}'::jsonb) || %s, updated_at = NOW()
                WHERE slug = %s
                """).format(TABLE_TASKS),
                (Json(normalized), slug),
            )
            return result.rowcount > 0

    async def get_metrics(self, slug: Optional[str] = None) -> List[TaskMetrics]:
        """Get aggregated metrics for one task or all tasks."""
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            if slug is None:
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} ORDER BY slug").format(VIEW_TASK_METRICS),
                )
            else:
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} WHERE slug = %s").format(VIEW_TASK_METRICS),
                    (slug,),
                )
            rows = await result.fetchall()
            return [self._row_to_metrics(row) for row in rows]

    def _row_to_task(self, row: Dict[str, Any]) -> PersistedTask:
        """Convert database row to PersistedTask model."""
        return PersistedTask(
            slug=row["slug"],
            name=row["name"],
            description=row.get("description"),
            category=TaskCategory(row["category"]),
            is_active=row.get("is_active", True),
            execution_mode=ExecutionMode(row.get("execution_mode") or ExecutionMode.ASYNC.value),
            system_prompt=row.get("system_prompt"),
            config=TaskConfig.model_validate(row.get("config") or {}),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_metrics(self, row: Dict[str, Any]) -> TaskMetrics:
        avg = row.get("avg_duration_ms")
        return TaskMetrics(
            slug=row["slug"],
            name=row["name"],
            category=TaskCategory(row["category"]),
            is_active=row.get("is_active", True),
            total_executions=row.get("total_executions") or 0,
            successful_executions=row.get("successful_executions") or 0,
            failed_executions=row.get("failed_executions") or 0,
            avg_duration_ms=float(avg) if avg is not None else None,
            total_tokens_used=row.get("total_tokens_used") or 0,
            last_execution=row.get("last_execution"),
        )
