# ============================================================================
# WORKFLOW EXECUTION REPOSITORY
# ============================================================================
# STATUS: Core - Workflow run audit trail
# PURPOSE: Database access for ai_workflow_executions table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Execution Repository

One row per workflow run. The orchestrator writes it at creation, after
each group (progress), and once more when the run ends. Pause uses a
conditional status update.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import ResourceKind, WorkflowStatus
from core.models import WorkflowExecutionRecord, WorkflowExecutionStep
from .database import TABLE_WORKFLOW_EXECUTIONS

logger = logging.getLogger(__name__)


def _steps_json(steps: List[WorkflowExecutionStep]) -> Json:
    return Json([step.model_dump(mode="json") for step in steps])


class WorkflowExecutionRepository:
    """Repository for WorkflowExecutionRecord entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def create(self, record: WorkflowExecutionRecord) -> WorkflowExecutionRecord:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    id, definition_id, name, trigger_event, status,
                    listing_id, campaign_id, current_step, steps, context,
                    created_at, updated_at
                ) VALUES (
                    %(id)s, %(definition_id)s, %(name)s, %(trigger_event)s, %(status)s,
                    %(listing_id)s, %(campaign_id)s, %(current_step)s, %(steps)s,
                    %(context)s, %(created_at)s, %(updated_at)s
                )
                """).format(TABLE_WORKFLOW_EXECUTIONS),
                {
                    "id": record.id,
                    "definition_id": record.definition_id,
                    "name": record.name,
                    "trigger_event": record.trigger_event,
                    "status": record.status.value,
                    "listing_id": record.listing_id,
                    "campaign_id": record.campaign_id,
                    "current_step": record.current_step,
                    "steps": _steps_json(record.steps),
                    "context": Json(record.context),
                    "created_at": record.created_at,
                    "updated_at": record.updated_at,
                },
            )
            logger.info(f"Workflow execution created: {record.id} ({record.definition_id})")
            return record

    async def get(self, workflow_execution_id: str) -> Optional[WorkflowExecutionRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_WORKFLOW_EXECUTIONS),
                (workflow_execution_id,),
            )
            row = await result.fetchone()

            if row is None:
                return None

            return self._row_to_record(row)

    async def set_status(self, workflow_execution_id: str, status: WorkflowStatus) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s, updated_at = NOW()
                WHERE id = %s
                """).format(TABLE_WORKFLOW_EXECUTIONS),
                (status.value, workflow_execution_id),
            )
            return result.rowcount > 0

    async def update_status_if(
        self,
        workflow_execution_id: str,
        status: WorkflowStatus,
        allowed: Iterable[WorkflowStatus],
    ) -> bool:
        """
        Move to status only if the current status is in allowed.

        Returns:
            True if a row changed
        """
        allowed_values = [s.value for s in allowed]
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s, updated_at = NOW()
                WHERE id = %s AND status = ANY(%s)
                """).format(TABLE_WORKFLOW_EXECUTIONS),
                (status.value, workflow_execution_id, allowed_values),
            )
            return result.rowcount > 0

    async def save_progress(
        self,
        workflow_execution_id: str,
        current_step: int,
        steps: List[WorkflowExecutionStep],
    ) -> bool:
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET current_step = %s, steps = %s, updated_at = NOW()
                WHERE id = %s
                """).format(TABLE_WORKFLOW_EXECUTIONS),
                (current_step, _steps_json(steps), workflow_execution_id),
            )
            return result.rowcount > 0

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
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %(status)s,
                    current_step = %(current_step)s,
                    steps = %(steps)s,
                    context = %(context)s,
                    error_message = %(error_message)s,
                    completed_at = %(completed_at)s,
                    updated_at = %(completed_at)s
                WHERE id = %(id)s
                """).format(TABLE_WORKFLOW_EXECUTIONS),
                {
                    "id": workflow_execution_id,
                    "status": status.value,
                    "current_step": current_step,
                    "steps": _steps_json(steps),
                    "context": Json(context),
                    "error_message": error_message,
                    "completed_at": completed_at,
                },
            )
            return result.rowcount > 0

    async def list_for_resource(
        self,
        kind: ResourceKind,
        resource_id: str,
    ) -> List[WorkflowExecutionRecord]:
        """List runs correlated with a listing or campaign, newest first."""
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("""
                SELECT * FROM {}
                WHERE {} = %s
                ORDER BY created_at DESC
                """).format(TABLE_WORKFLOW_EXECUTIONS, sql.Identifier(kind.column)),
                (resource_id,),
            )
            rows = await result.fetchall()
            return [self._row_to_record(row) for row in rows]

    def _row_to_record(self, row: Dict[str, Any]) -> WorkflowExecutionRecord:
        """Convert database row to WorkflowExecutionRecord model."""
        return WorkflowExecutionRecord(
            id=str(row["id"]),
            definition_id=row["definition_id"],
            name=row["name"],
            trigger_event=row["trigger_event"],
            status=WorkflowStatus(row["status"]),
            listing_id=row.get("listing_id"),
            campaign_id=row.get("campaign_id"),
            current_step=row.get("current_step") or 0,
            steps=[WorkflowExecutionStep.model_validate(s) for s in row.get("steps") or []],
            context=row.get("context") or {},
            error_message=row.get("error_message"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            completed_at=row.get("completed_at"),
        )
