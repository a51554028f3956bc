# ============================================================================
# EXECUTION REPOSITORY
# ============================================================================
# STATUS: Core - Task execution audit trail
# PURPOSE: Database access for ai_task_executions table
# CREATED: 19 OCT 2026
# ============================================================================
"""
Execution Repository

One row per task invocation. The executor creates the row in RUNNING
state and finishes it exactly once. Cancellation uses a conditional
update so it never overwrites a terminal status.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import CANCELLABLE_STATUSES, ExecutionStatus, TriggerSource
from core.models import ExecutionRecord
from .database import TABLE_EXECUTIONS

logger = logging.getLogger(__name__)


class ExecutionRepository:
    """Repository for ExecutionRecord entities."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def create(self, record: ExecutionRecord) -> ExecutionRecord:
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                INSERT INTO {} (
                    id, task_slug, trigger_source, triggered_by,
                    listing_id, campaign_id, status, input, metadata, created_at
                ) VALUES (
                    %(id)s, %(task_slug)s, %(trigger_source)s, %(triggered_by)s,
                    %(listing_id)s, %(campaign_id)s, %(status)s, %(input)s,
                    %(metadata)s, %(created_at)s
                )
                """).format(TABLE_EXECUTIONS),
                {
                    "id": record.id,
                    "task_slug": record.task_slug,
                    "trigger_source": record.trigger_source.value,
                    "triggered_by": record.triggered_by,
                    "listing_id": record.listing_id,
                    "campaign_id": record.campaign_id,
                    "status": record.status.value,
                    "input": Json(record.input),
                    "metadata": Json(record.metadata),
                    "created_at": record.created_at,
                },
            )
            logger.debug(f"Execution created: {record.id} task={record.task_slug}")
            return record

    async def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE id = %s").format(TABLE_EXECUTIONS),
                (execution_id,),
            )
            row = await result.fetchone()

            if row is None:
                return None

            return self._row_to_record(row)

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
        """
        Write the terminal state of an execution.

        Only rows still pending or running are updated, so a cancelled
        execution stays cancelled.

        Returns:
            True if the row was updated
        """
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %(status)s,
                    output = %(output)s,
                    error_message = %(error_message)s,
                    tokens_used = %(tokens_used)s,
                    duration_ms = %(duration_ms)s,
                    completed_at = %(completed_at)s
                WHERE id = %(id)s AND status = ANY(%(allowed)s)
                """).format(TABLE_EXECUTIONS),
                {
                    "id": execution_id,
                    "allowed": [s.value for s in CANCELLABLE_STATUSES],
                    "status": status.value,
                    "output": Json(output) if output is not None else None,
                    "error_message": error_message,
                    "tokens_used": tokens_used,
                    "duration_ms": duration_ms,
                    "completed_at": completed_at,
                },
            )
            return result.rowcount > 0

    async def update_status_if(
        self,
        execution_id: str,
        status: ExecutionStatus,
        allowed: Iterable[ExecutionStatus],
    ) -> bool:
        """
        Move to status only if the current status is in allowed.

        Terminal statuses also stamp completed_at.

        Returns:
            True if a row changed, False if the status no longer matched
        """
        allowed_values = [s.value for s in allowed]
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                UPDATE {}
                SET status = %s,
                    completed_at = CASE WHEN %s THEN NOW() ELSE completed_at END
                WHERE id = %s AND status = ANY(%s)
                """).format(TABLE_EXECUTIONS),
                (status.value, status.is_terminal(), execution_id, allowed_values),
            )
            return result.rowcount > 0

    def _row_to_record(self, row: Dict[str, Any]) -> ExecutionRecord:
        """Convert database row to ExecutionRecord model."""
        return ExecutionRecord(
            id=str(row["id"]),
            task_slug=row["task_slug"],
            trigger_source=TriggerSource(row["trigger_source"]),
            triggered_by=row.get("triggered_by"),
            listing_id=row.get("listing_id"),
            campaign_id=row.get("campaign_id"),
            status=ExecutionStatus(row["status"]),
            input=row.get("input") or {},
            output=row.get("output"),
            error_message=row.get("error_message"),
            tokens_used=row.get("tokens_used"),
            duration_ms=row.get("duration_ms"),
            metadata=row.get("metadata") or {},
            created_at=row["created_at"],
            completed_at=row.get("completed_at"),
        )
