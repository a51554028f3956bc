# ============================================================================
# SCHEMA BOOTSTRAP
# ============================================================================
# STATUS: Core - Engine table DDL
# PURPOSE: Create engine tables, indexes and the metrics view if missing
# CREATED: 19 OCT 2026
# ============================================================================
"""
Schema Bootstrap

Creates the three engine tables and the ai_task_metrics view. All
statements are idempotent (IF NOT EXISTS / OR REPLACE), so this is safe
to run at every startup. Business tables (listings, agents, care_tasks)
belong to the host application and are not created here.

Usage:
    async with DatabasePool() as pool:
        await initialize_schema(pool)
"""

import logging
from typing import List

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from .database import (
    SCHEMA,
    TABLE_EXECUTIONS,
    TABLE_TASKS,
    TABLE_WORKFLOW_EXECUTIONS,
    VIEW_TASK_METRICS,
)

logger = logging.getLogger(__name__)


def build_ddl() -> List[sql.Composable]:
    """Return the ordered DDL statements."""
    return [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(SCHEMA)),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            slug VARCHAR(64) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            category VARCHAR(32) NOT NULL
                CHECK (category IN ('operations', 'content', 'development', 'lifestyle')),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            execution_mode VARCHAR(16) NOT NULL DEFAULT 'async'
                CHECK (execution_mode IN ('sync', 'async', 'scheduled')),
            system_prompt TEXT,
            config JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
        """).format(TABLE_TASKS),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id UUID PRIMARY KEY,
            task_slug VARCHAR(64) NOT NULL,
            trigger_source VARCHAR(16) NOT NULL
                CHECK (trigger_source IN ('webhook', 'cron', 'manual', 'api', 'workflow')),
            triggered_by VARCHAR(128),
            listing_id VARCHAR(64),
            campaign_id VARCHAR(64),
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'running', 'completed', 'failed', 'cancelled')),
            input JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            output JSONB,
            error_message TEXT,
            tokens_used INTEGER,
            duration_ms INTEGER,
            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ
        )
        """).format(TABLE_EXECUTIONS),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_ai_task_executions_slug ON {} (task_slug)").format(
            TABLE_EXECUTIONS
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_ai_task_executions_status ON {} (status)").format(
            TABLE_EXECUTIONS
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_ai_task_executions_listing ON {} (listing_id)").format(
            TABLE_EXECUTIONS
        ),
        sql.SQL("""
        CREATE TABLE IF NOT EXISTS {} (
            id UUID PRIMARY KEY,
            definition_id VARCHAR(64) NOT NULL,
            name VARCHAR(128) NOT NULL,
            trigger_event VARCHAR(64) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'running', 'completed', 'failed', 'paused')),
            listing_id VARCHAR(64),
            campaign_id VARCHAR(64),
            current_step INTEGER NOT NULL DEFAULT 0,
            steps JSONB NOT NULL DEFAULT '[]'::jsonb,
            context JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            error_message TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            completed_at TIMESTAMPTZ
        )
        """).format(TABLE_WORKFLOW_EXECUTIONS),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_ai_workflow_executions_listing ON {} (listing_id)").format(
            TABLE_WORKFLOW_EXECUTIONS
        ),
        sql.SQL("CREATE INDEX IF NOT EXISTS idx_ai_workflow_executions_campaign ON {} (campaign_id)").format(
            TABLE_WORKFLOW_EXECUTIONS
        ),
        sql.SQL("""
        CREATE OR REPLACE VIEW {} AS
        SELECT
            t.slug,
            t.name,
            t.category,
            t.is_active,
            COUNT(e.id) AS total_executions,
            COUNT(e.id) FILTER (WHERE e.status = 'completed') AS successful_executions,
            COUNT(e.id) FILTER (WHERE e.status = 'failed') AS failed_executions,
            AVG(e.duration_ms) AS avg_duration_ms,
            COALESCE(SUM(e.tokens_used), 0) AS total_tokens_used,
            MAX(e.created_at) AS last_execution
        FROM {} t
        LEFT JOIN {} e ON e.task_slug = t.slug
        GROUP BY t.slug, t.name, t.category, t.is_active
        """).format(VIEW_TASK_METRICS, TABLE_TASKS, TABLE_EXECUTIONS),
    ]


async def initialize_schema(pool: AsyncConnectionPool, dry_run: bool = False) -> int:
    """
    Apply the engine DDL.

    Args:
        pool: Open connection pool
        dry_run: Log statements without executing them

    Returns:
        Number of statements applied (or that would be applied)
    """
    statements = build_ddl()
    async with pool.connection() as conn:
        for statement in statements:
            if dry_run:
                logger.info(statement.as_string(conn))
                continue
            await conn.execute(statement)
    logger.info(f"Schema {'checked' if dry_run else 'initialized'}: {len(statements)} statements")
    return len(statements)
