# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Process-wide psycopg3 pool plus schema-qualified identifiers
# CREATED: 19 OCT 2026
# ============================================================================
"""
Database Connection Pool

One AsyncConnectionPool per process, opened by init_pool() and closed by
close_pool(). The DSN is DATABASE_URL when set, otherwise it is built
from POSTGRES_HOST / PORT / DB / USER / PASSWORD / SSLMODE.

Usage:
    async with DatabasePool() as pool:
        storage = create_postgres_storage(pool)
"""

import os
import logging
from typing import Optional

from psycopg import ProgrammingError, sql as psycopg_sql
from psycopg.conninfo import conninfo_to_dict, make_conninfo
from psycopg_pool import AsyncConnectionPool

from core.config.defaults import get_defaults

logger = logging.getLogger(__name__)

_pool: Optional[AsyncConnectionPool] = None

_POSTGRES_ENV = {
    "host": ("POSTGRES_HOST", "localhost"),
    "port": ("POSTGRES_PORT", "5432"),
    "dbname": ("POSTGRES_DB", "postgres"),
    "user": ("POSTGRES_USER", "postgres"),
    "password": ("POSTGRES_PASSWORD", ""),
    "sslmode": ("POSTGRES_SSLMODE", "prefer"),
}


def get_connection_string() -> str:
    """DATABASE_URL, or a conninfo string assembled from POSTGRES_* vars."""
    if url := os.environ.get("DATABASE_URL"):
        return url
    params = {key: os.environ.get(var, default) for key, (var, default) in _POSTGRES_ENV.items()}
    return make_conninfo(**{k: v for k, v in params.items() if v})


def describe_conninfo(conninfo: str) -> str:
    """host:port/dbname for log lines; never includes credentials."""
    try:
        params = conninfo_to_dict(conninfo)
    except ProgrammingError:
        return "<unparseable conninfo>"
    return f"{params.get('host', 'localhost')}:{params.get('port', 5432)}/{params.get('dbname', '')}"


async def init_pool(
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Open the process-wide pool; later calls return the open pool.

    Sizes default to DatabaseDefaults (DB_POOL_MIN_SIZE / DB_POOL_MAX_SIZE).
    """
    global _pool
    if _pool is not None:
        return _pool

    settings = get_defaults().database
    conninfo = connection_string or get_connection_string()
    pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=settings.pool_min_size if min_size is None else min_size,
        max_size=settings.pool_max_size if max_size is None else max_size,
        open=False,
    )
    await pool.open()
    _pool = pool
    logger.info(f"Connection pool open on {describe_conninfo(conninfo)} (min={pool.min_size}, max={pool.max_size})")
    return _pool


async def get_pool() -> AsyncConnectionPool:
    return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("Connection pool closed")


class DatabasePool:
    """Async context manager around init_pool() / close_pool()."""

    def __init__(self, **pool_args):
        self.pool_args = pool_args

    async def __aenter__(self) -> AsyncConnectionPool:
        return await init_pool(**self.pool_args)

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await close_pool()


# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

SCHEMA = get_defaults().database.schema

# Table identifiers; use with psycopg sql.SQL().format() for injection-safe queries
TABLE_TASKS = psycopg_sql.Identifier(SCHEMA, "ai_tasks")
TABLE_EXECUTIONS = psycopg_sql.Identifier(SCHEMA, "ai_task_executions")
TABLE_WORKFLOW_EXECUTIONS = psycopg_sql.Identifier(SCHEMA, "ai_workflow_executions")
VIEW_TASK_METRICS = psycopg_sql.Identifier(SCHEMA, "ai_task_metrics")


def domain_table(name: str) -> psycopg_sql.Identifier:
    """Identifier for a business table (listings, agents, care_tasks)."""
    return psycopg_sql.Identifier(SCHEMA, name)
