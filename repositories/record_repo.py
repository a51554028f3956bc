# ============================================================================
# BUSINESS RECORD REPOSITORY
# ============================================================================
# STATUS: Core - Generic access to business tables
# PURPOSE: Let hand-written tasks read listings/agents and write care_tasks
# CREATED: 19 OCT 2026
# ============================================================================
"""
Business Record Repository

Hand-written tasks need a few rows from tables the engine does not own
(listings, agents) and write follow-ups into others (care_tasks). This
repository offers equality-filtered reads, counts and inserts with all
table and column names passed through sql.Identifier.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from .database import domain_table

logger = logging.getLogger(__name__)


def _where(filters: Dict[str, Any]) -> Tuple[sql.Composable, Dict[str, Any]]:
    if not filters:
        return sql.SQL(""), {}
    clauses = []
    params = {}
    for index, (column, value) in enumerate(filters.items()):
        name = f"f{index}"
        clauses.append(sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(name)))
        params[name] = value
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), params


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Json(value)
    return value


class RecordRepository:
    """Equality-filtered access to arbitrary business tables."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def fetch_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        where, params = _where(filters)
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {}{} LIMIT 1").format(domain_table(table), where),
                params,
            )
            return await result.fetchone()

    async def count(self, table: str, filters: Dict[str, Any]) -> int:
        where, params = _where(filters)
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("SELECT COUNT(*) FROM {}{}").format(domain_table(table), where),
                params,
            )
            row = await result.fetchone()
            return int(row[0]) if row else 0

    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a row and return it as stored (including generated ids).
        """
        columns = list(values)
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
                    domain_table(table),
                    sql.SQL(", ").join(sql.Identifier(c) for c in columns),
                    sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
                ),
                {c: _adapt(values[c]) for c in columns},
            )
            row = await result.fetchone()
            logger.debug(f"Inserted row into {table}")
            return row
