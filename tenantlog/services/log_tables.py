"""Log tables — one table per tool, created on first execution.

Table layout:

  id                BIGSERIAL PRIMARY KEY
  created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
  updated_at        TIMESTAMPTZ NOT NULL DEFAULT now()
  execution_result  JSONB
  <param>           one column per typed, validly named tool parameter

Columns are only ever added, never dropped or retyped. Existence is checked
against ``information_schema`` and the create is ``IF NOT EXISTS``; a
concurrent creator can still trip Postgres' catalog unique index, which is
treated as success.
"""

from __future__ import annotations

import logging

import asyncpg

from tenantlog.ontology.tools import ToolColumn
from tenantlog.services.database import Database
from tenantlog.utils.identifiers import (
    is_storable_identifier,
    quote_identifier,
    require_identifier,
)

log = logging.getLogger(__name__)

RESULT_COLUMN = "execution_result"

SYSTEM_COLUMNS: dict[str, str] = {
    "id": "BIGSERIAL PRIMARY KEY",
    "created_at": "TIMESTAMPTZ NOT NULL DEFAULT now()",
    "updated_at": "TIMESTAMPTZ NOT NULL DEFAULT now()",
    RESULT_COLUMN: "JSONB",
}

# JSON-Schema type → Postgres type; anything else is TEXT
SQL_TYPES: dict[str, str] = {
    "string": "TEXT",
    "integer": "INTEGER",
    "number": "REAL",
    "boolean": "BOOLEAN",
    "object": "JSONB",
    "array": "JSONB",
}

# Raised by a CREATE/ALTER that lost a race against another session
_RACE_ERRORS = (
    asyncpg.exceptions.DuplicateTableError,
    asyncpg.exceptions.DuplicateObjectError,
    asyncpg.exceptions.DuplicateColumnError,
    asyncpg.exceptions.UniqueViolationError,
)

_COLUMNS_QUERY = """
SELECT column_name, data_type
FROM information_schema.columns
WHERE table_schema = current_schema() AND table_name = $1
ORDER BY ordinal_position
"""


def sql_type(json_type: str) -> str:
    return SQL_TYPES.get((json_type or "").lower(), "TEXT")


def parameter_columns(table_name: str, columns: list[ToolColumn]) -> dict[str, str]:
    """Ordered name → SQL type for the parameter columns that may be created.

    Invalid identifiers, names clashing with a system column and repeated
    names are dropped with a warning.
    """
    result: dict[str, str] = {}
    for column in columns:
        if not is_storable_identifier(column.name):
            log.warning("%s: invalid column name %r, skipped", table_name, column.name)
            continue
        if column.name in SYSTEM_COLUMNS:
            log.warning("%s: parameter %r shadows a system column, skipped", table_name, column.name)
            continue
        if column.name in result:
            log.warning("%s: duplicate parameter %r, skipped", table_name, column.name)
            continue
        result[column.name] = sql_type(column.json_type)
    return result


def create_table_sql(table_name: str, columns: list[ToolColumn]) -> str:
    definitions = [f"{name} {ddl}" for name, ddl in SYSTEM_COLUMNS.items()]
    definitions += [
        f"{quote_identifier(name)} {pg_type}"
        for name, pg_type in parameter_columns(table_name, columns).items()
    ]
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} ({', '.join(definitions)})"


class LogTableProvisioner:
    """Guarantees a log table exists with at least the declared columns.

    Keeps best-effort, process-local knowledge of tables already seen
    (keyed by connection string + table name); the database catalog stays
    the source of truth.
    """

    def __init__(self, *, add_missing_columns: bool = False):
        self.add_missing_columns = add_missing_columns
        self._known: dict[tuple[str, str], dict[str, str]] = {}

    async def table_columns(
        self, db: Database, table_name: str, *, timeout: float | None = None
    ) -> dict[str, str]:
        """Catalog lookup: column name → data_type. Empty when the table is absent."""
        rows = await db.fetch(_COLUMNS_QUERY, table_name, timeout=timeout)
        return {r["column_name"]: r["data_type"] for r in rows}

    async def ensure_table(
        self,
        db: Database,
        table_name: str,
        columns: list[ToolColumn],
        *,
        timeout: float | None = None,
    ) -> dict[str, str]:
        """Create ``table_name`` if absent. Returns the table's column → data_type map.

        Raises InvalidIdentifierError before touching the database when the
        table name is not a valid identifier.
        """
        require_identifier(table_name)
        key = (db.dsn, table_name)

        known = self._known.get(key)
        if known is not None and not self._missing(table_name, known, columns):
            return known

        existing = await self.table_columns(db, table_name, timeout=timeout)
        if not existing:
            await self._execute_ddl(db, create_table_sql(table_name, columns), timeout=timeout)
            log.info("Created log table %s", table_name)
            existing = await self.table_columns(db, table_name, timeout=timeout)
        elif self.add_missing_columns:
            missing = self._missing(table_name, existing, columns)
            for name, pg_type in missing.items():
                await self._execute_ddl(
                    db,
                    f"ALTER TABLE {quote_identifier(table_name)}"
                    f" ADD COLUMN IF NOT EXISTS {quote_identifier(name)} {pg_type}",
                    timeout=timeout,
                )
                log.info("Added column %s to log table %s", name, table_name)
            if missing:
                existing = await self.table_columns(db, table_name, timeout=timeout)

        self._known[key] = existing
        return existing

    async def describe(
        self, db: Database, table_name: str, *, limit: int = 10, timeout: float | None = None
    ) -> dict:
        """Columns and the most recent ``limit`` rows of a log table."""
        require_identifier(table_name)
        columns = await self.table_columns(db, table_name, timeout=timeout)
        if not columns:
            return {"columns": [], "rows": []}
        rows = await db.fetch(
            f"SELECT * FROM {quote_identifier(table_name)} ORDER BY id DESC LIMIT $1",
            limit,
            timeout=timeout,
        )
        return {
            "columns": [{"name": name, "type": data_type} for name, data_type in columns.items()],
            "rows": [dict(r) for r in rows],
        }

    def _missing(
        self, table_name: str, existing: dict[str, str], columns: list[ToolColumn]
    ) -> dict[str, str]:
        if not self.add_missing_columns:
            return {}
        wanted = parameter_columns(table_name, columns)
        return {name: pg_type for name, pg_type in wanted.items() if name not in existing}

    @staticmethod
    async def _execute_ddl(db: Database, sql: str, *, timeout: float | None) -> None:
        try:
            await db.execute(sql, timeout=timeout)
        except _RACE_ERRORS as e:
            log.debug("Concurrent DDL already applied (%s): %s", type(e).__name__, e)
