"""Integration tests — log tables and execution rows against real Postgres."""

from __future__ import annotations

import asyncio

import pytest

from tenantlog.ontology.tools import NativeTool, ToolColumn
from tenantlog.services.database import DatabaseRegistry
from tenantlog.services.execution_log import ExecutionLogger
from tenantlog.services.log_tables import LogTableProvisioner

COLUMNS = [ToolColumn("email", "string"), ToolColumn("age", "integer"), ToolColumn("tags", "array")]


class _OneDatabase(DatabaseRegistry):
    """Registry that always hands back the fixture's connected Database."""

    def __init__(self, settings, db):
        super().__init__(settings)
        self._db = db

    async def get(self, dsn=None):
        return self._db

    async def close_all(self):
        pass


@pytest.mark.asyncio
async def test_ensure_table_idempotent(db, table_name, drop_table):
    tables = LogTableProvisioner()
    first = await tables.ensure_table(db, table_name, COLUMNS)
    second = await LogTableProvisioner().ensure_table(db, table_name, COLUMNS)

    assert first == second
    assert first["tags"] == "jsonb"
    count = await db.fetchval(
        "SELECT count(*) FROM information_schema.tables WHERE table_name = $1", table_name
    )
    assert count == 1


@pytest.mark.asyncio
async def test_concurrent_ensure_table(db, table_name, drop_table):
    results = await asyncio.gather(*(
        LogTableProvisioner().ensure_table(db, table_name, COLUMNS) for _ in range(6)
    ))

    for columns in results:
        assert {"id", "created_at", "updated_at", "execution_result", "email", "age", "tags"} <= set(columns)


@pytest.mark.asyncio
async def test_log_round_trip(db, settings, table_name, drop_table):
    tool = NativeTool(
        id=table_name.removeprefix("tool_"),
        parameter_schema={"email": {"type": "string"}, "age": {"type": "integer"}, "tags": {"type": "array"}},
    )
    logger = ExecutionLogger(settings, databases=_OneDatabase(settings, db))

    await logger.log(tool, {"email": "a@b.c", "age": "7", "tags": ["x"], "extra": 1}, {"ok": True})
    out = await logger.recent_executions(tool)

    (row,) = out["rows"]
    assert row["email"] == "a@b.c"
    assert row["age"] == 7
    assert row["tags"] == ["x"]
    assert row["execution_result"] == {"ok": True}
    assert row["created_at"] is not None
