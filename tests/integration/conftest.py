"""Integration test fixtures — require a running Postgres.

Point TENANTLOG_DATABASE_URL at a disposable database; tests skip when it
cannot be reached.
"""

from __future__ import annotations

import os
from uuid import uuid4

import asyncpg
import pytest
import pytest_asyncio

from tenantlog.services.database import Database


@pytest_asyncio.fixture
async def db(settings):
    database = Database(settings)
    try:
        await database.connect()
    except (OSError, asyncpg.exceptions.PostgresError) as e:
        pytest.skip(f"Postgres not reachable at {settings.database_url}: {e}")
    yield database
    await database.close()


@pytest.fixture
def table_name():
    """Unique per test so reruns never see leftovers."""
    return f"tool_it_{uuid4().hex[:12]}"


@pytest_asyncio.fixture
async def drop_table(db, table_name):
    yield
    await db.execute(f'DROP TABLE IF EXISTS "{table_name}"')


def pytest_collection_modifyitems(items):
    if os.environ.get("TENANTLOG_SKIP_INTEGRATION"):
        for item in items:
            item.add_marker(pytest.mark.skip(reason="TENANTLOG_SKIP_INTEGRATION set"))
