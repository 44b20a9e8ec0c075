"""AsyncPG connection pool + low-level query methods."""

from __future__ import annotations

import json
import math

import asyncpg

from tenantlog.settings import Settings


def _finite(value):
    # JSONB has no NaN/Infinity
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(v) for v in value]
    return value


def _json_dumps(value) -> str:
    # tool results may carry datetimes, UUIDs, decimals
    return json.dumps(_finite(value), default=str, allow_nan=False)


async def _init_connection(conn: asyncpg.Connection):
    """Set up JSON/JSONB codec so asyncpg accepts and returns Python values."""
    await conn.set_type_codec(
        "jsonb", encoder=_json_dumps, decoder=json.loads, schema="pg_catalog"
    )
    await conn.set_type_codec(
        "json", encoder=_json_dumps, decoder=json.loads, schema="pg_catalog"
    )


class Database:
    """One asyncpg pool bound to one connection string.

    ``dsn`` defaults to ``settings.database_url`` (the system database);
    tenant databases pass the connection string fetched from the control plane.
    """

    def __init__(self, settings: Settings, dsn: str | None = None):
        self.settings = settings
        self.dsn = dsn or settings.database_url
        self.pool: asyncpg.Pool | None = None

    async def connect(self):
        self.pool = await asyncpg.create_pool(
            self.dsn,
            min_size=self.settings.db_pool_min,
            max_size=self.settings.db_pool_max,
            command_timeout=self.settings.db_command_timeout,
            init=_init_connection,
        )

    async def close(self):
        if self.pool:
            await self.pool.close()
            self.pool = None

    async def fetch(self, query: str, *args, timeout: float | None = None):
        assert self.pool is not None, "Database not connected"
        return await self.pool.fetch(query, *args, timeout=timeout)

    async def fetchval(self, query: str, *args, timeout: float | None = None):
        assert self.pool is not None, "Database not connected"
        return await self.pool.fetchval(query, *args, timeout=timeout)

    async def execute(self, query: str, *args, timeout: float | None = None):
        assert self.pool is not None, "Database not connected"
        return await self.pool.execute(query, *args, timeout=timeout)
