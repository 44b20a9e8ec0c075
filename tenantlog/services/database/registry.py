"""One Database (pool) per connection string, created on first use."""

from __future__ import annotations

import asyncio
import logging

from tenantlog.services.database.pool import Database
from tenantlog.settings import Settings

log = logging.getLogger(__name__)


class DatabaseRegistry:
    """Lazily connected pools keyed by connection string.

    Pools live until ``close_all()``. Concurrent first use of the same
    connection string connects exactly once.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._databases: dict[str, Database] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, dsn: str | None = None) -> Database:
        """Return a connected Database for ``dsn`` (system database when None)."""
        dsn = dsn or self.settings.database_url
        db = self._databases.get(dsn)
        if db is not None:
            return db
        async with self._locks.setdefault(dsn, asyncio.Lock()):
            db = self._databases.get(dsn)
            if db is None:
                db = Database(self.settings, dsn)
                await db.connect()
                self._databases[dsn] = db
                log.debug("Opened pool %d (%d total)", id(db), len(self._databases))
            return db

    async def close_all(self) -> None:
        databases, self._databases = list(self._databases.values()), {}
        for db in databases:
            await db.close()

    def __len__(self) -> int:
        return len(self._databases)
