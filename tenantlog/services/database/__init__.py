"""Database package — ``from tenantlog.services.database import Database``."""

from __future__ import annotations

from tenantlog.services.database.pool import Database
from tenantlog.services.database.registry import DatabaseRegistry

__all__ = [
    "Database",
    "DatabaseRegistry",
]
