"""Shared service bootstrap — Settings, database registry, provisioner, logger.

Used by whatever hosts the execution logger (API process, worker, scripts).
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from tenantlog.services.database import DatabaseRegistry
from tenantlog.services.execution_log import ExecutionLogger
from tenantlog.services.log_tables import LogTableProvisioner
from tenantlog.services.provisioning import ProvisioningCache, TenantProvisioner
from tenantlog.settings import Settings, get_settings


def create_execution_logger(settings: Settings) -> ExecutionLogger:
    """Wire an ExecutionLogger with fresh, explicitly owned caches."""
    return ExecutionLogger(
        settings,
        databases=DatabaseRegistry(settings),
        provisioner=TenantProvisioner(settings, cache=ProvisioningCache()),
        tables=LogTableProvisioner(add_missing_columns=settings.log_add_missing_columns),
    )


@asynccontextmanager
async def bootstrap_services(settings: Settings | None = None):
    """Yield a ready ExecutionLogger; drains background writes and closes pools on exit.

    Pools and control-plane connections open lazily on first use, so entering
    this context performs no I/O.
    """
    settings = settings or get_settings()
    execution_logger = create_execution_logger(settings)
    try:
        yield execution_logger
    finally:
        await execution_logger.close()
