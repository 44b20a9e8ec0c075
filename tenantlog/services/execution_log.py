"""Execution logging — one row per tool invocation in a per-tool table.

Per call, strictly in order:

  1. table name from the tool identity, validated before any remote call
  2. target database: the tenant's (provisioned on demand) or the system one
  3. ensure the log table exists (columns from the tool's parameter schema)
  4. normalize the result (zip unwrapping)
  5. INSERT the declared parameters the call actually supplied, plus the result

Values are always bound as ``$n`` parameters; only validated identifiers are
embedded in SQL text. Failures propagate to the caller, who should treat
logging as fire-and-report (see ``log_in_background``) so a logging failure
never fails the tool invocation itself.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from tenantlog.ontology.tenancy import TenantKey
from tenantlog.ontology.tools import ApiTool, NativeTool, parse_tool_definition
from tenantlog.services.database import Database, DatabaseRegistry
from tenantlog.services.log_tables import RESULT_COLUMN, SYSTEM_COLUMNS, LogTableProvisioner
from tenantlog.services.provisioning import TenantProvisioner
from tenantlog.services.results import normalize_result
from tenantlog.services.schema import log_table_schema
from tenantlog.settings import Settings
from tenantlog.utils.identifiers import is_storable_identifier, quote_identifier, require_identifier

log = logging.getLogger(__name__)

_TEXT_TYPES = {"text", "character varying", "character"}
_INT_TYPES = {"integer", "bigint", "smallint"}
_FLOAT_TYPES = {"real", "double precision"}
_JSON_TYPES = {"json", "jsonb"}
_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}


def coerce_value(value: Any, data_type: str) -> Any:
    """Best-effort conversion of a parameter value to what asyncpg expects
    for ``data_type``. Values that cannot be converted pass through unchanged
    and the database decides.
    """
    if value is None or data_type in _JSON_TYPES:
        return value
    try:
        if data_type in _TEXT_TYPES:
            return value if isinstance(value, str) else json.dumps(value, default=str)
        if data_type in _INT_TYPES:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, float) and value.is_integer():
                return int(value)
            if isinstance(value, str):
                number = Decimal(value.strip())
                if number.is_finite() and number == number.to_integral_value():
                    return int(number)
            return value
        if data_type in _FLOAT_TYPES:
            if isinstance(value, (int, str)) and not isinstance(value, bool):
                return float(value)
            return value
        if data_type == "numeric":
            if isinstance(value, (int, float, str)) and not isinstance(value, bool):
                return Decimal(str(value))
            return value
        if data_type == "boolean":
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE:
                    return True
                if lowered in _FALSE:
                    return False
            elif isinstance(value, int) and value in (0, 1):
                return bool(value)
            return value
    except (ValueError, InvalidOperation):
        return value
    return value


def build_insert(table_name: str, row: Mapping[str, Any]) -> tuple[str, list]:
    """``INSERT INTO "t" ("a", "b") VALUES ($1, $2)`` plus the value list."""
    require_identifier(table_name)
    names = [quote_identifier(name) for name in row]
    placeholders = [f"${i}" for i in range(1, len(names) + 1)]
    sql = (
        f"INSERT INTO {quote_identifier(table_name)} ({', '.join(names)})"
        f" VALUES ({', '.join(placeholders)})"
    )
    return sql, list(row.values())


class ExecutionLogger:
    """Records tool executions into per-tool log tables.

    Tenant-scoped logs (``tenant`` given) go to the tenant's own database,
    provisioned on first use; everything else goes to the system database.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        databases: DatabaseRegistry | None = None,
        provisioner: TenantProvisioner | None = None,
        tables: LogTableProvisioner | None = None,
    ):
        self.settings = settings
        self.databases = databases or DatabaseRegistry(settings)
        self.provisioner = provisioner or TenantProvisioner(settings)
        self.tables = tables or LogTableProvisioner(
            add_missing_columns=settings.log_add_missing_columns
        )
        self._background: set[asyncio.Task] = set()

    async def log(
        self,
        tool: NativeTool | ApiTool | dict,
        parameters: Mapping[str, Any] | None,
        result: Any,
        *,
        tenant: TenantKey | None = None,
        timeout: float | None = None,
    ) -> None:
        """Insert one execution record. Raises on validation, provisioning or DB failure."""
        work = self._log(tool, parameters or {}, result, tenant=tenant)
        if timeout is None:
            await work
        else:
            await asyncio.wait_for(work, timeout)

    def log_in_background(
        self,
        tool: NativeTool | ApiTool | dict,
        parameters: Mapping[str, Any] | None,
        result: Any,
        *,
        tenant: TenantKey | None = None,
        timeout: float | None = None,
    ) -> asyncio.Task:
        """Schedule ``log`` without awaiting it. Failures are logged, never raised."""
        task = asyncio.create_task(
            self._report(tool, parameters, result, tenant=tenant, timeout=timeout)
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending background log write."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def recent_executions(
        self,
        tool: NativeTool | ApiTool | dict,
        *,
        tenant: TenantKey | None = None,
        limit: int = 10,
    ) -> dict:
        """Columns and the latest ``limit`` rows of the tool's log table."""
        schema = log_table_schema(tool, prefix=self.settings.log_table_prefix)
        require_identifier(schema.table_name)
        db = await self.database_for(tenant)
        return await self.tables.describe(db, schema.table_name, limit=limit)

    async def database_for(self, tenant: TenantKey | None) -> Database:
        if tenant is None:
            return await self.databases.get()
        resource = await self.provisioner.provision(tenant)
        return await self.databases.get(resource.connection_string)

    async def close(self) -> None:
        try:
            await self.drain()
        finally:
            await self.provisioner.close()
            await self.databases.close_all()

    # ── Internal ──────────────────────────────────────────────────────────

    async def _log(
        self,
        tool: NativeTool | ApiTool | dict,
        parameters: Mapping[str, Any],
        result: Any,
        *,
        tenant: TenantKey | None,
    ) -> None:
        tool = parse_tool_definition(tool)
        schema = log_table_schema(tool, prefix=self.settings.log_table_prefix)
        require_identifier(schema.table_name)

        db = await self.database_for(tenant)
        table_columns = await self.tables.ensure_table(db, schema.table_name, schema.columns)

        row: dict[str, Any] = {
            RESULT_COLUMN: normalize_result(result, max_bytes=self.settings.result_max_unpacked_bytes)
        }
        for column in schema.columns:
            name = column.name
            if name not in parameters or name in SYSTEM_COLUMNS or name in row:
                continue
            if not is_storable_identifier(name) or name not in table_columns:
                log.debug("%s: no column for parameter %r, omitted", schema.table_name, name)
                continue
            row[name] = coerce_value(parameters[name], table_columns[name])

        sql, values = build_insert(schema.table_name, row)
        await db.execute(sql, *values)

    async def _report(self, tool, parameters, result, *, tenant, timeout) -> None:
        try:
            await self.log(tool, parameters, result, tenant=tenant, timeout=timeout)
        except asyncio.CancelledError:
            raise
        except Exception:
            name = getattr(tool, "id", None) or getattr(tool, "name", None)
            if name is None and isinstance(tool, Mapping):
                name = tool.get("id") or tool.get("name")
            log.exception("Failed to log execution of tool %s", name)
