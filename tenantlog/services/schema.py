"""Derive log-table parameter columns from a tool definition.

One extractor per tool kind, chosen by the ``kind`` discriminant. Output
order follows declaration order; parameters without a usable type are
skipped. Name validation happens later, in LogTableProvisioner.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from tenantlog.ontology.tools import (
    ApiTool,
    LogTableSchema,
    NativeTool,
    ToolColumn,
    parse_tool_definition,
)

log = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")


def _json_type(raw: Any) -> str | None:
    """Normalise a JSON-Schema ``type`` (string or list) to one type name."""
    if isinstance(raw, str):
        return raw.strip().lower() or None
    if isinstance(raw, list) and all(isinstance(item, str) for item in raw):
        # ["string", "null"] → "string"
        for item in raw:
            if item.strip().lower() not in ("", "null"):
                return item.strip().lower()
    return None


def _native_columns(tool: NativeTool) -> list[ToolColumn]:
    columns = []
    for name, spec in tool.parameter_schema.items():
        json_type = _json_type(spec.type)
        if json_type is None:
            log.warning("Tool %s: parameter %r has no type, skipped", tool.id, name)
            continue
        columns.append(ToolColumn(name=name, json_type=json_type))
    return columns


def find_operation(tool: ApiTool) -> tuple[str, str, dict] | None:
    """Return ``(path, method, operation)`` for the single operation, or None."""
    paths = tool.openapi_specification.get("paths") or {}
    if not isinstance(paths, dict):
        return None
    for path, item in paths.items():
        if not isinstance(item, dict):
            continue
        for method in item:
            if method.lower() in HTTP_METHODS and isinstance(item[method], dict):
                return path, method.lower(), item[method]
        return None
    return None


def _api_parameters(tool: ApiTool) -> list[dict]:
    """Path-level parameters merged with operation parameters (operation wins)."""
    found = find_operation(tool)
    if found is None:
        log.warning("Tool %s: no path/method in OpenAPI specification", tool.name)
        return []
    path, _, operation = found
    path_item = tool.openapi_specification["paths"][path]

    merged: dict[str, dict] = {}
    for source in (path_item.get("parameters"), operation.get("parameters")):
        if not isinstance(source, list):
            continue
        for param in source:
            if isinstance(param, dict) and isinstance(param.get("name"), str) and param["name"]:
                merged.pop(param["name"], None)
                merged[param["name"]] = param
    return list(merged.values())


def _api_columns(tool: ApiTool) -> list[ToolColumn]:
    columns = []
    for param in _api_parameters(tool):
        schema = param.get("schema")
        json_type = _json_type(schema.get("type")) if isinstance(schema, dict) else None
        if json_type is None:
            log.debug("Tool %s: parameter %r has no schema type, skipped", tool.name, param["name"])
            continue
        columns.append(ToolColumn(name=param["name"], json_type=json_type))
    return columns


_EXTRACTORS: dict[str, Callable[[Any], list[ToolColumn]]] = {
    "native": _native_columns,
    "api": _api_columns,
}


def extract_columns(tool: NativeTool | ApiTool | dict) -> list[ToolColumn]:
    """Ordered ``[ToolColumn(name, json_type), ...]`` for a tool definition.

    Examples::

        extract_columns(NativeTool(id="x", parameter_schema={
            "email": {"type": "string"}, "age": {"type": "integer"},
        }))
        # [ToolColumn("email", "string"), ToolColumn("age", "integer")]
    """
    tool = parse_tool_definition(tool)
    return _EXTRACTORS[tool.kind](tool)


def log_table_schema(tool: NativeTool | ApiTool | dict, *, prefix: str = "tool_") -> LogTableSchema:
    tool = parse_tool_definition(tool)
    return LogTableSchema(table_name=tool.table_name(prefix), columns=extract_columns(tool))


__all__ = [
    "HTTP_METHODS",
    "extract_columns",
    "find_operation",
    "log_table_schema",
]
