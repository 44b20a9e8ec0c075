"""Tool definitions — a tagged union of native tools and OpenAPI-described tools.

Two shapes reach the execution logger:

  native — an internally defined function with a parameter schema
           (``{"email": {"type": "string"}, ...}``)
  api    — an external HTTP operation described by an OpenAPI 3 fragment
           with exactly one path and one method

The ``kind`` field is the discriminant; nothing probes for the presence of
``parameter_schema`` vs ``openapi_specification`` to decide which is which.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

from tenantlog.utils.identifiers import MAX_IDENTIFIER_LENGTH, slugify


# Keys of a JSON-Schema object wrapper, as opposed to a name → spec map
_SCHEMA_KEYWORDS = {"$schema", "title", "description", "properties", "required", "additionalProperties"}


class ParameterSpec(BaseModel):
    """JSON-Schema fragment for one parameter. Only ``type`` matters here.

    ``type`` is kept as given; an unusable value (``5``, ``["x", 5]``) is
    skipped at extraction time rather than rejected here.
    """

    type: Any = None

    model_config = {"extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def _coerce_non_mapping(cls, value: Any) -> Any:
        # boolean subschemas (`true`) and other non-objects carry no type
        if isinstance(value, (dict, ParameterSpec)):
            return value
        return {}


class NativeTool(BaseModel):
    kind: Literal["native"] = "native"
    id: str
    parameter_schema: dict[str, ParameterSpec] = Field(default_factory=dict)

    @field_validator("parameter_schema", mode="before")
    @classmethod
    def _unwrap_object_schema(cls, value: Any) -> Any:
        """Accept a full JSON-Schema object and keep only its properties."""
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        properties = value.get("properties")
        if value.get("type") == "object":
            return properties if isinstance(properties, dict) else {}
        # a parameter literally named "properties" maps to one spec, not to specs
        if (
            isinstance(properties, dict)
            and set(value) <= _SCHEMA_KEYWORDS
            and all(isinstance(spec, dict) for spec in properties.values())
        ):
            return properties
        return value

    def table_name(self, prefix: str = "tool_") -> str:
        return f"{prefix}{self.id}"


class ApiTool(BaseModel):
    kind: Literal["api"] = "api"
    name: str
    openapi_specification: dict[str, Any] = Field(default_factory=dict)

    @property
    def title(self) -> str:
        info = self.openapi_specification.get("info") or {}
        return str(info.get("title") or self.name)

    @property
    def version(self) -> str:
        info = self.openapi_specification.get("info") or {}
        return str(info.get("version") or "")

    def table_name(self, prefix: str = "tool_") -> str:
        """``<prefix><slug(title)>_<slug(version)>``, capped at the identifier limit."""
        parts = [p for p in (slugify(self.title), slugify(self.version)) if p]
        return f"{prefix}{'_'.join(parts)}"[:MAX_IDENTIFIER_LENGTH]


ToolDefinition = Annotated[Union[NativeTool, ApiTool], Field(discriminator="kind")]

_tool_adapter: TypeAdapter[NativeTool | ApiTool] = TypeAdapter(ToolDefinition)


def parse_tool_definition(data: dict | NativeTool | ApiTool) -> NativeTool | ApiTool:
    """Validate a raw mapping into NativeTool or ApiTool by its ``kind``."""
    if isinstance(data, (NativeTool, ApiTool)):
        return data
    return _tool_adapter.validate_python(data)


@dataclass(frozen=True)
class ToolColumn:
    """One parameter column derived from a tool definition."""

    name: str
    json_type: str


@dataclass
class LogTableSchema:
    """Table name plus ordered parameter columns (system columns are implicit)."""

    table_name: str
    columns: list[ToolColumn]
