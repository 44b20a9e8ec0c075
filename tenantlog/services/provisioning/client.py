"""Control-plane client — list, create and connect to tenant projects.

Thin async wrapper around the database hosting API (Neon v2 shape):

  GET  {base}/projects?search=<name>        → {"projects": [...], "pagination": {"cursor": ...}}
  POST {base}/projects                      → {"project": {...}}   (409 when the name exists)
  GET  {base}/projects/{id}/connection_uri  → {"connection_uri": "postgresql://..."}

No retries happen here; callers decide retry policy.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tenantlog.ontology.tenancy import RemoteResource
from tenantlog.settings import Settings

log = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Required configuration (credentials, URLs) is missing."""


class ControlPlaneError(Exception):
    """Base class for control-plane failures."""


class ProvisioningError(ControlPlaneError):
    """Non-success status from the control plane."""

    def __init__(self, message: str, *, status_code: int, body: str):
        super().__init__(f"{message} (status {status_code}): {body[:500]}")
        self.status_code = status_code
        self.body = body


class ResponseParseError(ControlPlaneError):
    """Control-plane response body was not the JSON shape we expect."""


class ControlPlaneClient:
    """Authenticated calls against the control-plane API.

    Raises ConfigurationError at construction when the API key or base URL
    is missing, so no request is ever attempted without credentials.
    """

    def __init__(self, settings: Settings, *, http: httpx.AsyncClient | None = None):
        api_key = (settings.control_plane_api_key or "").strip()
        if not api_key:
            raise ConfigurationError("TENANTLOG_CONTROL_PLANE_API_KEY is not configured")
        base_url = (settings.control_plane_url or "").strip().rstrip("/")
        if not base_url:
            raise ConfigurationError("TENANTLOG_CONTROL_PLANE_URL is not configured")

        self.settings = settings
        self.base_url = base_url
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
        }
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=settings.control_plane_timeout)

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ── Projects ──────────────────────────────────────────────────────────

    async def find_project(self, name: str) -> RemoteResource | None:
        """Return the project whose name equals ``name``, or None.

        Walks every page; ``search`` narrows results server-side but the
        match is always an exact name comparison.
        """
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"search": name, "limit": self.settings.control_plane_page_size}
            if cursor:
                params["cursor"] = cursor
            data = await self._request("GET", "/projects", params=params, action="list projects")
            projects = data.get("projects")
            if not isinstance(projects, list):
                raise ResponseParseError("list projects: missing 'projects' array")
            for item in projects:
                if isinstance(item, dict) and item.get("name") == name:
                    return _parse_resource(item, "list projects")

            next_cursor = (data.get("pagination") or {}).get("cursor")
            if not projects or not next_cursor or next_cursor == cursor:
                return None
            cursor = next_cursor

    async def create_project(self, name: str) -> RemoteResource | None:
        """Create a project. Returns None when the name already exists (409)."""
        response = await self._send(
            "POST", "/projects", json={"project": {"name": name}}, action="create project",
            allow_status=(409,),
        )
        if response.status_code == 409:
            log.debug("Project %s already exists (409), treating as created", name)
            return None
        data = _json_body(response, "create project")
        return _parse_resource(data.get("project"), "create project")

    async def get_connection_uri(self, project_id: str) -> str:
        data = await self._request(
            "GET",
            f"/projects/{project_id}/connection_uri",
            params={
                "database_name": self.settings.default_database_name,
                "role_name": self.settings.default_role_name,
            },
            action="get connection uri",
        )
        uri = data.get("connection_uri")
        if not isinstance(uri, str) or not uri:
            raise ResponseParseError("get connection uri: missing 'connection_uri'")
        return uri

    # ── Internal ──────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, *, action: str, **kwargs) -> dict:
        response = await self._send(method, path, action=action, **kwargs)
        return _json_body(response, action)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        action: str,
        allow_status: tuple[int, ...] = (),
        **kwargs,
    ) -> httpx.Response:
        response = await self._http.request(
            method, f"{self.base_url}{path}", headers=self._headers, **kwargs
        )
        if response.is_success or response.status_code in allow_status:
            return response
        raise ProvisioningError(
            f"Control plane failed to {action}",
            status_code=response.status_code,
            body=response.text,
        )


def _json_body(response: httpx.Response, action: str) -> dict:
    try:
        data = response.json()
    except ValueError as e:
        raise ResponseParseError(f"{action}: response is not JSON") from e
    if not isinstance(data, dict):
        raise ResponseParseError(f"{action}: expected a JSON object, got {type(data).__name__}")
    return data


def _parse_resource(item: Any, action: str) -> RemoteResource:
    if not isinstance(item, dict):
        raise ResponseParseError(f"{action}: missing project object")
    try:
        return RemoteResource.model_validate(item)
    except ValidationError as e:
        raise ResponseParseError(f"{action}: malformed project: {e}") from e
