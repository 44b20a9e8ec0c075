"""Process-lifetime memoization of tenant provisioning results."""

from __future__ import annotations

import asyncio

from tenantlog.ontology.tenancy import ProvisionedResource, RemoteResource


class ProvisioningCache:
    """Append-only maps of resource name → project and → provisioned resource,
    plus resource id → connection string.

    Entries are never invalidated. ``put_*`` keeps the first value written for
    a key and returns it, so racing writers converge on one winner. ``lock``
    hands out one asyncio.Lock per key for single-flight population.

    Owned by TenantProvisioner; tests build a fresh instance per test.
    """

    def __init__(self):
        self._projects: dict[str, RemoteResource] = {}
        self._connections: dict[str, str] = {}
        self._resources: dict[str, ProvisionedResource] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def get_project(self, name: str) -> RemoteResource | None:
        return self._projects.get(name)

    def put_project(self, name: str, project: RemoteResource) -> RemoteResource:
        return self._projects.setdefault(name, project)

    def get_connection(self, resource_id: str) -> str | None:
        return self._connections.get(resource_id)

    def put_connection(self, resource_id: str, connection_string: str) -> str:
        return self._connections.setdefault(resource_id, connection_string)

    def get_resource(self, name: str) -> ProvisionedResource | None:
        return self._resources.get(name)

    def put_resource(self, resource: ProvisionedResource) -> ProvisionedResource:
        return self._resources.setdefault(resource.resource_name, resource)

    def lock(self, name: str) -> asyncio.Lock:
        return self._locks.setdefault(name, asyncio.Lock())

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, name: object) -> bool:
        return name in self._resources
