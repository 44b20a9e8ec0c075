"""Tenant provisioning — find-or-create a project per tenant and connect to it.

Flow for ``provision(tenant)``:

  1. name = tenant_resource_name(org, user)           (pure, deterministic)
  2. cache hit on name → return, no remote calls
  3. find_or_create(name)   list by name, create if absent; a 409 from
                            create means a concurrent caller won, re-list
  4. get_connection_string(project.id)                (memoized by id)
  5. cache the ProvisionedResource (first writer wins)

Within one process a per-name lock keeps concurrent first uses down to one
set of remote calls. Across processes the 409 handling makes the race
idempotent rather than race-free.
"""

from __future__ import annotations

import logging

from tenantlog.ontology.tenancy import ProvisionedResource, RemoteResource, TenantKey
from tenantlog.services.provisioning.cache import ProvisioningCache
from tenantlog.services.provisioning.client import (
    ConfigurationError,
    ControlPlaneClient,
    ControlPlaneError,
    ProvisioningError,
    ResponseParseError,
)
from tenantlog.settings import Settings
from tenantlog.utils.ids import tenant_resource_name

log = logging.getLogger(__name__)


class TenantProvisioner:
    """Read-through provisioning of tenant databases.

    The control-plane client is built on first use, so code paths that never
    provision (system-wide logging) run without control-plane credentials.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        cache: ProvisioningCache | None = None,
        client: ControlPlaneClient | None = None,
    ):
        self.settings = settings
        self.cache = cache if cache is not None else ProvisioningCache()
        self._client = client

    @property
    def client(self) -> ControlPlaneClient:
        if self._client is None:
            self._client = ControlPlaneClient(self.settings)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    def resource_name(self, tenant: TenantKey) -> str:
        return tenant_resource_name(
            tenant.organization_id,
            tenant.user_id,
            prefix=self.settings.resource_name_prefix,
            length=self.settings.resource_name_hash_length,
        )

    async def provision(self, tenant: TenantKey) -> ProvisionedResource:
        """Return the tenant's project and connection string, creating on first use."""
        name = self.resource_name(tenant)
        cached = self.cache.get_resource(name)
        if cached is not None:
            return cached

        async with self.cache.lock(name):
            cached = self.cache.get_resource(name)
            if cached is not None:
                return cached
            project = await self.find_or_create(name)
            connection_string = await self.get_connection_string(project.id)
            return self.cache.put_resource(
                ProvisionedResource(
                    resource_id=project.id,
                    resource_name=name,
                    connection_string=connection_string,
                )
            )

    async def find_or_create(self, name: str) -> RemoteResource:
        """Find a project by exact name, creating it when absent."""
        cached = self.cache.get_project(name)
        if cached is not None:
            log.debug("Project cache hit for %s", name)
            return cached

        project = await self.client.find_project(name)
        if project is None:
            log.info("No project found for %s, creating", name)
            project = await self.client.create_project(name)
            if project is None:
                # 409: someone else created it between our list and create
                project = await self.client.find_project(name)
                if project is None:
                    raise ProvisioningError(
                        f"Project {name} reported as existing but was not found",
                        status_code=409,
                        body="",
                    )
            else:
                log.info("Created project %s (id=%s)", project.name, project.id)
        return self.cache.put_project(name, project)

    async def get_connection_string(self, resource_id: str) -> str:
        cached = self.cache.get_connection(resource_id)
        if cached is not None:
            return cached
        uri = await self.client.get_connection_uri(resource_id)
        return self.cache.put_connection(resource_id, uri)


__all__ = [
    "ConfigurationError",
    "ControlPlaneClient",
    "ControlPlaneError",
    "ProvisioningCache",
    "ProvisioningError",
    "ResponseParseError",
    "TenantProvisioner",
]
