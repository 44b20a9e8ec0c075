"""Tenant identity and provisioned remote resources."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TenantKey(BaseModel):
    """An (organization, user) pair owning one isolated database."""

    organization_id: str
    user_id: str

    model_config = {"frozen": True}


class RemoteResource(BaseModel):
    """A project as reported by the control plane. Unknown fields are kept."""

    id: str
    name: str

    model_config = {"frozen": True, "extra": "allow"}


class ProvisionedResource(BaseModel):
    """A tenant project plus the connection string fetched for it.

    Never mutated once cached; connection strings are not rotated here.
    """

    resource_id: str
    resource_name: str
    connection_string: str = Field(repr=False)  # embeds the role password

    model_config = {"frozen": True}
