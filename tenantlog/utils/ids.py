"""Tenant resource naming and content hashing helpers.

The tenant resource name is the join key between a tenant and its remote
database across process restarts, so it must stay a pure function of the
tenant key.

Examples::

    from tenantlog.utils.ids import tenant_resource_name, content_hash

    tenant_resource_name("org_1", "user_1")  # 'db-' + 16 hex chars
    content_hash("hello world")              # sha256 hex digest
"""

from __future__ import annotations

import hashlib

# Hosting APIs cap project names; 16..24 hex chars keeps us well inside the
# lowercase alphanumeric + hyphen alphabet with a negligible collision rate.
MIN_HASH_LENGTH = 16
MAX_HASH_LENGTH = 24

# ASCII unit separator. Never appears in organization or user ids, so
# ("a-b", "c") and ("a", "b-c") hash differently.
KEY_SEPARATOR = "\x1f"


def content_hash(text: str) -> str:
    """SHA-256 hex digest of UTF-8 encoded text."""
    return hashlib.sha256(text.encode()).hexdigest()


def tenant_resource_name(
    organization_id: str,
    user_id: str,
    *,
    prefix: str = "db",
    length: int = MIN_HASH_LENGTH,
) -> str:
    """Deterministic remote resource name for an (organization, user) pair.

    Args:
        organization_id: Opaque organization identifier.
        user_id: Opaque user identifier.
        prefix: Literal prefix, lowercase alphanumeric.
        length: Number of hex characters kept from the digest (16..24).

    Returns:
        ``f"{prefix}-{sha256(org + KEY_SEPARATOR + user)[:length]}"``
    """
    if not MIN_HASH_LENGTH <= length <= MAX_HASH_LENGTH:
        raise ValueError(
            f"hash length must be between {MIN_HASH_LENGTH} and {MAX_HASH_LENGTH}, got {length}"
        )
    digest = content_hash(f"{organization_id}{KEY_SEPARATOR}{user_id}")
    return f"{prefix}-{digest[:length]}"
