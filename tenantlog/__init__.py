"""tenantlog — per-tenant database provisioning and tool execution logging."""
