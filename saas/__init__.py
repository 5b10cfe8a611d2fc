"""Schema-per-tenant data access, group-based RBAC and token issuance."""

__version__ = "1.0.0"
