from . import auth, groups, health, permissions, tenants, users

__all__ = ["auth", "groups", "health", "permissions", "tenants", "users"]
