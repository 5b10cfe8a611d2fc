"""
Permission Constants

System permissions are seeded into every tenant schema, can never be
deleted, and are always held by the protected groups.
"""

SYSTEM_PERMISSIONS: tuple[str, ...] = (
    # user permissions
    "user_view",
    "user_create",
    "user_update",
    "user_delete",
    # group permissions
    "group_view",
    "group_create",
    "group_update",
    "group_delete",
    # permission permissions
    "permission_view",
    "permission_create",
    "permission_update",
    "permission_delete",
)

ADMIN_GROUP = "admin"

# Groups that must always hold every system permission
PROTECTED_GROUPS: frozenset[str] = frozenset({ADMIN_GROUP})


def is_system_permission(name: str) -> bool:
    """Return True if *name* is one of the fixed system permissions."""
    return name in SYSTEM_PERMISSIONS


def is_protected_group(name: str, protected_groups: frozenset[str] = PROTECTED_GROUPS) -> bool:
    return name in protected_groups
