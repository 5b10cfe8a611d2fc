"""Constants package for the tenancy core."""

from .auth import ALGORITHM, TOKEN_TYPE
from .permissions import (
    ADMIN_GROUP,
    PROTECTED_GROUPS,
    SYSTEM_PERMISSIONS,
    is_protected_group,
    is_system_permission,
)

__all__ = [
    # Permission constants
    "SYSTEM_PERMISSIONS",
    "ADMIN_GROUP",
    "PROTECTED_GROUPS",
    "is_system_permission",
    "is_protected_group",
    # Auth constants
    "ALGORITHM",
    "TOKEN_TYPE",
]
