from .permission import Group, Permission, group_permissions
from .user import User, UserStatus, user_groups

__all__ = [
    "Group",
    "Permission",
    "group_permissions",
    "User",
    "UserStatus",
    "user_groups",
]
