from .group import (
    GroupCreate,
    GroupPermissionGrant,
    GroupPermissionsUpdate,
    GroupResponse,
    GroupUpdate,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
)
from .tenant import TenantInfoResponse, TenantSetupRequest, TenantSetupResponse
from .token import LoginRequest, RefreshRequest, Token, TokenClaimsResponse
from .user import ChangePasswordRequest, RegisterRequest, UserGroupsResponse, UserGroupsUpdate, UserResponse

__all__ = [
    "ChangePasswordRequest",
    "GroupCreate",
    "GroupPermissionGrant",
    "GroupPermissionsUpdate",
    "GroupResponse",
    "GroupUpdate",
    "LoginRequest",
    "PermissionCreate",
    "PermissionResponse",
    "PermissionUpdate",
    "RefreshRequest",
    "RegisterRequest",
    "TenantInfoResponse",
    "TenantSetupRequest",
    "TenantSetupResponse",
    "Token",
    "TokenClaimsResponse",
    "UserGroupsResponse",
    "UserGroupsUpdate",
    "UserResponse",
]
