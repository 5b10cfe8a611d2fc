from .authorization_service import AuthorizationService
from .permission_store import GroupRecord, PermissionStore
from .tenant_service import TenantService, TenantSetupResult
from .token_service import TokenClaims, TokenPair, TokenProfile, TokenService

__all__ = [
    "AuthorizationService",
    "GroupRecord",
    "PermissionStore",
    "TenantService",
    "TenantSetupResult",
    "TokenClaims",
    "TokenPair",
    "TokenProfile",
    "TokenService",
]
