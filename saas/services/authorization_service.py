"""
Authorization Service

Answers "may this user do X in this tenant?" by opening a tenant session,
asking the PermissionStore and releasing the session again. Results are
never cached; every call reflects the current group grants.
"""

import logging
from collections.abc import Iterable

from saas.exceptions import AuthorizationError, InvalidArgumentError
from saas.services.permission_store import PermissionStore
from saas.tenancy.router import TenantRouter

logger = logging.getLogger(__name__)


def _names(permissions: Iterable[str]) -> list[str]:
    names = list(dict.fromkeys(permissions))
    if not names:
        raise InvalidArgumentError("At least one permission is required", field="permissions")
    return names


class AuthorizationService:
    def __init__(self, router: TenantRouter) -> None:
        self.router = router

    async def user_has_permission(self, tenant: str, user_id: int, permission: int | str) -> bool:
        async with self.router.connection_for(tenant) as db:
            return await PermissionStore(db).user_has_permission(user_id, permission)

    async def user_has_any_permission(self, tenant: str, user_id: int, permissions: Iterable[str]) -> bool:
        names = _names(permissions)
        async with self.router.connection_for(tenant) as db:
            store = PermissionStore(db)
            for name in names:
                if await store.user_has_permission(user_id, name):
                    return True
        return False

    async def missing_permissions(self, tenant: str, user_id: int, permissions: Iterable[str]) -> list[str]:
        """Return the subset of *permissions* the user does not hold, in order."""
        names = _names(permissions)
        missing = []
        async with self.router.connection_for(tenant) as db:
            store = PermissionStore(db)
            for name in names:
                if not await store.user_has_permission(user_id, name):
                    missing.append(name)
        return missing

    async def require_permissions(self, tenant: str, user_id: int, permissions: Iterable[str]) -> None:
        """
        Raises:
            AuthorizationError: naming the first permission the user lacks
        """
        missing = await self.missing_permissions(tenant, user_id, permissions)
        if missing:
            logger.warning("User %s in tenant %s lacks permission '%s'", user_id, tenant, missing[0])
            raise AuthorizationError(
                f"Missing required permission: {missing[0]}",
                required_permission=missing[0],
            )
