import logging
from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from passlib.context import CryptContext

from saas.constants.auth import ACCESS_TOKEN_COOKIE
from saas.dependencies import get_authorization_service, get_tenant, get_token_service
from saas.exceptions import AuthenticationError, AuthorizationError, InvalidArgumentError
from saas.services.authorization_service import AuthorizationService
from saas.services.token_service import TokenClaims, TokenService

logger = logging.getLogger(__name__)

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Bearer token from the Authorization header; the access_token cookie is the fallback
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


async def get_current_claims(
    request: Request,
    bearer_token: str | None = Depends(oauth2_scheme),
    tenant: str = Depends(get_tenant),
    token_service: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """
    Validate the request's access token and return its claims.

    Raises:
        AuthenticationError: no token was sent, or it belongs to another tenant
        InvalidTokenError: the token failed validation
    """
    token = bearer_token or request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise AuthenticationError("Not authenticated")

    claims = token_service.validate_access(token)
    if str(claims.tenant_id) != tenant:
        logger.warning("Token for tenant %s presented to tenant %s", claims.tenant_id, tenant)
        raise AuthenticationError("Token was not issued for this tenant")

    request.state.user_id = claims.user_id
    return claims


def require_permissions(*permissions: str) -> Callable:
    """Dependency factory: the current user must hold every one of *permissions*."""
    if not permissions:
        raise InvalidArgumentError("At least one permission is required", field="permissions")

    async def _require_permissions(
        claims: TokenClaims = Depends(get_current_claims),
        tenant: str = Depends(get_tenant),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> TokenClaims:
        await authorization.require_permissions(tenant, claims.user_id, permissions)
        return claims

    return _require_permissions


def require_any_permission(*permissions: str) -> Callable:
    """Dependency factory: the current user must hold at least one of *permissions*."""
    if not permissions:
        raise InvalidArgumentError("At least one permission is required", field="permissions")

    async def _require_any_permission(
        claims: TokenClaims = Depends(get_current_claims),
        tenant: str = Depends(get_tenant),
        authorization: AuthorizationService = Depends(get_authorization_service),
    ) -> TokenClaims:
        if not await authorization.user_has_any_permission(tenant, claims.user_id, permissions):
            logger.warning("User %s holds none of %s", claims.user_id, ", ".join(permissions))
            raise AuthorizationError(
                f"Requires one of: {', '.join(permissions)}",
                required_permission=permissions[0],
            )
        return claims

    return _require_any_permission
