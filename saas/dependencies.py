"""FastAPI dependencies for the services created at start-up."""

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from saas.services.authorization_service import AuthorizationService
from saas.services.tenant_service import TenantService
from saas.services.token_service import TokenService
from saas.tenancy.router import TenantRouter


def get_router(request: Request) -> TenantRouter:
    return request.app.state.router


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_authorization_service(request: Request) -> AuthorizationService:
    return request.app.state.authorization_service


def get_tenant_service(request: Request) -> TenantService:
    return request.app.state.tenant_service


def get_tenant(request: Request) -> str:
    """Tenant resolved by TenantMiddleware for this request."""
    return request.state.tenant


async def get_tenant_db(
    tenant: str = Depends(get_tenant),
    router: TenantRouter = Depends(get_router),
) -> AsyncIterator[AsyncSession]:
    """Yield a session scoped to the request's tenant schema."""
    async with router.connection_for(tenant) as db:
        yield db
