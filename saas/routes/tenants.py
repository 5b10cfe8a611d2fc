"""
Tenant Routes

POST /api/tenant/setup  → provision the request's tenant schema, its tables and seed data
GET  /api/tenant/info   → whether the request's tenant is provisioned

Setup is idempotent and needs no token, since a fresh tenant has no users
to authenticate yet. It only ever provisions the tenant resolved from the
request host, never one named in the body.
"""

import logging

from fastapi import APIRouter, Depends

from saas.dependencies import get_router, get_tenant, get_tenant_service
from saas.schemas.tenant import TenantInfoResponse, TenantSetupRequest, TenantSetupResponse
from saas.services.tenant_service import TenantService
from saas.tenancy.router import TenantRouter

router = APIRouter(tags=["Tenants"])
logger = logging.getLogger(__name__)


@router.post("/setup", response_model=TenantSetupResponse)
async def setup_tenant(
    payload: TenantSetupRequest | None = None,
    tenant: str = Depends(get_tenant),
    tenant_service: TenantService = Depends(get_tenant_service),
) -> TenantSetupResponse:
    capabilities = payload.capabilities if payload else None
    result = await tenant_service.setup_tenant(tenant, capabilities)
    return TenantSetupResponse(
        tenant=result.tenant,
        capabilities=result.capabilities,
        permissions_seeded=result.permissions_seeded,
    )


@router.get("/info", response_model=TenantInfoResponse)
async def tenant_info(
    tenant: str = Depends(get_tenant),
    tenant_router: TenantRouter = Depends(get_router),
) -> TenantInfoResponse:
    return TenantInfoResponse(
        tenant=tenant,
        provisioned=await tenant_router.schema_exists(tenant),
        capabilities=tenant_router.registry.names(),
    )
