"""
Tenant Service

Provisioning and start-up initialization of tenant schemas.

setup_tenant() creates a schema from scratch; initialize_tenant() re-applies
the (idempotent) table DDL and seeding to a schema that already exists.
initialize_all_tenants() runs at start-up over every tenant schema in the
database.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from saas.exceptions import SaaSError, SchemaMissingError
from saas.services.permission_store import PermissionStore
from saas.tenancy.router import TenantRouter, validate_tenant_name
from saas.tenancy.tables import GROUPS_PERMISSIONS_CAPABILITY

logger = logging.getLogger(__name__)


@dataclass
class TenantSetupResult:
    tenant: str
    capabilities: list[str] = field(default_factory=list)
    permissions_seeded: list[str] = field(default_factory=list)


class TenantService:
    def __init__(self, router: TenantRouter, default_tenant: str = "public") -> None:
        self.router = router
        self.default_tenant = default_tenant

    async def setup_tenant(self, tenant: str, capabilities: Iterable[str] | None = None) -> TenantSetupResult:
        """
        Create the tenant schema, its tables and its seed data.

        Safe to repeat: every step is idempotent.

        Raises:
            InvalidArgumentError: malformed tenant name
            ResourceNotFoundError: unknown capability
            ProvisionFailureError: schema or table creation failed
        """
        tenant = validate_tenant_name(tenant)
        async with self.router.provision(tenant) as db:
            applied = await self.router.apply_schema_creators(db, tenant, capabilities)
            seeded = await self._seed(db, applied)
        logger.info("Tenant %s set up with capabilities %s", tenant, ", ".join(applied))
        return TenantSetupResult(tenant=tenant, capabilities=applied, permissions_seeded=seeded)

    async def initialize_tenant(self, tenant: str) -> TenantSetupResult:
        """
        Bring an existing tenant schema up to date.

        Raises:
            SchemaMissingError: the schema does not exist
        """
        tenant = validate_tenant_name(tenant)
        if not await self.router.schema_exists(tenant):
            raise SchemaMissingError(tenant)
        return await self.setup_tenant(tenant)

    async def initialize_all_tenants(self) -> dict[str, SaaSError | None]:
        """
        Initialize every tenant schema, finishing with the default tenant.

        A failing tenant is logged and skipped; the rest still run.

        Returns:
            Mapping of tenant name to the error it raised, or None on success
        """
        tenants = [name for name in await self.router.list_namespaces() if name != self.default_tenant]
        tenants.append(self.default_tenant)

        results: dict[str, SaaSError | None] = {}
        for tenant in tenants:
            try:
                await self.initialize_tenant(tenant)
            except SaaSError as exc:
                logger.error("Failed to initialize tenant %s: %s", tenant, exc.message)
                results[tenant] = exc
            else:
                results[tenant] = None

        failed = sum(1 for error in results.values() if error is not None)
        logger.info("Initialized %d tenant(s), %d failed", len(results) - failed, failed)
        return results

    async def _seed(self, db: AsyncSession, capabilities: list[str]) -> list[str]:
        if GROUPS_PERMISSIONS_CAPABILITY not in capabilities:
            return []
        store = PermissionStore(db)
        permissions = await store.ensure_system_permissions()
        await store.ensure_admin_group()
        return [permission.name for permission in permissions]
