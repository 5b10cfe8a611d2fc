"""
Tenant Schema Router

Maps a tenant identifier to a PostgreSQL schema and hands out pooled
connections whose search_path points at that schema. The search_path is
set per connection (never globally), so requests for different tenants
share the pool without interfering with each other.

Usage:
    async with router.connection_for("acme") as db:
        store = PermissionStore(db)
        ...

Every connection is released when the ``async with`` block exits, whether
it exits normally, with an error, or because the task was cancelled.
"""

import logging
import re
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from saas.database import storage_errors
from saas.exceptions import InvalidArgumentError, ProvisionFailureError, SchemaMissingError
from saas.tenancy.registry import SchemaCreator, SchemaCreatorRegistry

logger = logging.getLogger(__name__)

TENANT_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

RESERVED_SCHEMAS = frozenset({"information_schema"})

SCHEMA_EXISTS_SQL = "SELECT EXISTS (SELECT 1 FROM pg_catalog.pg_namespace WHERE nspname = :name)"
LIST_SCHEMAS_SQL = "SELECT nspname FROM pg_catalog.pg_namespace ORDER BY nspname"

# Session-level lock serializing provisioning of one tenant across processes.
PROVISION_LOCK_SQL = "SELECT pg_advisory_lock(hashtext(:key))"
PROVISION_UNLOCK_SQL = "SELECT pg_advisory_unlock(hashtext(:key))"

# Trigger helper shared by every tenant table with an updated_at column.
TOUCH_UPDATED_AT_SQL = """
CREATE OR REPLACE FUNCTION {schema}.touch_updated_at()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""


def is_reserved_schema(name: str) -> bool:
    return name in RESERVED_SCHEMAS or name.startswith("pg_")


def validate_tenant_name(tenant: str) -> str:
    """
    Normalise and validate a tenant identifier.

    Returns:
        The lowercased tenant name

    Raises:
        InvalidArgumentError: the name is not a valid, non-reserved schema identifier
    """
    if not isinstance(tenant, str) or not tenant:
        raise InvalidArgumentError("Tenant identifier is required", field="tenant")
    name = tenant.strip().lower()
    if not TENANT_NAME_PATTERN.match(name):
        raise InvalidArgumentError(f"Invalid tenant identifier: {tenant!r}", field="tenant")
    if is_reserved_schema(name):
        raise InvalidArgumentError(f"Tenant identifier {tenant!r} is reserved", field="tenant")
    return name


class TenantRouter:
    def __init__(self, engine: AsyncEngine, registry: SchemaCreatorRegistry) -> None:
        self.engine = engine
        self.registry = registry
        self._preparer = engine.dialect.identifier_preparer

    def quote(self, tenant: str) -> str:
        """Quote *tenant* as a SQL identifier."""
        return self._preparer.quote_identifier(tenant)

    # ── Public API ───────────────────────────────────────────────────────────

    @asynccontextmanager
    async def connection_for(self, tenant: str) -> AsyncIterator[AsyncSession]:
        """
        Yield a session scoped to an existing tenant schema.

        Raises:
            InvalidArgumentError: malformed tenant identifier
            ConnectionFailureError: no connection could be acquired
            SchemaMissingError: the tenant schema has not been provisioned
        """
        tenant = validate_tenant_name(tenant)
        conn = await self._acquire("connection_for")
        try:
            with storage_errors("connection_for"):
                if not await self._schema_exists(conn, tenant):
                    raise SchemaMissingError(tenant)
                await self._set_search_path(conn, tenant)
            logger.debug("Acquired connection for tenant %s", tenant)
            async with AsyncSession(bind=conn, expire_on_commit=False) as session:
                yield session
        finally:
            await self._release(conn)

    @asynccontextmanager
    async def provision(self, tenant: str) -> AsyncIterator[AsyncSession]:
        """
        Create the tenant schema and its support routines if absent, then
        yield a session scoped to it.

        Safe to call repeatedly and concurrently for the same tenant: callers
        provisioning one tenant hold a PostgreSQL advisory lock, so they run
        one after another.

        Raises:
            InvalidArgumentError: malformed tenant identifier
            ConnectionFailureError: no connection could be acquired
            ProvisionFailureError: schema or routine creation failed
        """
        tenant = validate_tenant_name(tenant)
        conn = await self._acquire("provision")
        try:
            await self._lock_provisioning(conn, tenant)
            try:
                await self._create_schema(conn, tenant)
                try:
                    await self._set_search_path(conn, tenant)
                except SQLAlchemyError as exc:
                    raise ProvisionFailureError(tenant, "search_path setup", str(exc)) from exc
                await self._create_support_routines(conn, tenant)
                logger.info("Provisioned schema for tenant %s", tenant)
                async with AsyncSession(bind=conn, expire_on_commit=False) as session:
                    yield session
            finally:
                await self._unlock_provisioning(conn, tenant)
        finally:
            await self._release(conn)

    async def apply_schema_creators(
        self,
        session: AsyncSession,
        tenant: str,
        names: Iterable[str] | None = None,
    ) -> list[str]:
        """
        Run the named schema creators (all registered ones by default) inside
        the tenant session, committing after each one.

        Returns:
            The capability names that were applied, in order
        """
        names = self.registry.names() if names is None else list(names)
        creators = [(name, self.registry.get(name)) for name in names]
        for name, creator in creators:
            try:
                await creator(session)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise ProvisionFailureError(tenant, f"schema creator '{name}'", str(exc)) from exc
            logger.debug("Applied schema creator %s for tenant %s", name, tenant)
        return names

    async def list_namespaces(self) -> list[str]:
        """Return all tenant schema names, ordered, excluding system schemas."""
        conn = await self._acquire("list_namespaces")
        try:
            with storage_errors("list_namespaces"):
                result = await conn.execute(text(LIST_SCHEMAS_SQL))
                names = [row[0] for row in result]
        finally:
            await self._release(conn)
        return [name for name in names if not is_reserved_schema(name)]

    async def schema_exists(self, tenant: str) -> bool:
        tenant = validate_tenant_name(tenant)
        conn = await self._acquire("schema_exists")
        try:
            with storage_errors("schema_exists"):
                return await self._schema_exists(conn, tenant)
        finally:
            await self._release(conn)

    def register_schema_creator(self, name: str, creator: SchemaCreator) -> None:
        self.registry.register(name, creator)

    # ── Connection handling ──────────────────────────────────────────────────

    async def _acquire(self, operation: str) -> AsyncConnection:
        with storage_errors(operation):
            return await self.engine.connect()

    async def _release(self, conn: AsyncConnection) -> None:
        """Reset the search_path and return the connection to the pool."""
        try:
            if not conn.closed and not conn.invalidated:
                await conn.rollback()
                await conn.execute(text("RESET search_path"))
                await conn.commit()
        except (SQLAlchemyError, OSError) as exc:
            # A connection we cannot reset must not go back to the pool.
            logger.warning("Discarding connection that could not be reset: %s", exc)
            await conn.invalidate()
        finally:
            await conn.close()

    async def _schema_exists(self, conn: AsyncConnection, tenant: str) -> bool:
        result = await conn.execute(text(SCHEMA_EXISTS_SQL), {"name": tenant})
        return bool(result.scalar())

    async def _set_search_path(self, conn: AsyncConnection, tenant: str) -> None:
        # Committed immediately so a later rollback by the caller keeps the scope.
        await conn.execute(text(f"SET search_path TO {self.quote(tenant)}"))
        await conn.commit()

    # ── Provisioning steps ───────────────────────────────────────────────────

    async def _lock_provisioning(self, conn: AsyncConnection, tenant: str) -> None:
        try:
            await conn.execute(text(PROVISION_LOCK_SQL), {"key": f"saas.provision.{tenant}"})
            await conn.commit()
        except SQLAlchemyError as exc:
            await conn.rollback()
            raise ProvisionFailureError(tenant, "provisioning lock", str(exc)) from exc

    async def _unlock_provisioning(self, conn: AsyncConnection, tenant: str) -> None:
        try:
            if not conn.closed and not conn.invalidated:
                await conn.rollback()
                await conn.execute(text(PROVISION_UNLOCK_SQL), {"key": f"saas.provision.{tenant}"})
                await conn.commit()
        except (SQLAlchemyError, OSError) as exc:
            # Closing the session is the only other way to drop the lock.
            logger.warning("Discarding connection holding the provisioning lock for %s: %s", tenant, exc)
            await conn.invalidate()

    async def _create_schema(self, conn: AsyncConnection, tenant: str) -> None:
        try:
            await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {self.quote(tenant)}"))
            await conn.commit()
        except IntegrityError as exc:
            # Lost a race with a concurrent first-time provision of the same tenant.
            await conn.rollback()
            if not await self._schema_exists(conn, tenant):
                raise ProvisionFailureError(tenant, "schema creation", str(exc)) from exc
            logger.debug("Schema %s created concurrently by another request", tenant)
        except SQLAlchemyError as exc:
            await conn.rollback()
            raise ProvisionFailureError(tenant, "schema creation", str(exc)) from exc

    async def _create_support_routines(self, conn: AsyncConnection, tenant: str) -> None:
        try:
            async with conn.begin():
                await conn.execute(text(TOUCH_UPDATED_AT_SQL.format(schema=self.quote(tenant))))
        except SQLAlchemyError as exc:
            raise ProvisionFailureError(tenant, "support routine creation", str(exc)) from exc
