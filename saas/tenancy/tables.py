"""
Schema creators for the built-in capabilities.

Each creator issues idempotent DDL against the tenant session it is given;
the session's search_path decides which schema the tables land in. Creators
do not commit, TenantRouter.apply_schema_creators does that per creator.
"""

import logging

from sqlalchemy import Table, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.schema import CreateIndex, CreateTable

from saas.models.permission import Group, Permission, group_permissions
from saas.models.user import User, user_groups
from saas.tenancy.registry import SchemaCreatorRegistry

logger = logging.getLogger(__name__)

USERS_CAPABILITY = "users"
GROUPS_PERMISSIONS_CAPABILITY = "groups_permissions"


async def create_table(db: AsyncSession, table: Table) -> None:
    """CREATE TABLE / CREATE INDEX IF NOT EXISTS for *table*."""
    await db.execute(CreateTable(table, if_not_exists=True))
    for index in sorted(table.indexes, key=lambda idx: idx.name):
        await db.execute(CreateIndex(index, if_not_exists=True))


async def install_touch_trigger(db: AsyncSession, table_name: str) -> None:
    """Keep *table_name*.updated_at current on every UPDATE."""
    trigger = f"touch_{table_name}_updated_at"
    await db.execute(text(f"DROP TRIGGER IF EXISTS {trigger} ON {table_name}"))
    await db.execute(
        text(
            f"CREATE TRIGGER {trigger} BEFORE UPDATE ON {table_name} "
            "FOR EACH ROW EXECUTE FUNCTION touch_updated_at()"
        )
    )


async def create_groups_permissions_tables(db: AsyncSession) -> None:
    await create_table(db, Group.__table__)
    await create_table(db, Permission.__table__)
    await create_table(db, group_permissions)
    await install_touch_trigger(db, Group.__tablename__)
    await install_touch_trigger(db, Permission.__tablename__)


async def create_users_tables(db: AsyncSession) -> None:
    # user_groups references groups, so groups_permissions must run first
    await create_table(db, User.__table__)
    await create_table(db, user_groups)
    await install_touch_trigger(db, User.__tablename__)


def build_default_registry() -> SchemaCreatorRegistry:
    """Registry with the built-in capabilities, frozen and ready for the router."""
    registry = SchemaCreatorRegistry()
    registry.register(GROUPS_PERMISSIONS_CAPABILITY, create_groups_permissions_tables)
    registry.register(USERS_CAPABILITY, create_users_tables)
    return registry.freeze()
