"""
PermissionStore

Permissions, groups and the group <-> permission relation inside one tenant
schema. Every method runs on the tenant session handed in by the caller
(see TenantRouter.connection_for).

Invariants enforced here:
  - System permissions (SYSTEM_PERMISSIONS) can never be deleted or renamed.
  - Protected groups (the "admin" group) always hold every system
    permission. Removing one is rejected; replacing a protected group's
    permission set silently adds back whatever system permissions the
    caller left out.

Group permission ids are aggregated in the same query that loads the
groups, and permission checks are a single EXISTS over the membership
joins.
"""

import logging
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, func, insert, null, select
from sqlalchemy.dialects.postgresql import aggregate_order_by
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from saas.constants.permissions import (
    ADMIN_GROUP,
    PROTECTED_GROUPS,
    SYSTEM_PERMISSIONS,
    is_protected_group,
    is_system_permission,
)
from saas.database import storage_errors
from saas.exceptions import (
    AlreadyGrantedError,
    DuplicateResourceError,
    GroupNotFoundError,
    InvalidArgumentError,
    PermissionNotFoundError,
    ProtectedResourceError,
    ResourceNotFoundError,
    SaaSError,
)
from saas.models.permission import Group, Permission, group_permissions
from saas.models.user import user_groups
from saas.utils.pagination import page_window

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255


@dataclass
class GroupRecord:
    id: int
    name: str
    permission_ids: list[int] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


def _require_name(name: str, field_name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgumentError(f"{field_name} name is required", field="name")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidArgumentError(f"{field_name} name exceeds {MAX_NAME_LENGTH} characters", field="name")
    return name


def _require_id(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidArgumentError(f"Invalid {field_name}: {value!r}", field=field_name)
    return value


def _unique_ids(values: Iterable[int], field_name: str) -> list[int]:
    seen: set[int] = set()
    ids: list[int] = []
    for value in values:
        value = _require_id(value, field_name)
        if value not in seen:
            seen.add(value)
            ids.append(value)
    return ids


class PermissionStore:
    def __init__(self, db: AsyncSession, protected_groups: frozenset[str] = PROTECTED_GROUPS) -> None:
        self.db = db
        self.protected_groups = protected_groups

    # ── Permissions ──────────────────────────────────────────────────────────

    async def create_permission(self, name: str) -> Permission:
        name = _require_name(name, "Permission")
        permission = Permission(name=name)
        async with self._transaction("create_permission", DuplicateResourceError("Permission", "name", name)):
            self.db.add(permission)
        await self.db.refresh(permission)
        logger.info("Permission created: id=%s name=%s", permission.id, permission.name)
        return permission

    async def get_permission(self, permission_id: int) -> Permission:
        _require_id(permission_id, "permission_id")
        return await self._fetch_permission(permission_id)

    async def get_permission_by_name(self, name: str) -> Permission:
        name = _require_name(name, "Permission")
        with storage_errors("get_permission_by_name"):
            result = await self.db.execute(select(Permission).where(Permission.name == name))
            permission = result.scalars().first()
        if permission is None:
            raise PermissionNotFoundError(name)
        return permission

    async def update_permission(self, permission_id: int, name: str) -> Permission:
        _require_id(permission_id, "permission_id")
        name = _require_name(name, "Permission")
        permission = await self._fetch_permission(permission_id)
        if is_system_permission(permission.name) and permission.name != name:
            raise ProtectedResourceError(
                f"Cannot rename system permission '{permission.name}'",
                details={"permission": permission.name},
            )
        async with self._transaction("update_permission", DuplicateResourceError("Permission", "name", name)):
            permission.name = name
        await self.db.refresh(permission)
        return permission

    async def delete_permission(self, permission_id: int) -> Permission:
        """
        Delete a permission and, by cascade, every grant of it.

        Raises:
            PermissionNotFoundError: no such permission
            ProtectedResourceError: the permission is a system permission
        """
        _require_id(permission_id, "permission_id")
        permission = await self._fetch_permission(permission_id)
        if is_system_permission(permission.name):
            raise ProtectedResourceError(
                f"Cannot delete system permission '{permission.name}'",
                details={"permission": permission.name},
            )
        async with self._transaction("delete_permission"):
            await self.db.execute(delete(Permission).where(Permission.id == permission_id))
        logger.info("Permission deleted: id=%s name=%s", permission_id, permission.name)
        return permission

    async def list_permissions(self, page: int = 1, page_size: int = 20) -> list[Permission]:
        limit, offset = page_window(page, page_size)
        with storage_errors("list_permissions"):
            result = await self.db.execute(select(Permission).order_by(Permission.id).limit(limit).offset(offset))
            return list(result.scalars().all())

    async def ensure_system_permissions(self) -> list[Permission]:
        """Create any missing system permissions and return all of them."""
        async with self._transaction("ensure_system_permissions"):
            await self.db.execute(
                pg_insert(Permission)
                .values([{"name": name} for name in SYSTEM_PERMISSIONS])
                .on_conflict_do_nothing(index_elements=[Permission.name])
            )
        with storage_errors("ensure_system_permissions"):
            result = await self.db.execute(
                select(Permission).where(Permission.name.in_(SYSTEM_PERMISSIONS)).order_by(Permission.id)
            )
            return list(result.scalars().all())

    # ── Groups ───────────────────────────────────────────────────────────────

    async def create_group(self, name: str, permission_ids: Sequence[int] | None = None) -> GroupRecord:
        name = _require_name(name, "Group")
        ids = _unique_ids(permission_ids or [], "permission_id")
        group = Group(name=name)
        async with self._transaction("create_group", DuplicateResourceError("Group", "name", name)):
            self.db.add(group)
        await self.db.refresh(group)
        logger.info("Group created: id=%s name=%s", group.id, group.name)

        record = GroupRecord(id=group.id, name=group.name, created_at=group.created_at, updated_at=group.updated_at)
        if ids or is_protected_group(name, self.protected_groups):
            return await self._replace_permissions(record, ids)
        return record

    async def get_group(self, group_id: int) -> GroupRecord:
        _require_id(group_id, "group_id")
        return await self._fetch_group(group_id)

    async def get_group_by_name(self, name: str) -> GroupRecord:
        name = _require_name(name, "Group")
        with storage_errors("get_group_by_name"):
            result = await self.db.execute(self._groups_query().where(Group.name == name))
            row = result.first()
        if row is None:
            raise GroupNotFoundError(name)
        return self._to_record(row)

    async def update_group(self, group_id: int, name: str) -> GroupRecord:
        _require_id(group_id, "group_id")
        name = _require_name(name, "Group")
        group = await self._fetch_group(group_id)
        if is_protected_group(group.name, self.protected_groups) and name != group.name:
            raise ProtectedResourceError(f"Cannot rename protected group '{group.name}'", details={"group": group.name})

        async with self._transaction("update_group", DuplicateResourceError("Group", "name", name)):
            result = await self.db.execute(
                Group.__table__.update().where(Group.id == group_id).values(name=name).returning(Group.id)
            )
            if result.scalar() is None:
                raise GroupNotFoundError(group_id)

        updated = await self._fetch_group(group_id)
        if is_protected_group(updated.name, self.protected_groups):
            # A group renamed into a protected name takes on its invariant.
            return await self._replace_permissions(updated, updated.permission_ids)
        return updated

    async def delete_group(self, group_id: int) -> GroupRecord:
        """Delete a group and return it as it was before deletion."""
        _require_id(group_id, "group_id")
        group = await self._fetch_group(group_id)
        if is_protected_group(group.name, self.protected_groups):
            raise ProtectedResourceError(f"Cannot delete protected group '{group.name}'", details={"group": group.name})
        async with self._transaction("delete_group"):
            await self.db.execute(delete(Group).where(Group.id == group_id))
        logger.info("Group deleted: id=%s name=%s", group.id, group.name)
        return group

    async def list_groups(self, page: int = 1, page_size: int = 20) -> list[GroupRecord]:
        limit, offset = page_window(page, page_size)
        with storage_errors("list_groups"):
            result = await self.db.execute(self._groups_query().limit(limit).offset(offset))
            return [self._to_record(row) for row in result.all()]

    async def search_groups(self, query: str, page: int = 1, page_size: int = 20) -> list[GroupRecord]:
        """Case-insensitive substring search on group names."""
        if not query:
            return await self.list_groups(page, page_size)
        limit, offset = page_window(page, page_size)
        with storage_errors("search_groups"):
            result = await self.db.execute(
                self._groups_query().where(Group.name.icontains(query, autoescape=True)).limit(limit).offset(offset)
            )
            return [self._to_record(row) for row in result.all()]

    async def ensure_admin_group(self) -> GroupRecord:
        """Create the admin group if absent and make sure it holds every system permission."""
        try:
            admin = await self.get_group_by_name(ADMIN_GROUP)
        except GroupNotFoundError:
            try:
                return await self.create_group(ADMIN_GROUP)
            except DuplicateResourceError:
                admin = await self.get_group_by_name(ADMIN_GROUP)
        return await self._replace_permissions(admin, admin.permission_ids)

    # ── Group <-> permission relation ────────────────────────────────────────

    async def add_permission_to_group(self, group_id: int, permission_id: int) -> None:
        """
        Raises:
            GroupNotFoundError / PermissionNotFoundError: either side is missing
            AlreadyGrantedError: the group already holds the permission
        """
        _require_id(group_id, "group_id")
        _require_id(permission_id, "permission_id")
        group = await self._fetch_group(group_id)
        await self._fetch_permission(permission_id)
        if permission_id in group.permission_ids:
            raise AlreadyGrantedError(group_id, permission_id)

        async with self._transaction("add_permission_to_group", AlreadyGrantedError(group_id, permission_id)):
            await self.db.execute(insert(group_permissions).values(group_id=group_id, permission_id=permission_id))
        logger.info("Permission %s granted to group %s", permission_id, group.name)

    async def remove_permission_from_group(self, group_id: int, permission_id: int) -> None:
        """
        Raises:
            ProtectedResourceError: removing a system permission from a protected group
            ResourceNotFoundError: the group does not hold the permission
        """
        _require_id(group_id, "group_id")
        _require_id(permission_id, "permission_id")
        group = await self._fetch_group(group_id)
        if is_protected_group(group.name, self.protected_groups):
            permission = await self._fetch_permission(permission_id)
            if is_system_permission(permission.name):
                raise ProtectedResourceError(
                    f"Cannot remove system permission '{permission.name}' from {group.name} group",
                    details={"group": group.name, "permission": permission.name},
                )

        async with self._transaction("remove_permission_from_group"):
            result = await self.db.execute(
                delete(group_permissions).where(
                    group_permissions.c.group_id == group_id,
                    group_permissions.c.permission_id == permission_id,
                )
            )
            if result.rowcount == 0:
                raise ResourceNotFoundError("Group permission", f"{group_id}:{permission_id}")
        logger.info("Permission %s removed from group %s", permission_id, group.name)

    async def get_group_permissions(self, group_id: int) -> list[Permission]:
        _require_id(group_id, "group_id")
        await self._fetch_group(group_id)
        with storage_errors("get_group_permissions"):
            result = await self.db.execute(
                select(Permission)
                .join(group_permissions, group_permissions.c.permission_id == Permission.id)
                .where(group_permissions.c.group_id == group_id)
                .order_by(Permission.id)
            )
            return list(result.scalars().all())

    async def set_group_permissions(self, group_id: int, permission_ids: Sequence[int]) -> GroupRecord:
        """
        Replace a group's permissions with *permission_ids*.

        For protected groups the system permissions are added to the set
        before it is written, so the result is always a superset of them.
        The clear and insert run in one transaction.
        """
        _require_id(group_id, "group_id")
        ids = _unique_ids(permission_ids, "permission_id")
        group = await self._fetch_group(group_id)
        return await self._replace_permissions(group, ids)

    async def enforce_group_invariants(self, group: GroupRecord, permission_ids: Sequence[int]) -> list[int]:
        """
        Return *permission_ids* extended with whatever the group's invariants
        require. Unprotected groups get their ids back unchanged.
        """
        ids = list(permission_ids)
        if not is_protected_group(group.name, self.protected_groups):
            return ids

        system_ids = await self._system_permission_ids()
        present = set(ids)
        for name in SYSTEM_PERMISSIONS:
            permission_id = system_ids.get(name)
            if permission_id is None:
                logger.warning("System permission '%s' not found for %s group", name, group.name)
                continue
            if permission_id not in present:
                ids.append(permission_id)
                present.add(permission_id)
                logger.info(
                    "Added system permission '%s' (id=%s) to %s group", name, permission_id, group.name
                )
        return ids

    # ── Permission checks ────────────────────────────────────────────────────

    async def user_has_permission(self, user_id: int, permission: int | str) -> bool:
        """
        True iff one of the user's groups holds *permission* (an id or a name).
        Only direct user -> group -> permission links count.
        """
        _require_id(user_id, "user_id")
        query = (
            select(user_groups.c.user_id)
            .join(group_permissions, group_permissions.c.group_id == user_groups.c.group_id)
            .where(user_groups.c.user_id == user_id)
        )
        if isinstance(permission, str):
            name = _require_name(permission, "Permission")
            query = query.join(Permission, Permission.id == group_permissions.c.permission_id).where(
                Permission.name == name
            )
        else:
            query = query.where(group_permissions.c.permission_id == _require_id(permission, "permission_id"))

        with storage_errors("user_has_permission"):
            result = await self.db.execute(select(query.exists()))
            return bool(result.scalar())

    # ── Private helpers ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def _transaction(self, operation: str, on_conflict: SaaSError | None = None) -> AsyncIterator[None]:
        """Commit the block's writes, or roll them all back on any failure."""
        try:
            with storage_errors(operation, on_conflict):
                yield
                await self.db.commit()
        except BaseException:
            await self.db.rollback()
            raise

    def _groups_query(self):
        permission_ids = func.array_remove(
            func.array_agg(aggregate_order_by(group_permissions.c.permission_id, group_permissions.c.permission_id)),
            null(),
        ).label("permission_ids")
        return (
            select(Group.id, Group.name, Group.created_at, Group.updated_at, permission_ids)
            .outerjoin(group_permissions, group_permissions.c.group_id == Group.id)
            .group_by(Group.id)
            .order_by(Group.id)
        )

    @staticmethod
    def _to_record(row) -> GroupRecord:
        return GroupRecord(
            id=row.id,
            name=row.name,
            permission_ids=list(row.permission_ids or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def _fetch_group(self, group_id: int) -> GroupRecord:
        with storage_errors("get_group"):
            result = await self.db.execute(self._groups_query().where(Group.id == group_id))
            row = result.first()
        if row is None:
            raise GroupNotFoundError(group_id)
        return self._to_record(row)

    async def _fetch_permission(self, permission_id: int) -> Permission:
        with storage_errors("get_permission"):
            permission = await self.db.get(Permission, permission_id)
        if permission is None:
            raise PermissionNotFoundError(permission_id)
        return permission

    async def _system_permission_ids(self) -> dict[str, int]:
        """Map system permission names to their tenant-local ids."""
        with storage_errors("resolve_system_permissions"):
            result = await self.db.execute(
                select(Permission.name, Permission.id).where(Permission.name.in_(SYSTEM_PERMISSIONS))
            )
            return {name: permission_id for name, permission_id in result.all()}

    async def _missing_permission_ids(self, permission_ids: Sequence[int]) -> list[int]:
        if not permission_ids:
            return []
        with storage_errors("check_permissions"):
            result = await self.db.execute(select(Permission.id).where(Permission.id.in_(permission_ids)))
            found = set(result.scalars().all())
        return [permission_id for permission_id in permission_ids if permission_id not in found]

    async def _replace_permissions(self, group: GroupRecord, permission_ids: Sequence[int]) -> GroupRecord:
        ids = await self.enforce_group_invariants(group, permission_ids)
        missing = await self._missing_permission_ids(ids)
        if missing:
            raise PermissionNotFoundError(missing[0])

        async with self._transaction("set_group_permissions", PermissionNotFoundError()):
            await self.db.execute(delete(group_permissions).where(group_permissions.c.group_id == group.id))
            if ids:
                await self.db.execute(
                    insert(group_permissions),
                    [{"group_id": group.id, "permission_id": permission_id} for permission_id in ids],
                )
        logger.debug("Group %s permissions set to %s", group.name, ids)
        return GroupRecord(
            id=group.id,
            name=group.name,
            permission_ids=sorted(ids),
            created_at=group.created_at,
            updated_at=group.updated_at,
        )
