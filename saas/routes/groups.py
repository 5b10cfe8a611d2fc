"""
Group Routes

GET    /api/groups                               → list or search groups (group_view)
POST   /api/groups                               → create group (group_create)
GET    /api/groups/{group_id}                    → get group (group_view)
PUT    /api/groups/{group_id}                    → rename group (group_update)
DELETE /api/groups/{group_id}                    → delete group (group_delete)
GET    /api/groups/{group_id}/permissions        → list granted permissions (group_view)
PUT    /api/groups/{group_id}/permissions        → replace granted permissions (group_update)
POST   /api/groups/{group_id}/permissions        → grant one permission (group_update)
DELETE /api/groups/{group_id}/permissions/{pid}  → revoke one permission (group_update)
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from saas.auth import require_permissions
from saas.dependencies import get_tenant_db
from saas.schemas.group import (
    GroupCreate,
    GroupPermissionGrant,
    GroupPermissionsUpdate,
    GroupResponse,
    GroupUpdate,
    PermissionResponse,
)
from saas.services.permission_store import GroupRecord, PermissionStore
from saas.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter(tags=["Groups"])


def _response(group: GroupRecord) -> GroupResponse:
    return GroupResponse(**asdict(group))


@router.get("", response_model=list[GroupResponse], dependencies=[Depends(require_permissions("group_view"))])
async def list_groups(
    q: str | None = Query(None, max_length=255, description="Case-insensitive name filter"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_tenant_db),
) -> list[GroupResponse]:
    store = PermissionStore(db)
    if q:
        groups = await store.search_groups(q, page, page_size)
    else:
        groups = await store.list_groups(page, page_size)
    return [_response(group) for group in groups]


@router.post(
    "",
    response_model=GroupResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("group_create"))],
)
async def create_group(payload: GroupCreate, db: AsyncSession = Depends(get_tenant_db)) -> GroupResponse:
    group = await PermissionStore(db).create_group(payload.name, payload.permission_ids)
    return _response(group)


@router.get("/{group_id}", response_model=GroupResponse, dependencies=[Depends(require_permissions("group_view"))])
async def get_group(group_id: int, db: AsyncSession = Depends(get_tenant_db)) -> GroupResponse:
    return _response(await PermissionStore(db).get_group(group_id))


@router.put("/{group_id}", response_model=GroupResponse, dependencies=[Depends(require_permissions("group_update"))])
async def update_group(group_id: int, payload: GroupUpdate, db: AsyncSession = Depends(get_tenant_db)) -> GroupResponse:
    return _response(await PermissionStore(db).update_group(group_id, payload.name))


@router.delete(
    "/{group_id}", response_model=GroupResponse, dependencies=[Depends(require_permissions("group_delete"))]
)
async def delete_group(group_id: int, db: AsyncSession = Depends(get_tenant_db)) -> GroupResponse:
    return _response(await PermissionStore(db).delete_group(group_id))


# ── Group permissions ─────────────────────────────────────────────────────────


@router.get(
    "/{group_id}/permissions",
    response_model=list[PermissionResponse],
    dependencies=[Depends(require_permissions("group_view"))],
)
async def get_group_permissions(group_id: int, db: AsyncSession = Depends(get_tenant_db)) -> list[PermissionResponse]:
    permissions = await PermissionStore(db).get_group_permissions(group_id)
    return [PermissionResponse.model_validate(permission) for permission in permissions]


@router.put(
    "/{group_id}/permissions",
    response_model=GroupResponse,
    dependencies=[Depends(require_permissions("group_update"))],
)
async def set_group_permissions(
    group_id: int, payload: GroupPermissionsUpdate, db: AsyncSession = Depends(get_tenant_db)
) -> GroupResponse:
    return _response(await PermissionStore(db).set_group_permissions(group_id, payload.permission_ids))


@router.post(
    "/{group_id}/permissions",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("group_update"))],
)
async def add_permission_to_group(
    group_id: int, payload: GroupPermissionGrant, db: AsyncSession = Depends(get_tenant_db)
) -> dict:
    await PermissionStore(db).add_permission_to_group(group_id, payload.permission_id)
    return {"message": "Permission granted", "group_id": group_id, "permission_id": payload.permission_id}


@router.delete(
    "/{group_id}/permissions/{permission_id}",
    dependencies=[Depends(require_permissions("group_update"))],
)
async def remove_permission_from_group(
    group_id: int, permission_id: int, db: AsyncSession = Depends(get_tenant_db)
) -> dict:
    await PermissionStore(db).remove_permission_from_group(group_id, permission_id)
    return {"message": "Permission revoked", "group_id": group_id, "permission_id": permission_id}
