"""
Permission Routes

GET    /api/permissions                  → list permissions (permission_view)
POST   /api/permissions                  → create permission (permission_create)
GET    /api/permissions/{permission_id}  → get permission (permission_view)
PUT    /api/permissions/{permission_id}  → rename permission (permission_update)
DELETE /api/permissions/{permission_id}  → delete permission (permission_delete)

System permissions cannot be renamed or deleted.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from saas.auth import require_permissions
from saas.dependencies import get_tenant_db
from saas.schemas.group import PermissionCreate, PermissionResponse, PermissionUpdate
from saas.services.permission_store import PermissionStore
from saas.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter(tags=["Permissions"])


@router.get(
    "", response_model=list[PermissionResponse], dependencies=[Depends(require_permissions("permission_view"))]
)
async def list_permissions(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_tenant_db),
) -> list[PermissionResponse]:
    permissions = await PermissionStore(db).list_permissions(page, page_size)
    return [PermissionResponse.model_validate(permission) for permission in permissions]


@router.post(
    "",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permissions("permission_create"))],
)
async def create_permission(payload: PermissionCreate, db: AsyncSession = Depends(get_tenant_db)) -> PermissionResponse:
    return PermissionResponse.model_validate(await PermissionStore(db).create_permission(payload.name))


@router.get(
    "/{permission_id}",
    response_model=PermissionResponse,
    dependencies=[Depends(require_permissions("permission_view"))],
)
async def get_permission(permission_id: int, db: AsyncSession = Depends(get_tenant_db)) -> PermissionResponse:
    return PermissionResponse.model_validate(await PermissionStore(db).get_permission(permission_id))


@router.put(
    "/{permission_id}",
    response_model=PermissionResponse,
    dependencies=[Depends(require_permissions("permission_update"))],
)
async def update_permission(
    permission_id: int, payload: PermissionUpdate, db: AsyncSession = Depends(get_tenant_db)
) -> PermissionResponse:
    permission = await PermissionStore(db).update_permission(permission_id, payload.name)
    return PermissionResponse.model_validate(permission)


@router.delete(
    "/{permission_id}",
    response_model=PermissionResponse,
    dependencies=[Depends(require_permissions("permission_delete"))],
)
async def delete_permission(permission_id: int, db: AsyncSession = Depends(get_tenant_db)) -> PermissionResponse:
    return PermissionResponse.model_validate(await PermissionStore(db).delete_permission(permission_id))
