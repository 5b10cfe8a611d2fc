"""
User Routes

GET /api/users/{user_id}         → get user (user_view or user_update)
GET /api/users/{user_id}/groups  → list group memberships (user_view)
PUT /api/users/{user_id}/groups  → replace group memberships (user_update)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saas.auth import require_any_permission, require_permissions
from saas.dependencies import get_tenant_db
from saas.schemas.user import UserGroupsResponse, UserGroupsUpdate, UserResponse
from saas.services.user_service import UserService

router = APIRouter(tags=["Users"])


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    dependencies=[Depends(require_any_permission("user_view", "user_update"))],
)
async def get_user(user_id: int, db: AsyncSession = Depends(get_tenant_db)) -> UserResponse:
    return UserResponse.model_validate(await UserService(db).get_user(user_id))


@router.get(
    "/{user_id}/groups",
    response_model=UserGroupsResponse,
    dependencies=[Depends(require_permissions("user_view"))],
)
async def get_user_groups(user_id: int, db: AsyncSession = Depends(get_tenant_db)) -> UserGroupsResponse:
    users = UserService(db)
    await users.get_user(user_id)
    return UserGroupsResponse(user_id=user_id, group_ids=await users.get_user_group_ids(user_id))


@router.put(
    "/{user_id}/groups",
    response_model=UserGroupsResponse,
    dependencies=[Depends(require_permissions("user_update"))],
)
async def set_user_groups(
    user_id: int,
    payload: UserGroupsUpdate,
    db: AsyncSession = Depends(get_tenant_db),
) -> UserGroupsResponse:
    group_ids = await UserService(db).set_user_groups(user_id, payload.group_ids)
    return UserGroupsResponse(user_id=user_id, group_ids=group_ids)
