from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Permission name, e.g. 'report_view'.")


class PermissionUpdate(PermissionCreate):
    pass


class PermissionResponse(BaseModel):
    id: int
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    permission_ids: list[int] = Field(default_factory=list, description="Permissions granted on creation.")


class GroupUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class GroupPermissionsUpdate(BaseModel):
    permission_ids: list[int] = Field(..., description="Full replacement set of permission ids.")


class GroupPermissionGrant(BaseModel):
    permission_id: int = Field(..., ge=1)


class GroupResponse(BaseModel):
    id: int
    name: str
    permission_ids: list[int] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
