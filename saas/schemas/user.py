from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50, description="Username must be between 3 and 50 characters.")
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128, description="Password must be between 6 and 128 characters.")
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class UserGroupsUpdate(BaseModel):
    group_ids: list[int] = Field(..., description="Replaces every group membership of the user.")


class UserGroupsResponse(BaseModel):
    user_id: int
    group_ids: list[int]


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    status: str
    last_login: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
