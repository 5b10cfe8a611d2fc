import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Table, func

from saas.database import TenantBase


class UserStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    suspended = "suspended"


# User model. Users are never hard-deleted, only moved between statuses.
class User(TenantBase):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(255), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)  # bcrypt hash, never the plain password
    first_name = Column(String(255), nullable=False, default="")
    last_name = Column(String(255), nullable=False, default="")
    status = Column(String(32), nullable=False, default=UserStatus.active.value, server_default=UserStatus.active.value)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_users_username", "username"),
        Index("idx_users_email", "email"),
        Index("idx_users_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} status={self.status}>"


# Group membership lives in a join table, never on the user row.
user_groups = Table(
    "user_groups",
    TenantBase.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_user_groups_user_id", "user_id"),
    Index("idx_user_groups_group_id", "group_id"),
)
