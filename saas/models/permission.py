"""Group and permission models, created inside every tenant schema."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Table, func

from saas.database import TenantBase


class Permission(TenantBase):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Permission id={self.id} name={self.name!r}>"


class Group(TenantBase):
    __tablename__ = "groups"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<Group id={self.id} name={self.name!r}>"


group_permissions = Table(
    "group_permissions",
    TenantBase.metadata,
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Index("idx_group_permissions_group_id", "group_id"),
    Index("idx_group_permissions_permission_id", "permission_id"),
)
