"""Access-control ORM models: Role, Permission, RolePermission."""

from __future__ import annotations

import uuid
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from manahr.common.audit import AuditMixin, TimestampMixin
from manahr.common.constants import (
    DataAccessLevel,
    PermissionAction,
    PermissionModule,
)
from manahr.database import Base


class Permission(Base, TimestampMixin):
    __tablename__ = "permissions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    display_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.String(500))
    module: Mapped[PermissionModule] = mapped_column(
        sa.Enum(PermissionModule, name="permission_module", native_enum=False, length=20),
        nullable=False,
    )
    action: Mapped[PermissionAction] = mapped_column(
        sa.Enum(
            PermissionAction,
            name="permission_action",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    resource: Mapped[Optional[str]] = mapped_column(sa.String(100))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    is_system_permission: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    organization_code: Mapped[Optional[str]] = mapped_column(sa.String(10))

    __table_args__ = (
        sa.UniqueConstraint("organization_code", "name", name="uq_permissions_org_name"),
        sa.Index("ix_permissions_module_action", "module", "action"),
    )

    @property
    def full_name(self) -> str:
        base = f"{self.module.value}:{self.action.value}"
        return f"{base}:{self.resource}" if self.resource else base

    def grants(self, permission_name: str) -> bool:
        """True when this permission satisfies a ``module:action`` check."""
        return permission_name in (
            self.name,
            self.full_name,
            f"{self.module.value}:{self.action.value}",
        )


class RolePermission(Base):
    """Ordered link between a role and a permission."""

    __tablename__ = "role_permissions"

    role_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    role: Mapped[Role] = relationship(back_populates="permission_links")
    permission: Mapped[Permission] = relationship(lazy="joined")


class Role(Base, AuditMixin):
    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(50), nullable=False)
    display_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.String(500))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    is_system_role: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    level: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    data_access_level: Mapped[int] = mapped_column(
        sa.Integer, nullable=False, default=int(DataAccessLevel.OWN)
    )
    organization_code: Mapped[Optional[str]] = mapped_column(sa.String(10))

    permission_links: Mapped[list[RolePermission]] = relationship(
        back_populates="role",
        cascade="all, delete-orphan",
        order_by="RolePermission.position",
        lazy="selectin",
    )

    __table_args__ = (
        sa.UniqueConstraint("organization_code", "name", name="uq_roles_org_name"),
        sa.CheckConstraint("level BETWEEN 1 AND 100", name="ck_roles_level_range"),
        sa.Index("ix_roles_org_level", "organization_code", "level"),
    )

    @property
    def permissions(self) -> list[Permission]:
        return [link.permission for link in self.permission_links]

    @property
    def permission_ids(self) -> list[uuid.UUID]:
        return [link.permission_id for link in self.permission_links]

    def __repr__(self) -> str:
        return f"<Role {self.name} L{self.level} ({self.organization_code or 'system'})>"
