"""Role and permission service layer.

Roles belong to one organization (or to nobody, for system roles) and carry
an ordered permission set. Users reference a role by its numeric level, so
the authority comparisons here all go through ``outranks`` and its SQL
forms in ``manahr.common.constants``.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.common.audit import create_audit_entry
from manahr.common.constants import (
    DEFAULT_ROLE_PERMISSIONS,
    DataAccessLevel,
    PermissionAction,
    PermissionModule,
    RoleLevel,
    can_assign_level,
    outranks_or_equal_clause,
)
from manahr.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from manahr.common.tenancy import TenantScope
from manahr.core_hr.models import User
from manahr.core_hr.service import UserService
from manahr.roles.models import Permission, Role, RolePermission
from manahr.roles.schemas import (
    PermissionCreate,
    PermissionUpdate,
    RoleCreate,
    RoleUpdate,
)

logger = logging.getLogger(__name__)

_SYSTEM_ROLE_ACCESS = {
    RoleLevel.SUPER_ADMIN: DataAccessLevel.ALL,
    RoleLevel.ADMIN: DataAccessLevel.ALL,
    RoleLevel.HR: DataAccessLevel.ALL,
    RoleLevel.MANAGER: DataAccessLevel.TEAM,
    RoleLevel.EMPLOYEE: DataAccessLevel.OWN,
}


def _titleize(value: str) -> str:
    return value.replace("_", " ").title()


# ═════════════════════════════════════════════════════════════════════
# PermissionService
# ═════════════════════════════════════════════════════════════════════


class PermissionService:
    """Permission catalogue: organization-scoped and system-wide entries."""

    @staticmethod
    def _visible(organization_code: Optional[str], include_system: bool = True):
        column = Permission.organization_code
        if organization_code is None:
            return column.is_(None)
        if include_system:
            return or_(column == organization_code, column.is_(None))
        return column == organization_code

    @staticmethod
    async def _name_taken(
        db: AsyncSession,
        name: str,
        organization_code: Optional[str],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(Permission.id).where(Permission.name == name)
        if organization_code is None:
            query = query.where(Permission.is_system_permission.is_(True))
        else:
            query = query.where(Permission.organization_code == organization_code)
        if exclude_id is not None:
            query = query.where(Permission.id != exclude_id)
        return (await db.execute(query)).first() is not None

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_permission(
        db: AsyncSession,
        data: PermissionCreate,
        organization_code: Optional[str] = None,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Permission:
        """Create a permission. No organization code means a system permission."""
        if await PermissionService._name_taken(db, data.name, organization_code):
            raise ConflictError("name", data.name)

        permission = Permission(
            name=data.name,
            display_name=data.display_name or data.name,
            description=data.description,
            module=data.module,
            action=data.action,
            resource=data.resource,
            is_active=True,
            is_system_permission=organization_code is None,
            organization_code=organization_code,
        )
        db.add(permission)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="permission",
            entity_id=permission.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={"name": permission.name},
        )
        return permission

    @staticmethod
    async def bulk_create_permissions(
        db: AsyncSession,
        items: Sequence[PermissionCreate],
        organization_code: Optional[str],
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[Permission]:
        """All-or-nothing insert of several permissions."""
        names = [item.name for item in items]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConflictError(
                "name",
                ", ".join(duplicates),
                detail=f"Duplicate permission names in request: {', '.join(duplicates)}",
            )

        existing = (
            await db.execute(
                select(Permission.name).where(
                    Permission.name.in_(names),
                    PermissionService._visible(organization_code, include_system=False),
                )
            )
        ).scalars().all()
        if existing:
            raise ConflictError(
                "name",
                ", ".join(sorted(existing)),
                detail=f"Permissions already exist: {', '.join(sorted(existing))}",
            )

        created = []
        for item in items:
            permission = Permission(
                name=item.name,
                display_name=item.display_name or item.name,
                description=item.description,
                module=item.module,
                action=item.action,
                resource=item.resource,
                is_active=True,
                is_system_permission=organization_code is None,
                organization_code=organization_code,
            )
            db.add(permission)
            created.append(permission)
        await db.flush()
        logger.info("Bulk-created %d permissions for %s", len(created), organization_code or "system")
        return created

    @staticmethod
    async def initialize_default_permissions(
        db: AsyncSession,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[Permission]:
        """Ensure every ``module:action`` pair exists as a system permission."""
        existing = {
            p.name: p
            for p in (
                await db.execute(
                    select(Permission).where(Permission.is_system_permission.is_(True))
                )
            ).scalars().all()
        }

        created = []
        for module in PermissionModule:
            for action in PermissionAction:
                name = f"{module.value}:{action.value}"
                if name in existing:
                    continue
                permission = Permission(
                    name=name,
                    display_name=f"{_titleize(action.value)} {_titleize(module.value)}",
                    description=f"{action.value.capitalize()} {module.value}",
                    module=module,
                    action=action,
                    resource="*",
                    is_active=True,
                    is_system_permission=True,
                    organization_code=None,
                )
                db.add(permission)
                created.append(permission)
        if created:
            await db.flush()
            logger.info("Initialized %d default permissions", len(created))
        return [*existing.values(), *created]

    # ── Read ────────────────────────────────────────────────────────

    @staticmethod
    async def get_all_permissions(
        db: AsyncSession,
        organization_code: str,
        *,
        include_system: bool = True,
        module: Optional[PermissionModule] = None,
        active_only: bool = False,
    ) -> list[Permission]:
        query = select(Permission).where(
            PermissionService._visible(organization_code, include_system)
        )
        if module is not None:
            query = query.where(Permission.module == module)
        if active_only:
            query = query.where(Permission.is_active.is_(True))
        query = query.order_by(Permission.module, Permission.action, Permission.resource)
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def get_permission_by_id(
        db: AsyncSession,
        permission_id: uuid.UUID,
        organization_code: Optional[str],
    ) -> Permission:
        result = await db.execute(
            select(Permission).where(
                Permission.id == permission_id,
                PermissionService._visible(organization_code),
            )
        )
        permission = result.scalars().first()
        if permission is None:
            raise NotFoundException("Permission", str(permission_id))
        return permission

    @staticmethod
    async def get_permission_by_name(
        db: AsyncSession,
        name: str,
        organization_code: Optional[str],
    ) -> Permission:
        """Organization entries shadow system entries of the same name."""
        result = await db.execute(
            select(Permission)
            .where(Permission.name == name, PermissionService._visible(organization_code))
            .order_by(Permission.is_system_permission.asc())
        )
        permission = result.scalars().first()
        if permission is None:
            raise NotFoundException("Permission", name)
        return permission

    @staticmethod
    async def get_permissions_by_module(
        db: AsyncSession,
        organization_code: str,
    ) -> dict[str, list[Permission]]:
        grouped: dict[str, list[Permission]] = {}
        for permission in await PermissionService.get_all_permissions(
            db, organization_code, active_only=True,
        ):
            grouped.setdefault(permission.module.value, []).append(permission)
        return grouped

    @staticmethod
    async def search_permissions(
        db: AsyncSession,
        term: str,
        organization_code: str,
    ) -> list[Permission]:
        pattern = f"%{term.strip()}%"
        result = await db.execute(
            select(Permission)
            .where(
                PermissionService._visible(organization_code),
                Permission.is_active.is_(True),
                or_(
                    Permission.name.ilike(pattern),
                    Permission.display_name.ilike(pattern),
                    Permission.description.ilike(pattern),
                ),
            )
            .order_by(Permission.module, Permission.action, Permission.resource)
        )
        return list(result.scalars().all())

    # ── Update / delete ─────────────────────────────────────────────

    @staticmethod
    async def _get_mutable(
        db: AsyncSession,
        permission_id: uuid.UUID,
        organization_code: str,
        verb: str,
    ) -> Permission:
        permission = await PermissionService.get_permission_by_id(
            db, permission_id, organization_code,
        )
        if permission.is_system_permission:
            raise ForbiddenException(f"Cannot {verb} system permission.")
        return permission

    @staticmethod
    async def update_permission(
        db: AsyncSession,
        permission_id: uuid.UUID,
        data: PermissionUpdate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Permission:
        permission = await PermissionService._get_mutable(
            db, permission_id, organization_code, "update",
        )
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != permission.name:
            if await PermissionService._name_taken(
                db, changes["name"], organization_code, exclude_id=permission.id,
            ):
                raise ConflictError("name", changes["name"])

        old_values = {k: str(getattr(permission, k)) for k in changes}
        for field, value in changes.items():
            setattr(permission, field, value)
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="permission",
            entity_id=permission.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=old_values,
            new_values={k: str(v) for k, v in changes.items()},
        )
        return permission

    @staticmethod
    async def delete_permission(
        db: AsyncSession,
        permission_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        permission = await PermissionService._get_mutable(
            db, permission_id, organization_code, "delete",
        )
        in_use = (
            await db.execute(
                select(func.count()).select_from(RolePermission).where(
                    RolePermission.permission_id == permission.id
                )
            )
        ).scalar_one()
        if in_use:
            raise ConflictError(
                "permission",
                permission.name,
                detail=f"Cannot delete permission assigned to {in_use} role(s).",
            )

        await create_audit_entry(
            db,
            action="delete",
            entity_type="permission",
            entity_id=permission.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"name": permission.name},
        )
        await db.delete(permission)
        await db.flush()


# ═════════════════════════════════════════════════════════════════════
# RoleService
# ═════════════════════════════════════════════════════════════════════


class RoleService:
    """Per-organization roles with ordered permission sets."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _load_permissions(
        db: AsyncSession,
        permission_ids: Sequence[uuid.UUID],
        organization_code: str,
    ) -> list[Permission]:
        """Resolve ids to permissions visible to the organization, in request order."""
        if not permission_ids:
            return []
        result = await db.execute(
            select(Permission).where(
                Permission.id.in_(permission_ids),
                PermissionService._visible(organization_code),
            )
        )
        found = {p.id: p for p in result.scalars().all()}
        missing = [str(pid) for pid in permission_ids if pid not in found]
        if missing:
            raise NotFoundException("Permission", ", ".join(missing))
        return [found[pid] for pid in dict.fromkeys(permission_ids)]

    @staticmethod
    async def _name_taken(
        db: AsyncSession,
        name: str,
        organization_code: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        query = select(Role.id).where(
            Role.name == name,
            Role.organization_code == organization_code,
        )
        if exclude_id is not None:
            query = query.where(Role.id != exclude_id)
        return (await db.execute(query)).first() is not None

    @staticmethod
    async def _get_mutable(
        db: AsyncSession,
        role_id: uuid.UUID,
        organization_code: str,
        detail: str,
    ) -> Role:
        role = await RoleService.get_role_by_id(db, role_id, organization_code)
        if role.is_system_role:
            raise ForbiddenException(detail)
        return role

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_role(
        db: AsyncSession,
        data: RoleCreate,
        organization_code: str,
        *,
        actor: Optional[User] = None,
    ) -> Role:
        actor_id = actor.id if actor is not None else None
        if actor is not None and not can_assign_level(actor.role, data.level):
            raise ForbiddenException("You cannot create a role that outranks your own.")
        if await RoleService._name_taken(db, data.name, organization_code):
            raise ConflictError("name", data.name)

        permissions = await RoleService._load_permissions(
            db, data.permission_ids, organization_code,
        )
        role = Role(
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            level=data.level,
            data_access_level=int(data.data_access_level),
            is_active=data.is_active,
            is_system_role=False,
            created_by=actor_id,
            updated_by=actor_id,
            permission_links=[
                RolePermission(permission=p, position=i) for i, p in enumerate(permissions)
            ],
        )
        try:
            async with db.begin_nested():
                TenantScope(db, organization_code).add(role)
        except IntegrityError:
            raise ConflictError("name", data.name)

        await create_audit_entry(
            db,
            action="create",
            entity_type="role",
            entity_id=role.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={"name": data.name, "level": data.level},
        )
        logger.info("Role %s (level %d) created in %s", data.name, data.level, organization_code)
        return role

    @staticmethod
    async def initialize_system_roles(
        db: AsyncSession,
        permissions: Optional[Sequence[Permission]] = None,
    ) -> list[Role]:
        """Create the five canonical system roles if they are missing."""
        existing = {
            r.level: r
            for r in (
                await db.execute(
                    select(Role).where(
                        Role.is_system_role.is_(True),
                        Role.organization_code.is_(None),
                    )
                )
            ).scalars().all()
        }
        by_name = {p.name: p for p in (permissions or [])}

        roles = []
        for level in RoleLevel:
            if int(level) in existing:
                roles.append(existing[int(level)])
                continue
            granted = [by_name[n] for n in DEFAULT_ROLE_PERMISSIONS[level] if n in by_name]
            role = Role(
                name=level.name.lower(),
                display_name=_titleize(level.name.lower()),
                level=int(level),
                data_access_level=int(_SYSTEM_ROLE_ACCESS[level]),
                is_active=True,
                is_system_role=True,
                organization_code=None,
                permission_links=[
                    RolePermission(permission=p, position=i) for i, p in enumerate(granted)
                ],
            )
            db.add(role)
            roles.append(role)
        await db.flush()
        return roles

    # ── Read ────────────────────────────────────────────────────────

    @staticmethod
    async def get_all_roles(
        db: AsyncSession,
        organization_code: str,
        *,
        include_system: bool = True,
    ) -> list[Role]:
        query = (
            TenantScope(db, organization_code)
            .select(Role, include_system=include_system)
            .order_by(Role.level.asc(), Role.name.asc())
        )
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def get_role_by_id(
        db: AsyncSession,
        role_id: uuid.UUID,
        organization_code: str,
    ) -> Role:
        role = await TenantScope(db, organization_code).get(
            Role, role_id, include_system=True,
        )
        if role is None:
            raise NotFoundException("Role", str(role_id))
        return role

    @staticmethod
    async def get_roles_by_level(
        db: AsyncSession,
        max_level: int,
        organization_code: str,
    ) -> list[Role]:
        """Non-system roles at or above the authority of *max_level*."""
        query = (
            TenantScope(db, organization_code)
            .select(Role)
            .where(
                outranks_or_equal_clause(Role.level, max_level),
                Role.is_system_role.is_(False),
            )
            .order_by(Role.level.asc(), Role.name.asc())
        )
        return list((await db.execute(query)).scalars().all())

    @staticmethod
    async def get_role_for_level(
        db: AsyncSession,
        level: int,
        organization_code: str,
    ) -> Optional[Role]:
        """The role a user with *level* holds: organization role first, then system."""
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(Role, include_system=True)
            .where(Role.level == level, Role.is_active.is_(True))
            .order_by(Role.is_system_role.asc(), Role.created_at.asc())
        )
        return result.scalars().first()

    @staticmethod
    async def get_effective_permissions(
        db: AsyncSession,
        level: int,
        organization_code: str,
    ) -> list[str]:
        """Permission names granted to *level*, with the canonical defaults as fallback."""
        role = await RoleService.get_role_for_level(db, level, organization_code)
        if role is not None:
            return [p.full_name for p in role.permissions if p.is_active]
        try:
            return list(DEFAULT_ROLE_PERMISSIONS[RoleLevel(level)])
        except ValueError:
            return []

    @staticmethod
    async def has_permission(
        db: AsyncSession,
        role_id: uuid.UUID,
        permission_name: str,
        organization_code: Optional[str] = None,
    ) -> bool:
        query = select(Role).where(Role.id == role_id)
        if organization_code is not None:
            query = TenantScope(db, organization_code).filter(query, Role, include_system=True)
        role = (await db.execute(query)).scalars().first()
        if role is None:
            return False
        return any(p.is_active and p.grants(permission_name) for p in role.permissions)

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_role(
        db: AsyncSession,
        role_id: uuid.UUID,
        data: RoleUpdate,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Role:
        role = await RoleService._get_mutable(
            db, role_id, organization_code, "Cannot update system role.",
        )
        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") and changes["name"] != role.name:
            if await RoleService._name_taken(
                db, changes["name"], organization_code, exclude_id=role.id,
            ):
                raise ConflictError("name", changes["name"])
        if "data_access_level" in changes and changes["data_access_level"] is not None:
            changes["data_access_level"] = int(changes["data_access_level"])

        old_values = {k: getattr(role, k) for k in changes}
        for field, value in changes.items():
            setattr(role, field, value)
        role.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="update",
            entity_type="role",
            entity_id=role.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=old_values,
            new_values=changes,
        )
        return role

    @staticmethod
    async def delete_role(
        db: AsyncSession,
        role_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        role = await RoleService._get_mutable(
            db, role_id, organization_code, "Cannot delete system role.",
        )
        assigned = await UserService.count_users_with_role(db, role.level, organization_code)
        if assigned:
            raise ConflictError(
                "role",
                role.name,
                detail=f"Cannot delete role that is assigned to {assigned} users.",
            )

        await create_audit_entry(
            db,
            action="delete",
            entity_type="role",
            entity_id=role.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"name": role.name, "level": role.level},
        )
        await db.delete(role)
        await db.flush()

    @staticmethod
    async def add_permissions(
        db: AsyncSession,
        role_id: uuid.UUID,
        permission_ids: Sequence[uuid.UUID],
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Role:
        role = await RoleService._get_mutable(
            db, role_id, organization_code, "Cannot modify system role permissions.",
        )
        permissions = await RoleService._load_permissions(db, permission_ids, organization_code)

        current = set(role.permission_ids)
        new = [p for p in permissions if p.id not in current]
        if not new:
            raise ConflictError(
                "permission_ids",
                ", ".join(str(pid) for pid in permission_ids),
                detail="All permissions are already assigned to this role.",
            )

        start = len(role.permission_links)
        for offset, permission in enumerate(new):
            role.permission_links.append(
                RolePermission(permission=permission, position=start + offset)
            )
        role.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="add_permissions",
            entity_type="role",
            entity_id=role.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={"permissions": [p.name for p in new]},
        )
        return role

    @staticmethod
    async def remove_permissions(
        db: AsyncSession,
        role_id: uuid.UUID,
        permission_ids: Sequence[uuid.UUID],
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Role:
        role = await RoleService._get_mutable(
            db, role_id, organization_code, "Cannot modify system role permissions.",
        )
        if not permission_ids:
            raise ValidationException({"permission_ids": ["At least one permission is required."]})

        drop = set(permission_ids)
        kept = [link for link in role.permission_links if link.permission_id not in drop]
        removed = [link.permission.name for link in role.permission_links if link.permission_id in drop]
        role.permission_links = kept
        for position, link in enumerate(kept):
            link.position = position
        role.updated_by = actor_id
        await db.flush()

        await create_audit_entry(
            db,
            action="remove_permissions",
            entity_type="role",
            entity_id=role.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"permissions": removed},
        )
        return role
