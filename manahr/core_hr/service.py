"""Core HR service layer — users, employees and organizations."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import generate_password_hash

from manahr.common.audit import create_audit_entry
from manahr.common.constants import (
    RoleLevel,
    UserStatus,
    can_assign_level,
    outranks_clause,
)
from manahr.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from manahr.common.filters import apply_filters, apply_search
from manahr.common.pagination import PaginatedResponse, PaginationParams, paginate
from manahr.common.tenancy import TenantScope, normalize_organization_code
from manahr.core_hr.models import Organization, User
from manahr.core_hr.schemas import (
    EmployeeCreate,
    EmployeeUpdate,
    UserBrief,
    UserCreate,
    UserListFilters,
    UserResponse,
    UserUpdate,
)
from manahr.roles.models import Role

logger = logging.getLogger(__name__)

_EMPLOYEE_FIELDS = (
    "employee_code",
    "gender",
    "dob",
    "department",
    "designation",
    "joining_date",
    "employee_type",
    "reporting_manager_id",
    "bank_details",
)


class OrganizationService:

    @staticmethod
    async def get_by_code(db: AsyncSession, code: str) -> Optional[Organization]:
        result = await db.execute(
            select(Organization).where(Organization.code == code)
        )
        return result.scalars().first()

    @staticmethod
    async def get_or_create(
        db: AsyncSession,
        code: str,
        name: Optional[str] = None,
    ) -> Organization:
        """Return the organization for *code*, creating it on first use."""
        code = normalize_organization_code(code)
        org = await OrganizationService.get_by_code(db, code)
        if org is not None:
            return org
        org = Organization(code=code, name=name or code)
        db.add(org)
        await db.flush()
        logger.info("Created organization %s", code)
        return org


class UserService:
    """Async user and employee operations, always scoped to one organization."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def to_response(user: User) -> UserResponse:
        return UserResponse.model_validate(user)

    @staticmethod
    async def _resolve_role(db: AsyncSession, role: int, organization_code: str) -> None:
        """Canonical levels always resolve; other levels need a Role row."""
        if role in {int(level) for level in RoleLevel}:
            return
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(Role, include_system=True)
            .where(Role.level == role, Role.is_active.is_(True))
        )
        if result.scalars().first() is None:
            raise ValidationException(
                {"role": [f"No role with level {role} exists in this organization."]}
            )

    @staticmethod
    def _check_assignable(actor: Optional[User], level: int) -> None:
        """*actor* may only hand out levels at or below its own authority."""
        if actor is not None and not can_assign_level(actor.role, level):
            raise ForbiddenException("You cannot assign a role that outranks your own.")

    @staticmethod
    async def _ensure_unique(
        db: AsyncSession,
        organization_code: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
        **fields: Any,
    ) -> None:
        for field, value in fields.items():
            if value is None:
                continue
            query = select(User.id).where(
                User.organization_code == organization_code,
                getattr(User, field) == value,
            )
            if exclude_id is not None:
                query = query.where(User.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise ConflictError(field, value)

    @staticmethod
    async def _check_manager(
        db: AsyncSession,
        organization_code: str,
        manager_id: Optional[uuid.UUID],
        user_id: Optional[uuid.UUID] = None,
    ) -> None:
        if manager_id is None:
            return
        if user_id is not None and manager_id == user_id:
            raise ValidationException(
                {"reporting_manager_id": ["An employee cannot report to themselves."]}
            )
        manager = await TenantScope(db, organization_code).get(User, manager_id)
        if manager is None:
            raise NotFoundException("User", str(manager_id))

    @staticmethod
    async def _flush(db: AsyncSession, user: User, apply: Callable[[], None]) -> None:
        """Run *apply* and flush inside a savepoint; unique violations become 409."""
        snapshot: dict[str, Any] = {}
        try:
            async with db.begin_nested():
                apply()
                # Read before flush; a savepoint rollback expires the instance
                snapshot = {
                    "employee_code": user.employee_code,
                    "phone": user.phone,
                    "email": user.email,
                }
        except IntegrityError as exc:
            err = str(exc.orig)
            for field, value in snapshot.items():
                if field in err:
                    raise ConflictError(field, value)
            raise

    # ── Lookup ──────────────────────────────────────────────────────

    @staticmethod
    async def find_user_by_id(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: Optional[str] = None,
    ) -> Optional[UserBrief]:
        """Identity projection for *user_id*, or None."""
        query = select(User).where(User.id == user_id)
        if organization_code is not None:
            query = query.where(User.organization_code == organization_code)
        user = (await db.execute(query)).scalars().first()
        if user is None:
            return None
        return _brief(user)

    @staticmethod
    async def get_user_by_id(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: str,
    ) -> User:
        user = await TenantScope(db, organization_code).get(User, user_id)
        if user is None:
            raise NotFoundException("User", str(user_id))
        return user

    @staticmethod
    async def get_users(
        db: AsyncSession,
        organization_code: str,
        params: PaginationParams,
        filters: Optional[UserListFilters] = None,
    ) -> PaginatedResponse:
        filters = filters or UserListFilters()
        query = TenantScope(db, organization_code).select(User)
        query = apply_filters(
            query,
            User,
            {
                "status": filters.status,
                "role": filters.role,
                "department": filters.department,
            },
        )
        query = apply_search(
            query, User, filters.search, ["full_name", "email", "employee_code"],
        )
        query = query.order_by(User.role.asc(), User.full_name.asc())
        return await paginate(
            db, query, params, model=User, transform=UserService.to_response,
        )

    @staticmethod
    async def get_users_above_role(
        db: AsyncSession,
        role: int,
        organization_code: str,
    ) -> list[UserBrief]:
        """Active users who outrank *role*, most senior first."""
        result = await db.execute(
            TenantScope(db, organization_code)
            .select(User)
            .where(outranks_clause(User.role, role), User.status == UserStatus.active)
            .order_by(User.role.asc(), User.full_name.asc())
        )
        return [_brief(u) for u in result.scalars().all()]

    @staticmethod
    async def count_users_with_role(
        db: AsyncSession,
        role: int,
        organization_code: str,
    ) -> int:
        result = await db.execute(
            select(func.count(User.id)).where(
                User.organization_code == organization_code,
                User.role == role,
            )
        )
        return result.scalar_one()

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_user(
        db: AsyncSession,
        data: UserCreate,
        organization_code: str,
        *,
        actor: Optional[User] = None,
        extra: Optional[dict[str, Any]] = None,
    ) -> User:
        """Create a user in *organization_code* with a hashed password."""
        actor_id = actor.id if actor is not None else None
        UserService._check_assignable(actor, data.role)
        email = data.email.lower()
        await UserService._ensure_unique(
            db, organization_code, email=email, phone=data.phone,
        )
        await UserService._resolve_role(db, data.role, organization_code)

        user = User(
            full_name=data.full_name.strip(),
            email=email,
            phone=data.phone,
            password_hash=generate_password_hash(data.password),
            role=data.role,
            status=UserStatus.active,
            organization=data.organization,
            created_by=actor_id,
            updated_by=actor_id,
            **(extra or {}),
        )
        await UserService._flush(
            db, user, lambda: TenantScope(db, organization_code).add(user),
        )

        await create_audit_entry(
            db,
            action="create",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            organization_code=organization_code,
            new_values={"email": email, "role": data.role},
        )
        return user

    @staticmethod
    async def create_employee(
        db: AsyncSession,
        data: EmployeeCreate,
        organization_code: str,
        *,
        actor: Optional[User] = None,
    ) -> User:
        """Create a user that carries employment fields."""
        await UserService._ensure_unique(
            db, organization_code, employee_code=data.employee_code,
        )
        await UserService._check_manager(db, organization_code, data.reporting_manager_id)

        extra = {f: getattr(data, f) for f in _EMPLOYEE_FIELDS}
        if data.salary_structure is not None:
            extra["salary_structure"] = data.salary_structure.model_dump(mode="json")
        return await UserService.create_user(
            db, data, organization_code, actor=actor, extra=extra,
        )

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: UserUpdate,
        organization_code: str,
        *,
        actor: Optional[User] = None,
    ) -> User:
        user = await UserService.get_user_by_id(db, user_id, organization_code)
        changes = data.model_dump(exclude_unset=True)
        actor_id = actor.id if actor is not None else None
        if changes.get("role") is not None and actor is not None:
            if user.id == actor.id and changes["role"] != user.role:
                raise ForbiddenException("You cannot change your own role.")
            UserService._check_assignable(actor, changes["role"])
            UserService._check_assignable(actor, user.role)

        if "email" in changes and changes["email"]:
            changes["email"] = changes["email"].lower()
        await UserService._ensure_unique(
            db,
            organization_code,
            exclude_id=user.id,
            email=changes.get("email"),
            phone=changes.get("phone"),
            employee_code=changes.get("employee_code"),
        )
        if changes.get("role") is not None:
            await UserService._resolve_role(db, changes["role"], organization_code)
        if "reporting_manager_id" in changes:
            await UserService._check_manager(
                db, organization_code, changes["reporting_manager_id"], user.id,
            )
        if "salary_structure" in changes and changes["salary_structure"] is not None:
            changes["salary_structure"] = data.salary_structure.model_dump(mode="json")

        old_values = {k: _jsonable(getattr(user, k)) for k in changes}
        def apply() -> None:
            for field, value in changes.items():
                setattr(user, field, value)
            user.updated_by = actor_id

        await UserService._flush(db, user, apply)

        await create_audit_entry(
            db,
            action="update",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values=old_values,
            new_values={k: _jsonable(v) for k, v in changes.items()},
        )
        return user

    @staticmethod
    async def update_employee(
        db: AsyncSession,
        user_id: uuid.UUID,
        data: EmployeeUpdate,
        organization_code: str,
        *,
        actor: Optional[User] = None,
    ) -> User:
        return await UserService.update_user(
            db, user_id, data, organization_code, actor=actor,
        )

    @staticmethod
    async def _set_status(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: str,
        status: UserStatus,
        actor_id: Optional[uuid.UUID],
    ) -> User:
        user = await UserService.get_user_by_id(db, user_id, organization_code)
        old = user.status
        user.status = status
        user.updated_by = actor_id
        await db.flush()
        await create_audit_entry(
            db,
            action="status_change",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"status": _jsonable(old)},
            new_values={"status": status.value},
        )
        return user

    @staticmethod
    async def activate_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> User:
        return await UserService._set_status(
            db, user_id, organization_code, UserStatus.active, actor_id,
        )

    @staticmethod
    async def deactivate_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> User:
        """Soft-retire a user."""
        return await UserService._set_status(
            db, user_id, organization_code, UserStatus.inactive, actor_id,
        )

    @staticmethod
    async def delete_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        organization_code: str,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Hard delete. Prefer ``deactivate_user`` for leavers."""
        user = await UserService.get_user_by_id(db, user_id, organization_code)
        await create_audit_entry(
            db,
            action="delete",
            entity_type="user",
            entity_id=user.id,
            actor_id=actor_id,
            organization_code=organization_code,
            old_values={"email": user.email, "role": user.role},
        )
        await db.delete(user)
        await db.flush()
        logger.info("Deleted user %s from %s", user_id, organization_code)


def _jsonable(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (uuid.UUID,)):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def _brief(user: User) -> UserBrief:
    return UserBrief(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        employee_code=user.employee_code,
        organization_code=user.organization_code,
        status=user.status,
    )
