"""Core HR router — users and employees within the caller's organization."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth.dependencies import (
    check_permission,
    require_organization,
    require_permission,
)
from manahr.common.constants import UserStatus
from manahr.common.pagination import PaginatedResponse, PaginationParams
from manahr.core_hr.models import User
from manahr.core_hr.schemas import (
    EmployeeCreate,
    EmployeeUpdate,
    UserBrief,
    UserCreate,
    UserListFilters,
    UserResponse,
    UserUpdate,
)
from manahr.core_hr.service import UserService
from manahr.database import get_db

users_router = APIRouter(prefix="", tags=["users"])
employees_router = APIRouter(prefix="", tags=["employees"])


# ═════════════════════════════════════════════════════════════════════
# Users
# ═════════════════════════════════════════════════════════════════════


@users_router.get("", response_model=PaginatedResponse[UserResponse])
async def list_users(
    status: Optional[UserStatus] = Query(None),
    role: Optional[int] = Query(None, ge=1, le=100),
    department: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    params: PaginationParams = Depends(),
    user: User = Depends(require_permission("users:read")),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.get_users(
        db,
        user.organization_code,
        params,
        UserListFilters(status=status, role=role, department=department, search=search),
    )


@users_router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    user: User = Depends(require_permission("users:create")),
    db: AsyncSession = Depends(get_db),
):
    created = await UserService.create_user(
        db, body, user.organization_code, actor=user,
    )
    return UserService.to_response(created)


@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: uuid.UUID,
    user: User = Depends(require_organization),
    db: AsyncSession = Depends(get_db),
):
    """Users may read themselves; anything else needs ``users:read``."""
    if user_id != user.id:
        await check_permission(db, user, "users:read")
    return UserService.to_response(
        await UserService.get_user_by_id(db, user_id, user.organization_code)
    )


@users_router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    user: User = Depends(require_permission("users:update")),
    db: AsyncSession = Depends(get_db),
):
    updated = await UserService.update_user(
        db, user_id, body, user.organization_code, actor=user,
    )
    return UserService.to_response(updated)


@users_router.post("/{user_id}/activate", response_model=UserResponse)
async def activate_user(
    user_id: uuid.UUID,
    user: User = Depends(require_permission("users:update")),
    db: AsyncSession = Depends(get_db),
):
    return UserService.to_response(
        await UserService.activate_user(db, user_id, user.organization_code, actor_id=user.id)
    )


@users_router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: uuid.UUID,
    user: User = Depends(require_permission("users:update")),
    db: AsyncSession = Depends(get_db),
):
    return UserService.to_response(
        await UserService.deactivate_user(db, user_id, user.organization_code, actor_id=user.id)
    )


@users_router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: uuid.UUID,
    user: User = Depends(require_permission("users:delete")),
    db: AsyncSession = Depends(get_db),
):
    await UserService.delete_user(db, user_id, user.organization_code, actor_id=user.id)


@users_router.get("/{user_id}/approvers", response_model=list[UserBrief])
async def get_approvers(
    user_id: uuid.UUID,
    user: User = Depends(require_organization),
    db: AsyncSession = Depends(get_db),
):
    """Active users who outrank *user_id* in this organization."""
    target = await UserService.get_user_by_id(db, user_id, user.organization_code)
    return await UserService.get_users_above_role(db, target.role, user.organization_code)


# ═════════════════════════════════════════════════════════════════════
# Employees
# ═════════════════════════════════════════════════════════════════════


@employees_router.post("", response_model=UserResponse, status_code=201)
async def create_employee(
    body: EmployeeCreate,
    user: User = Depends(require_permission("employees:create")),
    db: AsyncSession = Depends(get_db),
):
    created = await UserService.create_employee(
        db, body, user.organization_code, actor=user,
    )
    return UserService.to_response(created)


@employees_router.put("/{employee_id}", response_model=UserResponse)
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    user: User = Depends(require_permission("employees:update")),
    db: AsyncSession = Depends(get_db),
):
    updated = await UserService.update_employee(
        db, employee_id, body, user.organization_code, actor=user,
    )
    return UserService.to_response(updated)
