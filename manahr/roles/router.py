"""Roles & permissions routers.

Reads need ``settings:read``; mutations need ``settings:configure``.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth.dependencies import require_level, require_permission
from manahr.common.constants import PermissionModule, RoleLevel
from manahr.core_hr.models import User
from manahr.database import get_db
from manahr.roles.schemas import (
    HasPermissionResponse,
    PermissionBulkCreate,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RoleCreate,
    RolePermissionsRequest,
    RoleResponse,
    RoleUpdate,
)
from manahr.roles.service import PermissionService, RoleService

roles_router = APIRouter(prefix="", tags=["roles"])
permissions_router = APIRouter(prefix="", tags=["permissions"])

_read = require_permission("settings:read")
_configure = require_permission("settings:configure")


# ═════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════


@roles_router.get("", response_model=list[RoleResponse])
async def list_roles(
    include_system: bool = Query(True),
    max_level: Optional[int] = Query(None, ge=1, le=100),
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    if max_level is not None:
        return await RoleService.get_roles_by_level(db, max_level, user.organization_code)
    return await RoleService.get_all_roles(
        db, user.organization_code, include_system=include_system,
    )


@roles_router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    body: RoleCreate,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.create_role(db, body, user.organization_code, actor=user)


@roles_router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: uuid.UUID,
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.get_role_by_id(db, role_id, user.organization_code)


@roles_router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.update_role(
        db, role_id, body, user.organization_code, actor_id=user.id,
    )


@roles_router.delete("/{role_id}", status_code=204)
async def delete_role(
    role_id: uuid.UUID,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    await RoleService.delete_role(db, role_id, user.organization_code, actor_id=user.id)


@roles_router.post("/{role_id}/permissions", response_model=RoleResponse)
async def add_role_permissions(
    role_id: uuid.UUID,
    body: RolePermissionsRequest,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.add_permissions(
        db, role_id, body.permission_ids, user.organization_code, actor_id=user.id,
    )


@roles_router.delete("/{role_id}/permissions", response_model=RoleResponse)
async def remove_role_permissions(
    role_id: uuid.UUID,
    body: RolePermissionsRequest,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await RoleService.remove_permissions(
        db, role_id, body.permission_ids, user.organization_code, actor_id=user.id,
    )


@roles_router.get("/{role_id}/has-permission", response_model=HasPermissionResponse)
async def role_has_permission(
    role_id: uuid.UUID,
    permission: str = Query(..., min_length=3, description="e.g. users:create"),
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    granted = await RoleService.has_permission(
        db, role_id, permission, user.organization_code,
    )
    return HasPermissionResponse(role_id=role_id, permission=permission, granted=granted)


# ═════════════════════════════════════════════════════════════════════
# Permissions
# ═════════════════════════════════════════════════════════════════════


@permissions_router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    include_system: bool = Query(True),
    module: Optional[PermissionModule] = Query(None),
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.get_all_permissions(
        db, user.organization_code, include_system=include_system, module=module,
    )


@permissions_router.get("/by-module", response_model=dict[str, list[PermissionResponse]])
async def permissions_by_module(
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.get_permissions_by_module(db, user.organization_code)


@permissions_router.get("/search", response_model=list[PermissionResponse])
async def search_permissions(
    q: str = Query(..., min_length=1, max_length=100),
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.search_permissions(db, q, user.organization_code)


@permissions_router.get("/name/{name}", response_model=PermissionResponse)
async def get_permission_by_name(
    name: str,
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.get_permission_by_name(db, name, user.organization_code)


@permissions_router.post("", response_model=PermissionResponse, status_code=201)
async def create_permission(
    body: PermissionCreate,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.create_permission(
        db, body, user.organization_code, actor_id=user.id,
    )


@permissions_router.post("/bulk", response_model=list[PermissionResponse], status_code=201)
async def bulk_create_permissions(
    body: PermissionBulkCreate,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.bulk_create_permissions(
        db, body.permissions, user.organization_code, actor_id=user.id,
    )


@permissions_router.post("/initialize", response_model=list[PermissionResponse])
async def initialize_permissions(
    user: User = Depends(require_level(RoleLevel.SUPER_ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    """Seed the system ``module:action`` catalogue. Super admins only."""
    return await PermissionService.initialize_default_permissions(db, actor_id=user.id)


@permissions_router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: uuid.UUID,
    user: User = Depends(_read),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.get_permission_by_id(
        db, permission_id, user.organization_code,
    )


@permissions_router.put("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: uuid.UUID,
    body: PermissionUpdate,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    return await PermissionService.update_permission(
        db, permission_id, body, user.organization_code, actor_id=user.id,
    )


@permissions_router.delete("/{permission_id}", status_code=204)
async def delete_permission(
    permission_id: uuid.UUID,
    user: User = Depends(_configure),
    db: AsyncSession = Depends(get_db),
):
    await PermissionService.delete_permission(
        db, permission_id, user.organization_code, actor_id=user.id,
    )
