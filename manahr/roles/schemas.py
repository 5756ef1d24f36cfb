"""Role & permission Pydantic v2 schemas."""


import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from manahr.common.constants import (
    MAX_ROLE_LEVEL,
    MIN_ROLE_LEVEL,
    DataAccessLevel,
    PermissionAction,
    PermissionModule,
)


# ═════════════════════════════════════════════════════════════════════
# Permissions
# ═════════════════════════════════════════════════════════════════════


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    module: PermissionModule
    action: PermissionAction
    resource: Optional[str] = Field(None, max_length=100)


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    module: Optional[PermissionModule] = None
    action: Optional[PermissionAction] = None
    resource: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class PermissionBulkCreate(BaseModel):
    permissions: list[PermissionCreate] = Field(..., min_length=1)


class PermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    display_name: str
    description: Optional[str] = None
    module: PermissionModule
    action: PermissionAction
    resource: Optional[str] = None
    full_name: str
    is_active: bool
    is_system_permission: bool
    organization_code: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    display_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    level: int = Field(..., ge=MIN_ROLE_LEVEL, le=MAX_ROLE_LEVEL)
    data_access_level: DataAccessLevel = DataAccessLevel.OWN
    permission_ids: list[uuid.UUID] = Field(default_factory=list)
    is_active: bool = True


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    level: Optional[int] = Field(None, ge=MIN_ROLE_LEVEL, le=MAX_ROLE_LEVEL)
    data_access_level: Optional[DataAccessLevel] = None
    is_active: Optional[bool] = None


class RolePermissionsRequest(BaseModel):
    permission_ids: list[uuid.UUID] = Field(..., min_length=1)


class RoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    display_name: str
    description: Optional[str] = None
    level: int
    data_access_level: int
    is_active: bool
    is_system_role: bool
    organization_code: Optional[str] = None
    permissions: list[PermissionResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class HasPermissionResponse(BaseModel):
    role_id: uuid.UUID
    permission: str
    granted: bool
