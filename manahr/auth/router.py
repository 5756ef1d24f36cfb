"""Auth router — register, login, token refresh, logout, profile, password change."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth import service as auth_service
from manahr.auth.dependencies import get_current_user
from manahr.auth.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    MeResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    TokenResponse,
)
from manahr.common.audit import create_audit_entry
from manahr.common.rate_limit import limiter, login_limit
from manahr.common.tenancy import get_organization_code
from manahr.core_hr.models import User
from manahr.core_hr.service import UserService
from manahr.database import get_db
from manahr.roles.service import RoleService

router = APIRouter(prefix="", tags=["auth"])


def _client(request: Request) -> tuple[str | None, str | None]:
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


# ── POST /register ──────────────────────────────────────────────────

@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    organization_code: str = Depends(get_organization_code),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.register(db, body, organization_code)
    ip, user_agent = _client(request)
    access_token, refresh_token, expires_in = await auth_service.create_session(
        db, user, ip, user_agent,
    )
    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserService.to_response(user),
    )


# ── POST /login ─────────────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
@limiter.limit(login_limit)
async def login(
    body: LoginRequest,
    request: Request,
    organization_code: str = Depends(get_organization_code),
    db: AsyncSession = Depends(get_db),
):
    user = await auth_service.authenticate(db, body.email, body.password, organization_code)
    ip, user_agent = _client(request)
    access_token, refresh_token, expires_in = await auth_service.create_session(
        db, user, ip, user_agent,
    )

    await create_audit_entry(
        db,
        action="login",
        entity_type="user_session",
        entity_id=user.id,
        actor_id=user.id,
        organization_code=organization_code,
        ip_address=ip,
        user_agent=user_agent,
    )

    return TokenResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        user=UserService.to_response(user),
    )


# ── POST /refresh ───────────────────────────────────────────────────

@router.post("/refresh", response_model=RefreshResponse)
async def refresh_token(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
):
    access_token, new_refresh, expires_in = await auth_service.refresh_access_token(
        db, body.refresh_token,
    )
    return RefreshResponse(
        access_token=access_token,
        refresh_token=new_refresh,
        expires_in=expires_in,
    )


# ── POST /logout ────────────────────────────────────────────────────

@router.post("/logout")
async def logout(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    token = request.headers.get("Authorization", "").removeprefix("Bearer ")
    await auth_service.revoke_session(db, auth_service.hash_token(token))

    ip, user_agent = _client(request)
    await create_audit_entry(
        db,
        action="logout",
        entity_type="user_session",
        entity_id=user.id,
        actor_id=user.id,
        organization_code=user.organization_code,
        ip_address=ip,
        user_agent=user_agent,
    )
    return {"message": "Logged out successfully"}


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=MeResponse)
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    role = await RoleService.get_role_for_level(db, user.role, user.organization_code)
    permissions = await RoleService.get_effective_permissions(
        db, user.role, user.organization_code,
    )
    return MeResponse(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        role=user.role,
        role_name=role.display_name if role else None,
        organization_code=user.organization_code,
        permissions=permissions,
    )


# ── POST /change-password ───────────────────────────────────────────

@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.change_password(db, user, body.current_password, body.new_password)
    return {"message": "Password changed. Please sign in again."}
