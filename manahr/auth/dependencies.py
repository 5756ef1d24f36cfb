"""Auth dependencies — JWT validation, tenant match, level and permission checks."""

from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.auth.models import UserSession
from manahr.auth.service import hash_token
from manahr.common.constants import RoleLevel, UserStatus, outranks_or_equal
from manahr.common.datetime_utils import utcnow
from manahr.common.exceptions import ForbiddenException, UnauthorizedException
from manahr.common.tenancy import get_organization_code
from manahr.config import settings
from manahr.core_hr.models import User
from manahr.database import get_db
from manahr.roles.service import RoleService


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise UnauthorizedException("Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate JWT, verify session, return the authenticated User."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise UnauthorizedException("Token has expired.")
    except JWTError:
        raise UnauthorizedException("Invalid token.")

    if payload.get("type") != "access":
        raise UnauthorizedException("Invalid token type.")

    # Session must exist, not revoked, not expired
    result = await db.execute(
        select(UserSession).where(
            UserSession.token_hash == hash_token(token),
            UserSession.is_revoked.is_(False),
            UserSession.expires_at > utcnow(),
        ),
    )
    if result.scalars().first() is None:
        raise UnauthorizedException("Session invalid or expired.")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise UnauthorizedException("Invalid token subject.")

    user = (
        await db.execute(
            select(User).where(User.id == user_id, User.status == UserStatus.active)
        )
    ).scalars().first()
    if user is None:
        raise UnauthorizedException("User account is inactive or not found.")

    # Role comes from the row, not the token, so demotions apply immediately
    request.state.user_id = user.id
    request.state.user_role = user.role
    request.state.user_organization_code = user.organization_code
    return user


# ── Tenant gate ─────────────────────────────────────────────────────

async def require_organization(
    request: Request,
    user: User = Depends(get_current_user),
    organization_code: str = Depends(get_organization_code),
) -> User:
    """Authenticated user whose organization matches the request's organization code."""
    if user.organization_code != organization_code:
        raise ForbiddenException(
            "You do not have access to this organization.",
        )
    return user


# ── Level-based dependency ──────────────────────────────────────────

def require_level(level: int) -> Callable:
    """Return a dependency that admits users at *level* or with more authority."""

    async def _check(user: User = Depends(require_organization)) -> User:
        if not outranks_or_equal(user.role, level):
            raise ForbiddenException(
                f"Role level {user.role} is not permitted. Required: {int(level)} or higher.",
            )
        return user

    return _check


# ── Permission-based dependency ─────────────────────────────────────

async def has_permission(db: AsyncSession, user: User, permission: str) -> bool:
    """True when *user*'s role grants *permission*. SUPER_ADMIN always does."""
    if user.role == RoleLevel.SUPER_ADMIN:
        return True
    granted = await RoleService.get_effective_permissions(
        db, user.role, user.organization_code,
    )
    return any(
        name == permission or name.startswith(f"{permission}:") for name in granted
    )


async def check_permission(db: AsyncSession, user: User, permission: str) -> None:
    """Raise Forbidden unless *user*'s role grants *permission*."""
    if not await has_permission(db, user, permission):
        raise ForbiddenException(
            f"Permission '{permission}' is not granted to role level {user.role}.",
        )


def require_permission(permission: str) -> Callable:
    """Return a dependency that enforces a ``module:action`` permission."""

    async def _check(
        user: User = Depends(require_organization),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        await check_permission(db, user, permission)
        return user

    return _check
