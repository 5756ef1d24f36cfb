"""Auth service — registration, password login, JWT management, session lifecycle."""

from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from werkzeug.security import check_password_hash, generate_password_hash

from manahr.auth.models import UserSession
from manahr.auth.schemas import RegisterRequest
from manahr.common.audit import create_audit_entry
from manahr.common.constants import RoleLevel, UserStatus
from manahr.common.datetime_utils import utcnow
from manahr.common.exceptions import (
    ForbiddenException,
    UnauthorizedException,
    ValidationException,
)
from manahr.config import settings
from manahr.core_hr.models import User
from manahr.core_hr.schemas import UserCreate
from manahr.core_hr.service import OrganizationService, UserService

logger = logging.getLogger(__name__)


# ── JWT helpers ─────────────────────────────────────────────────────

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(user: User) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    expires_in = settings.JWT_EXPIRY_HOURS * 3600
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "org": user.organization_code,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": utcnow() + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_in


def create_refresh_token(user: User) -> str:
    payload = {
        "sub": str(user.id),
        "org": user.organization_code,
        "type": "refresh",
        "jti": uuid.uuid4().hex,
        "exp": utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRY_DAYS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ── Session management ──────────────────────────────────────────────

async def create_session(
    db: AsyncSession,
    user: User,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[str, str, int]:
    """Create a JWT pair and persist its session. Returns (access, refresh, expires_in)."""
    access_token, expires_in = create_access_token(user)
    refresh_token = create_refresh_token(user)

    db.add(
        UserSession(
            user_id=user.id,
            token_hash=hash_token(access_token),
            refresh_token_hash=hash_token(refresh_token),
            ip_address=ip,
            user_agent=user_agent,
            expires_at=utcnow() + timedelta(hours=settings.JWT_EXPIRY_HOURS),
        )
    )
    await db.flush()
    return access_token, refresh_token, expires_in


# ── Register / login ────────────────────────────────────────────────

async def register(
    db: AsyncSession,
    data: RegisterRequest,
    organization_code: str,
) -> User:
    """Create the organization on first use, then the user with the EMPLOYEE role."""
    await OrganizationService.get_or_create(db, organization_code, data.organization)
    return await UserService.create_user(
        db,
        UserCreate(
            full_name=data.full_name,
            email=data.email,
            phone=data.phone,
            password=data.password,
            role=int(RoleLevel.EMPLOYEE),
            organization=data.organization,
        ),
        organization_code,
    )


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
    organization_code: str,
) -> User:
    """Verify credentials within one organization and stamp ``last_login``."""
    result = await db.execute(
        select(User).where(
            User.email == email.lower(),
            User.organization_code == organization_code,
        )
    )
    user = result.scalars().first()
    if user is None or not check_password_hash(user.password_hash, password):
        logger.warning("Failed login for %s in %s", email, organization_code)
        raise UnauthorizedException("Invalid email or password.")
    if user.status != UserStatus.active:
        raise ForbiddenException(f"Account is {user.status.value}.")

    user.last_login = utcnow()
    await db.flush()
    return user


async def change_password(
    db: AsyncSession,
    user: User,
    current_password: str,
    new_password: str,
) -> None:
    if not check_password_hash(user.password_hash, current_password):
        raise ValidationException({"current_password": ["Current password is incorrect."]})
    if check_password_hash(user.password_hash, new_password):
        raise ValidationException(
            {"new_password": ["New password must differ from the current password."]}
        )
    user.password_hash = generate_password_hash(new_password)
    await db.flush()
    await _revoke_all_user_sessions(db, user.id)
    await create_audit_entry(
        db,
        action="change_password",
        entity_type="user",
        entity_id=user.id,
        actor_id=user.id,
        organization_code=user.organization_code,
    )


# ── Refresh (with token rotation + reuse detection) ─────────────────

async def refresh_access_token(
    db: AsyncSession,
    refresh_token_str: str,
) -> tuple[str, str, int]:
    """Validate refresh token, rotate it, and issue a new token pair.

    Returns (new_access_token, new_refresh_token, expires_in).

    Each refresh token can only be used once. If a previously used
    (revoked) refresh token is presented, ALL sessions for that user
    are revoked.
    """
    try:
        payload = jwt.decode(
            refresh_token_str,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise UnauthorizedException("Invalid or expired refresh token.")

    if payload.get("type") != "refresh":
        raise UnauthorizedException("Invalid token type.")

    result = await db.execute(
        select(UserSession).where(
            UserSession.refresh_token_hash == hash_token(refresh_token_str),
        ),
    )
    session = result.scalars().first()
    if session is None:
        raise UnauthorizedException("Invalid refresh token.")

    if session.is_revoked:
        logger.warning("Refresh token reuse detected for user %s", session.user_id)
        await _revoke_all_user_sessions(db, session.user_id)
        await db.commit()  # Persist revocations before raising
        raise ForbiddenException(
            "Refresh token reuse detected. All sessions revoked for security.",
        )

    session.is_revoked = True
    await db.flush()

    user = await _get_active_user(db, uuid.UUID(payload["sub"]))
    access_token, new_refresh_token, expires_in = await create_session(
        db, user, session.ip_address, session.user_agent,
    )
    return access_token, new_refresh_token, expires_in


# ── Revoke ──────────────────────────────────────────────────────────

async def _revoke_all_user_sessions(db: AsyncSession, user_id: uuid.UUID) -> None:
    result = await db.execute(
        select(UserSession).where(
            UserSession.user_id == user_id,
            UserSession.is_revoked.is_(False),
        ),
    )
    for session in result.scalars().all():
        session.is_revoked = True
    await db.flush()


async def revoke_session(db: AsyncSession, token_hash: str) -> None:
    """Mark a session as revoked by its access-token hash."""
    result = await db.execute(
        select(UserSession).where(UserSession.token_hash == token_hash),
    )
    session = result.scalars().first()
    if session:
        session.is_revoked = True
        await db.flush()


# ── Internal helpers ────────────────────────────────────────────────

async def _get_active_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id, User.status == UserStatus.active),
    )
    user = result.scalars().first()
    if user is None:
        raise UnauthorizedException("User account is inactive or not found.")
    return user
