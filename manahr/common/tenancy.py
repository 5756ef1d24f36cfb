"""Organization (tenant) resolution and tenant-scoped query helpers.

Every protected request carries an organization code. It is read from,
in order of precedence:

  1. the ``X-Organization-Code`` header
  2. the JSON body field ``organizationCode`` / ``organization_code``
  3. the query parameter ``organizationCode`` / ``organization_code``

The value is trimmed and upper-cased, then checked against
``^[A-Z0-9]{2,10}$``.
"""

from __future__ import annotations

import json
import re
import uuid
from typing import Any, Optional, TypeVar

from fastapi import Request
from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from manahr.common.constants import ORGANIZATION_CODE_PATTERN
from manahr.common.exceptions import BadRequestException

ORG_HEADER = "X-Organization-Code"
_BODY_KEYS = ("organizationCode", "organization_code")
_CODE_RE = re.compile(ORGANIZATION_CODE_PATTERN)

M = TypeVar("M")


# ── Extraction ──────────────────────────────────────────────────────

def normalize_organization_code(raw: Any) -> str:
    """Trim, upper-case and validate an organization code."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise BadRequestException(
            "Organization code is required.", field="organization_code",
        )
    code = raw.strip().upper() if isinstance(raw, str) else ""
    if not _CODE_RE.match(code):
        raise BadRequestException(
            "Organization code must be 2-10 uppercase letters or digits.",
            field="organization_code",
        )
    return code


def extract_organization_code(
    header: Optional[str],
    body: Optional[dict[str, Any]],
    query: Optional[dict[str, Any]],
) -> str:
    """Pick the first present source (header, body, query) and normalize it."""
    for source in (
        header,
        _first_present(body, _BODY_KEYS),
        _first_present(query, _BODY_KEYS),
    ):
        if source is not None and (not isinstance(source, str) or source.strip()):
            return normalize_organization_code(source)
    return normalize_organization_code(None)


def _first_present(mapping: Optional[dict[str, Any]], keys: tuple[str, ...]) -> Any:
    if not mapping:
        return None
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


async def _read_json_body(request: Request) -> Optional[dict[str, Any]]:
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        # Malformed JSON is reported by request validation, not here
        return None
    return payload if isinstance(payload, dict) else None


async def get_organization_code(request: Request) -> str:
    """FastAPI dependency: resolve and validate the request's organization code."""
    code = extract_organization_code(
        request.headers.get(ORG_HEADER),
        await _read_json_body(request),
        dict(request.query_params),
    )
    request.state.organization_code = code
    return code


# ── Tenant-scoped repository ────────────────────────────────────────

class TenantScope:
    """Query helper that always applies the ``organization_code`` predicate.

    Usage::

        scope = TenantScope(db, "ACME")
        rows = (await db.execute(scope.select(User))).scalars().all()
    """

    def __init__(self, db: AsyncSession, organization_code: str) -> None:
        self.db = db
        self.organization_code = organization_code

    def filter(self, query: Select, model: Any, *, include_system: bool = False) -> Select:
        column = model.organization_code
        if include_system:
            return query.where(or_(column == self.organization_code, column.is_(None)))
        return query.where(column == self.organization_code)

    def select(self, model: Any, *, include_system: bool = False) -> Select:
        return self.filter(select(model), model, include_system=include_system)

    async def get(
        self,
        model: type[M],
        entity_id: uuid.UUID,
        *,
        include_system: bool = False,
        options: tuple = (),
    ) -> Optional[M]:
        query = self.select(model, include_system=include_system).where(
            model.id == entity_id,
        )
        if options:
            query = query.options(*options)
        return (await self.db.execute(query)).scalars().first()

    def add(self, obj: Any) -> Any:
        """Stamp the tenant on a new row and add it to the session."""
        obj.organization_code = self.organization_code
        self.db.add(obj)
        return obj
