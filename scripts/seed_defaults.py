#!/usr/bin/env python3
"""Seed system permissions, the five system roles and (optionally) a first
organization with its super admin.

Safe to re-run: existing permissions, roles, organizations and users are
left untouched.

Usage:
    python -m scripts.seed_defaults                                   # permissions + roles
    python -m scripts.seed_defaults --org ACME --org-name "Acme Ltd"
    python -m scripts.seed_defaults --org ACME --admin-email admin@acme.com \
        --admin-password 'S3cure-pass'

Requires in .env (project root):
    DATABASE_URL
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("seed_defaults")


async def seed(
    org_code: Optional[str],
    org_name: Optional[str],
    admin_email: Optional[str],
    admin_password: Optional[str],
) -> int:
    # Settings read the environment at import time, after load_dotenv
    from manahr.common.constants import RoleLevel
    from manahr.common.exceptions import ConflictError
    from manahr.core_hr.schemas import UserCreate
    from manahr.core_hr.service import OrganizationService, UserService
    from manahr.database import async_session_factory, engine
    from manahr.roles.service import PermissionService, RoleService

    async with async_session_factory() as db:
        try:
            permissions = await PermissionService.initialize_default_permissions(db)
            roles = await RoleService.initialize_system_roles(db, permissions)
            logger.info("%d permissions, %d system roles in place", len(permissions), len(roles))

            if org_code:
                org = await OrganizationService.get_or_create(db, org_code, org_name)
                if admin_email:
                    try:
                        await UserService.create_user(
                            db,
                            UserCreate(
                                full_name="Administrator",
                                email=admin_email,
                                password=admin_password,
                                role=int(RoleLevel.SUPER_ADMIN),
                                organization=org.name,
                            ),
                            org.code,
                        )
                        logger.info("Created super admin %s in %s", admin_email, org.code)
                    except ConflictError:
                        logger.info("Super admin %s already exists in %s", admin_email, org.code)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Seeding failed")
            return 1
        finally:
            await engine.dispose()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Seed default permissions, system roles and a first organization",
    )
    parser.add_argument("--org", dest="org_code", type=str,
                        help="Organization code to create (2-10 chars, A-Z/0-9)")
    parser.add_argument("--org-name", type=str, help="Display name for --org")
    parser.add_argument("--admin-email", type=str,
                        help="Create a super admin with this email (needs --org)")
    parser.add_argument("--admin-password", type=str,
                        help="Password for --admin-email")
    args = parser.parse_args()

    if args.admin_email and not args.org_code:
        parser.error("--admin-email requires --org")
    if args.admin_email and not args.admin_password:
        parser.error("--admin-email requires --admin-password")

    sys.exit(asyncio.run(seed(args.org_code, args.org_name, args.admin_email, args.admin_password)))


if __name__ == "__main__":
    main()
