"""
Seed script for Verzot.

Creates any missing tables, the default roles and the admin account named
in settings (VZ_ADMIN_EMAIL / VZ_ADMIN_PASSWORD). Safe to run repeatedly.

Usage:
    docker compose exec api python -m seed
"""
from __future__ import annotations

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import Settings, get_settings
from shared.models.enums import RoleName
from shared.models.orm import RoleORM, UserORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging

from api.auth import grant_role, hash_password

logger = get_logger(__name__)

ROLE_DESCRIPTIONS: dict[RoleName, str] = {
    RoleName.ADMIN: "Full access to every resource",
    RoleName.ORGANIZER: "Creates tournaments and manages their matches",
    RoleName.REFEREE: "Runs matches: status, scores, events and result confirmation",
    RoleName.TEAM_LEADER: "Manages a team roster and confirms its results",
    RoleName.PLAYER: "Registered player",
}


async def seed_roles(session: AsyncSession) -> int:
    """Insert missing roles. Returns how many were created."""
    existing = set((await session.execute(select(RoleORM.name))).scalars().all())
    created = 0
    for role, description in ROLE_DESCRIPTIONS.items():
        if role.value not in existing:
            session.add(RoleORM(name=role.value, description=description))
            created += 1
    await session.flush()
    return created


async def seed_admin(session: AsyncSession, settings: Settings) -> bool:
    """Create the admin account if its email is unused. Returns True when created."""
    email = settings.admin_email.lower()
    user = (await session.execute(select(UserORM).where(UserORM.email == email))).scalar_one_or_none()
    created = user is None
    if user is None:
        user = UserORM(
            email=email,
            password_hash=hash_password(settings.admin_password),
            first_name="Admin",
            last_name="User",
        )
        session.add(user)
        await session.flush()
    await grant_role(session, user.id, RoleName.ADMIN)
    return created


async def seed() -> None:
    """Main seed function."""
    setup_logging("seed")
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.connect()
    try:
        await db.create_all()
        async with db.write_session() as session:
            roles_created = await seed_roles(session)
            admin_created = await seed_admin(session, settings)
        logger.info(
            "seed_completed",
            roles_created=roles_created,
            admin_created=admin_created,
            admin_email=settings.admin_email,
        )
    finally:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(seed())
