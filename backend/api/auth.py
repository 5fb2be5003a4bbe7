"""
Authentication and the per-request permission context.

Tokens are HMAC-SHA256 signed, JWT-shaped strings. The permission context
(user id, role names, led teams) is resolved once per request by
`get_permission_context` and handed to route handlers explicitly.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import Settings, get_settings
from shared.errors import Forbidden, Unauthorized
from shared.models.enums import RoleName
from shared.models.orm import RoleORM, TeamORM, UserORM, UserRoleORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.dependencies import get_db

logger = get_logger(__name__)

PBKDF2_ITERATIONS = 100_000


# ── Password Hashing ─────────────────────────────────────────────────
def hash_password(password: str) -> str:
    """Hash password with PBKDF2-SHA256, 100k iterations."""
    salt = os.urandom(32)
    key = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}:{key.hex()}"


def verify_password(password: str, stored: str) -> bool:
    """Verify password against stored hash."""
    try:
        salt_hex, key_hex = stored.split(":")
        salt = bytes.fromhex(salt_hex)
        key = bytes.fromhex(key_hex)
    except ValueError:
        return False
    new_key = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS)
    return hmac.compare_digest(key, new_key)


# ── Tokens ───────────────────────────────────────────────────────────
def _b64_encode(data: str) -> str:
    return base64.urlsafe_b64encode(data.encode()).rstrip(b"=").decode()


def _b64_decode(data: str) -> str:
    padding = 4 - len(data) % 4
    if padding != 4:
        data += "=" * padding
    return base64.urlsafe_b64decode(data).decode()


def _sign(signing_input: str, secret: str) -> str:
    return hmac.new(secret.encode(), signing_input.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: str, email: str, settings: Settings | None = None) -> str:
    """Create a signed bearer token for the user."""
    settings = settings or get_settings()
    now = int(time.time())
    payload = {"sub": user_id, "email": email, "iat": now, "exp": now + settings.token_expiry_s}
    header_b64 = _b64_encode(json.dumps({"alg": "HS256", "typ": "JWT"}))
    payload_b64 = _b64_encode(json.dumps(payload))
    signing_input = f"{header_b64}.{payload_b64}"
    return f"{signing_input}.{_sign(signing_input, settings.token_secret)}"


def decode_token(token: str, settings: Settings | None = None) -> Optional[dict]:
    """Decode and verify token. Returns payload or None."""
    settings = settings or get_settings()
    parts = token.split(".")
    if len(parts) != 3:
        return None
    expected_sig = _sign(f"{parts[0]}.{parts[1]}", settings.token_secret)
    if not hmac.compare_digest(expected_sig, parts[2]):
        return None
    try:
        payload = json.loads(_b64_decode(parts[1]))
    except (ValueError, UnicodeDecodeError):
        return None
    if payload.get("exp", 0) < time.time():
        return None
    return payload


# ── Permission context ───────────────────────────────────────────────
@dataclass(frozen=True)
class PermissionContext:
    user_id: uuid.UUID
    email: str
    roles: frozenset[str] = field(default_factory=frozenset)
    led_team_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return RoleName.ADMIN.value in self.roles

    def has_any(self, *roles: RoleName) -> bool:
        return self.is_admin or any(r.value in self.roles for r in roles)

    def leads_team(self, team_id: uuid.UUID) -> bool:
        return team_id in self.led_team_ids


async def role_names_for(session: AsyncSession, user_id: uuid.UUID) -> list[str]:
    stmt = (
        select(RoleORM.name)
        .join(UserRoleORM, UserRoleORM.role_id == RoleORM.id)
        .where(UserRoleORM.user_id == user_id)
        .order_by(RoleORM.name)
    )
    return list((await session.execute(stmt)).scalars().all())


async def grant_role(session: AsyncSession, user_id: uuid.UUID, role: RoleName) -> bool:
    """Attach `role` to the user, creating the role row on first use. Returns False if already held."""
    role_row = (await session.execute(select(RoleORM).where(RoleORM.name == role.value))).scalar_one_or_none()
    if role_row is None:
        role_row = RoleORM(name=role.value)
        session.add(role_row)
        await session.flush()

    existing = (
        await session.execute(
            select(UserRoleORM.id).where(UserRoleORM.user_id == user_id, UserRoleORM.role_id == role_row.id)
        )
    ).scalar_one_or_none()
    if existing is not None:
        return False
    session.add(UserRoleORM(user_id=user_id, role_id=role_row.id))
    await session.flush()
    return True


async def load_permission_context(session: AsyncSession, user_id: uuid.UUID) -> Optional[PermissionContext]:
    user = (
        await session.execute(
            select(UserORM).where(UserORM.id == user_id, UserORM.alive(), UserORM.is_active.is_(True))
        )
    ).scalar_one_or_none()
    if user is None:
        return None
    roles = await role_names_for(session, user_id)
    team_ids = (
        await session.execute(select(TeamORM.id).where(TeamORM.leader_id == user_id, TeamORM.alive()))
    ).scalars().all()
    return PermissionContext(
        user_id=user.id,
        email=user.email,
        roles=frozenset(roles),
        led_team_ids=frozenset(team_ids),
    )


async def get_permission_context(
    authorization: Optional[str] = Header(None),
    db: DatabaseManager = Depends(get_db),
) -> PermissionContext:
    """FastAPI dependency: authenticate the bearer token and resolve roles once."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized("No token provided")

    payload = decode_token(authorization[7:])
    if not payload:
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise Unauthorized("Invalid or expired token") from None

    async with db.read_session() as session:
        ctx = await load_permission_context(session, user_id)
    if ctx is None:
        raise Unauthorized("User not found or inactive")
    return ctx


def require_roles(*roles: RoleName) -> Callable[..., object]:
    """Dependency factory: the caller must hold one of `roles` (admin always passes)."""

    async def _check(ctx: PermissionContext = Depends(get_permission_context)) -> PermissionContext:
        if not ctx.has_any(*roles):
            raise Forbidden(
                "Insufficient role for this action",
                required_roles=[r.value for r in roles],
            )
        return ctx

    return _check
