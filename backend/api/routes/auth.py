"""
Account routes.

POST /v1/auth/signup — Create an account (granted the player role).
POST /v1/auth/login  — Exchange email + password for a bearer token.
GET  /v1/auth/me     — Current user profile with role names.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Conflict, NotFound, Unauthorized
from shared.models.domain import AuthResponse, LoginRequest, SignupRequest, UserOut
from shared.models.enums import RoleName
from shared.models.orm import UserORM, utcnow
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import (
    PermissionContext,
    create_token,
    get_permission_context,
    grant_role,
    hash_password,
    role_names_for,
    verify_password,
)
from api.dependencies import get_db

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/auth", tags=["auth"])


async def user_out(session: AsyncSession, user: UserORM) -> UserOut:
    # Built field by field: UserORM.roles holds link rows, not names
    return UserOut(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        preferred_language=user.preferred_language,
        is_active=user.is_active,
        roles=await role_names_for(session, user.id),
        created_at=user.created_at,
    )


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(req: SignupRequest, db: DatabaseManager = Depends(get_db)) -> AuthResponse:
    """Create a new user account."""
    email = req.email.lower()
    async with db.write_session() as session:
        existing = (await session.execute(select(UserORM.id).where(UserORM.email == email))).scalar_one_or_none()
        if existing is not None:
            raise Conflict("Email already registered")

        user = UserORM(
            email=email,
            password_hash=hash_password(req.password),
            first_name=req.first_name,
            last_name=req.last_name,
            birth_date=req.birth_date,
            preferred_language=req.preferred_language,
        )
        session.add(user)
        await session.flush()
        await grant_role(session, user.id, RoleName.PLAYER)
        out = await user_out(session, user)

    logger.info("user_signed_up", user_id=str(out.id))
    return AuthResponse(token=create_token(str(out.id), out.email), user=out)


@router.post("/login", response_model=AuthResponse)
async def login(req: LoginRequest, db: DatabaseManager = Depends(get_db)) -> AuthResponse:
    """Log in with email and password."""
    async with db.write_session() as session:
        user = (
            await session.execute(select(UserORM).where(UserORM.email == req.email.lower(), UserORM.alive()))
        ).scalar_one_or_none()
        if user is None or not verify_password(req.password, user.password_hash):
            raise Unauthorized("Invalid email or password")
        if not user.is_active:
            raise Unauthorized("Account is disabled")
        user.last_login = utcnow()
        out = await user_out(session, user)

    logger.info("user_logged_in", user_id=str(out.id))
    return AuthResponse(token=create_token(str(out.id), out.email), user=out)


@router.get("/me", response_model=UserOut)
async def get_me(
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> UserOut:
    """Get current user profile."""
    async with db.read_session() as session:
        user = await session.get(UserORM, ctx.user_id)
        if user is None:
            raise NotFound("User not found")
        return await user_out(session, user)
