"""Auth service — accounts and the credential lifecycle.

Learn: Passwords are verified with bcrypt in a worker thread. Every
successful register/login ends with SessionIssuer.issue(), which commits
the new refresh row. Unknown email and wrong password produce the same
InvalidCredentials error so the response does not reveal which one
was wrong.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.password import hash_password_async, verify_password_async
from rescuetrack.auth.session_issuer import SessionIssuer, TokenPair
from rescuetrack.db.models import User
from rescuetrack.errors import (
    InvalidCredentials,
    PermissionDenied,
    ResourceConflict,
    ResourceNotFound,
)
from rescuetrack.schemas.auth import RegisterRequest

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _email_taken() -> ResourceConflict:
    return ResourceConflict(
        "Email already registered",
        details=[{"field": "email", "message": "Email is already in use"}],
    )


class AuthService:
    """Register, login, refresh, logout."""

    def __init__(self, db: AsyncSession, issuer: SessionIssuer | None = None):
        self.db = db
        self.issuer = issuer or SessionIssuer(db)

    async def register(self, data: RegisterRequest) -> tuple[User, TokenPair]:
        email = normalize_email(data.email)
        existing = await self.db.execute(select(User.id).where(User.email == email))
        if existing.first() is not None:
            raise _email_taken()

        user = User(
            email=email,
            password_hash=await hash_password_async(data.password),
            name=data.name,
            role=data.role,
            phone=data.phone,
            organization=data.organization,
            location=data.location,
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise _email_taken()

        pair = await self.issuer.issue(user)
        logger.info("auth.registered", user_id=str(user.id), role=user.role)
        return user, pair

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        user = result.scalars().first()
        if user is None or not await verify_password_async(password, user.password_hash):
            logger.info("auth.login_failed", email=normalize_email(email))
            raise InvalidCredentials("Invalid email or password")
        if not user.is_active:
            raise PermissionDenied("Account is deactivated")

        pair = await self.issuer.issue(user)
        logger.info("auth.login", user_id=str(user.id))
        return user, pair

    async def refresh(self, refresh_token: str) -> TokenPair:
        return await self.issuer.rotate(refresh_token)

    async def logout(self, refresh_token: str) -> None:
        await self.issuer.revoke(refresh_token)

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            raise ResourceNotFound("User not found")
        return user
