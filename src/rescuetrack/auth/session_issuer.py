"""Session issuer — access/refresh credential pairs with single-use rotation.

Learn: A login (or registration) yields two credentials:
- Access token: signed JWT, 15 minutes, verified statelessly on every request
- Refresh secret: 64 random bytes (hex), 7 days, stored only as a hash

Rotation consumes the presented secret and mints a brand-new pair. Because
the old row is deleted with a conditional DELETE, a captured secret that is
replayed after the legitimate client rotated it finds nothing and fails
with TokenInvalid. Two racing rotations of the same secret: exactly one wins.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.credential_store import RefreshTokenStore, hash_secret
from rescuetrack.auth.jwt import create_access_token
from rescuetrack.config import settings
from rescuetrack.db.models import User, utcnow
from rescuetrack.errors import TokenExpired, TokenInvalid

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def as_utc(value: datetime) -> datetime:
    """Normalize a stored timestamp (SQLite hands back naive datetimes)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_refresh_secret() -> str:
    return secrets.token_hex(64)


class SessionIssuer:
    """Mints, rotates and revokes credential pairs."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.tokens = RefreshTokenStore(db)

    # ─── Issue ───────────────────────────────────────────

    async def issue(self, user: User) -> TokenPair:
        """Create a fresh pair for a verified user and commit the refresh row."""
        pair = await self._mint(user)
        await self.db.commit()
        return pair

    async def _mint(self, user: User) -> TokenPair:
        now = self.clock()
        access_token = create_access_token(
            str(user.id), user.email, user.role, now=now
        )
        refresh_secret = new_refresh_secret()
        await self.tokens.store(
            user_id=user.id,
            token_hash=hash_secret(refresh_secret),
            expires_at=now + timedelta(days=settings.refresh_token_expire_days),
        )
        return TokenPair(access_token=access_token, refresh_token=refresh_secret)

    # ─── Rotate ──────────────────────────────────────────

    async def rotate(self, presented_secret: str) -> TokenPair:
        """Exchange a refresh secret for a new pair, consuming the old one.

        Raises:
            TokenInvalid: unknown secret, already consumed, or owner gone.
            TokenExpired: secret past expiry (its row is removed first).
        """
        row = await self.tokens.find_by_hash(hash_secret(presented_secret))
        if row is None:
            raise TokenInvalid("Invalid refresh token")

        if as_utc(row.expires_at) <= self.clock():
            await self.tokens.delete_by_id(row.id)
            await self.db.commit()
            logger.info("auth.refresh_expired", user_id=str(row.user_id))
            raise TokenExpired("Refresh token has expired")

        user_id = row.user_id
        if not await self.tokens.delete_by_id(row.id):
            # Someone else consumed it between our read and our delete.
            await self.db.rollback()
            raise TokenInvalid("Invalid refresh token")

        user = await self.db.get(User, user_id)
        if user is None or not user.is_active:
            await self.db.commit()
            raise TokenInvalid("Invalid refresh token")

        pair = await self._mint(user)
        await self.db.commit()
        logger.info("auth.refresh_rotated", user_id=str(user_id))
        return pair

    # ─── Revoke ──────────────────────────────────────────

    async def revoke(self, presented_secret: str) -> None:
        """Delete the matching row (logout). Revoking a gone token is fine."""
        removed = await self.tokens.delete_by_hash(hash_secret(presented_secret))
        await self.db.commit()
        logger.info("auth.refresh_revoked", removed=removed)

    # ─── Sweep ───────────────────────────────────────────

    async def sweep_expired(self) -> int:
        removed = await self.tokens.sweep_expired(self.clock())
        await self.db.commit()
        return removed

