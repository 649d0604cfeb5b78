"""Credential store — hashed refresh tokens.

Learn: Same trick as hashed API keys: the database only ever sees
sha256(secret). A leaked table is useless without the original secrets,
and lookups stay O(1) on the unique token_hash index.

Every operation here is a write/read against the request's session; the
caller (SessionIssuer) decides when to commit.
"""

import hashlib
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.db.models import RefreshToken


def hash_secret(secret: str) -> str:
    """One-way hash of a refresh secret (hex SHA-256)."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


class RefreshTokenStore:
    """Persistence for rotating refresh tokens, keyed by hash."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def store(
        self, user_id: uuid.UUID, token_hash: str, expires_at: datetime
    ) -> RefreshToken:
        row = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at)
        self.db.add(row)
        await self.db.flush()
        return row

    async def find_by_hash(self, token_hash: str) -> Optional[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        )
        return result.scalars().first()

    async def delete_by_hash(self, token_hash: str) -> int:
        result = await self.db.execute(
            delete(RefreshToken).where(RefreshToken.token_hash == token_hash)
        )
        return result.rowcount or 0

    async def delete_by_id(self, token_id: uuid.UUID) -> bool:
        """Conditionally delete one row.

        Learn: Returns True only if THIS call removed the row. Two
        concurrent rotations of the same secret both find the row, but
        the row lock makes the second DELETE wait and then match zero rows.
        That zero is how the loser learns it lost.
        """
        result = await self.db.execute(
            delete(RefreshToken)
            .where(RefreshToken.id == token_id)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def sweep_expired(self, now: datetime) -> int:
        """Remove every row whose expiry has passed. Returns the count."""
        result = await self.db.execute(
            delete(RefreshToken)
            .where(RefreshToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
