"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current identity from the Authorization header.

Two flavours:
1. get_current_user — "required identity". Missing, malformed, invalid or
   expired tokens raise (401 with a specific code).
2. get_current_user_optional — "optional identity". Any of the above
   yields None (anonymous) without an error.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from rescuetrack.auth.jwt import AccessClaims, verify_access_token
from rescuetrack.errors import RescueTrackError, TokenInvalid, Unauthenticated


@dataclass(frozen=True)
class CurrentIdentity:
    """The authenticated user making the request."""

    user_id: str
    email: str
    role: str

    @classmethod
    def from_claims(cls, claims: AccessClaims) -> "CurrentIdentity":
        try:
            uuid.UUID(claims.user_id)
        except ValueError:
            raise TokenInvalid("Invalid token subject")
        return cls(user_id=claims.user_id, email=claims.email, role=claims.role)

    @property
    def id(self) -> uuid.UUID:
        return uuid.UUID(self.user_id)


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        return token or None
    return None


def resolve_identity(token: Optional[str]) -> Optional[CurrentIdentity]:
    """Verify a raw token; None for no token. Raises on a bad one."""
    if not token:
        return None
    return CurrentIdentity.from_claims(verify_access_token(token))


async def get_current_user(
    authorization: Optional[str] = Header(None),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if absent or bad)."""
    token = _bearer_token(authorization)
    if token is None:
        raise Unauthenticated("No authentication token provided")
    return resolve_identity(token)


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — bad or missing token is anonymous)."""
    try:
        return resolve_identity(_bearer_token(authorization))
    except RescueTrackError:
        return None
