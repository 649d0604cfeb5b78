"""JWT access token creation and verification.

Learn: The access token is a stateless, short-lived (15 min) signed claim
set: {sub, email, role, type, iat, exp}. It expires on its own, so no
server-side revocation list is needed. Long-lived sessions are carried by
the opaque rotating refresh secret (see session_issuer.py), not by a JWT.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from rescuetrack.config import settings
from rescuetrack.errors import TokenExpired, TokenInvalid


@dataclass(frozen=True)
class AccessClaims:
    """Verified identity extracted from an access token."""

    user_id: str
    email: str
    role: str


def create_access_token(
    user_id: str,
    email: str,
    role: str,
    now: Optional[datetime] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed JWT access token."""
    issued = now or datetime.now(timezone.utc)
    expires = issued + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "access",
        "exp": expires,
        "iat": issued,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> AccessClaims:
    """Verify and decode an access token.

    Raises TokenExpired for a well-signed but stale token, TokenInvalid for
    anything else (bad signature, garbage, wrong token type, missing claims).
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Authentication token has expired")
    except jwt.InvalidTokenError:
        raise TokenInvalid("Invalid authentication token")

    if payload.get("type") != "access":
        raise TokenInvalid("Not an access token")

    return AccessClaims(
        user_id=payload["sub"],
        email=payload.get("email", ""),
        role=payload.get("role", ""),
    )
