"""Auth API — registration, login and the token lifecycle.

Learn: Routes for the credential pair lifecycle:
- POST /auth/register → create account + first token pair
- POST /auth/login → email/password → token pair
- POST /auth/refresh → refresh secret → NEW pair (old secret is consumed)
- POST /auth/logout → revoke a refresh secret
- GET /auth/me → current user info

Refresh secrets are single-use: after a successful /auth/refresh the
client must keep the new refresh_token and discard the old one.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.dependencies import CurrentIdentity, get_current_user
from rescuetrack.db.engine import get_db
from rescuetrack.schemas.auth import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserRead,
)
from rescuetrack.schemas.collaboration import MessageResponse
from rescuetrack.services.auth_service import AuthService

router = APIRouter(prefix="/auth")


def _auth_svc(db: AsyncSession = Depends(get_db)) -> AuthService:
    return AuthService(db)


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(body: RegisterRequest, svc: AuthService = Depends(_auth_svc)):
    """Create a new account and sign it in."""
    user, pair = await svc.register(body)
    return AuthResponse(
        user=UserRead.model_validate(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, svc: AuthService = Depends(_auth_svc)):
    """Login with email and password → token pair."""
    user, pair = await svc.login(body.email, body.password)
    return AuthResponse(
        user=UserRead.model_validate(user),
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, svc: AuthService = Depends(_auth_svc)):
    """Exchange a refresh secret for a new pair (rotation)."""
    pair = await svc.refresh(body.refresh_token)
    return TokenResponse(access_token=pair.access_token, refresh_token=pair.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    body: LogoutRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AuthService = Depends(_auth_svc),
):
    await svc.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserRead)
async def me(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: AuthService = Depends(_auth_svc),
):
    """Get the current authenticated user."""
    return await svc.get_user(identity.id)
