"""API route aggregation.

All routers registered here get mounted in main.py under /api/v1.

Learn: Unlike a blanket include_router(dependencies=[...]) guard, identity
is declared per route here: the same router mixes open reads (GET /cases),
optional-identity reads (GET /cases/{id}) and required-identity writes.
"""

from fastapi import APIRouter

from rescuetrack.api.auth import router as auth_router
from rescuetrack.api.cases import router as cases_router
from rescuetrack.api.collaboration import router as collaboration_router
from rescuetrack.api.health import router as health_router
from rescuetrack.api.photos import router as photos_router
from rescuetrack.api.stats import router as stats_router
from rescuetrack.api.users import router as users_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(cases_router, tags=["cases"])
api_router.include_router(collaboration_router, tags=["collaboration"])
api_router.include_router(photos_router, tags=["photos"])
api_router.include_router(users_router, tags=["users"])
api_router.include_router(stats_router, tags=["stats"])
