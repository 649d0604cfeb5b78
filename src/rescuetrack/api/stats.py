"""Public dashboard statistics."""

from fastapi import APIRouter, Depends

from rescuetrack.api.cases import _case_svc
from rescuetrack.schemas.case import CaseStats
from rescuetrack.services.case_service import CaseService

router = APIRouter()


@router.get("/stats", response_model=CaseStats)
async def case_stats(svc: CaseService = Depends(_case_svc)):
    """Counts over public cases only."""
    return await svc.get_stats()
