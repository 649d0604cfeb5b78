"""User-scoped routes — the caller's own cases."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query

from rescuetrack.api.cases import _case_svc
from rescuetrack.auth.dependencies import CurrentIdentity, get_current_user
from rescuetrack.schemas.case import CaseStatus, UserCaseList
from rescuetrack.services.case_service import CaseService

router = APIRouter(prefix="/users")


@router.get("/me/cases", response_model=UserCaseList)
async def my_cases(
    scope: Literal["my_cases", "collaborating", "all"] = Query("my_cases", alias="filter"),
    status: Optional[CaseStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CaseService = Depends(_case_svc),
):
    """Cases the caller owns, collaborates on, or both."""
    return await svc.list_user_cases(
        identity.id, scope=scope, status=status, page=page, limit=limit
    )
