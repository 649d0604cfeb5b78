"""Case API routes — listing, detail and the CRUD mutation pipeline.

Learn: Routes only translate HTTP to service calls. Authorization,
activity logging and fan-out all happen inside CaseService, so every
entry point (HTTP today, CLI or jobs tomorrow) gets the same rules.

GET /cases is open; GET /cases/{id} takes an OPTIONAL identity: the
same URL returns the full record to the team and the redacted one to
everyone else.
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    get_current_user_optional,
)
from rescuetrack.db.engine import get_db
from rescuetrack.realtime.broadcaster import Broadcaster, get_broadcaster
from rescuetrack.schemas.case import (
    CaseCreate,
    CaseDetail,
    CaseList,
    CaseState,
    CaseStatus,
    CaseUpdate,
    Species,
    Urgency,
)
from rescuetrack.schemas.collaboration import MessageResponse
from rescuetrack.services.case_service import CaseService

router = APIRouter(prefix="/cases")


def _case_svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> CaseService:
    return CaseService(db, broadcaster)


@router.get("", response_model=CaseList)
async def list_cases(
    status: Optional[CaseStatus] = Query(None),
    species: Optional[Species] = Query(None),
    urgency: Optional[Urgency] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Literal["created_at", "updated_at", "urgency"] = Query("updated_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    svc: CaseService = Depends(_case_svc),
):
    """Public case listing (public cases, general area only)."""
    return await svc.list_public_cases(
        status=status,
        species=species,
        urgency=urgency,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/{case_id}", response_model=CaseDetail)
async def get_case(
    case_id: uuid.UUID,
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
    svc: CaseService = Depends(_case_svc),
):
    return await svc.get_case(case_id, identity.id if identity else None)


@router.post("", response_model=CaseState, status_code=201)
async def create_case(
    body: CaseCreate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CaseService = Depends(_case_svc),
):
    """Create a case; the caller becomes its primary owner."""
    return await svc.create_case(identity.id, body)


@router.put("/{case_id}", response_model=CaseState)
async def update_case(
    case_id: uuid.UUID,
    body: CaseUpdate,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CaseService = Depends(_case_svc),
):
    """Partial update: only fields present in the body change."""
    return await svc.update_case(identity.id, case_id, body)


@router.delete("/{case_id}", response_model=MessageResponse)
async def delete_case(
    case_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CaseService = Depends(_case_svc),
):
    """Owner only. Removes the case and everything attached to it."""
    await svc.delete_case(identity.id, case_id)
    return MessageResponse(message="Case deleted successfully")
