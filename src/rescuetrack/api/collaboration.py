"""Collaboration API routes — team membership, transfers and notes."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.dependencies import CurrentIdentity, get_current_user
from rescuetrack.db.engine import get_db
from rescuetrack.realtime.broadcaster import Broadcaster, get_broadcaster
from rescuetrack.schemas.case import ActivityRead, CaseState, CollaboratorRead
from rescuetrack.schemas.collaboration import (
    AddCollaboratorRequest,
    AddNoteRequest,
    MessageResponse,
    TransferOwnershipRequest,
)
from rescuetrack.services.collaboration_service import CollaborationService

router = APIRouter(prefix="/cases/{case_id}")


def _collab_svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
) -> CollaborationService:
    return CollaborationService(db, broadcaster)


@router.post("/collaborators", response_model=CollaboratorRead, status_code=201)
async def add_collaborator(
    case_id: uuid.UUID,
    body: AddCollaboratorRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CollaborationService = Depends(_collab_svc),
):
    return await svc.add_collaborator(identity.id, case_id, body.user_id, body.role_label)


@router.delete("/collaborators/{user_id}", response_model=MessageResponse)
async def remove_collaborator(
    case_id: uuid.UUID,
    user_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CollaborationService = Depends(_collab_svc),
):
    """Owner only."""
    await svc.remove_collaborator(identity.id, case_id, user_id)
    return MessageResponse(message="Collaborator removed successfully")


@router.post("/transfer", response_model=CaseState)
async def transfer_ownership(
    case_id: uuid.UUID,
    body: TransferOwnershipRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CollaborationService = Depends(_collab_svc),
):
    """Owner only. The outgoing owner stays on as "Previous Owner"."""
    return await svc.transfer_ownership(identity.id, case_id, body.new_owner_id)


@router.post("/notes", response_model=ActivityRead, status_code=201)
async def add_note(
    case_id: uuid.UUID,
    body: AddNoteRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: CollaborationService = Depends(_collab_svc),
):
    return await svc.add_note(identity.id, case_id, body.description, body.is_public)
