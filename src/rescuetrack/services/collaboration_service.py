"""Collaboration service — team membership, ownership transfer and notes.

Learn: Same pipeline as CaseService (load → authorize → write + log →
commit → broadcast). Membership changes alter the fan-out audience of a
private case, so the broadcast after a change is addressed using the
membership as it stands AFTER the commit: a newly added collaborator
hears about it, a removed one does not.
"""

import uuid

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rescuetrack.auth.policy import CaseAccess, Operation, authorize
from rescuetrack.db.models import Case, CaseCollaborator, User, utcnow
from rescuetrack.errors import ResourceConflict, ResourceNotFound, ValidationError
from rescuetrack.events.store import ActivityStore
from rescuetrack.events.types import (
    COLLABORATOR_ADDED,
    COLLABORATOR_REMOVED,
    NOTE_ADDED,
    OWNERSHIP_TRANSFERRED,
)
from rescuetrack.realtime.broadcaster import Broadcaster
from rescuetrack.schemas.case import ActivityRead, CollaboratorRead
from rescuetrack.services.case_service import CaseService

logger = structlog.get_logger()

PREVIOUS_OWNER_LABEL = "Previous Owner"


class CollaborationService:
    """Membership and note operations on an existing case."""

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster
        self.cases = CaseService(db, broadcaster)
        self.activity = ActivityStore(db)

    # ─── Add collaborator ────────────────────────────────

    async def add_collaborator(
        self,
        actor_id: uuid.UUID,
        case_id: uuid.UUID,
        user_id: uuid.UUID,
        role_label: str | None = None,
    ) -> CollaboratorRead:
        case = await self.cases.get_case_or_404(case_id)
        collaborator_ids = await self.cases.collaborator_ids(case.id)
        authorize(Operation.ADD_COLLABORATOR, actor_id, CaseAccess.of(case, collaborator_ids))

        user = await self.db.get(User, user_id)
        if user is None:
            raise ResourceNotFound("User not found")
        if user_id == case.primary_owner_id:
            raise ResourceConflict("User already owns this case")
        if user_id in collaborator_ids:
            raise ResourceConflict("User is already a collaborator")

        membership = CaseCollaborator(
            case_id=case.id,
            user_id=user_id,
            role_label=role_label,
            added_by=actor_id,
        )
        self.db.add(membership)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ResourceConflict("User is already a collaborator")

        await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=COLLABORATOR_ADDED,
            description=f"Added {user.name} as collaborator",
        )
        case.updated_at = utcnow()
        await self.db.commit()

        logger.info(
            "case.collaborator_added",
            case_id=str(case.id),
            user_id=str(user_id),
            added_by=str(actor_id),
        )
        self.broadcaster.broadcast_updated(
            case,
            {"collaborator_added": str(user_id)},
            [*collaborator_ids, user_id],
        )
        return CollaboratorRead(
            id=user.id,
            name=user.name,
            role=user.role,
            role_label=membership.role_label,
            added_by=membership.added_by,
            added_at=membership.added_at,
        )

    # ─── Remove collaborator ─────────────────────────────

    async def remove_collaborator(
        self, actor_id: uuid.UUID, case_id: uuid.UUID, user_id: uuid.UUID
    ) -> None:
        case = await self.cases.get_case_or_404(case_id)
        collaborator_ids = await self.cases.collaborator_ids(case.id)
        authorize(
            Operation.REMOVE_COLLABORATOR, actor_id, CaseAccess.of(case, collaborator_ids)
        )

        result = await self.db.execute(
            select(CaseCollaborator)
            .where(CaseCollaborator.case_id == case.id, CaseCollaborator.user_id == user_id)
            .options(selectinload(CaseCollaborator.user))
        )
        membership = result.scalars().first()
        if membership is None:
            raise ResourceNotFound("Collaborator not found")

        name = membership.user.name
        await self.db.delete(membership)
        await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=COLLABORATOR_REMOVED,
            description=f"Removed {name} as collaborator",
        )
        case.updated_at = utcnow()
        await self.db.commit()

        logger.info(
            "case.collaborator_removed",
            case_id=str(case.id),
            user_id=str(user_id),
            removed_by=str(actor_id),
        )
        self.broadcaster.broadcast_updated(
            case,
            {"collaborator_removed": str(user_id)},
            [cid for cid in collaborator_ids if cid != user_id],
        )

    # ─── Transfer ownership ──────────────────────────────

    async def transfer_ownership(
        self, actor_id: uuid.UUID, case_id: uuid.UUID, new_owner_id: uuid.UUID
    ) -> Case:
        """Hand the case to another user.

        Learn: Nobody is ever both owner and collaborator. The incoming
        owner's membership row (if any) is dropped; the outgoing owner is
        kept on the team as "Previous Owner" unless already a member.
        """
        result = await self.db.execute(
            select(Case).where(Case.id == case_id).options(selectinload(Case.primary_owner))
        )
        case = result.scalars().first()
        if case is None:
            raise ResourceNotFound("Case not found")
        collaborator_ids = await self.cases.collaborator_ids(case.id)
        authorize(
            Operation.TRANSFER_OWNERSHIP, actor_id, CaseAccess.of(case, collaborator_ids)
        )

        previous_owner = case.primary_owner
        if new_owner_id == previous_owner.id:
            raise ValidationError.for_fields({"new_owner_id": "User already owns this case"})

        new_owner = await self.db.get(User, new_owner_id)
        if new_owner is None:
            raise ResourceNotFound("New owner not found")

        await self.db.execute(
            delete(CaseCollaborator)
            .where(
                CaseCollaborator.case_id == case.id,
                CaseCollaborator.user_id == new_owner_id,
            )
            .execution_options(synchronize_session=False)
        )
        case.primary_owner_id = new_owner_id
        case.primary_owner = new_owner

        team = [cid for cid in collaborator_ids if cid != new_owner_id]
        if previous_owner.id not in team:
            self.db.add(
                CaseCollaborator(
                    case_id=case.id,
                    user_id=previous_owner.id,
                    role_label=PREVIOUS_OWNER_LABEL,
                    added_by=actor_id,
                )
            )
            team.append(previous_owner.id)

        await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=OWNERSHIP_TRANSFERRED,
            description=(
                f"Transferred ownership from {previous_owner.name} to {new_owner.name}"
            ),
        )
        case.updated_at = utcnow()
        await self.db.commit()

        logger.info(
            "case.ownership_transferred",
            case_id=str(case.id),
            from_user=str(previous_owner.id),
            to_user=str(new_owner_id),
        )
        self.broadcaster.broadcast_updated(
            case, {"primary_owner_id": str(new_owner_id)}, team
        )
        return case

    # ─── Notes ───────────────────────────────────────────

    async def add_note(
        self,
        actor_id: uuid.UUID,
        case_id: uuid.UUID,
        description: str,
        is_public: bool = True,
    ) -> ActivityRead:
        """Append a free-text note. Private notes are shown to the team only."""
        case = await self.cases.get_case_or_404(case_id)
        authorize(Operation.EDIT, actor_id, await self.cases.access_for(case))

        entry = await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=NOTE_ADDED,
            description=description,
            is_public=is_public,
        )
        case.updated_at = utcnow()
        await self.db.commit()

        author = await self.db.get(User, actor_id)
        logger.info("case.note_added", case_id=str(case.id), user_id=str(actor_id))
        return ActivityRead(
            id=entry.id,
            user=author.name if author else "System",
            action_type=entry.action_type,
            description=entry.description,
            is_public=entry.is_public,
            created_at=entry.created_at,
        )
