"""Case service — the authorization-gated mutation pipeline for cases.

Learn: Every write follows the same five steps:
1. Load the case (ResourceNotFound if missing)
2. Authorize against the access policy (PermissionDenied, no write attempted)
3. Apply the change + append the activity entry in ONE transaction
4. Commit
5. Hand the committed state to the broadcaster (fire-and-forget)

Status is a free label: any editor may set any status from any other.
The ordering reported → rescued → at_vet → surgery → at_foster →
adoption_talks → adopted is informational only (corrections and skipped
steps are normal in rescue work).
"""

import math
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import case as sql_case
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rescuetrack.auth.policy import (
    CaseAccess,
    CaseRelation,
    Operation,
    authorize,
    can_edit,
    can_read,
    can_view_private_details,
    relation_of,
)
from rescuetrack.db.models import ActivityLog, Case, CaseCollaborator, Photo, utcnow
from rescuetrack.errors import ResourceNotFound, ValidationError
from rescuetrack.events.store import ActivityStore
from rescuetrack.events.types import CASE_CREATED, STATUS_CHANGE
from rescuetrack.realtime.broadcaster import Broadcaster
from rescuetrack.schemas.case import (
    NON_NULLABLE_FIELDS,
    ActivityRead,
    CaseCreate,
    CaseDetail,
    CaseList,
    CaseStats,
    CaseSummary,
    CaseUpdate,
    CollaboratorRead,
    Pagination,
    PersonRef,
    PhotoRead,
    PrimaryPhoto,
    UserCaseList,
    UserCaseSummary,
    project_case,
)

logger = structlog.get_logger()

GENERAL_AREA_FALLBACK = "General Area"

SORT_COLUMNS = {
    "created_at": Case.created_at,
    "updated_at": Case.updated_at,
    "urgency": sql_case(
        (Case.urgency == "high", 3),
        (Case.urgency == "medium", 2),
        else_=1,
    ),
}


def sanitize_location(location: str) -> str:
    """Coarsen a precise location to a public "general area".

    "123 Main St, Downtown" → "Downtown Area"; no comma → "General Area".
    """
    parts = location.split(",")
    if len(parts) > 1:
        area = parts[-1].strip()
        if area:
            return f"{area} Area"
    return GENERAL_AREA_FALLBACK


def escape_like(term: str) -> str:
    """Make % and _ in user input match literally inside an ILIKE pattern."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if limit else 0,
    )


def _primary_photo(case: Case) -> Optional[PrimaryPhoto]:
    for photo in case.photos:
        if photo.is_primary:
            return PrimaryPhoto(url=photo.url, thumbnail_url=photo.thumbnail_url)
    return None


class CaseService:
    """Business logic for case CRUD and reads."""

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster):
        self.db = db
        self.broadcaster = broadcaster
        self.activity = ActivityStore(db)

    # ─── Shared helpers ──────────────────────────────────

    async def get_case_or_404(self, case_id: uuid.UUID) -> Case:
        case = await self.db.get(Case, case_id)
        if case is None:
            raise ResourceNotFound("Case not found")
        return case

    async def collaborator_ids(self, case_id: uuid.UUID) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(CaseCollaborator.user_id)
            .where(CaseCollaborator.case_id == case_id)
            .order_by(CaseCollaborator.added_at)
        )
        return list(result.scalars().all())

    async def access_for(self, case: Case) -> CaseAccess:
        return CaseAccess.of(case, await self.collaborator_ids(case.id))

    # ─── Create ──────────────────────────────────────────

    async def create_case(self, actor_id: uuid.UUID, data: CaseCreate) -> Case:
        """Create a case owned by the actor and log case_created."""
        case = Case(
            **data.model_dump(),
            location_found_general=sanitize_location(data.location_found),
            primary_owner_id=actor_id,
        )
        self.db.add(case)
        await self.db.flush()

        await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=CASE_CREATED,
            description="Case created",
        )
        await self.db.commit()

        logger.info("case.created", case_id=str(case.id), user_id=str(actor_id))
        self.broadcaster.broadcast_created(case)
        return case

    # ─── Update ──────────────────────────────────────────

    async def update_case(
        self, actor_id: uuid.UUID, case_id: uuid.UUID, data: CaseUpdate
    ) -> Case:
        """Apply only the supplied fields.

        Learn: A status change appends one status_change entry naming
        both values. A new location_found re-derives the general area.
        The broadcast carries the diff plus the full post-update state.
        """
        case = await self.get_case_or_404(case_id)
        collaborator_ids = await self.collaborator_ids(case.id)
        authorize(Operation.EDIT, actor_id, CaseAccess.of(case, collaborator_ids))

        changes = data.supplied()
        cleared = {
            name: "Field cannot be null"
            for name in NON_NULLABLE_FIELDS
            if name in changes and changes[name] is None
        }
        if cleared:
            raise ValidationError.for_fields(cleared)

        diff = data.model_dump(mode="json", exclude_unset=True)
        old_status = case.status

        for name, value in changes.items():
            setattr(case, name, value)
        if "location_found" in changes:
            case.location_found_general = sanitize_location(changes["location_found"])
            diff["location_found_general"] = case.location_found_general
        case.updated_at = utcnow()

        if "status" in changes and changes["status"] != old_status:
            await self.activity.append(
                case_id=case.id,
                user_id=actor_id,
                action_type=STATUS_CHANGE,
                description=f"Changed status from {old_status} to {changes['status']}",
            )

        await self.db.commit()

        logger.info(
            "case.updated",
            case_id=str(case.id),
            user_id=str(actor_id),
            fields=sorted(changes),
        )
        self.broadcaster.broadcast_updated(case, diff, collaborator_ids)
        return case

    # ─── Delete ──────────────────────────────────────────

    async def delete_case(self, actor_id: uuid.UUID, case_id: uuid.UUID) -> None:
        """Owner-only. Removes the case with its collaborators, photos and history."""
        case = await self.get_case_or_404(case_id)
        authorize(Operation.DELETE, actor_id, await self.access_for(case))

        for model in (ActivityLog, Photo, CaseCollaborator):
            await self.db.execute(
                delete(model)
                .where(model.case_id == case.id)
                .execution_options(synchronize_session=False)
            )
        await self.db.execute(delete(Case).where(Case.id == case.id))
        await self.db.commit()

        logger.info("case.deleted", case_id=str(case_id), user_id=str(actor_id))
        self.broadcaster.broadcast_deleted(case_id)

    # ─── Read: single case ───────────────────────────────

    async def get_case(
        self, case_id: uuid.UUID, viewer_id: Optional[uuid.UUID]
    ) -> CaseDetail:
        """Policy-projected detail view.

        Learn: A private case the viewer may not read is reported as
        not found, so its existence is not revealed either.
        """
        result = await self.db.execute(
            select(Case)
            .where(Case.id == case_id)
            .options(
                selectinload(Case.primary_owner),
                selectinload(Case.collaborators).selectinload(CaseCollaborator.user),
                selectinload(Case.photos),
            )
        )
        case = result.scalars().first()
        if case is None:
            raise ResourceNotFound("Case not found")

        access = CaseAccess.of(case, [c.user_id for c in case.collaborators])
        if not can_read(viewer_id, access):
            raise ResourceNotFound("Case not found")

        private = can_view_private_details(viewer_id, access)
        entries = await self.activity.read_case(case.id, include_private=private)

        return CaseDetail(
            case=project_case(case, private=private),
            primary_owner=PersonRef.model_validate(case.primary_owner),
            collaborators=[
                CollaboratorRead(
                    id=c.user.id,
                    name=c.user.name,
                    role=c.user.role,
                    role_label=c.role_label,
                    added_by=c.added_by,
                    added_at=c.added_at,
                )
                for c in sorted(case.collaborators, key=lambda c: c.added_at)
            ],
            photos=[PhotoRead.model_validate(p) for p in case.photos],
            activity_log=[
                ActivityRead(
                    id=e.id,
                    user=e.user.name if e.user else "System",
                    action_type=e.action_type,
                    description=e.description,
                    is_public=e.is_public,
                    created_at=e.created_at,
                )
                for e in entries
            ],
            can_edit=can_edit(viewer_id, access),
            is_owner=relation_of(viewer_id, access) is CaseRelation.OWNER,
        )

    # ─── Read: listings ──────────────────────────────────

    async def list_public_cases(
        self,
        status: Optional[str] = None,
        species: Optional[str] = None,
        urgency: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "updated_at",
        sort_order: str = "desc",
    ) -> CaseList:
        """Public listing: public cases only, sanitized locations only."""
        conditions = [Case.is_public.is_(True)]
        if status:
            conditions.append(Case.status == status)
        if species:
            conditions.append(Case.species == species)
        if urgency:
            conditions.append(Case.urgency == urgency)
        if search:
            pattern = f"%{escape_like(search)}%"
            conditions.append(
                or_(
                    Case.description.ilike(pattern, escape="\\"),
                    Case.location_found_general.ilike(pattern, escape="\\"),
                    Case.location_current.ilike(pattern, escape="\\"),
                )
            )

        total = await self.db.scalar(
            select(func.count()).select_from(Case).where(*conditions)
        )

        order_col = SORT_COLUMNS.get(sort_by, Case.updated_at)
        order = order_col.asc() if sort_order == "asc" else order_col.desc()
        result = await self.db.execute(
            select(Case)
            .where(*conditions)
            .options(
                selectinload(Case.primary_owner),
                selectinload(Case.photos),
                selectinload(Case.collaborators),
            )
            .order_by(order, Case.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        cases = result.scalars().all()

        return CaseList(
            cases=[
                CaseSummary(
                    id=c.id,
                    species=c.species,
                    description=c.description,
                    status=c.status,
                    urgency=c.urgency,
                    location_found=c.location_found_general,
                    location_current=c.location_current,
                    date_rescued=c.date_rescued,
                    primary_owner=PersonRef.model_validate(c.primary_owner),
                    primary_photo=_primary_photo(c),
                    collaborator_count=len(c.collaborators),
                    created_at=c.created_at,
                    updated_at=c.updated_at,
                )
                for c in cases
            ],
            pagination=_pagination(page, limit, total or 0),
        )

    async def list_user_cases(
        self,
        user_id: uuid.UUID,
        scope: str = "my_cases",
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> UserCaseList:
        """Cases the user owns ("my_cases"), collaborates on, or both ("all")."""
        collaborating = Case.id.in_(
            select(CaseCollaborator.case_id).where(CaseCollaborator.user_id == user_id)
        )
        owned = Case.primary_owner_id == user_id

        if scope == "my_cases":
            conditions = [owned]
        elif scope == "collaborating":
            conditions = [collaborating]
        else:
            conditions = [or_(owned, collaborating)]
        if status:
            conditions.append(Case.status == status)

        total = await self.db.scalar(
            select(func.count()).select_from(Case).where(*conditions)
        )
        result = await self.db.execute(
            select(Case)
            .where(*conditions)
            .options(selectinload(Case.primary_owner), selectinload(Case.photos))
            .order_by(Case.updated_at.desc(), Case.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        summaries = []
        for c in result.scalars().all():
            is_owner = c.primary_owner_id == user_id
            summaries.append(
                UserCaseSummary(
                    id=c.id,
                    species=c.species,
                    status=c.status,
                    urgency=c.urgency,
                    is_public=c.is_public,
                    relation="owner" if is_owner else "collaborator",
                    primary_owner=None if is_owner else PersonRef.model_validate(c.primary_owner),
                    primary_photo=_primary_photo(c),
                    updated_at=c.updated_at,
                )
            )
        return UserCaseList(cases=summaries, pagination=_pagination(page, limit, total or 0))

    # ─── Read: stats ─────────────────────────────────────

    async def get_stats(self, now: Optional[datetime] = None) -> CaseStats:
        """Aggregate counts over public cases."""
        now = now or datetime.now(timezone.utc)
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        public = Case.is_public.is_(True)

        async def count(*conditions) -> int:
            return await self.db.scalar(
                select(func.count()).select_from(Case).where(public, *conditions)
            ) or 0

        async def grouped(column, *conditions) -> dict[str, int]:
            result = await self.db.execute(
                select(column, func.count()).where(public, *conditions).group_by(column)
            )
            return {key: n for key, n in result.all()}

        return CaseStats(
            active_cases=await count(Case.status != "adopted"),
            rescued_this_month=await count(Case.date_rescued >= month_start),
            in_foster_care=await count(Case.status == "at_foster"),
            adopted_this_month=await count(
                Case.status == "adopted", Case.updated_at >= month_start
            ),
            by_urgency=await grouped(Case.urgency, Case.status != "adopted"),
            by_status=await grouped(Case.status),
            by_species=await grouped(Case.species),
        )
