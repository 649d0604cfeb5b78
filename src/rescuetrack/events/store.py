"""Activity store — append-only per-case history.

Learn: Every successful case mutation appends exactly one entry here,
inside the same transaction as the state change (flush, no commit), so
history and state can never disagree. Entries are never updated; the
autoincrement id is the per-case commit order.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rescuetrack.db.models import ActivityLog
from rescuetrack.events.types import ACTION_TYPES


class ActivityStore:
    """Append-only activity log backed by the activity_logs table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        case_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        action_type: str,
        description: str,
        is_public: bool = True,
    ) -> ActivityLog:
        """Append an entry. Returns it with its id assigned."""
        if action_type not in ACTION_TYPES:
            raise ValueError(f"Unknown activity type: {action_type}")
        entry = ActivityLog(
            case_id=case_id,
            user_id=user_id,
            action_type=action_type,
            description=description,
            is_public=is_public,
        )
        self.db.add(entry)
        await self.db.flush()  # get the auto-generated id
        return entry

    async def read_case(
        self,
        case_id: uuid.UUID,
        include_private: bool = False,
        limit: int = 50,
    ) -> list[ActivityLog]:
        """Most recent entries for a case, newest first."""
        query = (
            select(ActivityLog)
            .where(ActivityLog.case_id == case_id)
            .options(selectinload(ActivityLog.user))
            .order_by(ActivityLog.id.desc())
            .limit(limit)
        )
        if not include_private:
            query = query.where(ActivityLog.is_public.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())
