"""Photo service — upload and delete case photos.

Learn: Uploads are validated as a batch (count, content type, size) and
every offending file is reported in one VALIDATION_ERROR, so the client
can fix everything in a single round trip. Bytes go to the blob store
first; the photo rows and the activity entry are then written in one
transaction.

Primary photo rules:
- The first photo ever attached to a case becomes primary
- is_primary=True on upload makes the first new photo primary
- Deleting the primary promotes the next photo by order_index
"""

import mimetypes
import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.policy import Operation, authorize
from rescuetrack.config import settings
from rescuetrack.db.models import Photo, utcnow
from rescuetrack.errors import InternalError, ResourceNotFound, ValidationError
from rescuetrack.events.store import ActivityStore
from rescuetrack.events.types import PHOTO_ADDED, PHOTO_DELETED
from rescuetrack.realtime.broadcaster import Broadcaster
from rescuetrack.schemas.case import PhotoRead
from rescuetrack.services.case_service import CaseService
from rescuetrack.storage import BlobStore, StoredBlob

logger = structlog.get_logger()


@dataclass
class IncomingPhoto:
    filename: str
    content_type: str
    content: bytes


def validate_photos(photos: list[IncomingPhoto]) -> None:
    """Raise one ValidationError naming every problem in the batch."""
    if not photos:
        raise ValidationError.for_fields({"photos": "No files provided"})
    if len(photos) > settings.max_photos_per_upload:
        raise ValidationError.for_fields(
            {"photos": f"At most {settings.max_photos_per_upload} photos per upload"}
        )

    problems: dict[str, str] = {}
    max_mb = settings.max_photo_bytes / (1024 * 1024)
    for idx, photo in enumerate(photos):
        field = f"photos[{idx}]"
        if not (photo.content_type or "").startswith("image/"):
            problems[field] = f"{photo.filename}: only image files are allowed"
        elif len(photo.content) > settings.max_photo_bytes:
            problems[field] = f"{photo.filename}: exceeds {max_mb:g} MB limit"
    if problems:
        raise ValidationError.for_fields(problems)


def _blob_key(case_id: uuid.UUID, photo: IncomingPhoto) -> str:
    ext = mimetypes.guess_extension(photo.content_type) or ""
    return f"cases/{case_id}/{uuid.uuid4().hex}{ext}"


class PhotoService:
    """Photo attachments on a case (editor-only writes)."""

    def __init__(self, db: AsyncSession, broadcaster: Broadcaster, blobs: BlobStore):
        self.db = db
        self.blobs = blobs
        self.cases = CaseService(db, broadcaster)
        self.activity = ActivityStore(db)

    # ─── Upload ──────────────────────────────────────────

    async def upload_photos(
        self,
        actor_id: uuid.UUID,
        case_id: uuid.UUID,
        photos: list[IncomingPhoto],
        is_primary: bool = False,
    ) -> list[PhotoRead]:
        case = await self.cases.get_case_or_404(case_id)
        authorize(Operation.EDIT, actor_id, await self.cases.access_for(case))
        validate_photos(photos)

        stored: list[StoredBlob] = []
        for photo in photos:
            try:
                stored.append(
                    await self.blobs.save(_blob_key(case.id, photo), photo.content, photo.content_type)
                )
            except Exception as e:
                logger.error("photo.upload_failed", case_id=str(case.id), filename=photo.filename, error=str(e))
                await self._discard(stored)
                raise InternalError(f"Failed to upload photo: {photo.filename}")

        try:
            existing = await self.db.scalar(
                select(func.count()).select_from(Photo).where(Photo.case_id == case.id)
            ) or 0
            make_primary = existing == 0 or is_primary
            if make_primary and existing:
                await self.db.execute(
                    update(Photo)
                    .where(Photo.case_id == case.id)
                    .values(is_primary=False)
                    .execution_options(synchronize_session=False)
                )

            rows = []
            for idx, blob in enumerate(stored):
                row = Photo(
                    case_id=case.id,
                    url=blob.url,
                    thumbnail_url=blob.thumbnail_url,
                    uploaded_by=actor_id,
                    order_index=existing + idx,
                    is_primary=make_primary and idx == 0,
                )
                self.db.add(row)
                rows.append(row)
            await self.db.flush()

            await self.activity.append(
                case_id=case.id,
                user_id=actor_id,
                action_type=PHOTO_ADDED,
                description=f"Added {len(rows)} photo(s)",
            )
            case.updated_at = utcnow()
            await self.db.commit()
        except Exception:
            # No row references these blobs now
            await self._discard(stored)
            raise

        logger.info("photo.uploaded", case_id=str(case.id), count=len(rows))
        return [PhotoRead.model_validate(r) for r in rows]

    async def _discard(self, stored: list[StoredBlob]) -> None:
        for blob in stored:
            try:
                await self.blobs.delete(blob.url)
            except Exception as e:
                logger.warning("photo.cleanup_failed", url=blob.url, error=str(e))

    # ─── Delete ──────────────────────────────────────────

    async def delete_photo(
        self, actor_id: uuid.UUID, case_id: uuid.UUID, photo_id: uuid.UUID
    ) -> None:
        """Remove a photo. A blob-store failure is logged, the row still goes."""
        case = await self.cases.get_case_or_404(case_id)
        authorize(Operation.EDIT, actor_id, await self.cases.access_for(case))

        result = await self.db.execute(
            select(Photo).where(Photo.id == photo_id, Photo.case_id == case.id)
        )
        photo = result.scalars().first()
        if photo is None:
            raise ResourceNotFound("Photo not found")

        try:
            await self.blobs.delete(photo.url)
        except Exception as e:
            logger.error("photo.blob_delete_failed", photo_id=str(photo.id), error=str(e))

        was_primary = photo.is_primary
        await self.db.execute(
            delete(Photo)
            .where(Photo.id == photo.id)
            .execution_options(synchronize_session=False)
        )

        if was_primary:
            result = await self.db.execute(
                select(Photo)
                .where(Photo.case_id == case.id)
                .order_by(Photo.order_index.asc(), Photo.uploaded_at.asc())
                .limit(1)
            )
            successor = result.scalars().first()
            if successor is not None:
                successor.is_primary = True

        await self.activity.append(
            case_id=case.id,
            user_id=actor_id,
            action_type=PHOTO_DELETED,
            description="Deleted a photo",
        )
        case.updated_at = utcnow()
        await self.db.commit()

        logger.info("photo.deleted", case_id=str(case.id), photo_id=str(photo_id))
