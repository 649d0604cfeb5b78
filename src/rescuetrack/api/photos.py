"""Photo API routes — multipart upload and delete.

Learn: Files arrive as multipart/form-data under the "photos" field.
Bytes are read here and handed to the service as plain values, so the
service never depends on Starlette's UploadFile.
"""

import uuid

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from rescuetrack.auth.dependencies import CurrentIdentity, get_current_user
from rescuetrack.db.engine import get_db
from rescuetrack.realtime.broadcaster import Broadcaster, get_broadcaster
from rescuetrack.schemas.case import PhotoRead
from rescuetrack.schemas.collaboration import MessageResponse
from rescuetrack.services.photo_service import IncomingPhoto, PhotoService
from rescuetrack.storage import BlobStore, get_blob_store

router = APIRouter(prefix="/cases/{case_id}/photos")


def _photo_svc(
    db: AsyncSession = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
    blobs: BlobStore = Depends(get_blob_store),
) -> PhotoService:
    return PhotoService(db, broadcaster, blobs)


@router.post("", response_model=list[PhotoRead], status_code=201)
async def upload_photos(
    case_id: uuid.UUID,
    photos: list[UploadFile] = File(...),
    is_primary: bool = Form(False),
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PhotoService = Depends(_photo_svc),
):
    incoming = [
        IncomingPhoto(
            filename=f.filename or "upload",
            content_type=f.content_type or "application/octet-stream",
            content=await f.read(),
        )
        for f in photos
    ]
    return await svc.upload_photos(identity.id, case_id, incoming, is_primary)


@router.delete("/{photo_id}", response_model=MessageResponse)
async def delete_photo(
    case_id: uuid.UUID,
    photo_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: PhotoService = Depends(_photo_svc),
):
    await svc.delete_photo(identity.id, case_id, photo_id)
    return MessageResponse(message="Photo deleted successfully")
