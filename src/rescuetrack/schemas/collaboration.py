"""Pydantic schemas for collaborator management, transfers and notes."""

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class AddCollaboratorRequest(BaseModel):
    user_id: uuid.UUID
    role_label: Optional[str] = Field(None, max_length=100)


class TransferOwnershipRequest(BaseModel):
    new_owner_id: uuid.UUID


class AddNoteRequest(BaseModel):
    description: str = Field(min_length=1, max_length=2000)
    is_public: bool = True


class MessageResponse(BaseModel):
    message: str
