"""Pydantic schemas for cases, plus the read-time privacy projection.

Learn: Pydantic v2 models validate request/response data. Separate
"Create"/"Update" schemas (input) from "Read" schemas (output).

Redaction is a projection, not a separate permission check: the same
CaseState is dumped for everyone, then outsiders get the general area
in place of the precise location and no clinical fields.
"""

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

Species = Literal["dog", "cat", "squirrel", "iguana", "other"]
CaseStatus = Literal[
    "reported",
    "rescued",
    "at_vet",
    "surgery",
    "at_foster",
    "adoption_talks",
    "adopted",
]
Urgency = Literal["high", "medium", "low"]

CASE_STATUSES: tuple[str, ...] = CaseStatus.__args__

# Only the owner and collaborators ever see these.
CLINICAL_FIELDS = ("injuries", "treatments", "medications")

# Columns that may be changed but never cleared.
NON_NULLABLE_FIELDS = ("species", "status", "urgency", "location_found", "is_public")


# ─── Input ──────────────────────────────────────────────


class CaseCreate(BaseModel):
    species: Species
    description: Optional[str] = Field(None, max_length=5000)
    status: CaseStatus
    urgency: Urgency
    location_found: str = Field(..., min_length=1, max_length=255)
    location_current: Optional[str] = Field(None, max_length=255)
    date_rescued: Optional[datetime] = None
    condition_description: Optional[str] = Field(None, max_length=5000)
    injuries: Optional[str] = Field(None, max_length=5000)
    treatments: Optional[str] = Field(None, max_length=5000)
    medications: Optional[str] = Field(None, max_length=5000)
    special_needs: Optional[str] = Field(None, max_length=5000)
    dietary_requirements: Optional[str] = Field(None, max_length=5000)
    behavior_notes: Optional[str] = Field(None, max_length=5000)
    public_notes: Optional[str] = Field(None, max_length=2000)
    is_public: bool = True


class CaseUpdate(BaseModel):
    """Partial update: only fields present in the request body change."""

    species: Optional[Species] = None
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[CaseStatus] = None
    urgency: Optional[Urgency] = None
    location_found: Optional[str] = Field(None, min_length=1, max_length=255)
    location_current: Optional[str] = Field(None, max_length=255)
    date_rescued: Optional[datetime] = None
    condition_description: Optional[str] = Field(None, max_length=5000)
    injuries: Optional[str] = Field(None, max_length=5000)
    treatments: Optional[str] = Field(None, max_length=5000)
    medications: Optional[str] = Field(None, max_length=5000)
    special_needs: Optional[str] = Field(None, max_length=5000)
    dietary_requirements: Optional[str] = Field(None, max_length=5000)
    behavior_notes: Optional[str] = Field(None, max_length=5000)
    public_notes: Optional[str] = Field(None, max_length=2000)
    is_public: Optional[bool] = None

    def supplied(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


# ─── Output ─────────────────────────────────────────────


class CaseState(BaseModel):
    """Full persisted state of a case (what owners and collaborators see)."""

    id: uuid.UUID
    species: str
    description: Optional[str] = None
    status: str
    urgency: str
    location_found: str
    location_found_general: str
    location_current: Optional[str] = None
    date_rescued: Optional[datetime] = None
    condition_description: Optional[str] = None
    injuries: Optional[str] = None
    treatments: Optional[str] = None
    medications: Optional[str] = None
    special_needs: Optional[str] = None
    dietary_requirements: Optional[str] = None
    behavior_notes: Optional[str] = None
    public_notes: Optional[str] = None
    is_public: bool
    primary_owner_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


def redact_fields(data: dict[str, Any], general_area: Optional[str]) -> dict[str, Any]:
    """Strip private detail from a (possibly partial) case dict."""
    redacted = dict(data)
    if "location_found" in redacted:
        redacted["location_found"] = general_area
    for name in CLINICAL_FIELDS:
        if name in redacted:
            redacted[name] = None
    return redacted


def project_case(case, private: bool) -> dict[str, Any]:
    """JSON-ready case state, redacted unless the viewer is a member."""
    state = CaseState.model_validate(case).model_dump(mode="json")
    if private:
        return state
    return redact_fields(state, case.location_found_general)


class PersonRef(BaseModel):
    id: uuid.UUID
    name: str
    role: str

    model_config = {"from_attributes": True}


class CollaboratorRead(BaseModel):
    id: uuid.UUID  # the collaborating user's id
    name: str
    role: str
    role_label: Optional[str] = None
    added_by: Optional[uuid.UUID] = None
    added_at: datetime


class PhotoRead(BaseModel):
    id: uuid.UUID
    url: str
    thumbnail_url: Optional[str] = None
    is_primary: bool
    uploaded_by: Optional[uuid.UUID] = None
    uploaded_at: datetime

    model_config = {"from_attributes": True}


class ActivityRead(BaseModel):
    id: int
    user: str  # display name, "System" for unattributed entries
    action_type: str
    description: str
    is_public: bool
    created_at: datetime


class CaseDetail(BaseModel):
    """Single-case view. Fields follow the viewer's access level."""

    case: dict[str, Any]
    primary_owner: PersonRef
    collaborators: list[CollaboratorRead]
    photos: list[PhotoRead]
    activity_log: list[ActivityRead]
    can_edit: bool
    is_owner: bool


class PrimaryPhoto(BaseModel):
    url: str
    thumbnail_url: Optional[str] = None


class CaseSummary(BaseModel):
    """Card in the public listing: always the sanitized location."""

    id: uuid.UUID
    species: str
    description: Optional[str] = None
    status: str
    urgency: str
    location_found: str
    location_current: Optional[str] = None
    date_rescued: Optional[datetime] = None
    primary_owner: PersonRef
    primary_photo: Optional[PrimaryPhoto] = None
    collaborator_count: int
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CaseList(BaseModel):
    cases: list[CaseSummary]
    pagination: Pagination


class UserCaseSummary(BaseModel):
    id: uuid.UUID
    species: str
    status: str
    urgency: str
    is_public: bool
    relation: str  # owner | collaborator
    primary_owner: Optional[PersonRef] = None  # null when the viewer owns it
    primary_photo: Optional[PrimaryPhoto] = None
    updated_at: datetime


class UserCaseList(BaseModel):
    cases: list[UserCaseSummary]
    pagination: Pagination


class CaseStats(BaseModel):
    active_cases: int
    rescued_this_month: int
    in_foster_care: int
    adopted_this_month: int
    by_urgency: dict[str, int]
    by_status: dict[str, int]
    by_species: dict[str, int]
