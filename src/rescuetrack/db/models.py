"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Relationships, constraints, and indexes defined here.
Alembic migrations mirror these models.

Key concepts:
- UUID primary keys for users, cases, collaborators and photos
- Autoincrement integer ids for activity entries, so id order == commit order
- Generic column types (Uuid, DateTime) so the same models run on
  PostgreSQL in production and SQLite in tests
- Python-side defaults for timestamps (microsecond precision on every backend)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Identity: users + rotating refresh tokens
# ══════════════════════════════════════════════════════════════


class User(Base):
    """A person using the platform (rescuer, vet, foster, coordinator, admin).

    Learn: Users are never hard-deleted. Setting is_active=False blocks
    login while keeping every case/activity reference intact.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # rescuer, vet, foster, adoption_coordinator, admin
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    organization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class RefreshToken(Base):
    """One outstanding refresh secret, stored only as its SHA-256 hash.

    Learn: The plaintext secret goes to the client exactly once. A row is
    consumed (deleted) on rotation or logout; expired rows are swept.
    """

    __tablename__ = "refresh_tokens"
    __table_args__ = (
        Index("ix_refresh_tokens_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# ══════════════════════════════════════════════════════════════
# Cases and everything a case owns
# ══════════════════════════════════════════════════════════════


class Case(Base):
    """The rescue record.

    Learn: location_found is the precise spot; location_found_general is
    the privacy-preserving derivation shown to outsiders. Clinical fields
    (injuries, treatments, medications) are only ever projected to the
    owner and collaborators.
    """

    __tablename__ = "cases"
    __table_args__ = (
        Index("ix_cases_public_updated", "is_public", "updated_at"),
        Index("ix_cases_owner", "primary_owner_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    species: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # reported, rescued, at_vet, surgery, at_foster, adoption_talks, adopted
    urgency: Mapped[str] = mapped_column(String(20), nullable=False)  # high, medium, low
    location_found: Mapped[str] = mapped_column(String(255), nullable=False)
    location_found_general: Mapped[str] = mapped_column(String(255), nullable=False)
    location_current: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    date_rescued: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    condition_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    injuries: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    treatments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    medications: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_needs: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dietary_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    behavior_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    public_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    primary_owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships (always loaded explicitly with selectinload)
    primary_owner: Mapped["User"] = relationship(foreign_keys=[primary_owner_id])
    collaborators: Mapped[list["CaseCollaborator"]] = relationship(
        back_populates="case", passive_deletes=True
    )
    photos: Mapped[list["Photo"]] = relationship(
        back_populates="case",
        order_by="Photo.order_index",
        passive_deletes=True,
    )


class CaseCollaborator(Base):
    """Edit rights on a case short of ownership.

    Learn: Unique per (case, user). role_label is free text ("Vet",
    "Foster", "Previous Owner"); added_by records who extended access.
    """

    __tablename__ = "case_collaborators"
    __table_args__ = (
        UniqueConstraint("case_id", "user_id", name="uq_case_collaborators"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    role_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    added_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    case: Mapped["Case"] = relationship(back_populates="collaborators")
    user: Mapped["User"] = relationship(foreign_keys=[user_id])


class Photo(Base):
    """A photo attached to a case. The bytes live in the blob store."""

    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    case: Mapped["Case"] = relationship(back_populates="photos")


class ActivityLog(Base):
    """Append-only audit trail for a case.

    Learn: Never updated or deleted (except with the whole case). The
    autoincrement id gives per-case commit order, so "recent activity"
    is simply ORDER BY id DESC. is_public=False entries are only shown
    to the owner and collaborators.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_case_id", "case_id", "id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )  # null = system entry
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[Optional["User"]] = relationship()
