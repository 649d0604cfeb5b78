"""Access policy — who may read/write what on a case.

Learn: Pure functions over a snapshot of the case, no I/O. The actor's
relation to the case is a small tagged enum, and every decision is a
lookup on that tag. Two tiers of rights:

    OWNER         read, edit, add collaborators, delete, transfer, remove collaborators
    COLLABORATOR  read, edit, add collaborators, see private details
    OUTSIDER      read public cases (redacted)
    ANONYMOUS     read public cases (redacted)

Many hands may update medical notes; only the responsible party may
reassign or delete the case.
"""

import enum
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from rescuetrack.errors import PermissionDenied

ActorId = Optional[Union[str, uuid.UUID]]


class CaseRelation(str, enum.Enum):
    OWNER = "owner"
    COLLABORATOR = "collaborator"
    OUTSIDER = "outsider"
    ANONYMOUS = "anonymous"


class Operation(str, enum.Enum):
    READ = "read"
    EDIT = "edit"
    ADD_COLLABORATOR = "add_collaborator"
    REMOVE_COLLABORATOR = "remove_collaborator"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    DELETE = "delete"


@dataclass(frozen=True)
class CaseAccess:
    """The slice of case state that access decisions depend on."""

    owner_id: uuid.UUID
    is_public: bool
    collaborator_ids: frozenset[uuid.UUID]

    @classmethod
    def of(cls, case, collaborator_ids: Iterable[uuid.UUID]) -> "CaseAccess":
        return cls(
            owner_id=case.primary_owner_id,
            is_public=case.is_public,
            collaborator_ids=frozenset(collaborator_ids),
        )


def _as_uuid(actor_id: ActorId) -> Optional[uuid.UUID]:
    if actor_id is None:
        return None
    if isinstance(actor_id, uuid.UUID):
        return actor_id
    try:
        return uuid.UUID(str(actor_id))
    except ValueError:
        return None


def relation_of(actor_id: ActorId, access: CaseAccess) -> CaseRelation:
    actor = _as_uuid(actor_id)
    if actor is None:
        return CaseRelation.ANONYMOUS
    if actor == access.owner_id:
        return CaseRelation.OWNER
    if actor in access.collaborator_ids:
        return CaseRelation.COLLABORATOR
    return CaseRelation.OUTSIDER


_MEMBERS = {CaseRelation.OWNER, CaseRelation.COLLABORATOR}

_ALLOWED: dict[Operation, set[CaseRelation]] = {
    Operation.EDIT: _MEMBERS,
    Operation.ADD_COLLABORATOR: _MEMBERS,
    Operation.REMOVE_COLLABORATOR: {CaseRelation.OWNER},
    Operation.TRANSFER_OWNERSHIP: {CaseRelation.OWNER},
    Operation.DELETE: {CaseRelation.OWNER},
}

_DENIAL_MESSAGES: dict[Operation, str] = {
    Operation.READ: "You do not have access to this case",
    Operation.EDIT: "You do not have permission to edit this case",
    Operation.ADD_COLLABORATOR: "You do not have permission to add collaborators",
    Operation.REMOVE_COLLABORATOR: "Only the case owner can remove collaborators",
    Operation.TRANSFER_OWNERSHIP: "Only the case owner can transfer ownership",
    Operation.DELETE: "Only the case owner can delete this case",
}


def is_allowed(operation: Operation, actor_id: ActorId, access: CaseAccess) -> bool:
    relation = relation_of(actor_id, access)
    if operation is Operation.READ:
        return access.is_public or relation in _MEMBERS
    return relation in _ALLOWED[operation]


def can_read(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.READ, actor_id, access)


def can_view_private_details(actor_id: ActorId, access: CaseAccess) -> bool:
    """Precise location, clinical fields and private activity entries."""
    return relation_of(actor_id, access) in _MEMBERS


def can_edit(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.EDIT, actor_id, access)


def can_add_collaborator(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.ADD_COLLABORATOR, actor_id, access)


def can_remove_collaborator(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.REMOVE_COLLABORATOR, actor_id, access)


def can_transfer_ownership(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.TRANSFER_OWNERSHIP, actor_id, access)


def can_delete(actor_id: ActorId, access: CaseAccess) -> bool:
    return is_allowed(Operation.DELETE, actor_id, access)


def authorize(operation: Operation, actor_id: ActorId, access: CaseAccess) -> None:
    """Raise PermissionDenied unless the actor may perform the operation."""
    if not is_allowed(operation, actor_id, access):
        raise PermissionDenied(_DENIAL_MESSAGES[operation])
