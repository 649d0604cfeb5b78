"""Event type constants.

Learn: Centralizing event names as constants prevents typos and
makes it easy to discover every kind of history entry and live
notification the system produces.
"""

# ─── Activity log action kinds (per-case audit trail) ────

CASE_CREATED = "case_created"
STATUS_CHANGE = "status_change"
NOTE_ADDED = "note_added"
COLLABORATOR_ADDED = "collaborator_added"
COLLABORATOR_REMOVED = "collaborator_removed"
OWNERSHIP_TRANSFERRED = "ownership_transferred"
PHOTO_ADDED = "photo_added"
PHOTO_DELETED = "photo_deleted"

ACTION_TYPES = frozenset({
    CASE_CREATED,
    STATUS_CHANGE,
    NOTE_ADDED,
    COLLABORATOR_ADDED,
    COLLABORATOR_REMOVED,
    OWNERSHIP_TRANSFERRED,
    PHOTO_ADDED,
    PHOTO_DELETED,
})

# ─── Live notifications (WebSocket fan-out) ──────────────

EVENT_CASE_CREATED = "case_created"
EVENT_CASE_UPDATED = "case_updated"
EVENT_CASE_DELETED = "case_deleted"
