"""Case event fan-out — who hears about which mutation.

Learn: After a mutation commits, the service hands the resulting state to
the broadcaster, which decides the audience and publishes in a background
task. Audience rules:

    created  public case  → "public"
             private case → "user:{owner}"
    updated  public case  → "public"
             private case → "user:{owner}" + "user:{collaborator}" each
    deleted  any case     → "public" (the id alone is not sensitive)

The public channel only ever carries the redacted projection. Publishing
is best-effort: failures are logged and dropped, never surfaced to the
request that caused them (its write is already durable).

The broadcaster is a process singleton with explicit init/shutdown,
injected into services via the get_broadcaster dependency so tests can
swap the publisher for a recording one.
"""

import asyncio
import uuid
from typing import Any, Iterable, Optional, Protocol

import structlog

from rescuetrack.events.types import (
    EVENT_CASE_CREATED,
    EVENT_CASE_DELETED,
    EVENT_CASE_UPDATED,
)
from rescuetrack.schemas.case import project_case, redact_fields

logger = structlog.get_logger()

PUBLIC_CHANNEL = "public"


def user_channel(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


class EventPublisher(Protocol):
    async def publish(self, channel: str, message: dict[str, Any]) -> None: ...


# ─── Audience rules (pure) ───────────────────────────────


def created_audience(case) -> list[str]:
    if case.is_public:
        return [PUBLIC_CHANNEL]
    return [user_channel(case.primary_owner_id)]


def updated_audience(case, collaborator_ids: Iterable[uuid.UUID]) -> list[str]:
    if case.is_public:
        return [PUBLIC_CHANNEL]
    channels = [user_channel(case.primary_owner_id)]
    for user_id in collaborator_ids:
        channel = user_channel(user_id)
        if channel not in channels:
            channels.append(channel)
    return channels


def deleted_audience() -> list[str]:
    return [PUBLIC_CHANNEL]


# ─── Dispatcher ──────────────────────────────────────────


class Broadcaster:
    """Fire-and-forget publisher of case events."""

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher
        self._pending: set[asyncio.Task] = set()

    def broadcast_created(self, case) -> None:
        payload = {"case": project_case(case, private=not case.is_public)}
        self._dispatch(created_audience(case), EVENT_CASE_CREATED, payload)

    def broadcast_updated(
        self,
        case,
        changes: dict[str, Any],
        collaborator_ids: Iterable[uuid.UUID],
    ) -> None:
        private = not case.is_public
        payload = {
            "case_id": str(case.id),
            "changes": changes if private else redact_fields(changes, case.location_found_general),
            "case": project_case(case, private=private),
        }
        self._dispatch(updated_audience(case, collaborator_ids), EVENT_CASE_UPDATED, payload)

    def broadcast_deleted(self, case_id: uuid.UUID) -> None:
        self._dispatch(deleted_audience(), EVENT_CASE_DELETED, {"case_id": str(case_id)})

    def _dispatch(self, channels: list[str], event: str, data: dict[str, Any]) -> None:
        message = {"event": event, "data": data}
        try:
            task = asyncio.get_running_loop().create_task(
                self._publish_all(channels, message)
            )
        except RuntimeError:
            logger.warning("fanout.no_event_loop", event_type=event)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _publish_all(self, channels: list[str], message: dict[str, Any]) -> None:
        for channel in channels:
            try:
                await self.publisher.publish(channel, message)
            except Exception:
                logger.warning(
                    "fanout.publish_failed",
                    channel=channel,
                    event_type=message["event"],
                    exc_info=True,
                )
            else:
                logger.debug("fanout.published", channel=channel, event_type=message["event"])

    async def drain(self) -> None:
        """Wait for every in-flight publish (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# ─── Process singleton ───────────────────────────────────

_broadcaster: Optional[Broadcaster] = None


def init_broadcaster(publisher: EventPublisher) -> Broadcaster:
    """Create the process-wide broadcaster (called once in lifespan)."""
    global _broadcaster
    _broadcaster = Broadcaster(publisher)
    return _broadcaster


async def shutdown_broadcaster() -> None:
    """Flush in-flight events and drop the singleton."""
    global _broadcaster
    if _broadcaster is not None:
        await _broadcaster.drain()
        _broadcaster = None


def get_broadcaster() -> Broadcaster:
    """FastAPI dependency — the broadcaster must be initialized first."""
    if _broadcaster is None:
        raise RuntimeError("Broadcaster not initialized. Call init_broadcaster() first.")
    return _broadcaster
