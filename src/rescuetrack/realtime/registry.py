"""Live subscriber registry — which sockets listen on which channel.

Learn: Every connected browser tab is one WebSocket joined to the
"public" channel and, when it presented a valid token, to its own
"user:{id}" channel. The registry is mutated only on connect/disconnect
and read on delivery. It holds sockets, never case data.
"""

import asyncio
import json
from typing import Any, Iterable, Protocol

import structlog

logger = structlog.get_logger()


class Subscriber(Protocol):
    """Anything we can push text frames to (a Starlette WebSocket in prod)."""

    async def send_text(self, data: str) -> None: ...


class SubscriberRegistry:
    """Channel → sockets map. Also an EventPublisher for single-process delivery."""

    def __init__(self):
        self._channels: dict[str, set[Subscriber]] = {}
        self._memberships: dict[Subscriber, set[str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, subscriber: Subscriber, channels: Iterable[str]) -> None:
        """Join an (already accepted) socket to the given channels."""
        async with self._lock:
            joined = self._memberships.setdefault(subscriber, set())
            for channel in channels:
                self._channels.setdefault(channel, set()).add(subscriber)
                joined.add(channel)

    async def disconnect(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._drop(subscriber)

    def _drop(self, subscriber: Subscriber) -> None:
        for channel in self._memberships.pop(subscriber, set()):
            members = self._channels.get(channel)
            if members is None:
                continue
            members.discard(subscriber)
            if not members:
                del self._channels[channel]

    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        """Deliver a message to every local subscriber of a channel.

        A socket that fails to receive is treated as gone and removed.
        """
        async with self._lock:
            targets = list(self._channels.get(channel, ()))
        if not targets:
            return

        data = json.dumps(message)
        dead = []
        for subscriber in targets:
            try:
                await subscriber.send_text(data)
            except Exception:
                dead.append(subscriber)

        if dead:
            logger.info("registry.dropped_dead_sockets", channel=channel, count=len(dead))
            async with self._lock:
                for subscriber in dead:
                    self._drop(subscriber)

    def subscriber_count(self, channel: str | None = None) -> int:
        if channel is None:
            return len(self._memberships)
        return len(self._channels.get(channel, ()))


# Process-wide registry (one per worker process)
registry = SubscriberRegistry()
