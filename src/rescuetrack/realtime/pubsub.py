"""Redis pub/sub — event relay between processes and WebSockets.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for live UI updates (the frontend can always query
the API to catch up); the activity log in the database is the durable record.

Channel naming: rescuetrack:events:{audience}
where audience is "public" or "user:{user_id}". Each process runs one relay
task that pattern-subscribes to rescuetrack:events:* and hands every message
to its local subscriber registry.
"""

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as aioredis
import structlog

from rescuetrack.config import settings
from rescuetrack.realtime.registry import SubscriberRegistry

logger = structlog.get_logger()

CHANNEL_PREFIX = "rescuetrack:events:"
RELAY_RETRY_SECONDS = 2.0
RELAY_MAX_RETRY_SECONDS = 30.0

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


class RedisPublisher:
    """EventPublisher that fans out through Redis to every process."""

    async def publish(self, channel: str, message: dict[str, Any]) -> None:
        await get_redis().publish(CHANNEL_PREFIX + channel, json.dumps(message))


async def relay_events(
    registry: SubscriberRegistry,
    retry_seconds: float = RELAY_RETRY_SECONDS,
) -> None:
    """Forward every Redis event to this process's live subscribers.

    Learn: Runs for the lifetime of the app. One subscription per
    process (not per socket) keeps Redis connection count flat no
    matter how many browsers are connected. A dropped connection is
    logged and re-subscribed with exponential backoff; events published
    while disconnected are lost, as with any pub/sub listener.
    """
    delay = retry_seconds
    while True:
        pubsub = get_redis().pubsub()
        try:
            await pubsub.psubscribe(CHANNEL_PREFIX + "*")
            logger.info("relay.subscribed", pattern=CHANNEL_PREFIX + "*")
            delay = retry_seconds
            async for message in pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                channel = message["channel"][len(CHANNEL_PREFIX):]
                try:
                    await registry.publish(channel, json.loads(message["data"]))
                except json.JSONDecodeError:
                    logger.warning("relay.bad_payload", channel=channel)
        except Exception as e:
            logger.warning("relay.error", error=str(e), retry_in=delay)
        finally:
            try:
                await pubsub.aclose()
            except Exception as e:
                logger.debug("relay.close_failed", error=str(e))

        await asyncio.sleep(delay)
        delay = min(delay * 2, RELAY_MAX_RETRY_SECONDS)
