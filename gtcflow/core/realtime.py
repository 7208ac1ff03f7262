"""
Per-user realtime channel over Redis Pub/Sub, streamed to browsers via SSE.

Every user has a private channel `gtc:user:{user_id}`. The notification
dispatcher publishes two event shapes on it:
- {"kind": "new-notification", "payload": <notification>}
- {"kind": "unread-count", "payload": {"unread": <int>}}
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncGenerator, Protocol
from uuid import UUID

import redis.asyncio as redis
import structlog
from fastapi import Request

log = structlog.get_logger()

USER_CHANNEL_PREFIX = "gtc:user:"
HEARTBEAT_INTERVAL = 30  # seconds

NEW_NOTIFICATION = "new-notification"
UNREAD_COUNT = "unread-count"


def user_channel(user_id: UUID | str) -> str:
    return f"{USER_CHANNEL_PREFIX}{user_id}"


class RealtimeChannel(Protocol):
    async def publish(self, user_id: UUID, kind: str, payload: dict[str, Any]) -> None: ...


class RedisRealtimeChannel:
    def __init__(self, client: redis.Redis):
        self._redis = client

    async def publish(self, user_id: UUID, kind: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"kind": kind, "payload": payload}, default=str)
        await self._redis.publish(user_channel(user_id), message)


async def user_event_generator(
    request: Request,
    client: redis.Redis,
    user_id: UUID,
) -> AsyncGenerator[dict | str, None]:
    """
    SSE generator for one user's private channel.

    - Relays each published message as an SSE event named after its kind
    - Emits `: heartbeat` comments when idle
    - Unsubscribes on disconnect
    """
    pubsub = client.pubsub()
    channel = user_channel(user_id)
    await pubsub.subscribe(channel)

    idle_seconds = 0
    try:
        while True:
            if await request.is_disconnected():
                break

            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)

            if message is None:
                idle_seconds += 1
                if idle_seconds >= HEARTBEAT_INTERVAL:
                    idle_seconds = 0
                    yield ": heartbeat\n\n"
                continue

            idle_seconds = 0

            if message["type"] == "message":
                data = json.loads(message["data"])
                yield {
                    "event": data["kind"],
                    "data": json.dumps(data["payload"]),
                }

    except asyncio.CancelledError:
        log.info("realtime.stream_cancelled", user_id=str(user_id))
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
