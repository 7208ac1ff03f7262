"""
Tests for the per-user realtime channel and local file storage.

Tests cover:
- Publish envelope shape and channel naming
- SSE relay of published events, unsubscribe on disconnect
- Local file store naming, checksums and path containment
"""

from __future__ import annotations

import hashlib
import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from gtcflow.core.realtime import (
    NEW_NOTIFICATION,
    UNREAD_COUNT,
    RedisRealtimeChannel,
    user_channel,
    user_event_generator,
)
from gtcflow.core.storage import LocalFileStore, sanitize_filename


class TestRealtimeChannel:
    async def test_publish_wraps_kind_and_payload(self):
        client = AsyncMock()
        user_id = uuid.uuid4()

        await RedisRealtimeChannel(client).publish(user_id, UNREAD_COUNT, {"unread": 3})

        channel, message = client.publish.await_args.args
        assert channel == f"gtc:user:{user_id}"
        assert json.loads(message) == {"kind": UNREAD_COUNT, "payload": {"unread": 3}}

    async def test_stream_relays_and_unsubscribes(self):
        user_id = uuid.uuid4()
        pubsub = MagicMock()
        pubsub.subscribe = AsyncMock()
        pubsub.unsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.get_message = AsyncMock(
            return_value={
                "type": "message",
                "data": json.dumps({"kind": NEW_NOTIFICATION, "payload": {"subject": "Hi"}}),
            }
        )
        client = MagicMock()
        client.pubsub.return_value = pubsub
        request = MagicMock()
        request.is_disconnected = AsyncMock(side_effect=[False, True])

        events = [e async for e in user_event_generator(request, client, user_id)]

        assert events == [{"event": NEW_NOTIFICATION, "data": json.dumps({"subject": "Hi"})}]
        pubsub.subscribe.assert_awaited_once_with(user_channel(user_id))
        pubsub.unsubscribe.assert_awaited_once_with(user_channel(user_id))
        pubsub.aclose.assert_awaited_once()


class TestLocalFileStore:
    def test_sanitize_strips_directories(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\docs\\my file.pdf") == "my_file.pdf"
        assert sanitize_filename("...") == "file"

    async def test_put_and_remove(self, tmp_path):
        store = LocalFileStore(tmp_path)
        content = b"%PDF-1.4 test"

        stored = await store.put(content, "application/pdf", "signed convention.pdf")

        assert stored.file_name.endswith("-signed_convention.pdf")
        assert stored.checksum == hashlib.sha256(content).hexdigest()
        assert store.resolve(stored.path).read_bytes() == content

        await store.remove(stored.path)
        assert not store.resolve(stored.path).exists()

    def test_resolve_rejects_escape(self, tmp_path):
        store = LocalFileStore(tmp_path / "uploads")
        with pytest.raises(ValueError):
            store.resolve("/../outside.pdf")
