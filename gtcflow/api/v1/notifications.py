"""
Notification inbox and the per-user realtime stream.

- GET  /                      newest first, cursor paginated
- GET  /unread-count
- POST /{notification_id}/read
- GET  /stream                SSE: `new-notification` and `unread-count` events
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from gtcflow.core.auth import AppContext, get_context, get_current_user, get_stream_user
from gtcflow.core.database import get_session
from gtcflow.core.realtime import user_event_generator
from gtcflow.models.user import User
from gtcflow.schemas.notifications import NotificationPage, NotificationRead, UnreadCount
from gtcflow.services.notifications import list_notifications, unread_count

router = APIRouter()


@router.get("/", response_model=NotificationPage)
async def list_my_notifications(
    take: int = Query(20, ge=1, le=50),
    cursor: Optional[uuid.UUID] = None,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    items, next_cursor = await list_notifications(session, user.id, take, cursor)
    return NotificationPage(
        items=[NotificationRead.model_validate(n) for n in items],
        next_cursor=next_cursor,
    )


@router.get("/unread-count", response_model=UnreadCount)
async def my_unread_count(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return UnreadCount(unread=await unread_count(session, user.id))


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_notification_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    return await ctx.dispatcher.mark_read(user.id, notification_id)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    user: User = Depends(get_stream_user),
    ctx: AppContext = Depends(get_context),
):
    """
    Stream the user's private realtime channel via SSE.

    Emits `: heartbeat` comments every 30 seconds to keep the connection alive.
    """
    if ctx.redis is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime stream is not available.",
        )
    return EventSourceResponse(user_event_generator(request, ctx.redis, user.id))
