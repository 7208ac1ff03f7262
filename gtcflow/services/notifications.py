"""
Notification fan-out: one business event becomes, per recipient, a persisted
Notification row, a realtime push and a queued email.

Notifications are a side effect of workflow transitions, never part of
them: callers dispatch after their transaction commits, and every failure
here is logged per recipient and per channel instead of raised.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from gtcflow.core.exceptions import NotFoundError
from gtcflow.core.realtime import NEW_NOTIFICATION, UNREAD_COUNT, RealtimeChannel
from gtcflow.models.notification import Notification
from gtcflow.models.user import User
from gtcflow.schemas.common import NotificationType, Role
from gtcflow.tasks.email import EmailJob, EmailQueue

log = structlog.get_logger()


@dataclass(frozen=True)
class EmailOverride:
    """Replaces parts of the default email (user's address, notification subject/content)."""

    to: Optional[str] = None
    subject: Optional[str] = None
    html: Optional[str] = None
    text: Optional[str] = None


class Dispatcher(Protocol):
    async def notify_one(
        self,
        user_id: uuid.UUID,
        subject: str,
        content: Optional[str] = None,
        type: NotificationType = NotificationType.GENERIC,
        email: Optional[EmailOverride] = None,
        suppress_email: bool = False,
    ) -> Notification: ...

    async def notify_many(
        self,
        user_ids: Iterable[uuid.UUID],
        subject: str,
        content: Optional[str] = None,
        type: NotificationType = NotificationType.GENERIC,
        email: Optional[EmailOverride] = None,
        suppress_email: bool = False,
    ) -> list[Notification]: ...

    async def send_email(
        self, to: str | list[str], subject: str, html: Optional[str] = None, text: Optional[str] = None
    ) -> None: ...


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------


async def admin_ids(session: AsyncSession) -> list[uuid.UUID]:
    result = await session.execute(select(User.id).where(User.role == Role.ADMIN.value))
    return [row[0] for row in result.all()]


async def sector_owner_ids(session: AsyncSession, sector_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(
        select(User.id).where(User.role == Role.SECTOR_OWNER.value, User.sector_id == sector_id)
    )
    return [row[0] for row in result.all()]


async def point_user_ids(session: AsyncSession, gtc_point_id: uuid.UUID) -> list[uuid.UUID]:
    result = await session.execute(select(User.id).where(User.gtc_point_id == gtc_point_id))
    return [row[0] for row in result.all()]


async def admins_and_owners(session: AsyncSession, sector_id: uuid.UUID) -> list[uuid.UUID]:
    return _unique([*await admin_ids(session), *await sector_owner_ids(session, sector_id)])


def _unique(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


# ---------------------------------------------------------------------------
# Inbox queries
# ---------------------------------------------------------------------------


async def unread_count(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(Notification).where(
            Notification.user_id == user_id, Notification.read == False  # noqa: E712
        )
    )
    return int(result.scalar_one())


async def list_notifications(
    session: AsyncSession,
    user_id: uuid.UUID,
    take: int = 20,
    cursor: Optional[uuid.UUID] = None,
) -> tuple[list[Notification], Optional[uuid.UUID]]:
    """Newest first. Returns (items, next_cursor)."""
    take = min(50, max(1, take))
    stmt = select(Notification).where(Notification.user_id == user_id)

    if cursor is not None:
        anchor = await session.get(Notification, cursor)
        if anchor is None or anchor.user_id != user_id:
            raise NotFoundError("Notification", cursor)
        stmt = stmt.where(
            or_(
                Notification.created_at < anchor.created_at,
                (Notification.created_at == anchor.created_at) & (Notification.id < anchor.id),
            )
        )

    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(take + 1)
    result = await session.execute(stmt)
    items = list(result.scalars().all())

    has_more = len(items) > take
    items = items[:take]
    next_cursor = items[-1].id if has_more else None
    return items, next_cursor


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Default Dispatcher: DB row, realtime push, queued email.

    Each recipient is handled in its own session so one recipient's failure
    cannot poison another's writes.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        realtime: RealtimeChannel,
        email_queue: EmailQueue,
        *,
        concurrency: int = 4,
    ):
        self._session_factory = session_factory
        self._realtime = realtime
        self._email_queue = email_queue
        self._concurrency = max(1, concurrency)

    async def notify_one(
        self,
        user_id: uuid.UUID,
        subject: str,
        content: Optional[str] = None,
        type: NotificationType = NotificationType.GENERIC,
        email: Optional[EmailOverride] = None,
        suppress_email: bool = False,
    ) -> Notification:
        async with self._session_factory() as session:
            notification = Notification(
                user_id=user_id,
                type=NotificationType(type).value,
                subject=subject,
                content=content,
            )
            session.add(notification)
            await session.commit()

            user = await session.get(User, user_id)
            unread = await unread_count(session, user_id)

        await self._push(notification, unread)

        if not suppress_email:
            address = (email.to if email and email.to else None) or (user.email if user else None)
            if address:
                await self._enqueue(
                    EmailJob(
                        to=address,
                        subject=(email.subject if email and email.subject else None) or subject,
                        html=(email.html if email and email.html else None) or content,
                        text=email.text if email else None,
                    ),
                    user_id=user_id,
                )

        return notification

    async def notify_many(
        self,
        user_ids: Iterable[uuid.UUID],
        subject: str,
        content: Optional[str] = None,
        type: NotificationType = NotificationType.GENERIC,
        email: Optional[EmailOverride] = None,
        suppress_email: bool = False,
    ) -> list[Notification]:
        """Notify each recipient independently. Failed recipients are logged and skipped."""
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(uid: uuid.UUID) -> Optional[Notification]:
            async with semaphore:
                try:
                    return await self.notify_one(uid, subject, content, type, email, suppress_email)
                except Exception:
                    log.exception("notify.recipient_failed", user_id=str(uid), subject=subject)
                    return None

        results = await asyncio.gather(*(_one(uid) for uid in _unique(user_ids)))
        return [n for n in results if n is not None]

    async def send_email(
        self, to: str | list[str], subject: str, html: Optional[str] = None, text: Optional[str] = None
    ) -> None:
        await self._enqueue(EmailJob(to=to, subject=subject, html=html, text=text))

    async def mark_read(self, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
        """Mark one of the user's own notifications read and push the new unread count."""
        async with self._session_factory() as session:
            notification = await session.get(Notification, notification_id)
            if notification is None or notification.user_id != user_id:
                raise NotFoundError("Notification", notification_id)
            notification.read = True
            session.add(notification)
            await session.commit()
            unread = await unread_count(session, user_id)

        try:
            await self._realtime.publish(user_id, UNREAD_COUNT, {"unread": unread})
        except Exception:
            log.exception("notify.realtime_failed", user_id=str(user_id))
        return notification

    async def _push(self, notification: Notification, unread: int) -> None:
        try:
            await self._realtime.publish(
                notification.user_id, NEW_NOTIFICATION, notification.model_dump(mode="json")
            )
            await self._realtime.publish(notification.user_id, UNREAD_COUNT, {"unread": unread})
        except Exception:
            log.exception("notify.realtime_failed", user_id=str(notification.user_id))

    async def _enqueue(self, job: EmailJob, user_id: Optional[uuid.UUID] = None) -> None:
        try:
            await self._email_queue.enqueue(job)
        except Exception:
            log.exception(
                "notify.email_failed",
                user_id=str(user_id) if user_id else None,
                to=job.recipients,
                subject=job.subject,
            )
