"""
ARQ background task: deliver queued emails.

Requests only enqueue; delivery happens in the worker process with
exponential backoff (2s, 4s, ...) up to `email_max_tries` attempts.

Run with: arq gtcflow.tasks.email.WorkerSettings
"""

from __future__ import annotations

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, Union

import structlog
from arq import Retry
from arq.connections import ArqRedis, RedisSettings
from pydantic import BaseModel

from gtcflow.core.config import get_settings
from gtcflow.core.logging import configure_logging

log = structlog.get_logger()
settings = get_settings()


class EmailJob(BaseModel):
    to: Union[str, list[str]]
    subject: str
    html: Optional[str] = None
    text: Optional[str] = None

    @property
    def recipients(self) -> list[str]:
        return [self.to] if isinstance(self.to, str) else list(self.to)


class EmailQueue(Protocol):
    async def enqueue(self, job: EmailJob) -> None: ...


class ArqEmailQueue:
    """Enqueues email jobs on the ARQ Redis queue."""

    def __init__(self, pool: ArqRedis):
        self._pool = pool

    async def enqueue(self, job: EmailJob) -> None:
        await self._pool.enqueue_job("send_email", job.model_dump())


def _build_message(job: EmailJob) -> MIMEMultipart | MIMEText:
    if job.html:
        msg: MIMEMultipart | MIMEText = MIMEMultipart("alternative")
        if job.text:
            msg.attach(MIMEText(job.text, "plain"))
        msg.attach(MIMEText(job.html, "html"))
    else:
        msg = MIMEText(job.text or "", "plain")
    msg["Subject"] = job.subject
    msg["From"] = settings.smtp_from
    msg["To"] = ", ".join(job.recipients)
    return msg


def _deliver(job: EmailJob) -> None:
    msg = _build_message(job)
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password or "")
        server.sendmail(settings.smtp_from, job.recipients, msg.as_string())


def retry_delay(job_try: int) -> float:
    """Backoff before attempt `job_try + 1`."""
    return settings.email_backoff_seconds * 2 ** (job_try - 1)


async def send_email(ctx: dict, payload: dict) -> None:
    """Send one email. Logs instead when SMTP is not configured."""
    job = EmailJob.model_validate(payload)
    job_try = ctx.get("job_try", 1)

    if not (settings.smtp_host and settings.smtp_user):
        log.info("email.smtp_disabled", to=job.recipients, subject=job.subject)
        return

    try:
        await asyncio.to_thread(_deliver, job)
    except (smtplib.SMTPException, OSError) as e:
        if job_try < settings.email_max_tries:
            delay = retry_delay(job_try)
            log.warning("email.retry", to=job.recipients, attempt=job_try, delay=delay, error=str(e))
            raise Retry(defer=delay) from e
        log.error("email.failed", to=job.recipients, attempts=job_try, error=str(e))
        raise

    log.info("email.sent", to=job.recipients, subject=job.subject, attempt=job_try)


async def _startup(ctx: dict) -> None:
    configure_logging(settings.debug)


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [send_email]
    on_startup = _startup
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_tries = settings.email_max_tries
