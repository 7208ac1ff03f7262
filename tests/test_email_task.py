"""
Tests for the ARQ email task: message building, backoff and retries.
"""

from __future__ import annotations

import smtplib
from unittest.mock import AsyncMock, MagicMock

import pytest
from arq import Retry

from gtcflow.tasks import email as email_task
from gtcflow.tasks.email import ArqEmailQueue, EmailJob, retry_delay, send_email


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(email_task.settings, "smtp_host", "smtp.test")
    monkeypatch.setattr(email_task.settings, "smtp_user", "mailer")
    monkeypatch.setattr(email_task.settings, "email_max_tries", 3)
    monkeypatch.setattr(email_task.settings, "email_backoff_seconds", 2)


class TestEmailJob:
    def test_single_recipient(self):
        assert EmailJob(to="a@example.com", subject="s").recipients == ["a@example.com"]

    def test_multiple_recipients(self):
        job = EmailJob(to=["a@example.com", "b@example.com"], subject="s")
        assert job.recipients == ["a@example.com", "b@example.com"]

    def test_html_message_is_multipart(self):
        msg = email_task._build_message(EmailJob(to="a@example.com", subject="Hi", html="<p>x</p>", text="x"))
        assert msg.is_multipart()
        assert msg["Subject"] == "Hi"

    def test_text_only_message(self):
        msg = email_task._build_message(EmailJob(to="a@example.com", subject="Hi", text="plain"))
        assert not msg.is_multipart()


class TestBackoff:
    def test_doubles_each_attempt(self, smtp_configured):
        assert [retry_delay(n) for n in (1, 2, 3)] == [2, 4, 8]


class TestSendEmail:
    async def test_skips_when_smtp_disabled(self, monkeypatch):
        monkeypatch.setattr(email_task.settings, "smtp_host", None)
        deliver = MagicMock()
        monkeypatch.setattr(email_task, "_deliver", deliver)

        await send_email({"job_try": 1}, EmailJob(to="a@example.com", subject="s").model_dump())
        deliver.assert_not_called()

    async def test_delivers(self, monkeypatch, smtp_configured):
        deliver = MagicMock()
        monkeypatch.setattr(email_task, "_deliver", deliver)

        await send_email({"job_try": 1}, EmailJob(to="a@example.com", subject="s").model_dump())
        deliver.assert_called_once()

    async def test_transient_failure_retries_with_backoff(self, monkeypatch, smtp_configured):
        monkeypatch.setattr(email_task, "_deliver", MagicMock(side_effect=smtplib.SMTPServerDisconnected()))

        with pytest.raises(Retry) as exc_info:
            await send_email({"job_try": 2}, EmailJob(to="a@example.com", subject="s").model_dump())
        assert exc_info.value.defer_score == 4000

    async def test_last_attempt_raises(self, monkeypatch, smtp_configured):
        monkeypatch.setattr(email_task, "_deliver", MagicMock(side_effect=ConnectionRefusedError()))

        with pytest.raises(ConnectionRefusedError):
            await send_email({"job_try": 3}, EmailJob(to="a@example.com", subject="s").model_dump())


class TestArqEmailQueue:
    async def test_enqueues_send_email_job(self):
        pool = AsyncMock()
        queue = ArqEmailQueue(pool)
        job = EmailJob(to="a@example.com", subject="s", html="<p>x</p>")

        await queue.enqueue(job)

        pool.enqueue_job.assert_awaited_once_with("send_email", job.model_dump())
