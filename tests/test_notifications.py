"""
Tests for the submission confirmation email.
"""
from unittest.mock import MagicMock

import pytest

from services.notifications import (
    CONFIRMATION_SUBJECT,
    NotificationConfig,
    build_confirmation_email,
    on_task_submitted,
    send_confirmation_email,
)


def sending_config():
    return NotificationConfig(enabled=True, sendgrid_api_key="SG.test", from_email="desk@example.com")


def sendgrid_client(status_code=202, error=None):
    client = MagicMock()
    if error:
        client.send.side_effect = error
    else:
        client.send.return_value = MagicMock(status_code=status_code, headers={"X-Message-Id": "msg-1"})
    return client


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("EMAIL_ENABLED", "TRUE")
    monkeypatch.setenv("SENDGRID_API_KEY", "SG.test")
    monkeypatch.setenv("FROM_EMAIL", "desk@example.com")

    assert NotificationConfig.from_env().can_send is True


def test_config_needs_sender_address():
    assert NotificationConfig(enabled=True, sendgrid_api_key="SG.test").can_send is False


def test_confirmation_email_content(task_factory):
    task = task_factory(priority="high")

    subject, body = build_confirmation_email(task)

    assert subject == CONFIRMATION_SUBJECT
    assert "Dear Jane Doe" in body
    assert "Travel Planning" in body
    assert "next Friday" in body
    assert "Priority: high" in body
    assert task.id in body


def test_confirmation_email_escapes_user_text(task_factory):
    _, body = build_confirmation_email(task_factory(description="<script>alert(1)</script> trip"))
    assert "<script>" not in body
    assert "&lt;script&gt;" in body


@pytest.mark.asyncio
async def test_disabled_email_is_skipped(task_factory):
    client = sendgrid_client()
    sent = await send_confirmation_email(task_factory(), NotificationConfig(), client)

    assert sent is False
    client.send.assert_not_called()


@pytest.mark.asyncio
async def test_email_is_sent(task_factory):
    client = sendgrid_client()
    task = task_factory()

    sent = await send_confirmation_email(task, sending_config(), client)

    assert sent is True
    client.send.assert_called_once()
    mail = client.send.call_args.args[0].get()
    assert mail["personalizations"][0]["to"][0]["email"] == task.email
    assert mail["from"]["email"] == "desk@example.com"


@pytest.mark.asyncio
async def test_delivery_error_returns_false(task_factory):
    client = sendgrid_client(error=RuntimeError("network down"))
    assert await send_confirmation_email(task_factory(), sending_config(), client) is False


@pytest.mark.asyncio
async def test_rejected_message_returns_false(task_factory):
    client = sendgrid_client(status_code=401)
    assert await send_confirmation_email(task_factory(), sending_config(), client) is False


@pytest.mark.asyncio
async def test_submission_hook_reads_environment(task_factory):
    # EMAIL_ENABLED is forced off for every test
    assert await on_task_submitted(task_factory()) is False
