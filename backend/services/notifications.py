# services/notifications.py
# ============================================================================
# TASK INTAKE ASSISTANT — NOTIFICATIONS
# ============================================================================
# Confirmation email sent to the submitter after a task request is stored.
#
# DELIVERY:
# - SendGrid, only when EMAIL_ENABLED=true and SENDGRID_API_KEY is set
# - Best effort: failures are logged and swallowed, never raised
# ============================================================================

import asyncio
import html
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import structlog
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from schemas.task_definitions import TaskRequest

logger = structlog.get_logger().bind(component="notifications")

CONFIRMATION_SUBJECT = "Task Request Confirmation - Smart Virtual Assistant"
TEAM_SIGNATURE = "Smart Virtual Assistant Team"


# ============================================================================
# SECTION 1: CONFIGURATION
# ============================================================================

@dataclass
class NotificationConfig:
    """Outbound email settings."""
    enabled: bool = False
    sendgrid_api_key: str = ""
    from_email: str = ""

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        return cls(
            enabled=os.getenv("EMAIL_ENABLED", "false").lower() == "true",
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY", ""),
            from_email=os.getenv("FROM_EMAIL", ""),
        )

    @property
    def can_send(self) -> bool:
        return self.enabled and bool(self.sendgrid_api_key) and bool(self.from_email)


# ============================================================================
# SECTION 2: MESSAGE BUILDING
# ============================================================================

def build_confirmation_email(task: TaskRequest) -> Tuple[str, str]:
    """Subject and HTML body of the receipt for one task request."""
    label = html.escape(task.category_label)
    details = [
        f"<li>Service: {label}</li>",
        f"<li>Description: {html.escape(task.description)}</li>",
    ]
    if task.deadline:
        details.append(f"<li>Deadline: {html.escape(task.deadline)}</li>")
    details.append(f"<li>Priority: {task.priority.value}</li>")
    details.append(f"<li>Request ID: {task.id}</li>")

    body = (
        "<h2>Thank you for your request!</h2>"
        f"<p>Dear {html.escape(task.name)},</p>"
        f"<p>We have received your {label} request and will get back to you soon.</p>"
        "<p><strong>Request Details:</strong></p>"
        f"<ul>{''.join(details)}</ul>"
        f"<p>Best regards,<br>{TEAM_SIGNATURE}</p>"
    )
    return CONFIRMATION_SUBJECT, body


# ============================================================================
# SECTION 3: SENDING
# ============================================================================

async def send_confirmation_email(
    task: TaskRequest,
    config: Optional[NotificationConfig] = None,
    client: Optional[SendGridAPIClient] = None,
) -> bool:
    """
    Email the submitter a receipt.

    Returns True when SendGrid accepted the message. Disabled email,
    missing credentials and delivery errors all return False.
    """
    config = config or NotificationConfig.from_env()
    if not config.can_send:
        logger.info("confirmation_email_skipped", task_id=task.id[:8], enabled=config.enabled)
        return False

    subject, body = build_confirmation_email(task)
    message = Mail(
        from_email=config.from_email,
        to_emails=task.email,
        subject=subject,
        html_content=body,
    )

    try:
        sg = client or SendGridAPIClient(config.sendgrid_api_key)
        response = await asyncio.to_thread(sg.send, message)
    except Exception as e:
        logger.warning("confirmation_email_failed", task_id=task.id[:8], error=str(e))
        return False

    if response.status_code >= 400:
        logger.warning("confirmation_email_rejected", task_id=task.id[:8], status=response.status_code)
        return False

    logger.info(
        "confirmation_email_sent",
        task_id=task.id[:8],
        message_id=response.headers.get("X-Message-Id") if response.headers else None,
    )
    return True


# ============================================================================
# SECTION 4: HOOKS
# ============================================================================

async def on_task_submitted(task: TaskRequest, config: Optional[NotificationConfig] = None) -> bool:
    """
    Hook called after a task request has been stored.

    Returns whether a confirmation email went out.
    """
    logger.info(
        "task_submitted",
        task_id=task.id[:8],
        category=task.task_category.value,
        priority=task.priority.value,
    )
    return await send_confirmation_email(task, config)


__all__ = [
    "NotificationConfig",
    "CONFIRMATION_SUBJECT",
    "build_confirmation_email",
    "send_confirmation_email",
    "on_task_submitted",
]
