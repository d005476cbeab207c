# services/__init__.py
# ============================================================================
# TASK INTAKE ASSISTANT — SERVICES MODULE
# ============================================================================
# Post-submission hooks and outbound notifications
# ============================================================================

from services.notifications import (
    NotificationConfig,
    build_confirmation_email,
    send_confirmation_email,
    on_task_submitted,
)

__all__ = [
    # Notifications
    "NotificationConfig",
    "build_confirmation_email",
    "send_confirmation_email",
    "on_task_submitted",
]
