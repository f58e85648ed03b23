"""
Tools Package
Utility tools for the DoseKeeper system

tools.schedule_expander depends on models and is imported directly.
"""

from .clock import (
    SystemClock,
    ManualClock,
    system_clock,
    utcnow,
    to_naive_utc
)

from .notification_service import (
    Notifier,
    NotificationService,
    NotificationChannel,
    NotificationType,
    NotificationResult,
    DeliveryError,
    notification_service,
    render_notification
)

__all__ = [
    # Clock
    "SystemClock",
    "ManualClock",
    "system_clock",
    "utcnow",
    "to_naive_utc",

    # Notification Service
    "Notifier",
    "NotificationService",
    "NotificationChannel",
    "NotificationType",
    "NotificationResult",
    "DeliveryError",
    "notification_service",
    "render_notification"
]
