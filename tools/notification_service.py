"""
Notification Service Tool
Delivers dose reminders over email (SMTP) and push (HTTP push gateway)
"""

import logging
import asyncio
import smtplib
import uuid
from abc import ABC, abstractmethod
from typing import Dict, Optional, Any
from dataclasses import dataclass
from datetime import datetime
from email.mime.text import MIMEText
from enum import Enum

import httpx

from config import settings
from tools.clock import utcnow


logger = logging.getLogger(__name__)


class NotificationChannel(str, Enum):
    """Available notification channels"""
    EMAIL = "email"
    PUSH = "push"


class NotificationType(str, Enum):
    """Types of dose notifications"""
    DOSE_DUE = "dose_due"
    DOSE_UPCOMING = "dose_upcoming"
    DOSE_OVERDUE = "dose_overdue"


class DeliveryError(Exception):
    """A notification could not be handed to its transport"""

    def __init__(self, channel: NotificationChannel, reason: str, patient_id: Optional[int] = None):
        self.channel = channel
        self.reason = reason
        self.patient_id = patient_id
        super().__init__(f"{channel.value} delivery failed: {reason}")


@dataclass
class NotificationResult:
    """Acknowledgement of a delivered notification"""
    success: bool
    channel: NotificationChannel
    message_id: Optional[str] = None
    delivered_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "channel": self.channel.value,
            "message_id": self.message_id,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "error": self.error
        }


# Notification templates
NOTIFICATION_TEMPLATES: Dict[NotificationType, Dict[str, str]] = {
    NotificationType.DOSE_DUE: {
        "title": "Time to take your {medication}",
        "body": "It's time to take {dosage} of {medication}.",
        "email_body": """
Hi {patient_name},

It's time to take your medication:

{medication} - {dosage}
Scheduled for: {scheduled_time}

Log it in DoseKeeper once you've taken it.
        """,
    },
    NotificationType.DOSE_UPCOMING: {
        "title": "{medication} reminder",
        "body": "Reminder: Take {dosage} of {medication} in {minutes} minutes.",
        "email_body": """
Hi {patient_name},

Your next dose is coming up in {minutes} minutes:

{medication} - {dosage}
Scheduled for: {scheduled_time}
        """,
    },
    NotificationType.DOSE_OVERDUE: {
        "title": "{medication} is overdue",
        "body": "Your {medication} is {minutes} minutes overdue.",
        "email_body": """
Hi {patient_name},

Your {medication} dose ({dosage}) scheduled for {scheduled_time} is {minutes} minutes overdue.

If it's close to your next dose, skip this one. Never double up on doses.
        """,
    },
}


def render_notification(notification_type: NotificationType, data: Dict[str, Any]) -> Dict[str, str]:
    """Format the title, short body and email body for a notification"""
    template = NOTIFICATION_TEMPLATES[notification_type]
    format_data = {
        "patient_name": "there",
        "dosage": "",
        "minutes": 0,
        **data
    }
    return {key: value.format(**format_data).strip() for key, value in template.items()}


class Notifier(ABC):
    """Capability to deliver a payload to a patient over a channel"""

    @abstractmethod
    async def send(
        self,
        recipient,
        channel: NotificationChannel,
        payload: Dict[str, Any]
    ) -> NotificationResult:
        """
        Deliver one notification.

        Args:
            recipient: Object exposing patient_id, email and push_subscription
            channel: Delivery channel
            payload: Rendered notification with "title", "body" and "email_body"

        Raises:
            DeliveryError: when the transport is unavailable or rejects the message
        """

    async def close(self):
        """Release transport resources"""
        return None


class NotificationService(Notifier):
    """
    Email + push notifier.

    Email goes through a blocking SMTP session run in a worker thread; push
    is POSTed as JSON to a push gateway that owns the web-push credentials.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        push_gateway_url: Optional[str] = None
    ):
        self.smtp_host = smtp_host or settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.push_gateway_url = push_gateway_url or settings.PUSH_GATEWAY_URL
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host)

    @property
    def push_configured(self) -> bool:
        return bool(self.push_gateway_url)

    async def send(
        self,
        recipient,
        channel: NotificationChannel,
        payload: Dict[str, Any]
    ) -> NotificationResult:
        if channel == NotificationChannel.EMAIL:
            return await self._send_email(recipient, payload)
        if channel == NotificationChannel.PUSH:
            return await self._send_push(recipient, payload)
        raise DeliveryError(channel, f"Unsupported channel: {channel}", recipient.patient_id)

    # ==================== EMAIL ====================

    async def _send_email(self, recipient, payload: Dict[str, Any]) -> NotificationResult:
        channel = NotificationChannel.EMAIL
        if not self.email_configured:
            raise DeliveryError(channel, "SMTP not configured", recipient.patient_id)
        if not recipient.email:
            raise DeliveryError(channel, "Patient has no email address", recipient.patient_id)

        msg = MIMEText(payload.get("email_body") or payload["body"], "plain")
        msg["Subject"] = payload["title"]
        msg["From"] = self.from_email
        msg["To"] = recipient.email

        try:
            await asyncio.to_thread(self._deliver_smtp, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(channel, str(e), recipient.patient_id) from e

        logger.info(f"[EMAIL] To patient {recipient.patient_id}: {payload['title']}")
        return NotificationResult(
            success=True,
            channel=channel,
            message_id=f"email_{uuid.uuid4().hex}",
            delivered_at=utcnow()
        )

    def _deliver_smtp(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            if settings.SMTP_USE_TLS:
                server.starttls()
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)

    # ==================== PUSH ====================

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if settings.PUSH_GATEWAY_TOKEN:
                headers["Authorization"] = f"Bearer {settings.PUSH_GATEWAY_TOKEN}"
            self._client = httpx.AsyncClient(
                timeout=settings.PUSH_TIMEOUT_SECONDS,
                headers=headers
            )
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _send_push(self, recipient, payload: Dict[str, Any]) -> NotificationResult:
        channel = NotificationChannel.PUSH
        if not self.push_configured:
            raise DeliveryError(channel, "Push gateway not configured", recipient.patient_id)
        if not recipient.push_subscription:
            raise DeliveryError(channel, "Patient has no push subscription", recipient.patient_id)

        body = {
            "subscription": recipient.push_subscription,
            "notification": {
                "title": payload["title"],
                "body": payload["body"],
                "data": payload.get("data", {})
            }
        }

        try:
            client = await self._get_client()
            response = await client.post(self.push_gateway_url, json=body)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DeliveryError(channel, str(e), recipient.patient_id) from e

        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("id")

        logger.info(f"[PUSH] To patient {recipient.patient_id}: {payload['title']}")
        return NotificationResult(
            success=True,
            channel=channel,
            message_id=message_id or f"push_{uuid.uuid4().hex}",
            delivered_at=utcnow()
        )


# Singleton instance
notification_service = NotificationService()
