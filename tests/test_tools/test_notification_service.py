"""
Tests for Notification Service
Tests rendering and email/push delivery with the transports mocked out
"""

import json
import smtplib
import pytest
import httpx
from unittest.mock import patch

from services.providers import PatientPreferences
from tools.notification_service import (
    NotificationService,
    NotificationChannel,
    NotificationType,
    DeliveryError,
    render_notification,
)


@pytest.fixture
def recipient():
    return PatientPreferences(
        patient_id=1,
        email="jane.doe@example.com",
        name="Jane",
        notify_email=True,
        notify_push=True,
        push_subscription={"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "k", "auth": "a"}}
    )


@pytest.fixture
def payload():
    return render_notification(NotificationType.DOSE_UPCOMING, {
        "patient_name": "Jane",
        "medication": "Metformin",
        "dosage": "500 mg",
        "minutes": 15,
        "scheduled_time": "08:00",
    })


class TestRendering:

    @pytest.mark.unit
    def test_upcoming_template(self, payload):
        assert payload["title"] == "Metformin reminder"
        assert payload["body"] == "Reminder: Take 500 mg of Metformin in 15 minutes."

    @pytest.mark.unit
    def test_overdue_template(self):
        rendered = render_notification(NotificationType.DOSE_OVERDUE, {
            "patient_name": "Jane",
            "medication": "Metformin",
            "dosage": "500 mg",
            "minutes": 40,
            "scheduled_time": "08:00",
        })
        assert rendered["title"] == "Metformin is overdue"
        assert "40 minutes overdue" in rendered["body"]


class TestEmail:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unconfigured_smtp_raises(self, recipient, payload):
        service = NotificationService()
        service.smtp_host = None

        with pytest.raises(DeliveryError) as exc_info:
            await service.send(recipient, NotificationChannel.EMAIL, payload)
        assert exc_info.value.channel == NotificationChannel.EMAIL

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_sends_through_smtp(self, recipient, payload):
        service = NotificationService(smtp_host="smtp.example.com")

        with patch.object(NotificationService, "_deliver_smtp") as deliver:
            result = await service.send(recipient, NotificationChannel.EMAIL, payload)

        assert result.success
        assert result.channel == NotificationChannel.EMAIL
        msg = deliver.call_args[0][0]
        assert msg["To"] == "jane.doe@example.com"
        assert msg["Subject"] == "Metformin reminder"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_smtp_failure_becomes_delivery_error(self, recipient, payload):
        service = NotificationService(smtp_host="smtp.example.com")

        with patch.object(NotificationService, "_deliver_smtp", side_effect=smtplib.SMTPException("refused")):
            with pytest.raises(DeliveryError) as exc_info:
                await service.send(recipient, NotificationChannel.EMAIL, payload)
        assert "refused" in exc_info.value.reason


class TestPush:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_posts_to_gateway(self, recipient, payload):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "push-1"})

        service = NotificationService(push_gateway_url="https://gateway.example.com/send")
        service._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        result = await service.send(recipient, NotificationChannel.PUSH, payload)
        await service.close()

        assert result.message_id == "push-1"
        body = json.loads(requests[0].content)
        assert body["subscription"]["endpoint"] == "https://push.example.com/abc"
        assert body["notification"]["title"] == "Metformin reminder"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gateway_error_becomes_delivery_error(self, recipient, payload):
        service = NotificationService(push_gateway_url="https://gateway.example.com/send")
        service._client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(410))
        )

        with pytest.raises(DeliveryError) as exc_info:
            await service.send(recipient, NotificationChannel.PUSH, payload)
        await service.close()
        assert exc_info.value.channel == NotificationChannel.PUSH

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_subscription_raises(self, payload):
        service = NotificationService(push_gateway_url="https://gateway.example.com/send")
        recipient = PatientPreferences(patient_id=2, notify_push=True)

        with pytest.raises(DeliveryError):
            await service.send(recipient, NotificationChannel.PUSH, payload)
