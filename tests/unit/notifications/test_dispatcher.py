from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from costguard.modules.budgets.domain.models import (
    Alert,
    AlertType,
    BudgetType,
    Channel,
    NotificationConfig,
    Severity,
)
from costguard.modules.notifications.domain.dispatcher import NotificationDispatcher
from tests.fakes import RecordingTransport


def make_alert(**overrides) -> Alert:
    data = dict(
        budget_id="budget-1",
        budget_name="Production",
        budget_type=BudgetType.CUSTOM,
        alert_type=AlertType.THRESHOLD_REACHED,
        threshold=80,
        current_utilization=Decimal("85.00"),
        current_spend=Decimal("85.00"),
        budget_limit=Decimal("100"),
        remaining_budget=Decimal("15.00"),
        currency="USD",
        severity=Severity.MEDIUM,
        notifications=NotificationConfig(email=True),
        user_id="user-1",
    )
    data.update(overrides)
    return Alert(**data)


@pytest.mark.asyncio
async def test_console_always_succeeds():
    dispatcher = NotificationDispatcher(RecordingTransport())
    results = await dispatcher.send_alert(make_alert(notifications=NotificationConfig(email=False)))

    assert set(results) == {Channel.CONSOLE}
    assert results[Channel.CONSOLE].attempted and results[Channel.CONSOLE].success


@pytest.mark.asyncio
async def test_channel_isolation():
    transport = RecordingTransport(failing={"email"})
    dispatcher = NotificationDispatcher(transport)
    alert = make_alert(notifications=NotificationConfig(
        email=True, chat=True, webhook_url="https://hooks.example.com/T000"
    ))

    results = await dispatcher.send_alert(alert)

    assert results[Channel.EMAIL].attempted is True
    assert results[Channel.EMAIL].success is False
    assert "SES unavailable" in results[Channel.EMAIL].error
    assert results[Channel.CHAT].success is True
    assert len(transport.webhooks) == 1


@pytest.mark.asyncio
async def test_all_channels_failing_never_raises():
    transport = RecordingTransport(failing={"email", "pubsub", "chat"})
    dispatcher = NotificationDispatcher(transport, sns_topic_arn="arn:aws:sns:us-east-1:123:alerts")
    alert = make_alert(notifications=NotificationConfig(
        email=True, pubsub=True, chat=True, webhook_url="https://hooks.example.com/T000"
    ))

    results = await dispatcher.send_alert(alert)

    assert all(not results[c].success for c in (Channel.EMAIL, Channel.PUBSUB, Channel.CHAT))
    assert results[Channel.CONSOLE].success is True


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_contained():
    transport = AsyncMock()
    transport.send_email.side_effect = KeyError("boom")
    results = await NotificationDispatcher(transport).send_alert(make_alert())
    assert results[Channel.EMAIL].success is False


@pytest.mark.asyncio
async def test_pubsub_requires_topic():
    transport = RecordingTransport()
    alert = make_alert(notifications=NotificationConfig(email=False, pubsub=True))

    results = await NotificationDispatcher(transport).send_alert(alert)

    assert results[Channel.PUBSUB].attempted is False
    assert results[Channel.PUBSUB].success is False
    assert transport.published == []


@pytest.mark.asyncio
async def test_chat_requires_webhook_url():
    transport = RecordingTransport()
    alert = make_alert(notifications=NotificationConfig(email=False, chat=True))

    results = await NotificationDispatcher(transport).send_alert(alert)

    assert results[Channel.CHAT].attempted is False
    assert results[Channel.CHAT].error == "no webhook URL configured"
    assert transport.webhooks == []


@pytest.mark.asyncio
async def test_pubsub_message_and_attributes():
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport, sns_topic_arn="arn:aws:sns:us-east-1:123:alerts")

    await dispatcher.send_alert(make_alert(notifications=NotificationConfig(email=False, pubsub=True)))

    published = transport.published[0]
    assert published["topic"] == "arn:aws:sns:us-east-1:123:alerts"
    assert published["attributes"] == {
        "alertType": "THRESHOLD_REACHED",
        "severity": "MEDIUM",
        "budgetId": "budget-1",
    }


@pytest.mark.parametrize("user_email, override, expected", [
    ("owner@example.com", "team@example.com", "owner@example.com"),
    (None, "team@example.com", "team@example.com"),
    (None, None, "fallback@example.com"),
])
@pytest.mark.asyncio
async def test_email_recipient_resolution(user_email, override, expected):
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport, default_email="fallback@example.com")
    alert = make_alert(
        user_email=user_email,
        notifications=NotificationConfig(email=True, email_address=override),
    )

    await dispatcher.send_alert(alert)

    assert transport.emails[0]["to"] == expected
    assert transport.emails[0]["subject"] == "Budget Alert: Production - THRESHOLD_REACHED"
