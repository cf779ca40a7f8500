import json
from datetime import datetime, timezone
from decimal import Decimal

from costguard.modules.budgets.domain.models import (
    Alert,
    AlertType,
    BudgetType,
    NotificationConfig,
    Severity,
)
from costguard.modules.notifications.domain import templates


def make_alert(**overrides) -> Alert:
    data = dict(
        budget_id="budget-1",
        budget_name="Prod <script>",
        budget_type=BudgetType.CUSTOM,
        alert_type=AlertType.BUDGET_EXCEEDED,
        threshold=80,
        current_utilization=Decimal("104.50"),
        current_spend=Decimal("104.50"),
        budget_limit=Decimal("100"),
        remaining_budget=Decimal("0.00"),
        currency="USD",
        severity=Severity.CRITICAL,
        notifications=NotificationConfig(),
        services=["EC2", "S3"],
        user_id="user-1",
        timestamp=datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Alert(**data)


def test_email_html_escapes_budget_name():
    body = templates.render_email_html(make_alert())
    assert "Prod &lt;script&gt;" in body
    assert "<script>" not in body
    assert "#d32f2f" in body
    assert "EC2" in body


def test_email_text_lists_services():
    text = templates.render_email_text(make_alert())
    assert "Current Utilization: 104.50%" in text
    assert "Monitored Services: EC2, S3" in text

    text = templates.render_email_text(make_alert(services=[]))
    assert "Monitored Services" not in text


def test_pubsub_message_is_json():
    message = json.loads(templates.render_pubsub_message(make_alert()))
    assert message["budgetId"] == "budget-1"
    assert message["utilization"] == "104.50"
    assert message["severity"] == "CRITICAL"
    assert message["timestamp"] == "2026-03-15T12:00:00+00:00"


def test_pubsub_subject_capped():
    subject = templates.pubsub_subject(make_alert(budget_name="x" * 200))
    assert len(subject) == 100


def test_chat_payload():
    payload = templates.render_chat_payload(make_alert())
    attachment = payload["attachments"][0]

    assert payload["text"] == "Budget Alert: Prod &lt;script&gt;"
    assert attachment["color"] == "#d32f2f"
    assert attachment["ts"] == int(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc).timestamp())
    assert attachment["fields"][-1] == {"title": "Services", "value": "EC2, S3", "short": False}

    no_services = templates.render_chat_payload(make_alert(services=[], severity=Severity.LOW))
    assert all(f["title"] != "Services" for f in no_services["attachments"][0]["fields"])
    assert no_services["attachments"][0]["color"] == templates.DEFAULT_SEVERITY_COLOR
