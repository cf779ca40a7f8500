from costguard.shared.core.logging import pii_redactor


def test_top_level_fields_redacted():
    event = pii_redactor(None, "info", {
        "event": "email_sent",
        "recipient": "owner@example.com",
        "budget_id": "b1",
    })
    assert event["recipient"] == "[REDACTED]"
    assert event["budget_id"] == "b1"


def test_nested_containers_redacted():
    event = pii_redactor(None, "warning", {
        "event": "chat_failed",
        "details": {"webhook_url": "https://hooks.example.com/T0/B0/x", "status_code": 500},
    })
    assert event["details"] == {"webhook_url": "[REDACTED]", "status_code": 500}
