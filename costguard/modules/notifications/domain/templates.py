"""
Alert Message Templates

Renders a budget Alert for each delivery channel. All user-provided values
(budget name, services, ids) are escaped before landing in HTML or chat markup.
"""

import html
import json
from typing import Any, Dict

from costguard.modules.budgets.domain.models import Alert, Severity

SEVERITY_COLORS = {
    Severity.CRITICAL: "#d32f2f",
    Severity.HIGH: "#f57c00",
    Severity.MEDIUM: "#fbc02d",
}
DEFAULT_SEVERITY_COLOR = "#388e3c"

FOOTER = "CostGuard Alert System"


def escape_html(text: Any) -> str:
    if text is None:
        return ""
    return html.escape(str(text))


def escape_mrkdwn(text: Any) -> str:
    """Escape Slack control characters so budget names cannot inject markup."""
    if text is None:
        return ""
    return str(text).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def severity_color(severity: Severity) -> str:
    return SEVERITY_COLORS.get(severity, DEFAULT_SEVERITY_COLOR)


def _money(alert: Alert, amount) -> str:
    return f"{alert.currency} {amount}"


def email_subject(alert: Alert) -> str:
    return f"Budget Alert: {alert.budget_name} - {alert.alert_type.value}"


def render_email_text(alert: Alert) -> str:
    lines = [
        f"BUDGET ALERT - {alert.budget_name}",
        "",
        f"Alert Type: {alert.alert_type.value}",
        f"Current Utilization: {alert.current_utilization}%",
        f"Current Spend: {_money(alert, alert.current_spend)}",
        f"Budget Limit: {_money(alert, alert.budget_limit)}",
        f"Remaining Budget: {_money(alert, alert.remaining_budget)}",
        f"Alert Threshold: {alert.threshold}%",
        f"Severity: {alert.severity.value}",
        f"Alert Time: {alert.timestamp.isoformat()}",
    ]
    if alert.services:
        lines += ["", f"Monitored Services: {', '.join(alert.services)}"]
    lines += [
        "",
        "This alert was generated by CostGuard Budget Monitoring.",
        "To manage your budget settings, log in to your CostGuard dashboard.",
    ]
    return "\n".join(lines)


def render_email_html(alert: Alert) -> str:
    color = severity_color(alert.severity)

    rows = [
        ("Current Spend", _money(alert, alert.current_spend)),
        ("Budget Limit", _money(alert, alert.budget_limit)),
        ("Remaining Budget", _money(alert, alert.remaining_budget)),
        ("Alert Threshold", f"{alert.threshold}%"),
        ("Severity", alert.severity.value),
    ]
    rows_html = "".join(
        f'<tr><td style="padding: 6px 0;">{label}:</td>'
        f'<td style="padding: 6px 0; text-align: right;">{escape_html(value)}</td></tr>'
        for label, value in rows
    )

    services_html = ""
    if alert.services:
        chips = "".join(
            f'<span style="background: #e3f2fd; padding: 4px 8px; border-radius: 4px; '
            f'margin-right: 5px; font-size: 12px;">{escape_html(s)}</span>'
            for s in alert.services
        )
        services_html = f'<div style="margin: 20px 0;"><strong>Monitored Services:</strong><div>{chips}</div></div>'

    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Budget Alert</title></head>
<body style="font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5;">
    <div style="max-width: 600px; margin: 0 auto; background: white; border-radius: 8px; overflow: hidden;">
        <div style="background-color: {color}; color: white; padding: 20px; text-align: center;">
            <h1 style="margin: 0; font-size: 24px;">Budget Alert</h1>
            <p style="margin: 5px 0 0 0;">{escape_html(alert.alert_type.value)}</p>
        </div>
        <div style="padding: 30px;">
            <h2 style="color: #333; margin-top: 0;">{escape_html(alert.budget_name)}</h2>
            <p style="color: {color}; font-weight: bold; font-size: 18px;">
                Current Utilization: {alert.current_utilization}%
            </p>
            <table style="width: 100%; background: #f8f9fa; padding: 20px; border-radius: 6px;">{rows_html}</table>
            {services_html}
            <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #eee; color: #666; font-size: 14px;">
                <p><strong>Alert Time:</strong> {alert.timestamp.isoformat()}</p>
                <p><strong>Budget Type:</strong> {alert.budget_type.value}</p>
                <p><strong>Budget ID:</strong> {escape_html(alert.budget_id)}</p>
            </div>
        </div>
        <div style="background-color: #f8f9fa; padding: 20px; text-align: center; color: #666; font-size: 14px;">
            This alert was generated by CostGuard Budget Monitoring
        </div>
    </div>
</body>
</html>
"""


def pubsub_subject(alert: Alert) -> str:
    # SNS subjects are capped at 100 characters
    return f"Budget Alert: {alert.budget_name} ({alert.current_utilization}%)"[:100]


def render_pubsub_message(alert: Alert) -> str:
    return json.dumps(
        {
            "budgetId": alert.budget_id,
            "budgetName": alert.budget_name,
            "budgetType": alert.budget_type.value,
            "alertType": alert.alert_type.value,
            "utilization": str(alert.current_utilization),
            "threshold": alert.threshold,
            "currentSpend": str(alert.current_spend),
            "budgetLimit": str(alert.budget_limit),
            "remainingBudget": str(alert.remaining_budget),
            "currency": alert.currency,
            "severity": alert.severity.value,
            "services": alert.services,
            "userId": alert.user_id,
            "timestamp": alert.timestamp.isoformat(),
        },
        indent=2,
    )


def pubsub_attributes(alert: Alert) -> Dict[str, str]:
    return {
        "alertType": alert.alert_type.value,
        "severity": alert.severity.value,
        "budgetId": alert.budget_id,
    }


def render_chat_payload(alert: Alert) -> Dict[str, Any]:
    """Slack-compatible incoming webhook payload."""
    fields = [
        {"title": "Budget Name", "value": escape_mrkdwn(alert.budget_name), "short": True},
        {"title": "Alert Type", "value": alert.alert_type.value, "short": True},
        {"title": "Current Utilization", "value": f"{alert.current_utilization}%", "short": True},
        {"title": "Threshold", "value": f"{alert.threshold}%", "short": True},
        {"title": "Current Spend", "value": _money(alert, alert.current_spend), "short": True},
        {"title": "Budget Limit", "value": _money(alert, alert.budget_limit), "short": True},
        {"title": "Remaining Budget", "value": _money(alert, alert.remaining_budget), "short": True},
        {"title": "Severity", "value": alert.severity.value, "short": True},
    ]
    if alert.services:
        fields.append({
            "title": "Services",
            "value": escape_mrkdwn(", ".join(alert.services)),
            "short": False,
        })

    return {
        "text": f"Budget Alert: {escape_mrkdwn(alert.budget_name)}",
        "attachments": [
            {
                "color": severity_color(alert.severity),
                "fields": fields,
                "footer": FOOTER,
                "ts": int(alert.timestamp.timestamp()),
            }
        ],
    }
