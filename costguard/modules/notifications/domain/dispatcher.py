"""
Notification Dispatcher

Routes one alert to every channel configured on its budget. Channels are
isolated from each other: a failure on one is recorded in the result map and
never stops the others. send_alert never raises for a delivery failure.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Optional

import structlog

from costguard.modules.budgets.domain.models import Alert, Channel, NotificationResult, Severity
from costguard.modules.notifications.domain import templates
from costguard.modules.notifications.domain.transport import NotificationTransport
from costguard.shared.core.ops_metrics import NOTIFICATIONS_TOTAL

logger = structlog.get_logger()


class NotificationDispatcher:
    def __init__(
        self,
        transport: NotificationTransport,
        sns_topic_arn: Optional[str] = None,
        default_email: str = "admin@example.com",
    ):
        self.transport = transport
        self.sns_topic_arn = sns_topic_arn
        self.default_email = default_email

    def resolve_recipient(self, alert: Alert) -> str:
        """Owner email, then the budget's override address, then the global fallback."""
        return alert.user_email or alert.notifications.email_address or self.default_email

    async def send_alert(self, alert: Alert) -> Dict[Channel, NotificationResult]:
        results: Dict[Channel, NotificationResult] = {
            Channel.CONSOLE: self._log_to_console(alert),
        }

        config = alert.notifications
        senders: Dict[Channel, Callable[[Alert], Awaitable[None]]] = {}
        if config.email:
            senders[Channel.EMAIL] = self._send_email
        if config.pubsub:
            if self.sns_topic_arn:
                senders[Channel.PUBSUB] = self._send_pubsub
            else:
                logger.warning("pubsub_skipped_no_topic", budget_id=alert.budget_id)
                results[Channel.PUBSUB] = NotificationResult(channel=Channel.PUBSUB, error="no topic configured")
        if config.chat:
            if config.webhook_url:
                senders[Channel.CHAT] = self._send_chat
            else:
                logger.warning("chat_skipped_no_webhook", budget_id=alert.budget_id)
                results[Channel.CHAT] = NotificationResult(channel=Channel.CHAT, error="no webhook URL configured")

        channel_results = await asyncio.gather(
            *(self._attempt(channel, send, alert) for channel, send in senders.items())
        )
        results.update(zip(senders.keys(), channel_results))

        logger.info(
            "notification_dispatched",
            budget_id=alert.budget_id,
            channels={c.value: r.success for c, r in results.items()},
        )
        return results

    async def _attempt(
        self,
        channel: Channel,
        send: Callable[[Alert], Awaitable[None]],
        alert: Alert,
    ) -> NotificationResult:
        try:
            await send(alert)
        except Exception as e:
            logger.error(
                "notification_channel_failed",
                channel=channel.value,
                budget_id=alert.budget_id,
                error=str(e),
            )
            self._record(channel, "failure")
            return NotificationResult(channel=channel, attempted=True, success=False, error=str(e))

        self._record(channel, "success")
        return NotificationResult(channel=channel, attempted=True, success=True)

    @staticmethod
    def _record(channel: Channel, outcome: str) -> None:
        try:
            NOTIFICATIONS_TOTAL.labels(channel=channel.value, outcome=outcome).inc()
        except Exception as e:
            logger.debug("notification_metric_failed", error=str(e))

    def _log_to_console(self, alert: Alert) -> NotificationResult:
        log = logger.error if alert.severity == Severity.CRITICAL else logger.warning
        log(
            "budget_alert",
            budget_id=alert.budget_id,
            budget_name=alert.budget_name,
            budget_type=alert.budget_type.value,
            alert_type=alert.alert_type.value,
            severity=alert.severity.value,
            utilization=str(alert.current_utilization),
            current_spend=str(alert.current_spend),
            budget_limit=str(alert.budget_limit),
            remaining_budget=str(alert.remaining_budget),
            currency=alert.currency,
            threshold=alert.threshold,
            services=alert.services or "All",
            user_id=alert.user_id,
            timestamp=alert.timestamp.isoformat(),
        )
        self._record(Channel.CONSOLE, "success")
        return NotificationResult(channel=Channel.CONSOLE, attempted=True, success=True)

    async def _send_email(self, alert: Alert) -> None:
        await self.transport.send_email(
            to=self.resolve_recipient(alert),
            subject=templates.email_subject(alert),
            html_body=templates.render_email_html(alert),
            text_body=templates.render_email_text(alert),
        )

    async def _send_pubsub(self, alert: Alert) -> None:
        await self.transport.publish(
            topic=self.sns_topic_arn,
            message=templates.render_pubsub_message(alert),
            attributes=templates.pubsub_attributes(alert),
            subject=templates.pubsub_subject(alert),
        )

    async def _send_chat(self, alert: Alert) -> None:
        await self.transport.post_webhook(
            alert.notifications.webhook_url,
            templates.render_chat_payload(alert),
        )
