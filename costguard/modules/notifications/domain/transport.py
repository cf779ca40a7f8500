"""
Notification Transport

Three independent send primitives. Each raises NotificationError on a failed
delivery and none of them retries: the dispatcher decides what a failure means.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aioboto3
import httpx
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from costguard.shared.adapters.aws import build_boto_config
from costguard.shared.core.config import get_settings
from costguard.shared.core.exceptions import NotificationError

logger = structlog.get_logger()


class NotificationTransport(ABC):
    @abstractmethod
    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        pass

    @abstractmethod
    async def publish(self, topic: str, message: str, attributes: Dict[str, str], subject: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def post_webhook(self, url: str, payload: Dict[str, Any]) -> None:
        pass


class AWSNotificationTransport(NotificationTransport):
    """SES for email, SNS for pub/sub and a plain HTTPS POST for chat webhooks."""

    def __init__(
        self,
        session: Optional[aioboto3.Session] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = get_settings()
        self.session = session or aioboto3.Session()
        self.http_client = http_client

    def _client(self, service: str):
        return self.session.client(
            service,
            region_name=self.settings.AWS_DEFAULT_REGION,
            endpoint_url=self.settings.AWS_ENDPOINT_URL,
            aws_access_key_id=self.settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=self.settings.AWS_SECRET_ACCESS_KEY,
            config=build_boto_config(),
        )

    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        try:
            async with self._client("ses") as ses:
                response = await ses.send_email(
                    Source=self.settings.ALERT_FROM_EMAIL,
                    Destination={"ToAddresses": [to]},
                    Message={
                        "Subject": {"Data": subject, "Charset": "UTF-8"},
                        "Body": {
                            "Html": {"Data": html_body, "Charset": "UTF-8"},
                            "Text": {"Data": text_body, "Charset": "UTF-8"},
                        },
                    },
                )
        except (ClientError, BotoCoreError) as e:
            raise NotificationError(f"SES send failed: {e}", code="email_failed") from e

        logger.info("email_sent", recipient=to, message_id=response.get("MessageId"))

    async def publish(self, topic: str, message: str, attributes: Dict[str, str], subject: Optional[str] = None) -> None:
        request: Dict[str, Any] = {
            "TopicArn": topic,
            "Message": message,
            "MessageAttributes": {
                key: {"DataType": "String", "StringValue": value}
                for key, value in attributes.items()
            },
        }
        if subject:
            request["Subject"] = subject

        try:
            async with self._client("sns") as sns:
                await sns.publish(**request)
        except (ClientError, BotoCoreError) as e:
            raise NotificationError(f"SNS publish failed: {e}", code="pubsub_failed") from e

    async def post_webhook(self, url: str, payload: Dict[str, Any]) -> None:
        timeout = self.settings.WEBHOOK_TIMEOUT_SECONDS
        try:
            if self.http_client is not None:
                response = await self.http_client.post(url, json=payload, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationError(f"Webhook request failed: {e}", code="webhook_failed") from e

        if not response.is_success:
            raise NotificationError(
                f"Webhook returned status {response.status_code}",
                code="webhook_failed",
                details={"status_code": response.status_code},
            )
