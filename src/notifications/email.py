from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from src.exceptions import ChannelDeliveryError
from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask
from src.notifications.base import ChannelSender
from src.notifications.formatter import format_email


class EmailSender(ChannelSender):
    """Send task results through a transactional email API (Resend-compatible).

    Args:
        client: Shared httpx client.
        api_url: Endpoint accepting ``{from, to, subject, html}``.
        api_key: Bearer token for the email API.
        sender: ``From`` address.
        timeout: Total seconds allowed for one delivery.
    """

    integration_type = IntegrationType.email

    def __init__(
        self,
        client: httpx.Client,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: Optional[float] = None,
    ):
        super().__init__(client, timeout=timeout)
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.sender)

    def send(
        self,
        integration: Integration,
        task: ApiTask,
        log: ExecutionLog,
        include_response: bool,
    ) -> None:
        if not self.is_configured():
            raise ChannelDeliveryError(self.channel, "email API is not configured")

        recipient = self.credential(integration, "email")
        content = format_email(task, log, include_response)
        self.post_json(
            self.api_url,
            {
                "from": self.sender,
                "to": [recipient],
                "subject": content.subject,
                "html": content.html,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        logger.info(f"Email notification sent to {recipient} for task: {task.task_name}")
