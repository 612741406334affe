from __future__ import annotations

from loguru import logger

from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask
from src.notifications.base import ChannelSender
from src.notifications.formatter import format_webhook

USER_AGENT = "API-Pulse-Webhook/1.0"


class WebhookSender(ChannelSender):
    """POST a JSON event to a user-supplied URL."""

    integration_type = IntegrationType.webhook

    def send(
        self,
        integration: Integration,
        task: ApiTask,
        log: ExecutionLog,
        include_response: bool,
    ) -> None:
        webhook_url = self.credential(integration, "webhook_url")
        self.post_json(
            webhook_url,
            format_webhook(task, log, include_response),
            headers={"User-Agent": USER_AGENT},
        )
        logger.info(f"Webhook notification sent for task: {task.task_name}")
