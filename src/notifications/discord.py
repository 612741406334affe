from __future__ import annotations

from loguru import logger

from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask
from src.notifications.base import ChannelSender
from src.notifications.formatter import format_discord


class DiscordSender(ChannelSender):
    """Send task results via Discord Webhook."""

    integration_type = IntegrationType.discord

    def send(
        self,
        integration: Integration,
        task: ApiTask,
        log: ExecutionLog,
        include_response: bool,
    ) -> None:
        webhook_url = self.credential(integration, "webhook_url")
        self.post_json(webhook_url, format_discord(task, log, include_response))
        logger.info(f"Discord notification sent for task: {task.task_name}")
