from __future__ import annotations

from loguru import logger

from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask
from src.notifications.base import ChannelSender
from src.notifications.formatter import format_slack


class SlackSender(ChannelSender):
    """Send task results to a Slack incoming webhook."""

    integration_type = IntegrationType.slack

    def send(
        self,
        integration: Integration,
        task: ApiTask,
        log: ExecutionLog,
        include_response: bool,
    ) -> None:
        webhook_url = self.credential(integration, "webhook_url")
        self.post_json(webhook_url, format_slack(task, log, include_response))
        logger.info(f"Slack notification sent for task: {task.task_name}")
