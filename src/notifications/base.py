from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from src.exceptions import ChannelDeliveryError
from src.models.execution_log import ExecutionLog
from src.models.integration import Integration, IntegrationType
from src.models.task import ApiTask
from src.transport import send_with_deadline


class ChannelSender(ABC):
    """Delivers one formatted notification to one integration.

    Implementations raise ``ChannelDeliveryError`` when the remote end rejects
    the message or cannot be reached. They never retry.

    Args:
        client: Shared httpx client.
        timeout: Total seconds allowed for one delivery, body read included.
    """

    integration_type: IntegrationType

    def __init__(self, client: httpx.Client, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout

    @property
    def channel(self) -> str:
        return self.integration_type.value

    @abstractmethod
    def send(
        self,
        integration: Integration,
        task: ApiTask,
        log: ExecutionLog,
        include_response: bool,
    ) -> None:
        """Format and deliver a notification for one execution log."""
        ...

    def credential(self, integration: Integration, key: str) -> str:
        value = (integration.credentials or {}).get(key)
        if not value:
            raise ChannelDeliveryError(
                self.channel, f"'{key}' missing from integration {integration.id}"
            )
        return value

    def post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            request = self.client.build_request("POST", url, json=payload, headers=headers)
            response, body = send_with_deadline(self.client, request, self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ChannelDeliveryError(self.channel, f"request failed: {e}") from e

        if not response.is_success:
            detail = body.decode("utf-8", errors="replace")[:200]
            raise ChannelDeliveryError(
                self.channel,
                f"{response.status_code} - {detail}",
                status_code=response.status_code,
            )

        logger.debug(f"{self.channel} endpoint answered {response.status_code}")
        return response
