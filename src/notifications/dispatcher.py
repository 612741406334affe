from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from loguru import logger

from src.exceptions import ChannelDeliveryError
from src.models.execution_log import ExecutionLog
from src.models.integration import IntegrationType
from src.models.task import ApiTask
from src.models.task_notification import NotifyOn, TaskNotification
from src.notifications.base import ChannelSender

if TYPE_CHECKING:
    from src.scheduler.store import TaskStore


def should_notify(notify_on: NotifyOn, log: ExecutionLog) -> bool:
    """Apply a link's ``notify_on`` policy to an execution log."""
    if notify_on == NotifyOn.always:
        return True
    if notify_on == NotifyOn.failure_only:
        return log.status_code is None or log.status_code >= 400
    if notify_on == NotifyOn.timeout:
        return log.error_message is not None
    return False


def select_links(
    links: Iterable[TaskNotification], log: ExecutionLog
) -> List[TaskNotification]:
    """Links whose integration is active and whose policy matches the log."""
    selected = []
    for link in links:
        integration = link.integration
        if integration is None or not integration.is_active:
            continue
        if should_notify(link.notify_on, log):
            selected.append(link)
    return selected


class NotificationDispatcher:
    """Fans out one execution log to every matching notification link.

    Sends run concurrently, one per link. A failing channel is logged and
    reported as ``False`` in the result without affecting the others.
    ``dispatch`` never raises.

    Args:
        store: Source of notification links.
        senders: Sender per integration type.
        enabled: Global kill switch (``notification_enabled`` setting).
        max_workers: Upper bound on concurrent sends per dispatch.
    """

    def __init__(
        self,
        store: TaskStore,
        senders: Dict[IntegrationType, ChannelSender],
        enabled: bool = True,
        max_workers: int = 4,
    ):
        self.store = store
        self.senders = senders
        self.enabled = enabled
        self.max_workers = max_workers

    def dispatch(self, task: ApiTask, log: ExecutionLog) -> Dict[int, bool]:
        """Send notifications for ``log``.

        Returns:
            Dict of integration id to delivery outcome. Empty when nothing matched.
        """
        if not self.enabled:
            logger.info("Notifications are disabled, skipping dispatch")
            return {}

        try:
            links = self.store.list_notification_links(task.id)
        except Exception as e:
            logger.error(f"Error fetching notifications for task {task.id}: {e}")
            return {}

        selected = select_links(links, log)
        if not selected:
            logger.debug(f"No active notifications to send for task {task.id}")
            return {}

        logger.info(
            f"Sending {len(selected)} notification(s) for task: {task.task_name}"
        )

        results: Dict[int, bool] = {}
        workers = min(self.max_workers, len(selected))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") as pool:
            futures = {
                pool.submit(self._send, link, task, log): link for link in selected
            }
            for future in as_completed(futures):
                results[futures[future].integration_id] = future.result()
        return results

    def _send(self, link: TaskNotification, task: ApiTask, log: ExecutionLog) -> bool:
        integration = link.integration
        sender: Optional[ChannelSender] = self.senders.get(integration.integration_type)
        if sender is None:
            logger.warning(
                f"Unsupported integration type: {integration.integration_type.value}"
            )
            return False

        try:
            sender.send(integration, task, log, link.include_response)
            return True
        except ChannelDeliveryError as e:
            logger.error(
                f"Error sending {e.channel} notification "
                f"'{integration.name}' for task {task.id}: {e}"
            )
            return False
        except Exception:
            logger.exception(
                f"Unexpected error sending {integration.integration_type.value} "
                f"notification '{integration.name}' for task {task.id}"
            )
            return False
