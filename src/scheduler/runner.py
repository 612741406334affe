from __future__ import annotations

from contextlib import contextmanager
from datetime import timedelta
from typing import Iterator, Optional

import httpx
from apscheduler.schedulers.background import BackgroundScheduler
from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from src.config import Settings, get_settings
from src.db.database import create_sync_session_factory
from src.notifications.discord import DiscordSender
from src.notifications.dispatcher import NotificationDispatcher
from src.notifications.email import EmailSender
from src.notifications.slack import SlackSender
from src.notifications.webhook import WebhookSender
from src.scheduler.executor import TaskExecutor
from src.scheduler.loop import SchedulerLoop
from src.scheduler.store import TaskStore
from src.scheduler.usage import UsageCounter

USER_AGENT = "API-Pulse-Scheduler/1.0"


def build_scheduler_loop(
    settings: Settings,
    task_client: httpx.Client,
    notification_client: httpx.Client,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> SchedulerLoop:
    """Assemble a SchedulerLoop from settings and explicitly passed clients."""
    session_factory = session_factory or create_sync_session_factory()
    store = TaskStore(session_factory)

    notify_timeout = settings.notification_timeout_seconds
    senders = {
        sender.integration_type: sender
        for sender in (
            SlackSender(notification_client, timeout=notify_timeout),
            DiscordSender(notification_client, timeout=notify_timeout),
            WebhookSender(notification_client, timeout=notify_timeout),
            EmailSender(
                notification_client,
                api_url=settings.email_api_url,
                api_key=settings.email_api_key,
                sender=settings.email_from,
                timeout=notify_timeout,
            ),
        )
    }
    dispatcher = NotificationDispatcher(
        store,
        senders,
        enabled=settings.notification_enabled,
        max_workers=settings.notification_max_workers,
    )
    executor = TaskExecutor(
        task_client,
        redacted_headers=settings.redacted_header_names,
        timeout=settings.request_timeout_seconds,
    )

    return SchedulerLoop(
        store=store,
        executor=executor,
        dispatcher=dispatcher,
        usage=UsageCounter(session_factory),
        max_workers=settings.scheduler_max_workers,
        claim_lease=timedelta(seconds=settings.claim_lease_seconds),
        tick_deadline=timedelta(seconds=settings.scheduler_tick_deadline_seconds),
        timezone=settings.scheduler_timezone,
    )


@contextmanager
def scheduler_loop(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
) -> Iterator[SchedulerLoop]:
    """Build a SchedulerLoop and close its HTTP clients afterwards."""
    settings = settings or get_settings()
    task_client = httpx.Client(
        timeout=settings.request_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
        limits=httpx.Limits(max_connections=settings.scheduler_max_workers * 2),
    )
    notification_client = httpx.Client(timeout=settings.notification_timeout_seconds)
    loop = build_scheduler_loop(settings, task_client, notification_client, session_factory)
    try:
        yield loop
    finally:
        # Tasks left running by a tick deadline still need the clients
        loop.close()
        task_client.close()
        notification_client.close()


def create_scheduler(loop: SchedulerLoop, tick_seconds: int = 60) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")

    # 每 tick_seconds 秒檢查一次到期任務
    scheduler.add_job(
        loop.tick,
        "interval",
        seconds=tick_seconds,
        id="scheduler_tick",
        name="Scheduler Tick",
        max_instances=1,
        coalesce=True,
    )

    logger.info("Scheduler configured with jobs")
    return scheduler


def start_scheduler(loop: SchedulerLoop, tick_seconds: int = 60) -> BackgroundScheduler:
    scheduler = create_scheduler(loop, tick_seconds)
    scheduler.start()
    logger.info("Scheduler started")
    return scheduler
