from unittest.mock import MagicMock

import httpx

from src.config import Settings
from src.models.integration import IntegrationType
from src.notifications.email import EmailSender
from src.scheduler.runner import build_scheduler_loop, create_scheduler, scheduler_loop


def make_settings(**overrides):
    fields = dict(
        scheduler_max_workers=3,
        scheduler_timezone="Asia/Taipei",
        claim_lease_seconds=120,
        scheduler_tick_deadline_seconds=60,
        notification_enabled=False,
        email_api_key="re_test",
        email_from="alerts@example.com",
    )
    fields.update(overrides)
    return Settings(**fields)


class TestBuildSchedulerLoop:
    def test_wiring_follows_settings(self, session_factory):
        client = httpx.Client()
        loop = build_scheduler_loop(make_settings(), client, client, session_factory)

        assert loop.max_workers == 3
        assert loop.timezone == "Asia/Taipei"
        assert loop.claim_lease.total_seconds() == 120
        assert loop.tick_deadline.total_seconds() == 60
        assert loop.dispatcher.enabled is False
        assert set(loop.dispatcher.senders) == {
            IntegrationType.slack,
            IntegrationType.discord,
            IntegrationType.webhook,
            IntegrationType.email,
        }
        email = loop.dispatcher.senders[IntegrationType.email]
        assert isinstance(email, EmailSender)
        assert email.is_configured() is True
        assert "set-cookie" in loop.executor.redacted_headers
        client.close()

    def test_context_manager_closes_clients(self, session_factory):
        with scheduler_loop(make_settings(), session_factory) as loop:
            task_client = loop.executor.client
            assert not task_client.is_closed

        assert task_client.is_closed

    def test_context_manager_drains_loop_before_closing_clients(self, session_factory):
        seen = []
        with scheduler_loop(make_settings(), session_factory) as loop:
            clients = (
                loop.executor.client,
                loop.dispatcher.senders[IntegrationType.slack].client,
            )
            loop.close = MagicMock(
                side_effect=lambda: seen.append([c.is_closed for c in clients])
            )

        loop.close.assert_called_once_with()
        assert seen == [[False, False]]
        assert all(c.is_closed for c in clients)


def test_create_scheduler_registers_single_tick_job(session_factory):
    client = httpx.Client()
    loop = build_scheduler_loop(make_settings(), client, client, session_factory)

    scheduler = create_scheduler(loop, tick_seconds=30)

    jobs = scheduler.get_jobs()
    assert [job.id for job in jobs] == ["scheduler_tick"]
    assert jobs[0].max_instances == 1
    assert jobs[0].coalesce is True
    assert jobs[0].trigger.interval.total_seconds() == 30
    client.close()
