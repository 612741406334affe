import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from src.exceptions import PersistenceError
from src.models import ApiTask, ExecutionLog, Integration, NotifyOn, TaskNotification
from src.scheduler.store import TaskStore
from tests.factories import fetch_logs, fetch_task, insert_integration, insert_task

NOW = datetime(2024, 1, 15, 9, 0)
LEASE = NOW + timedelta(minutes=10)
EARLIER = NOW - timedelta(minutes=10)


@pytest.fixture
def store(session_factory):
    return TaskStore(session_factory)


def link(session_factory, task_id, integration_id, **fields):
    with session_factory() as session:
        session.add(
            TaskNotification(task_id=task_id, integration_id=integration_id, **fields)
        )
        session.commit()


class TestClaim:
    def test_claims_only_due_active_tasks(self, store, session_factory):
        due = insert_task(session_factory, EARLIER, task_name="due")
        insert_task(session_factory, NOW, task_name="not yet")
        insert_task(session_factory, EARLIER, task_name="paused", is_active=False)

        claimed = store.claim_due_tasks(NOW, LEASE)

        assert [task.id for task in claimed] == [due.id]
        assert claimed[0].next_run_at == LEASE
        assert fetch_task(session_factory, due.id).next_run_at == LEASE

    def test_claimed_task_is_not_claimed_again(self, store, session_factory):
        insert_task(session_factory, EARLIER)

        assert len(store.claim_due_tasks(NOW, LEASE)) == 1
        assert store.claim_due_tasks(NOW + timedelta(minutes=1), LEASE) == []

    def test_expired_lease_makes_task_due_again(self, store, session_factory):
        task = insert_task(session_factory, EARLIER)
        store.claim_due_tasks(NOW, LEASE)

        reclaimed = store.claim_due_tasks(LEASE, LEASE + timedelta(minutes=10))

        assert [t.id for t in reclaimed] == [task.id]

    def test_release_claim(self, store, session_factory):
        task = insert_task(session_factory, EARLIER)
        store.claim_due_tasks(NOW, LEASE)

        assert store.release_claim(task.id, LEASE, NOW) is True
        assert fetch_task(session_factory, task.id).next_run_at == NOW
        # Lease no longer matches
        assert store.release_claim(task.id, LEASE, NOW) is False

    def test_mark_ran(self, store, session_factory):
        task = insert_task(session_factory, EARLIER)
        store.claim_due_tasks(NOW, LEASE)

        store.mark_ran(task.id, last_run_at=NOW, next_run_at=NOW + timedelta(minutes=5))

        saved = fetch_task(session_factory, task.id)
        assert saved.last_run_at == NOW
        assert saved.next_run_at == NOW + timedelta(minutes=5)

    def test_concurrent_claims_hand_out_task_once(self, store, session_factory):
        insert_task(session_factory, EARLIER)
        workers = 8
        barrier = threading.Barrier(workers)
        claimed = []
        lock = threading.Lock()

        def claim():
            barrier.wait()
            tasks = store.claim_due_tasks(NOW, LEASE)
            with lock:
                claimed.extend(tasks)

        threads = [threading.Thread(target=claim) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(claimed) == 1


class TestLogsAndLinks:
    def test_save_log(self, store, session_factory):
        task = insert_task(session_factory, NOW)
        for minute in range(3):
            store.save_log(
                ExecutionLog(
                    task_id=task.id,
                    user_id="user-1",
                    status_code=200,
                    response_time_ms=100 + minute,
                    executed_at=NOW + timedelta(minutes=minute),
                )
            )

        logs = fetch_logs(session_factory, task.id)

        assert [log.response_time_ms for log in logs] == [102, 101, 100]

    def test_save_log_for_missing_task_raises(self, store):
        log = ExecutionLog(task_id=999, user_id="user-1", response_time_ms=1, executed_at=NOW)

        with pytest.raises(PersistenceError):
            store.save_log(log)

    def test_links_come_with_integration(self, store, session_factory):
        task = insert_task(session_factory, NOW)
        integration = insert_integration(session_factory)
        link(session_factory, task.id, integration.id, notify_on=NotifyOn.failure_only)

        links = store.list_notification_links(task.id)

        assert len(links) == 1
        assert links[0].notify_on == NotifyOn.failure_only
        assert links[0].integration.name == "Team Slack"

    def test_duplicate_link_rejected(self, session_factory):
        task = insert_task(session_factory, NOW)
        integration = insert_integration(session_factory)
        link(session_factory, task.id, integration.id)

        with pytest.raises(IntegrityError):
            link(session_factory, task.id, integration.id)

    def test_task_delete_cascades_to_logs_and_links(self, store, session_factory):
        task = insert_task(session_factory, NOW)
        integration = insert_integration(session_factory)
        link(session_factory, task.id, integration.id)
        store.save_log(
            ExecutionLog(
                task_id=task.id,
                user_id="user-1",
                status_code=200,
                response_time_ms=10,
                executed_at=NOW,
            )
        )

        with session_factory() as session:
            session.delete(session.get(ApiTask, task.id))
            session.commit()

        assert fetch_task(session_factory, task.id) is None
        assert fetch_logs(session_factory, task.id) == []
        assert store.list_notification_links(task.id) == []
        with session_factory() as session:
            assert session.get(Integration, integration.id) is not None
