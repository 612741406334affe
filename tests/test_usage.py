import threading
from datetime import datetime

from src.scheduler.usage import UsageCounter, usage_month
from tests.factories import usage_count


def test_usage_month():
    assert usage_month(datetime(2024, 3, 9, 17, 0)) == "2024-03"
    assert usage_month(datetime(2024, 12, 31, 23, 59)) == "2024-12"


class TestUsageCounter:
    def test_increment_returns_running_total(self, session_factory):
        counter = UsageCounter(session_factory)
        now = datetime(2024, 1, 15, 9, 0)

        assert counter.increment("user-1", now=now) == 1
        assert counter.increment("user-1", now=now) == 2
        assert usage_count(session_factory, "user-1", "2024-01") == 2

    def test_months_and_users_are_separate(self, session_factory):
        counter = UsageCounter(session_factory)

        counter.increment("user-1", now=datetime(2024, 1, 31, 23, 0))
        counter.increment("user-1", now=datetime(2024, 2, 1, 0, 30))
        counter.increment("user-2", now=datetime(2024, 2, 1, 0, 30))

        assert usage_count(session_factory, "user-1", "2024-01") == 1
        assert usage_count(session_factory, "user-1", "2024-02") == 1
        assert usage_count(session_factory, "user-2", "2024-02") == 1
        assert usage_count(session_factory, "user-3", "2024-02") == 0

    def test_concurrent_increments(self, session_factory):
        counter = UsageCounter(session_factory)
        now = datetime(2024, 1, 15, 9, 0)
        workers = 6
        barrier = threading.Barrier(workers)

        def bump():
            barrier.wait()
            counter.increment("user-1", now=now)

        threads = [threading.Thread(target=bump) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert usage_count(session_factory, "user-1", "2024-01") == workers
