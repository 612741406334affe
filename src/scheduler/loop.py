"""SchedulerLoop: one tick claims due tasks, runs them and fans out notifications.

The loop keeps no state between ticks. Whatever triggers it (APScheduler,
``POST /api/scheduler/tick``, the CLI) just calls ``tick()``.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger

from src.exceptions import PersistenceError
from src.models.execution_log import ExecutionLog
from src.models.task import ApiTask
from src.notifications.dispatcher import NotificationDispatcher
from src.scheduler.executor import TaskExecutor
from src.scheduler.interval import next_run_utc, utcnow
from src.scheduler.store import TaskStore
from src.scheduler.usage import UsageCounter


@dataclass
class TickSummary:
    started_at: datetime
    claimed: int = 0
    completed: int = 0
    failed: int = 0
    released: int = 0
    in_flight: int = 0
    task_ids: List[int] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "started_at": self.started_at.isoformat(),
            "claimed": self.claimed,
            "completed": self.completed,
            "failed": self.failed,
            "released": self.released,
            "in_flight": self.in_flight,
            "task_ids": self.task_ids,
        }


class SchedulerLoop:
    """Runs due tasks with a bounded worker pool.

    Args:
        store: Task/log persistence with atomic claim.
        executor: Performs the outbound HTTP call.
        dispatcher: Sends notifications for each fresh log.
        usage: Per-user run counter. Failures there never block a task.
        max_workers: Size of the task worker pool.
        claim_lease: How far ``next_run_at`` is pushed while a task is in flight.
        tick_deadline: Wall-clock budget of one tick. Tasks not started by then
            are released for the next tick.
        timezone: IANA zone used for calendar-day intervals.
    """

    def __init__(
        self,
        store: TaskStore,
        executor: TaskExecutor,
        dispatcher: NotificationDispatcher,
        usage: Optional[UsageCounter] = None,
        max_workers: int = 8,
        claim_lease: timedelta = timedelta(minutes=10),
        tick_deadline: Optional[timedelta] = timedelta(minutes=5),
        timezone: str = "UTC",
    ):
        self.store = store
        self.executor = executor
        self.dispatcher = dispatcher
        self.usage = usage
        self.max_workers = max_workers
        self.claim_lease = claim_lease
        self.tick_deadline = tick_deadline
        self.timezone = timezone
        # Pools of past ticks whose tasks outlived the deadline
        self._draining: List[Tuple[ThreadPoolExecutor, List[Future]]] = []
        self._draining_lock = threading.Lock()

    def tick(self, now: Optional[datetime] = None) -> TickSummary:
        """執行一次排程：claim 到期任務並平行執行"""
        now = now or utcnow()
        summary = TickSummary(started_at=now)
        self._prune_draining()
        logger.info(f"[{now.isoformat()}] Starting task execution...")

        lease_until = now + self.claim_lease
        try:
            tasks = self.store.claim_due_tasks(now, lease_until)
        except PersistenceError as e:
            logger.error(f"Error fetching tasks: {e}")
            return summary

        if not tasks:
            logger.info("No tasks to execute")
            return summary

        summary.claimed = len(tasks)
        summary.task_ids = [task.id for task in tasks]
        logger.info(f"Found {len(tasks)} tasks to execute")

        pool = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(tasks)), thread_name_prefix="task"
        )
        futures: Dict[Future, ApiTask] = {
            pool.submit(self.run_task, task, now): task for task in tasks
        }
        timeout = self.tick_deadline.total_seconds() if self.tick_deadline else None
        done, not_done = wait(futures, timeout=timeout)

        for future in done:
            if future.exception() is None and future.result():
                summary.completed += 1
            else:
                summary.failed += 1

        for future in not_done:
            task = futures[future]
            if future.cancel():
                # Never started: give the task back instead of waiting for the lease
                self._release(task, lease_until, now)
                summary.released += 1
            else:
                # Already running: it still persists its own log and next run
                summary.in_flight += 1

        pool.shutdown(wait=False, cancel_futures=True)
        if summary.in_flight:
            with self._draining_lock:
                self._draining.append((pool, list(not_done)))

        if not_done:
            logger.warning(
                f"Tick deadline exceeded: {summary.released} task(s) released, "
                f"{summary.in_flight} still running"
            )
        logger.info(
            f"[{utcnow().isoformat()}] Task execution completed: "
            f"{summary.completed} ok, {summary.failed} failed"
        )
        return summary

    def run_task(self, task: ApiTask, now: datetime) -> bool:
        """Execute one claimed task end to end. Returns False if any step failed."""
        ok = True
        try:
            log = self.executor.execute(task)
        except Exception:
            # Executor bugs still produce a log so the run is visible
            logger.exception(f"Error executing task {task.id}")
            log = ExecutionLog(
                task_id=task.id,
                user_id=task.user_id,
                status_code=None,
                response_time_ms=0,
                error_message="Internal error while executing task",
                executed_at=utcnow(),
            )
            ok = False

        try:
            self.store.save_log(log)
        except PersistenceError as e:
            logger.error(
                f"Error saving log for task {task.id} "
                f"(status={log.status_code}, error={log.error_message!r}, "
                f"time={log.response_time_ms}ms): {e}"
            )
            ok = False

        if self.usage is not None:
            try:
                self.usage.increment(task.user_id, now=now)
            except Exception as e:
                logger.error(f"Error incrementing usage count for {task.user_id}: {e}")

        # Never raises
        self.dispatcher.dispatch(task, log)

        try:
            next_run_at = self.compute_next_run(now, task.schedule_interval)
            self.store.mark_ran(task.id, last_run_at=now, next_run_at=next_run_at)
        except Exception as e:
            logger.error(f"Error updating task {task.id}: {e}")
            return False

        return ok

    def compute_next_run(self, now: datetime, interval: str) -> datetime:
        """Next due time (naive UTC), with day intervals counted in the scheduler timezone."""
        return next_run_utc(now, interval, self.timezone)

    def _release(self, task: ApiTask, lease_until: datetime, due_at: datetime) -> None:
        try:
            self.store.release_claim(task.id, lease_until, due_at)
        except PersistenceError as e:
            logger.error(f"Error releasing task {task.id}: {e}")

    def close(self) -> None:
        """Wait for tasks still running from ticks that hit their deadline.

        Call before closing the HTTP clients the executor and senders use.
        """
        with self._draining_lock:
            draining, self._draining = self._draining, []
        if draining:
            logger.info(f"Waiting for tasks of {len(draining)} earlier tick(s) to finish")
        for pool, _ in draining:
            pool.shutdown(wait=True)

    def _prune_draining(self) -> None:
        with self._draining_lock:
            self._draining = [
                (pool, futures)
                for pool, futures in self._draining
                if not all(future.done() for future in futures)
            ]
