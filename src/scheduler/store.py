"""TaskStore: SQLAlchemy persistence for tasks, logs and notification links."""
from __future__ import annotations

from datetime import datetime
from typing import List

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from src.exceptions import PersistenceError
from src.models.execution_log import ExecutionLog
from src.models.task import ApiTask
from src.models.task_notification import TaskNotification


class TaskStore:
    """Task, log and notification-link access for the scheduler.

    Every method opens its own short session so the store can be shared by
    worker threads. Returned objects are detached and safe to read after the
    session closes.

    Args:
        session_factory: A ``sessionmaker`` created with ``expire_on_commit=False``.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    # -- Scheduling ------------------------------------------------------------

    def claim_due_tasks(self, now: datetime, lease_until: datetime) -> List[ApiTask]:
        """Atomically claim every active task whose ``next_run_at <= now``.

        Each candidate is claimed with a conditional UPDATE that moves
        ``next_run_at`` to ``lease_until``. Only the caller whose UPDATE
        matched the row gets the task, so overlapping ticks never run the
        same task twice. A crashed run becomes due again once the lease
        expires.
        """
        try:
            with self._session_factory() as session:
                candidate_ids = list(
                    session.execute(
                        select(ApiTask.id)
                        .where(ApiTask.is_active.is_(True))
                        .where(ApiTask.next_run_at <= now)
                        .order_by(ApiTask.next_run_at)
                    ).scalars()
                )
                session.commit()

                claimed_ids = []
                for task_id in candidate_ids:
                    result = session.execute(
                        update(ApiTask)
                        .where(ApiTask.id == task_id)
                        .where(ApiTask.is_active.is_(True))
                        .where(ApiTask.next_run_at <= now)
                        .values(next_run_at=lease_until)
                        .execution_options(synchronize_session=False)
                    )
                    session.commit()
                    if result.rowcount == 1:
                        claimed_ids.append(task_id)
                    else:
                        logger.debug(f"Task {task_id} already claimed elsewhere")

                if not claimed_ids:
                    return []
                return list(
                    session.execute(
                        select(ApiTask)
                        .where(ApiTask.id.in_(claimed_ids))
                        .order_by(ApiTask.id)
                    ).scalars()
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Error claiming due tasks: {e}") from e

    def release_claim(self, task_id: int, lease_until: datetime, due_at: datetime) -> bool:
        """Hand back a claimed task that was never started so the next tick picks it up."""
        with self._session_factory() as session:
            result = session.execute(
                update(ApiTask)
                .where(ApiTask.id == task_id)
                .where(ApiTask.next_run_at == lease_until)
                .values(next_run_at=due_at)
                .execution_options(synchronize_session=False)
            )
            self._commit(session, f"releasing task {task_id}")
            return result.rowcount == 1

    def mark_ran(self, task_id: int, last_run_at: datetime, next_run_at: datetime) -> None:
        with self._session_factory() as session:
            session.execute(
                update(ApiTask)
                .where(ApiTask.id == task_id)
                .values(last_run_at=last_run_at, next_run_at=next_run_at)
                .execution_options(synchronize_session=False)
            )
            self._commit(session, f"updating run times of task {task_id}")

    # -- Logs ------------------------------------------------------------------

    def save_log(self, log: ExecutionLog) -> ExecutionLog:
        with self._session_factory() as session:
            session.add(log)
            self._commit(session, f"saving log for task {log.task_id}")
            return log

    # -- Notifications ---------------------------------------------------------

    def list_notification_links(self, task_id: int) -> List[TaskNotification]:
        """All notification links of a task with their integration loaded."""
        try:
            with self._session_factory() as session:
                return list(
                    session.execute(
                        select(TaskNotification)
                        .options(joinedload(TaskNotification.integration))
                        .where(TaskNotification.task_id == task_id)
                        .order_by(TaskNotification.id)
                    ).scalars()
                )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Error fetching notifications for task {task_id}: {e}"
            ) from e

    # -- Internal --------------------------------------------------------------

    @staticmethod
    def _commit(session: Session, action: str) -> None:
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Error {action}: {e}") from e
