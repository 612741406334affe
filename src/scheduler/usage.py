from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.exceptions import PersistenceError
from src.models.user_usage import UserUsage
from src.scheduler.interval import utcnow


def usage_month(now: datetime) -> str:
    return f"{now.year}-{now.month:02d}"


class UsageCounter:
    """Counts task runs per user and calendar month (UTC)."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def increment(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Add one run for ``user_id`` and return the month's new total."""
        month = usage_month(now or utcnow())
        try:
            with self._session_factory() as session:
                if not self._bump(session, user_id, month):
                    session.add(UserUsage(user_id=user_id, month=month, runs_count=1))
                    try:
                        session.commit()
                    except IntegrityError:
                        # Another worker inserted the row first
                        session.rollback()
                        self._bump(session, user_id, month)
                return session.execute(
                    select(UserUsage.runs_count).where(
                        UserUsage.user_id == user_id, UserUsage.month == month
                    )
                ).scalar_one()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Error incrementing usage for {user_id}: {e}") from e

    @staticmethod
    def _bump(session: Session, user_id: str, month: str) -> bool:
        result = session.execute(
            update(UserUsage)
            .where(UserUsage.user_id == user_id, UserUsage.month == month)
            .values(runs_count=UserUsage.runs_count + 1)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        if result.rowcount:
            logger.debug(f"Usage for {user_id} in {month} incremented")
        return bool(result.rowcount)
