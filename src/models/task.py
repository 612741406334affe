from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.database import Base
from src.models.base import TimestampMixin

if TYPE_CHECKING:
    from src.models.execution_log import ExecutionLog
    from src.models.task_notification import TaskNotification


class HttpMethod(enum.Enum):
    GET = "GET"
    POST = "POST"


class ApiTask(Base, TimestampMixin):
    __tablename__ = "api_tasks"
    __table_args__ = (Index("ix_api_tasks_due", "is_active", "next_run_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    task_name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    method: Mapped[HttpMethod] = mapped_column(
        Enum(HttpMethod), default=HttpMethod.GET, nullable=False
    )
    request_headers: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON)
    request_body: Mapped[Optional[str]] = mapped_column(Text)
    schedule_interval: Mapped[str] = mapped_column(String(16), nullable=False)
    include_response: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    logs: Mapped[List["ExecutionLog"]] = relationship(
        back_populates="task", cascade="all, delete-orphan", passive_deletes=True
    )
    notifications: Mapped[List["TaskNotification"]] = relationship(
        back_populates="task", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<ApiTask {self.id}:{self.task_name} every {self.schedule_interval}>"
