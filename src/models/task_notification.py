from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.database import Base
from src.models.base import TimestampMixin

if TYPE_CHECKING:
    from src.models.integration import Integration
    from src.models.task import ApiTask


class NotifyOn(enum.Enum):
    always = "always"
    failure_only = "failure_only"
    timeout = "timeout"


class TaskNotification(Base, TimestampMixin):
    """Links an ApiTask to an Integration with a delivery policy."""

    __tablename__ = "task_notifications"
    __table_args__ = (
        UniqueConstraint("task_id", "integration_id", name="uq_task_integration"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("api_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    integration_id: Mapped[int] = mapped_column(
        ForeignKey("user_integrations.id", ondelete="CASCADE"), nullable=False
    )
    notify_on: Mapped[NotifyOn] = mapped_column(
        Enum(NotifyOn), default=NotifyOn.always, nullable=False
    )
    include_response: Mapped[bool] = mapped_column(Boolean, default=False)

    task: Mapped["ApiTask"] = relationship(back_populates="notifications")
    integration: Mapped["Integration"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<TaskNotification task={self.task_id} "
            f"integration={self.integration_id} on={self.notify_on.value}>"
        )
