from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Dict, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.database import Base

if TYPE_CHECKING:
    from src.models.task import ApiTask


class ExecutionLog(Base):
    """One run of an ApiTask. Rows are insert-only."""

    __tablename__ = "api_task_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    task_id: Mapped[int] = mapped_column(
        ForeignKey("api_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status_code: Mapped[Optional[int]] = mapped_column(Integer)
    response_headers: Mapped[Optional[Dict[str, str]]] = mapped_column(JSON)
    response_body: Mapped[Optional[str]] = mapped_column(Text)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    task: Mapped["ApiTask"] = relationship(back_populates="logs")

    def __repr__(self) -> str:
        outcome = self.status_code if self.status_code is not None else self.error_message
        return f"<ExecutionLog task={self.task_id} {outcome} {self.response_time_ms}ms>"
