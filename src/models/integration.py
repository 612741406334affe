from __future__ import annotations

import enum
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from src.db.database import Base
from src.models.base import TimestampMixin


class IntegrationType(enum.Enum):
    slack = "slack"
    discord = "discord"
    email = "email"
    webhook = "webhook"


class Integration(Base, TimestampMixin):
    __tablename__ = "user_integrations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    integration_type: Mapped[IntegrationType] = mapped_column(
        Enum(IntegrationType), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # {"webhook_url": ...} for slack/discord/webhook, {"email": ...} for email
    credentials: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Integration {self.integration_type.value}:{self.name}>"
