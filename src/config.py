from functools import lru_cache
from typing import List

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Environment
    environment: str = "development"  # "development" or "production"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/api_pulse.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_tick_seconds: int = 60
    scheduler_timezone: str = "UTC"
    scheduler_max_workers: int = 8
    scheduler_tick_deadline_seconds: int = 300
    claim_lease_seconds: int = 600

    # Task execution
    request_timeout_seconds: float = 30.0
    redacted_response_headers: str = "set-cookie,authorization,proxy-authorization"

    # Notifications
    notification_enabled: bool = True
    notification_timeout_seconds: float = 10.0
    notification_max_workers: int = 4
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    email_from: str = "API Pulse <notifications@apipulse.dev>"

    # CORS (comma-separated origins, empty means localhost only)
    cors_origins: str = ""

    # Admin
    admin_api_key: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def sync_database_url(self) -> str:
        return self.database_url.replace("+aiosqlite", "")

    @property
    def redacted_header_names(self) -> List[str]:
        return [
            name.strip().lower()
            for name in self.redacted_response_headers.split(",")
            if name.strip()
        ]

    @property
    def min_claim_lease_seconds(self) -> float:
        # A claimed task may wait in the pool until the tick deadline, then run
        # its request and its notifications
        return (
            self.scheduler_tick_deadline_seconds
            + self.request_timeout_seconds
            + self.notification_timeout_seconds
        )

    @model_validator(mode="after")
    def _validate_claim_lease(self) -> "Settings":
        """A lease shorter than one run lets the next tick claim the task again."""
        if self.claim_lease_seconds <= self.min_claim_lease_seconds:
            raise ValueError(
                f"claim_lease_seconds ({self.claim_lease_seconds}) must exceed "
                f"scheduler_tick_deadline_seconds + request_timeout_seconds + "
                f"notification_timeout_seconds ({self.min_claim_lease_seconds:g})"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
