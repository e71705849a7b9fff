"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Deadline engine configuration. All values come from environment variables."""

    # Task store
    database_path: Path = Field(default=Path("data/deadlines.db"))
    tasks_table: str = Field(default="tasks")

    # Turso (hosted libSQL): when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Deadlines
    deadline_timezone: str = Field(default="UTC")
    reminder_offset_minutes: int = Field(default=60)

    # Schedules
    reminder_target: str = Field(default="deadlines.scheduling.callbacks:fire_reminder")
    expiration_target: str = Field(default="deadlines.scheduling.callbacks:fire_expiration")
    schedule_executor: str = Field(default="default")
    schedule_jobstore_url: str = Field(default="")
    sweep_interval_minutes: int = Field(default=15)

    # Expiration queue (Redis Streams)
    redis_url: str = Field(default="")
    expiration_queue_stream: str = Field(default="task-expirations")
    expiration_queue_group: str = Field(default="expiration-notifier")
    queue_visibility_timeout_seconds: int = Field(default=300)
    queue_max_receive_count: int = Field(default=5)

    # Notification topics
    notification_api_url: str = Field(default="")
    notification_api_token: str = Field(default="")
    expiration_topic: str = Field(default="")
    reminder_topic: str = Field(default="")
    admin_email: str = Field(default="admin@taskmanager.local")

    # Identity provider
    identity_api_url: str = Field(default="")
    identity_api_token: str = Field(default="")
    user_pool_id: str = Field(default="")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=10.0)

    # Webhooks
    webhook_port: int = Field(default=8443)
    webhook_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_schedule_targets(self) -> dict[str, str]:
        """Return the configured callback reference per schedule purpose.

        Purposes whose target is blank are left out, which disables
        scheduling for that purpose.
        """
        targets = {
            "Reminder": self.reminder_target.strip(),
            "Expiration": self.expiration_target.strip(),
        }
        return {purpose: ref for purpose, ref in targets.items() if ref}

    def get_reminder_topic(self) -> str:
        """Topic for deadline reminders; falls back to the expiration topic."""
        return self.reminder_topic or self.expiration_topic


settings = Settings()
