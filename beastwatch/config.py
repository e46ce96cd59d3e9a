"""Settings via pydantic-settings with BEASTWATCH_ env prefix.

DB connection fields use validation_alias to read from the same unprefixed
env vars (DB_PASSWORD, DB_PORT, etc.) that docker-compose uses, so a single
.env file drives both the container and the Python app.
"""

from typing import Literal

from croniter import croniter
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BEASTWATCH_", env_file=".env")

    # DB connection: unprefixed aliases match docker-compose env vars
    db_host: str = Field("localhost", validation_alias="DB_HOST")
    db_port: int = Field(5432, validation_alias="DB_PORT")
    db_user: str = Field("beastwatch", validation_alias="DB_USER")
    db_password: str = Field("beastwatch_dev_password", validation_alias="DB_PASSWORD")
    db_name: str = Field("beastwatch", validation_alias="DB_NAME")

    db_pool_size: int = 5
    db_max_overflow: int = 5
    log_level: str = "info"

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000

    # Trigger
    scheduler_enabled: bool = True
    schedule_interval: int = 60  # seconds between runs
    schedule_cron: str | None = None  # overrides schedule_interval when set

    # Care policy
    vital_threshold: int = 50
    cooldown_window_ms: int = 60 * 60 * 1000

    # Smoke-test mode: skip the pipeline, send one fixed notification
    test_mode: bool = False
    test_token: str = ""

    # Data source (Torii GraphQL)
    graphql_url: str = "https://api.cartridge.gg/x/achievbb/torii/graphql"
    page_size: int = 100  # source cap per page
    max_pages: int = 10000
    source_timestamp_unit: Literal["s", "ms"] = "ms"
    http_timeout: float = 30.0

    # Push provider (FCM HTTP v1)
    fcm_project_id: str = Field("", validation_alias="FCM_PROJECT_ID")  # empty: taken from credentials
    fcm_credentials_file: str = ""  # service-account JSON; empty: application default credentials
    fcm_access_token: str = Field("", validation_alias="FCM_ACCESS_TOKEN")  # fixed token, never refreshed
    fcm_base_url: str = "https://fcm.googleapis.com/v1"
    dispatch_concurrency: int = 8

    @model_validator(mode="after")
    def _validate_policy(self) -> "Settings":
        if not 0 <= self.vital_threshold <= 101:
            raise ValueError("vital_threshold must be between 0 and 101")
        if self.cooldown_window_ms < 0:
            raise ValueError("cooldown_window_ms must be >= 0")
        if self.schedule_interval <= 0:
            raise ValueError("schedule_interval must be > 0 seconds")
        if not 1 <= self.page_size <= 100:
            raise ValueError("page_size must be between 1 and 100 (source cap)")
        if self.dispatch_concurrency < 1:
            raise ValueError("dispatch_concurrency must be >= 1")
        if self.schedule_cron and not croniter.is_valid(self.schedule_cron):
            raise ValueError(f"Invalid schedule_cron expression: {self.schedule_cron!r}")
        if self.test_mode and not self.test_token:
            raise ValueError("test_mode requires test_token")
        return self

    @property
    def db_url(self) -> str:
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
