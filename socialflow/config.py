# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    # Webhook base served by the workflow engine
    api_base: str = Field(
        default="http://localhost:5678/webhook",
        validation_alias=AliasChoices("SOCIALFLOW_API_BASE", "VITE_API_BASE"),
    )
    api_timeout: float = Field(default=60.0, alias="SOCIALFLOW_API_TIMEOUT")
    workflow_timeout: float = Field(default=120.0, alias="SOCIALFLOW_WORKFLOW_TIMEOUT")
    tunnel_test_timeout: float = Field(default=15.0, alias="SOCIALFLOW_TUNNEL_TEST_TIMEOUT")

    # Read queries only; mutations never retry
    query_retry: int = Field(default=2, alias="SOCIALFLOW_QUERY_RETRY")
    query_retry_delay: float = Field(default=1.0, alias="SOCIALFLOW_QUERY_RETRY_DELAY")

    # How long a page waits for a query before rendering its loading state
    view_wait_seconds: float = Field(default=5.0, alias="SOCIALFLOW_VIEW_WAIT")
    sync_refetch_delay: float = Field(default=2.0, alias="SOCIALFLOW_SYNC_REFETCH_DELAY")

    db_path: str = Field(default="/data/clients/_config/socialflow.db", alias="DB_PATH")
    n8n_dashboard_url: str = Field(default="http://localhost:5678", alias="VITE_N8N_DASHBOARD")
    late_app_url: str = Field(default="https://app.getlate.dev", alias="LATE_APP_URL")
    default_timezone: str = Field(default="Europe/Berlin", alias="SOCIALFLOW_DEFAULT_TIMEZONE")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    environment: str = Field(default="local", alias="SOCIALFLOW_ENV")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def get_late_post_url(post_id: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return f"{settings.late_app_url}/posts/{post_id}"
