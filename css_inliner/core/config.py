"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "CSS Inliner"
    environment: str = "development"
    debug: bool = True

    api_v1_prefix: str = "/v1"
    cors_allowed_origins: List[str] = ["*"]

    redis_url: str = "redis://localhost:6379/0"

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    api_token: Optional[str] = None
    auth_token_header: str = "Authorization"

    template_directory: str = "."
    default_template: Optional[str] = None
    above_the_fold_selector: Optional[str] = None

    fetch_remote_stylesheets: bool = False
    remote_timeout_seconds: float = 10.0
    compile_cache_size: int = 256


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
