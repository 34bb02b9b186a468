from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Investor Discovery"
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Investor store
    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 5

    # Research provider
    openai_api_key: str | None = None
    research_model: str = "gpt-4.1-mini"
    research_timeout_seconds: float = 180.0
    research_retry_attempts: int = 3
    research_retry_backoff_seconds: float = 1.0
    discovery_max_output_tokens: int = 8192
    profile_max_output_tokens: int = 4096

    # Discovery request defaults
    discovery_default_max_results: int = 20
    discovery_max_results_cap: int = 30
    discovery_default_min_fit_score: int = 50
    discovery_default_stage_filter: str = "Pre-seed, Seed"
    discovery_target_profile_path: str | None = None

    # Security
    cors_origins: list[str] = []  # Empty by default for security

    # Sentry
    sentry_dsn: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Metrics
    metrics_backend: str = "stdout"
    metrics_namespace: str = "discovery"
    metrics_disable: bool = False
    metrics_sample_rate: float = 1.0
    metrics_statsd_host: str = "127.0.0.1"
    metrics_statsd_port: int = 8125

    model_config = ConfigDict(env_file=".env", case_sensitive=False)


settings = Settings()
