from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when the pipeline cannot start because configuration is missing or invalid."""


class Settings(BaseSettings):
    app_name: str = "jobsweep-api"
    environment: str = "dev"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    crawler_poster_id: str | None = None
    trigger_secret: str | None = None
    sources_json: str | None = None
    sources_file: str | None = None
    user_agent: str = "Mozilla/5.0 (compatible; jobsweep/1.0; +https://github.com/jobsweep)"
    run_deadline_seconds: float = 300.0
    deadline_safety_margin_seconds: float = 20.0
    min_source_budget_seconds: float = 15.0
    source_timeout_seconds: float = 90.0
    request_timeout_seconds: float = 15.0
    crawl_concurrency: int = 4
    default_max_pages: int = 10
    page_delay_seconds: float = 2.0
    stale_check_concurrency: int = 10
    stale_check_timeout_seconds: float = 10.0
    stale_check_batch_limit: int | None = None
    stale_check_min_probe_budget_seconds: float | None = None
    stale_fail_threshold: int = 3
    crawl_interval_seconds: float = 86400.0
    stale_check_interval_seconds: float = 86400.0
    poll_interval_seconds: float = 30.0
    max_backoff_seconds: float = 900.0
    otel_enabled: bool = True
    otel_service_name: str = "jobsweep"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JOBSWEEP_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
