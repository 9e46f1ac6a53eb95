from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "jobingest"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 10
    probe_timeout_seconds: float = 5.0
    fetch_timeout_seconds: float = 8.0
    detail_concurrency: int = 6
    max_text_length: int = 20000
    user_agent: str = "jobingest/1.0"
    otel_enabled: bool = True
    otel_service_name: str = "jobingest"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JOBINGEST_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
