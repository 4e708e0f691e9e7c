from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Subscription Tracker API"
    app_env: str = "local"
    app_debug: bool = True
    log_level: str = "INFO"
    log_format: str = "json"
    api_port: int = 8000
    database_url: str = "sqlite+pysqlite:///./subtracker.db"
    jwt_secret: str = "replace-me"
    jwt_algorithm: str = "HS256"
    rate_limit_disabled: bool = False
    rate_limit_subscription_mutations_per_minute: int = 60
    rate_limit_window_seconds: int = 60
    metrics_enabled: bool = False
    otel_enabled: bool = False
    otel_service_name: str = "subtracker-api"
    otel_exporter_otlp_endpoint: str | None = None
    otel_console_exporter: bool = False
    upcoming_renewal_window_days: int = 30
    upcoming_renewal_max_window_days: int = 365

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    return Settings()
