"""Configuration and environment settings for the Finance Tracker."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the Finance Tracker."""

    database_url: str = "sqlite:///./finance_tracker.db"
    server_host: str = "127.0.0.1"
    server_port: int = 8000
    log_file: str = "logs/finance_tracker.log"
    log_level: str = "INFO"
    base_currency: str = "USD"
    display_currency: str = "IDR"
    exchange_rates: dict[str, float] = {"USD": 1.0, "IDR": 16250.0}
    reconcile_on_startup: bool = False
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
