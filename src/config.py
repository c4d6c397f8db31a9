from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Environment
    environment: str = "development"  # "development" or "production"

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/asset_inventory.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    debug: bool = False

    # Scheduler
    scheduler_timezone: str = "UTC"
    maintenance_lookahead_days: int = 30
    warranty_lookahead_days: int = 90
    license_lookahead_days: int = 90
    maintenance_scan_hour: int = 1
    maintenance_scan_minute: int = 0
    warranty_scan_hour: int = 1
    warranty_scan_minute: int = 10
    license_scan_hour: int = 1
    license_scan_minute: int = 20

    # Mail
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = ""
    notification_enabled: bool = True

    # Admin
    admin_api_key: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
