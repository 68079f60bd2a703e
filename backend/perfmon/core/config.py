from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    database_url: str = "sqlite:///./perfmon.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Usage tracking
    usage_tracking_prefix: str = "/api/"
    usage_tracking_exclude: str = "/api/docs,/api/redoc,/api/openapi.json"

    # Retention
    retention_days: int = 30
    cleanup_hour: int = 3  # UTC
    scheduler_enabled: bool = True

    # Default window for analytics routes when no dates are given
    analytics_default_days: int = 7

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def usage_tracking_exclude_list(self) -> List[str]:
        return [p.strip() for p in self.usage_tracking_exclude.split(",") if p.strip()]

    class Config:
        env_file = ".env"


settings = Settings()
