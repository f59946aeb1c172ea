"""Application configuration using Pydantic Settings."""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "time_tracking"

    # JWT (tokens are issued by the identity service)
    jwt_secret: str
    jwt_algorithm: str = "HS256"

    # Time tracking
    timezone: str = "America/Santiago"
    min_rest_minutes: int = 60
    lunch_window_start_hour: int = 12
    lunch_window_end_hour: int = 20
    max_lunch_minutes: int = 120
    max_daily_work_minutes: int = 600  # 10 hours
    max_weekly_work_minutes: int = 2700  # 45 hours
    expected_daily_hours: int = 8
    strict_action_gate: bool = True
    max_conflict_retries: int = 2

    # App
    debug: bool = False
    log_level: str = "INFO"

    # CORS
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]


settings = Settings()
