from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Agency Hub"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Session state store
    DATABASE_URL: str = "sqlite:///./agency_hub.db"
    SESSION_KEY_PREFIX: str = "agency_hub"

    # Upstream agency API
    AGENCY_API_URL: str = "https://api1.simplyworkcrm.com/api:xyNb4DPW"
    AGENCY_API_TIMEOUT: Optional[float] = None  # None = wait indefinitely

    # "all_or_nothing" rejects the whole batch when one agency fails,
    # "best_effort" merges the agencies that answered
    FETCH_FAILURE_POLICY: str = "all_or_nothing"

    # Tables
    DEFAULT_ROWS_PER_PAGE: int = 20
    ROWS_PER_PAGE_OPTIONS: List[int] = [10, 20, 50, 100]

    # Extra CORS origin for the web frontend
    FRONTEND_URL: Optional[str] = None

    # Open views kept per process; least recently used are dropped first
    VIEW_REGISTRY_MAX_VIEWS: int = 500
    # Views untouched this long are dropped; None keeps them until evicted
    VIEW_IDLE_TTL_SECONDS: Optional[float] = 1800

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
