"""
Application configuration
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings"""

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Crawler backend
    API_BASE_URL: str = "http://localhost:8080"
    API_TOKEN: Optional[str] = None
    START_TIMEOUT_SECONDS: float = 60.0  # starting a job may block while the worker is scheduled
    STATUS_TIMEOUT_SECONDS: float = 10.0

    # Status polling
    POLL_INTERVAL_SECONDS: float = 2.0
    PENDING_POLL_INTERVAL_SECONDS: Optional[float] = None  # None keeps the normal interval
    MAX_BACKOFF_SECONDS: float = 0.0  # 0 disables backoff on transient failures
    MAX_CONSECUTIVE_ERRORS: int = 5
    PROGRESS_HISTORY_LIMIT: int = 100

    # Backend keeps finished job records for this long, then answers 404
    JOB_RETENTION_HOURS: int = 24

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
