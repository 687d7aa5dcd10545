"""
Configuration management using Pydantic Settings
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str
    DB_POOL_TIMEOUT: int = 10  # seconds waiting for a pooled connection
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    STORAGE_RETRY_ATTEMPTS: int = 1  # retries after a transient storage failure
    PROGRESS_UPDATE_MAX_RETRIES: int = 5  # optimistic-lock retries per progress update

    # Application
    APP_NAME: str = "English Learning Progress API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["http://localhost:19006", "http://localhost:8081"]

    # Quiz Settings
    REATTEMPT_SCORE_CAP: int = 85
    MAX_QUIZ_ATTEMPTS: Optional[int] = None  # None = unlimited
    DEFAULT_PASSING_SCORE: int = 70

    # Progress Settings
    DEFAULT_TOPICS_PER_MODULE: int = 6
    POINTS_PER_SCORE_STEP: int = 10
    LEADERBOARD_SIZE: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
