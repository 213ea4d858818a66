"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "DreamBoat API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./dreamboat.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379"

    # Gemini - image synthesis and photo content analysis
    GEMINI_API_KEY: str = ""
    GEMINI_IMAGE_MODEL: str = "gemini-2.5-flash-image"
    GEMINI_VISION_MODEL: str = "gemini-2.0-flash"

    # Storage - S3 settings (optional)
    S3_BUCKET: str = ""
    S3_ENDPOINT: str = ""
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: str = ""
    S3_REGION: str = "us-east-1"

    # Local storage fallback
    LOCAL_STORAGE_PATH: str = "./uploads"
    USE_LOCAL_STORAGE: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8081"]

    # Generation fan-out
    GENERATION_BATCH_SIZE: int = 30  # Stays under the provider's burst quota
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0

    # Photo validation
    VALIDATION_MIN_INTERVAL: float = 1.0  # Seconds between analysis calls

    # Profile selection
    PROFILE_SLOTS: int = 6

    # Sample generation (detached RQ job after validation)
    SAMPLE_SCENARIO: str = "photoshoot"

    # Worker settings
    JOB_TIMEOUT_GENERATION: int = 1800
    JOB_TIMEOUT_SAMPLE: int = 300
    STALE_JOB_MINUTES: int = 60

    @field_validator('GEMINI_API_KEY', 'S3_ACCESS_KEY', 'S3_SECRET_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
