"""
Configuration Management

Uses Pydantic Settings for environment-based configuration.
Loads from .env file automatically.
"""

from typing import Dict, Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Application Settings
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Admission control
    ADMISSION_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    ANALYSIS_RATE_LIMIT: int = 3
    ANALYSIS_RATE_WINDOW_SECONDS: int = 300
    RATE_LIMIT_SWEEP_SECONDS: int = 600
    ANALYSIS_LOCK_STALE_SECONDS: int = 300

    # Tier lookups (composite cache lifetimes live in competiscope.cache.config)
    PLAN_CACHE_SECONDS: int = 300

    # Provider timeouts (seconds)
    PERFORMANCE_TIMEOUT: float = 30.0
    TECHNICAL_TIMEOUT: float = 30.0
    CONTENT_TIMEOUT: float = 30.0
    BACKLINKS_TIMEOUT: float = 30.0
    TRAFFIC_TIMEOUT: float = 30.0
    FACEBOOK_TIMEOUT: float = 45.0
    INSTAGRAM_TIMEOUT: float = 60.0
    LINKEDIN_TIMEOUT: float = 90.0
    ADS_TIMEOUT: float = 30.0

    # Provider credentials (all optional - providers without keys report failure)
    PAGESPEED_API_KEY: Optional[str] = None
    SE_RANKING_API_KEY: Optional[str] = None
    RAPIDAPI_KEY: Optional[str] = None
    APIFY_API_TOKEN: Optional[str] = None
    SEARCHAPI_KEY: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        case_sensitive = False

    def provider_timeouts(self) -> Dict[str, float]:
        """Timeout per provider name."""
        return {
            "performance": self.PERFORMANCE_TIMEOUT,
            "technical": self.TECHNICAL_TIMEOUT,
            "content": self.CONTENT_TIMEOUT,
            "backlinks": self.BACKLINKS_TIMEOUT,
            "traffic": self.TRAFFIC_TIMEOUT,
            "social.facebook": self.FACEBOOK_TIMEOUT,
            "social.instagram": self.INSTAGRAM_TIMEOUT,
            "social.linkedin": self.LINKEDIN_TIMEOUT,
            "ads": self.ADS_TIMEOUT,
        }


@lru_cache
def get_settings() -> Settings:
    """Get or create cached settings instance."""
    return Settings()
