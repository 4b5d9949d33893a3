from pydantic_settings import BaseSettings
from typing import List
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = os.getenv("DEBUG", True)

    # Document store
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")

    # JWT
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")

    # CORS
    ALLOWED_ORIGINS: str = os.getenv("ALLOWED_ORIGINS", "*")

    @property
    def allowed_origins_list(self) -> List[str]:
        return self.ALLOWED_ORIGINS.split(",")

    # Redis (Celery broker/backend and shared membership cache)
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

    @property
    def redis_connection_url(self) -> str:
        return self.REDIS_URL.strip()

    # Challenge membership cache
    # "memory" = process-local (single instance), "redis" = shared across instances
    CHALLENGE_CACHE_BACKEND: str = os.getenv("CHALLENGE_CACHE_BACKEND", "memory")
    CHALLENGE_CACHE_TTL_SECONDS: int = os.getenv("CHALLENGE_CACHE_TTL_SECONDS", 3600)
    CHALLENGE_CACHE_KEY_PREFIX: str = os.getenv(
        "CHALLENGE_CACHE_KEY_PREFIX", "challenge_habits"
    )

    # Challenge lifecycle sweep
    CHALLENGE_SCHEDULER_ENABLED: bool = os.getenv("CHALLENGE_SCHEDULER_ENABLED", True)
    CHALLENGE_SWEEP_INTERVAL_SECONDS: int = os.getenv(
        "CHALLENGE_SWEEP_INTERVAL_SECONDS", 3600
    )

    # Links used in notification payloads
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "https://habitcircle.app")

    # PostHog Analytics
    POSTHOG_API_KEY: str = os.getenv("POSTHOG_API_KEY", "")
    POSTHOG_HOST: str = os.getenv("POSTHOG_HOST", "https://us.i.posthog.com")
    POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE: bool = (
        os.getenv("POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE", "true").lower() == "true"
    )

    class Config:
        env_file = [".env.local", ".env"]
        case_sensitive = True
        extra = "ignore"


# Create settings instance
settings = Settings()
