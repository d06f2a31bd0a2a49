"""
Centralized configuration management with validation.

All environment variables are loaded and validated here.
This ensures consistent configuration across the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings with validation."""

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    # Database Configuration
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="repz")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)
    # Full URL override (e.g. managed Postgres, or sqlite:// for local tests)
    DATABASE_URL: Optional[str] = Field(default=None)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # JWT Authentication - REQUIRED for token signing
    # Must be set via environment variable, never use default in production
    SECRET_KEY: str = Field(
        default=...,  # Required - no default
        description="JWT signing key. Must be cryptographically secure (32+ chars). "
                    "Generate with: python -c \"import secrets; print(secrets.token_urlsafe(32))\""
    )

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8000)
    API_RELOAD: bool = Field(default=False)
    EXPOSE_API_DOCS: bool = Field(default=False)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)

    # External API Configuration
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # Celery Configuration
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")

    # Cache Configuration
    CACHE_ENABLED: bool = Field(default=True)
    CACHE_TTL_DEFAULT: int = Field(default=300)  # 5 minutes
    CACHE_TTL_LEADERBOARD: int = Field(default=60)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Frontend base URL (Stripe redirects, Connect onboarding return links).
    FRONTEND_URL: str = Field(default="http://localhost:19006")

    # Wager challenges
    WAGER_MIN_XP: int = Field(default=50, ge=1)
    WAGER_MAX_XP: int = Field(default=500, ge=1)
    WAGER_DEFAULT_DURATION_HOURS: int = Field(default=48, ge=1, le=24 * 14)

    # Stripe (hosted checkout + Connect payouts)
    STRIPE_SECRET_KEY: Optional[str] = Field(default=None)
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    STRIPE_API_VERSION: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_SUCCESS_URL: Optional[str] = Field(default=None)
    STRIPE_CHECKOUT_CANCEL_URL: Optional[str] = Field(default=None)
    STRIPE_CURRENCY: str = Field(default="gbp")
    STRIPE_PLATFORM_FEE_PERCENT: int = Field(default=10, ge=0, le=100)

    # RevenueCat (in-app purchases)
    REVENUECAT_WEBHOOK_SECRET: Optional[str] = Field(default=None)
    REVENUECAT_API_KEY: Optional[str] = Field(default=None)
    REVENUECAT_API_URL: str = Field(default="https://api.revenuecat.com/v1")
    REVENUECAT_PRO_ENTITLEMENT: str = Field(default="pro_access")
    REVENUECAT_ELITE_ENTITLEMENT: str = Field(default="elite_access")

    # OpenAI chat proxy
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    OPENAI_CHAT_MODEL: str = Field(default="gpt-4")

    # Expo push notifications
    EXPO_PUSH_URL: str = Field(default="https://exp.host/--/api/v2/push/send")

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)


# Global settings instance
settings = Settings()
