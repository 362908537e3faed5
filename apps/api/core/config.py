"""
Settings for the Couchproof API and worker.

Every environment variable the service reads is declared here; modules
import `settings` instead of touching os.environ.
"""
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # Postgres. DATABASE_URL, when set, overrides the parts (tests use sqlite).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="couchproof")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)
    DB_POOL_SIZE: int = Field(default=10)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)

    # Redis backs the stats cache, queued-sync bookkeeping and Celery.
    REDIS_URL: str = Field(default="redis://redis:6379/0")
    CELERY_BROKER_URL: str = Field(default="redis://redis:6379/0")
    CELERY_RESULT_BACKEND: str = Field(default="redis://redis:6379/0")
    CACHE_TTL_DEFAULT: int = Field(default=300)
    CACHE_TTL_STATS: int = Field(default=600)

    # Session tokens are issued by the web app's identity layer, HS256.
    SECRET_KEY: str = Field(default=..., description="JWT signing key shared with the web app")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30 * 24 * 60)

    # Fernet key(s) for stored Strava tokens. Comma-separated: the first
    # encrypts, all of them decrypt.
    TOKEN_ENCRYPTION_KEY: Optional[str] = Field(default=None)

    # Strava
    STRAVA_CLIENT_ID: Optional[str] = Field(default=None)
    STRAVA_CLIENT_SECRET: Optional[str] = Field(default=None)
    STRAVA_REDIRECT_URI: Optional[str] = Field(default=None)
    STRAVA_WEBHOOK_VERIFY_TOKEN: Optional[str] = Field(default=None)
    STRAVA_WEBHOOK_CALLBACK_URL: Optional[str] = Field(default=None)
    STRAVA_SYNC_PAGE_DELAY_S: float = Field(default=1.0)
    STRAVA_SYNC_ITEM_DELAY_S: float = Field(default=0.2)
    EXTERNAL_API_TIMEOUT: int = Field(default=30)

    # OAuth round-trip back to the web app
    WEB_APP_BASE_URL: str = Field(default="http://localhost:3000")
    OAUTH_STATE_TTL_S: int = Field(default=600)
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # AI text generation
    AI_PROVIDER: str = Field(default="anthropic")
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    ANTHROPIC_MODEL: str = Field(default="claude-3-5-sonnet-20241022")
    OPENAI_MODEL: str = Field(default="gpt-4o")

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json | text

    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.1)

    @field_validator("SECRET_KEY")
    @classmethod
    def secret_key_length(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters")
        return v

    @field_validator("AI_PROVIDER")
    @classmethod
    def known_provider(cls, v: str) -> str:
        v = (v or "anthropic").lower()
        if v not in ("anthropic", "openai"):
            raise ValueError("AI_PROVIDER must be 'anthropic' or 'openai'")
        return v

    @property
    def token_encryption_keys(self) -> list:
        if not self.TOKEN_ENCRYPTION_KEY:
            return []
        return [k.strip() for k in self.TOKEN_ENCRYPTION_KEY.split(",") if k.strip()]


settings = Settings()
