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
    # DATABASE_URL wins when set (e.g. "sqlite:///./habits.db" for local runs).
    DATABASE_URL: Optional[str] = Field(default=None)
    POSTGRES_USER: str = Field(default="postgres")
    POSTGRES_PASSWORD: str = Field(default="postgres")
    POSTGRES_DB: str = Field(default="habits")
    POSTGRES_HOST: str = Field(default="postgres")
    POSTGRES_PORT: int = Field(default=5432)

    # Database Pool Configuration
    DB_POOL_SIZE: int = Field(default=20)
    DB_MAX_OVERFLOW: int = Field(default=10)
    DB_POOL_TIMEOUT: int = Field(default=30)
    DB_POOL_RECYCLE: int = Field(default=3600)  # 1 hour

    # Redis Configuration (rate limiting)
    REDIS_URL: str = Field(default="redis://redis:6379/0")

    # Verification oracle (Anthropic)
    ANTHROPIC_API_KEY: Optional[str] = Field(default=None)
    VERIFIER_MODEL: str = Field(default="claude-opus-4-6")
    VERIFIER_MAX_TOKENS: int = Field(default=300)
    VERIFIER_TIMEOUT_S: float = Field(default=60.0)

    # Evidence uploads
    UPLOADS_DIR: str = Field(default="./uploads")
    # Raw upload cap; images are compressed below EVIDENCE_MAX_BYTES before verification.
    UPLOAD_MAX_FILE_BYTES: int = Field(default=20 * 1024 * 1024)
    EVIDENCE_MAX_BYTES: int = Field(default=4 * 1024 * 1024)

    # Input length limits (values are truncated, not rejected)
    NAME_MAX_LENGTH: int = Field(default=100)
    DESCRIPTION_MAX_LENGTH: int = Field(default=500)
    PROOF_INSTRUCTIONS_MAX_LENGTH: int = Field(default=1000)
    PROOF_NOTE_MAX_LENGTH: int = Field(default=2000)
    EMAIL_MAX_LENGTH: int = Field(default=200)

    # API Configuration
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=3001)

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="json")  # json or text

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True)
    RATE_LIMIT_PER_MINUTE: int = Field(default=60)
    # Each verification costs an oracle call.
    VERIFY_RATE_LIMIT_PER_MINUTE: int = Field(default=10)

    # Environment
    ENVIRONMENT: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # CORS - comma-separated list of allowed origins for production
    CORS_ORIGINS: Optional[str] = Field(default=None)

    # Sentry Error Tracking
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.1)  # 10% of transactions

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:"
            f"{self.POSTGRES_PASSWORD}@"
            f"{self.POSTGRES_HOST}:"
            f"{self.POSTGRES_PORT}/"
            f"{self.POSTGRES_DB}"
        )


# Global settings instance
settings = Settings()
