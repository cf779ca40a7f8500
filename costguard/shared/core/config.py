from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from typing import Optional


class Settings(BaseSettings):
    """
    Main configuration for CostGuard.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """
    APP_NAME: str = "CostGuard"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # local, development, staging, production
    TESTING: bool = False

    @model_validator(mode='after')
    def validate_security_config(self) -> 'Settings':
        """Ensure critical production keys are present and valid."""
        if self.TESTING:
            return self

        if self.ENVIRONMENT == "production":
            if len(self.JWT_SECRET_KEY) < 32:
                raise ValueError("JWT_SECRET_KEY must be at least 32 characters in production.")
            if not self.ALERT_FROM_EMAIL:
                raise ValueError("ALERT_FROM_EMAIL is required in production.")

        return self

    # Database
    DATABASE_URL: str  # Required
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10

    # Auth (token issuance lives in the identity service, we only verify)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # AWS Credentials
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_ENDPOINT_URL: Optional[str] = None  # MotoServer/LocalStack
    AWS_ACCOUNT_ID: Optional[str] = None  # Resolved through STS when unset

    # Timeouts for external calls
    AWS_CONNECT_TIMEOUT_SECONDS: int = 10
    AWS_READ_TIMEOUT_SECONDS: int = 30
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # Notifications
    ALERT_SNS_TOPIC_ARN: Optional[str] = None
    ALERT_FROM_EMAIL: str = "alerts@costguard.dev"
    DEFAULT_ALERT_EMAIL: str = "admin@example.com"

    # Provider-native budgets (AWS Budgets)
    NATIVE_BUDGETS_ENABLED: bool = False
    NATIVE_BUDGET_OWNER_USER_ID: Optional[str] = None
    NATIVE_BUDGET_ALERT_THRESHOLD: int = 80

    # Scheduler
    ALERT_SCHEDULER_ENABLED: bool = True
    ALERT_SCHEDULER_MINUTE: int = 0  # Runs hourly at this minute

    # Security
    CORS_ORIGINS: list[str] = []

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings():
    """Returns a singleton instance of the application settings."""
    return Settings()
