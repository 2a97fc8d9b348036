from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Delivery Service"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Retry Settings (ignored when DELIVERY_PROFILE names a built-in profile)
    DELIVERY_PROFILE: Optional[str] = None
    MAX_RETRIES: int = Field(3, ge=1)
    INITIAL_RETRY_DELAY_MS: int = 1000   # 1 second
    MAX_RETRY_DELAY_MS: int = 30000      # 30 seconds
    RETRY_VALIDATION_ERRORS: bool = True

    # Rate Limiting (100 messages per minute)
    RATE_LIMIT: int = 100
    RATE_LIMIT_WINDOW_MS: int = 60000

    # Circuit Breaker
    CIRCUIT_BREAKER_THRESHOLD: int = 5
    CIRCUIT_BREAKER_TIMEOUT_MS: int = 60000  # 1 minute

    # Queue Settings
    QUEUE_BATCH_SIZE: int = 5

    # Mock Backends
    MOCK_BACKENDS_ENABLED: bool = True
    MOCK_PRIMARY_FAILURE_RATE: float = 0.1
    MOCK_SECONDARY_FAILURE_RATE: float = 0.15

    # Webhook Backends
    WEBHOOK_BACKEND_URLS: List[str] = []
    WEBHOOK_SIGNING_SECRET: str = "webhook-signing-secret-change-in-production"
    WEBHOOK_TIMEOUT_SECONDS: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_BUFFER_SIZE: int = 1000

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
