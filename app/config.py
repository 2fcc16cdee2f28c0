from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Restaurant Pricing Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Pricing defaults (used when the restaurant settings row is missing a value)
    DEFAULT_TAX_RATE: float = 0.0825
    DEFAULT_DELIVERY_FEE: float = 3.99
    DEFAULT_MIN_ORDER_AMOUNT: float = 0
    DEFAULT_CURRENCY: str = "USD"
    RESTAURANT_SETTINGS_ID: str = "default"

    # Loyalty program
    LOYALTY_ENABLED: bool = True
    LOYALTY_POINTS_PER_DOLLAR: float = 0.5  # Points earned per currency unit spent
    LOYALTY_POINTS_FOR_FREE: int = 100  # Points redeemed per 1.00 of discount

    # Gift cards
    GIFT_CARD_CODE_ATTEMPTS: int = 10
    GIFT_CARD_PIN_REQUIRED: bool = True  # Generate a PIN when none is supplied

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
