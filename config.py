import os
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = ""
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int = 86400

    ENVIRONMENT: str = "development"
    PAYMENT_MODE: str = ""  # "manual" allows confirming paid orders without a gateway reference
    FRONTEND_URL: str = "http://localhost:5173"
    ALLOWED_ORIGINS: str = "*"

    # Currency config
    BASE_CURRENCY: str = "INR"
    SUPPORTED_CURRENCIES: str = "INR,USD,EUR"
    EXCHANGE_RATE_API_URL: str = "https://api.exchangerate.host/latest"
    EXCHANGE_RATE_CACHE_TTL_SECONDS: int = 3600  # 1 hour
    EXCHANGE_RATE_TIMEOUT_SECONDS: float = 5.0

    # Stripe config
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_TIMEOUT_SECONDS: int = 30

    # Razorpay config
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""

    model_config = SettingsConfigDict(
        # Use absolute path to make sure .env is found
        env_file=os.path.join(os.path.dirname(__file__), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def allow_manual_payment(self) -> bool:
        """Paid orders may be confirmed without a gateway reference outside production."""
        return not self.is_production or self.PAYMENT_MODE.lower() == "manual"

    @property
    def supported_currencies(self) -> List[str]:
        return [c.strip().upper() for c in self.SUPPORTED_CURRENCIES.split(",") if c.strip()]


# Create the settings instance
settings = Settings()
