"""Storefront-Engine configuration via pydantic-settings."""

import warnings
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "hmac_key": "insecure-hmac-key-change-me",
    "api_key": "insecure-admin-key-change-me",
}


class StorefrontSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STOREFRONT_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"

    # Signs the purchase audit chain
    hmac_key: str = "insecure-hmac-key-change-me"

    # Database
    db_url: str = "sqlite+aiosqlite:///./data/storefront.db"
    db_timeout: float = 10.0  # seconds

    # API
    api_title: str = "Storefront-Engine"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    log_level: str = "INFO"

    # Settlement
    platform_fee_percent: Decimal = Decimal("5")
    default_currency: str = "USD"

    # Licensing
    activation_limit: int = 5

    # Payouts
    minimum_payout: Decimal = Decimal("10")
    payout_currency: str = "USD"

    # Payment gateway: manual | razorpay | dodo
    payment_provider: str = "manual"
    gateway_timeout: float = 15.0  # seconds
    frontend_url: str = "http://localhost:5173"

    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"

    dodo_api_key: str = ""
    dodo_webhook_secret: str = ""
    dodo_environment: str = "test_mode"  # test_mode | live_mode

    @property
    def dodo_base_url(self) -> str:
        if self.dodo_environment == "live_mode":
            return "https://live.dodopayments.com"
        return "https://test.dodopayments.com"

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"STOREFRONT_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if self.environment != "development" and self.payment_provider == "manual":
            raise RuntimeError(
                "STOREFRONT_PAYMENT_PROVIDER=manual completes payments without a gateway "
                "and is only allowed in development"
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys — set STOREFRONT_SECRET_KEY, "
                "STOREFRONT_HMAC_KEY, STOREFRONT_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> StorefrontSettings:
    settings = StorefrontSettings()
    settings.validate_for_production()
    return settings
