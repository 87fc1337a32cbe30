"""
Application settings.

Loaded from environment variables (and an optional .env file).
Nested values use "__" as delimiter, e.g. STRIPE_PRICES__LATAM_MONTHLY=price_123.
"""

from functools import lru_cache
from typing import Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StripePriceIds(BaseModel):
    """Stripe price ids, one per plan region and charge kind."""

    global_signup: str = ""
    global_monthly: str = ""
    global_degree: str = ""
    europe_signup: str = ""
    europe_monthly: str = ""
    europe_degree: str = ""
    latam_signup: str = ""
    latam_monthly: str = ""
    latam_degree: str = ""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # App
    app_name: str = "Academy Billing API"
    debug: bool = False
    cors_origins: str = "http://localhost:3000"

    # Database
    database_url: str = "sqlite:///./billing.db"

    # Admin JWT
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Student links
    students_domain: str = "http://localhost:8000"
    checkout_domain: str = "http://localhost:3000"
    session_token_hours: int = 72

    # Billing
    billing_tick_seconds: int = 3600

    # Stripe (gateway A)
    stripe_api_key: str = ""
    stripe_events_secret: str = ""
    stripe_prices: StripePriceIds = Field(default_factory=StripePriceIds)

    # BTCPay (gateway B)
    btcpay_url: str = ""
    btcpay_store_id: str = ""
    btcpay_api_key: str = ""
    btcpay_webhooks_secret: str = ""
    btcpay_currency: str = "EUR"

    # WordPress LMS
    wordpress_api_url: str = ""
    wordpress_user: str = ""
    wordpress_password: str = ""
    wordpress_student_group_id: int = 0

    # Discord community
    discord_client_id: str = ""
    discord_guild_id: str = ""
    discord_student_role_id: str = ""
    discord_bot_token: str = ""

    # Email (Sendinblue / Brevo)
    sendinblue_api_key: str = ""
    email_sender: str = "academy@example.com"
    email_sender_name: str = "Academy"
    email_templates: Dict[str, int] = Field(
        default_factory=lambda: {"welcome": 1, "payment_link": 2}
    )

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.stripe_api_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
