# app/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    database_url: str = Field("sqlite:///./dormir_natural.db", validation_alias="DATABASE_URL")
    app_origin: str = Field("http://localhost:4321", validation_alias="APP_ORIGIN")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

    # Stripe
    stripe_secret_key: str | None = Field(None, validation_alias="STRIPE_SECRET_KEY")
    stripe_price_id: str | None = Field(None, validation_alias="STRIPE_PRICE_ID")
    stripe_webhook_secret: str | None = Field(None, validation_alias="STRIPE_WEBHOOK_SECRET")

    # E-mail
    email_provider: str = Field("mock", validation_alias="EMAIL_PROVIDER")
    email_api_key: str | None = Field(None, validation_alias="EMAIL_API_KEY")
    email_from: str = Field("acesso@dormirnatural.com.br", validation_alias="EMAIL_FROM")
    email_rate_limit_max: int = Field(3, validation_alias="EMAIL_RATE_LIMIT_MAX")
    email_rate_limit_window_seconds: int = Field(3600, validation_alias="EMAIL_RATE_LIMIT_WINDOW_SECONDS")

    # Lead capture
    lead_rate_limit_seconds: int = Field(300, validation_alias="LEAD_RATE_LIMIT_SECONDS")
    lead_min_completion_seconds: int = Field(10, validation_alias="LEAD_MIN_COMPLETION_SECONDS")

    # Quiz sessions
    quiz_session_ttl_seconds: int = Field(7200, validation_alias="QUIZ_SESSION_TTL_SECONDS")

    # Product / fulfillment
    magic_link_ttl_hours: int = Field(24, validation_alias="MAGIC_LINK_TTL_HOURS")
    product_code: str = Field("desafio_7_dias", validation_alias="PRODUCT_CODE")
    offer_amount_cents: int = Field(6700, validation_alias="OFFER_AMOUNT_CENTS")
    offer_currency: str = Field("BRL", validation_alias="OFFER_CURRENCY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
