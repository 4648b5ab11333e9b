"""Checkout configuration."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CheckoutSettings(BaseSettings):
    """Settings shared by every checkout component in a process."""

    model_config = SettingsConfigDict(
        env_prefix="DIGISTORE_",
        env_file=".env",
        extra="ignore",
    )

    # Storefront backend
    api_base_url: str = "https://digistore1-backend.onrender.com/api"
    request_timeout_seconds: float = 30.0
    # Retries apply to validation reads only; debits and captures run once
    max_retries: int = Field(default=2, ge=0)

    # One currency per checkout session
    currency: str = "USD"

    # First-purchase auto coupon
    first_purchase_coupon_enabled: bool = True
    first_purchase_coupon_code: str = "WELCOME30"
    first_purchase_discount_percent: Decimal = Field(default=Decimal("30"), ge=0, le=100)

    # Local state persistence keys
    cart_storage_key: str = "digistore1-cart"
    gift_card_storage_key: str = "digistore1-giftcards"

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"currency must be a 3-letter ISO code, got '{v}'")
        return v

    @field_validator("first_purchase_coupon_code")
    @classmethod
    def normalize_coupon_code(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def load_settings(env_file: str | None = None) -> CheckoutSettings:
    """Load CheckoutSettings once per process."""
    if env_file:
        return CheckoutSettings(_env_file=Path(env_file))
    return CheckoutSettings()
