"""Checkout configuration."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_SUPPORT_MESSAGE = (
    "Your payment may have gone through but we could not confirm it. "
    "Please do not pay again; contact support if you were charged."
)


class CheckoutSettings(BaseSettings):
    """Storefront checkout configuration, read from STOREFRONT_* variables."""

    # Backend
    backend_url: str = "http://localhost:8000"
    request_timeout_seconds: float = 30.0
    # Catalogue prices and coupon totals come back in rupees from the live
    # backend; gateway amounts are always minor units.
    backend_amounts_in_minor_units: bool = False

    # Money and display
    currency: str = "INR"
    locale: str = "en-IN"

    # Payment gateway
    gateway_key_id: str = ""
    store_name: str = "Ethnic Elegance"

    # Orders
    estimated_delivery_days: int = 7

    # Messages
    support_message: str = DEFAULT_SUPPORT_MESSAGE

    log_level: str = "INFO"

    class Config:
        env_prefix = "STOREFRONT_"
        env_file = ".env"
        extra = "ignore"

    @field_validator("backend_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("estimated_delivery_days")
    @classmethod
    def positive_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("estimated_delivery_days cannot be negative")
        return v


@lru_cache
def get_settings() -> CheckoutSettings:
    return CheckoutSettings()


def configure_logging(level: Optional[str] = None) -> None:
    """Basic logging setup for applications embedding the checkout engine."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
