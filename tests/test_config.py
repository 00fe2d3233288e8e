"""
Tests for storefront_checkout.config.
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from storefront_checkout.config import CheckoutSettings, get_settings


class TestCheckoutSettings:
    """Tests for CheckoutSettings."""

    def test_defaults(self, monkeypatch):
        """Should default to INR, en-IN and a seven day delivery window."""
        monkeypatch.delenv("STOREFRONT_CURRENCY", raising=False)
        settings = CheckoutSettings(_env_file=None)

        assert settings.currency == "INR"
        assert settings.locale == "en-IN"
        assert settings.estimated_delivery_days == 7
        assert settings.backend_amounts_in_minor_units is False

    def test_reads_prefixed_env(self, monkeypatch):
        """Should read STOREFRONT_ variables."""
        monkeypatch.setenv("STOREFRONT_BACKEND_URL", "https://api.example.com/")
        monkeypatch.setenv("STOREFRONT_CURRENCY", "usd")
        monkeypatch.setenv("STOREFRONT_BACKEND_AMOUNTS_IN_MINOR_UNITS", "true")

        settings = CheckoutSettings(_env_file=None)

        assert settings.backend_url == "https://api.example.com"
        assert settings.currency == "USD"
        assert settings.backend_amounts_in_minor_units is True

    def test_negative_delivery_days(self):
        """Should refuse a negative delivery window."""
        with pytest.raises(ValidationError):
            CheckoutSettings(_env_file=None, estimated_delivery_days=-1)

    def test_get_settings_cached(self):
        """Should return the same instance."""
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
