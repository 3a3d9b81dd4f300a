"""Runtime configuration loaded from environment variables."""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class CheckoutSettings(BaseModel):
    """Checkout engine settings."""

    api_url: str = Field("http://localhost:8000", description="Storefront API base URL")
    locale: str = Field("lt", description="Locale sent along with promo code validation")
    vat_rate: float = Field(0.21, ge=0, description="Inclusive VAT rate")
    home_country: str = Field("LT", description="Home country for free shipping and fallback methods")
    free_shipping_threshold: float = Field(50.0, ge=0, description="Free shipping bound in EUR")
    session_file: str = Field(
        default_factory=lambda: str(Path.home() / ".checkout_session.json"),
        description="Durable checkout snapshot store",
    )
    translations_file: Optional[str] = Field(None, description="Optional JSON translation catalog")
    user_id: Optional[str] = Field(None, description="Authenticated user ID")
    timeout: float = Field(30.0, gt=0, description="HTTP timeout in seconds")

    @classmethod
    def from_env(cls) -> "CheckoutSettings":
        """
        Build settings from CHECKOUT_* environment variables.

        Environment variable mapping:
        - CHECKOUT_API_URL → api_url
        - CHECKOUT_LOCALE → locale
        - CHECKOUT_VAT_RATE → vat_rate
        - CHECKOUT_HOME_COUNTRY → home_country
        - CHECKOUT_FREE_SHIPPING_THRESHOLD → free_shipping_threshold
        - CHECKOUT_SESSION_FILE → session_file
        - CHECKOUT_TRANSLATIONS_FILE → translations_file
        - CHECKOUT_USER_ID → user_id
        - CHECKOUT_TIMEOUT → timeout
        """
        values: dict = {}

        for env_name, field in (
            ("CHECKOUT_API_URL", "api_url"),
            ("CHECKOUT_LOCALE", "locale"),
            ("CHECKOUT_SESSION_FILE", "session_file"),
            ("CHECKOUT_TRANSLATIONS_FILE", "translations_file"),
            ("CHECKOUT_USER_ID", "user_id"),
        ):
            value = os.environ.get(env_name)
            if value:
                values[field] = value

        home_country = os.environ.get("CHECKOUT_HOME_COUNTRY")
        if home_country:
            values["home_country"] = home_country.strip().upper()

        for env_name, field in (
            ("CHECKOUT_VAT_RATE", "vat_rate"),
            ("CHECKOUT_FREE_SHIPPING_THRESHOLD", "free_shipping_threshold"),
            ("CHECKOUT_TIMEOUT", "timeout"),
        ):
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                values[field] = float(raw)
            except ValueError:
                logger.warning(f"Ignoring invalid {env_name}={raw!r}, using default")

        return cls(**values)
