"""Runtime settings loaded from ``STOREFRONT_*`` environment variables."""

import os
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import SessionContext

ENV_PREFIX = "STOREFRONT_"


def _get_env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(f"{ENV_PREFIX}{key}")
    if value is not None and value.strip() != "":
        return value.strip()
    return default


class Settings(BaseModel):
    """Tunables for one storefront instance."""

    api_base: str = Field("http://localhost:5000", description="Storefront backend base URL")
    tenant_id: Optional[str] = Field(None, description="Admin/tenant id embedded at publish time")
    app_id: Optional[str] = Field(None, description="Published app id")
    auth_token: Optional[str] = Field(None, description="Bearer token, if already signed in")

    tax_rate: Decimal = Field(Decimal("18"), ge=0, description="Tax percentage applied to the cart subtotal")
    cart_capacity: int = Field(10, gt=0, description="Maximum units across all cart lines")
    shipping_fee: Decimal = Field(Decimal("5.99"), ge=0, description="Flat shipping fee below the free threshold")
    free_shipping_threshold: Decimal = Field(Decimal("100.00"), ge=0, description="Order total that ships free")
    currency: str = Field("$", description="Fallback currency symbol")

    realtime_namespace: str = "/real-time-updates"
    reconnect_attempts: int = Field(5, ge=0, description="Reconnection attempts after a failure")
    reconnect_delay: float = Field(1.0, ge=0, description="Seconds between reconnection attempts")
    connect_timeout: float = Field(30.0, gt=0, description="Socket connect timeout in seconds")
    request_timeout: float = Field(30.0, gt=0, description="HTTP request timeout in seconds")

    session_file: str = Field(
        default_factory=lambda: str(Path.home() / ".storefront_session.json"),
        description="Where the signed-in session is persisted",
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from the environment.

        Keyword overrides (e.g. from CLI flags) win over environment values;
        ``None`` overrides are ignored.

        Raises:
            ValueError: If a value cannot be parsed or fails validation
        """
        values = {
            "api_base": _get_env("API_BASE"),
            "tenant_id": _get_env("TENANT_ID"),
            "app_id": _get_env("APP_ID"),
            "auth_token": _get_env("AUTH_TOKEN"),
            "tax_rate": _get_env("TAX_RATE"),
            "cart_capacity": _get_env("CART_CAPACITY"),
            "shipping_fee": _get_env("SHIPPING_FEE"),
            "free_shipping_threshold": _get_env("FREE_SHIPPING_THRESHOLD"),
            "currency": _get_env("CURRENCY"),
            "reconnect_attempts": _get_env("RECONNECT_ATTEMPTS"),
            "reconnect_delay": _get_env("RECONNECT_DELAY"),
            "connect_timeout": _get_env("CONNECT_TIMEOUT"),
            "request_timeout": _get_env("REQUEST_TIMEOUT"),
            "session_file": _get_env("SESSION_FILE"),
            "log_level": _get_env("LOG_LEVEL"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        # pydantic's ValidationError subclasses ValueError
        return cls(**{k: v for k, v in values.items() if v is not None})

    def session_context(self, auth_token: Optional[str] = None) -> SessionContext:
        """
        Freeze the identity of this instance.

        Raises:
            ValueError: If no tenant id is configured
        """
        if not self.tenant_id:
            raise ValueError(f"No tenant id configured. Set {ENV_PREFIX}TENANT_ID")
        return SessionContext(
            tenant_id=self.tenant_id,
            api_base=self.api_base.rstrip("/"),
            app_id=self.app_id,
            auth_token=auth_token or self.auth_token,
        )
