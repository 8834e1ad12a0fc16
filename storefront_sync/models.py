"""Data models for storefront configuration, session state and sync status."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .pricing import (
    ZERO,
    apply_percent_discount,
    currency_symbol_from_code,
    detect_currency,
    parse_price,
    to_money,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_text(value: Any) -> Any:
    """Admin documents store numbers where text is expected (phone, price)."""
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return str(value)
    return value


def _text_or_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value) or None


class SessionContext(BaseModel):
    """Identity of the storefront instance, fixed once the app is built."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(min_length=1, description="Admin/tenant that owns the configuration")
    api_base: str = Field(description="Base URL of the storefront backend")
    app_id: Optional[str] = Field(None, description="Published app identifier")
    auth_token: Optional[str] = Field(None, description="Bearer token for authenticated calls")

    @field_validator("tenant_id", "api_base")
    @classmethod
    def strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    def with_token(self, token: Optional[str]) -> "SessionContext":
        """Return a copy bound to a new bearer token; the tenant never changes."""
        return self.model_copy(update={"auth_token": token})


# ---------------------------------------------------------------------------
# Configuration document
# ---------------------------------------------------------------------------


class StoreInfo(BaseModel):
    """Store contact details shown in headers and the store info card."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    store_name: Optional[str] = Field(None, alias="storeName")
    address: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    footer_text: Optional[str] = Field(None, alias="footerText")
    store_logo: Optional[Any] = Field(None, alias="storeLogo")

    coerce_text = field_validator(
        "store_name", "address", "email", "phone", "website", "footer_text", mode="before"
    )(_as_text)


class DesignSettings(BaseModel):
    """Open bag of theme settings; unknown keys are kept in ``model_extra``."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    header_color: Optional[str] = Field(None, alias="headerColor")

    def get(self, key: str, default: Any = None) -> Any:
        if key == "headerColor":
            return self.header_color if self.header_color is not None else default
        return (self.model_extra or {}).get(key, default)


class WidgetDescriptor(BaseModel):
    """One configured widget: a name plus its property bag."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("properties", mode="before")
    @classmethod
    def coerce_properties(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class Page(BaseModel):
    """A page of widgets, in the order the admin arranged them."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: Optional[str] = None
    widgets: list[WidgetDescriptor] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)

    @field_validator("widgets", mode="before")
    @classmethod
    def drop_malformed_widgets(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [w for w in value if isinstance(w, dict)]

    @field_validator("properties", mode="before")
    @classmethod
    def coerce_properties(cls, value: Any) -> dict[str, Any]:
        return value if isinstance(value, dict) else {}


class ConfigDocument(BaseModel):
    """Full configuration snapshot for one tenant."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    pages: list[Page] = Field(default_factory=list)
    store_info: StoreInfo = Field(default_factory=StoreInfo, alias="storeInfo")
    design_settings: DesignSettings = Field(default_factory=DesignSettings, alias="designSettings")
    fetched_at: datetime = Field(default_factory=_utcnow)

    @field_validator("pages", mode="before")
    @classmethod
    def drop_malformed_pages(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [p for p in value if isinstance(p, dict)]

    @field_validator("store_info", "design_settings", mode="before")
    @classmethod
    def default_bag(cls, value: Any) -> Any:
        if value is None:
            return {}
        return value

    @property
    def home_page(self) -> Optional[Page]:
        return self.pages[0] if self.pages else None


# ---------------------------------------------------------------------------
# Products, cart and wishlist
# ---------------------------------------------------------------------------


class ProductCard(BaseModel):
    """A sellable item as configured inside a product grid widget."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = "Product"
    price: str = Field("99.99", description="Raw price string, possibly currency-prefixed")
    discount_price: Optional[str] = Field(None, description="Raw manual discount price")
    discount_percent: Decimal = Field(default=ZERO, description="Percentage discount badge")
    image: Optional[str] = None
    quantity: int = Field(default=10, description="Units available")
    rating: str = "4.0"
    currency_symbol: Optional[str] = None
    currency_code: Optional[str] = None

    @classmethod
    def from_config(cls, raw: dict[str, Any], index: int = 0) -> "ProductCard":
        """Build a card from a loosely-shaped ``productCards`` entry."""
        product_id = raw.get("id") or raw.get("_id") or raw.get("productId")
        price = next(
            (raw[k] for k in ("price", "basePrice", "currentPrice", "productPrice") if raw.get(k) is not None),
            "99.99",
        )
        try:
            quantity = int(str(raw.get("quantity", "10")))
        except ValueError:
            quantity = 10
        try:
            percent = Decimal(str(raw.get("discountPercent") or "0"))
            if not percent.is_finite():
                percent = ZERO
            percent = min(max(percent, ZERO), Decimal("100"))
        except ArithmeticError:
            percent = ZERO
        discount = raw.get("discountPrice")
        return cls(
            id=str(product_id) if product_id else f"product_{index}",
            name=str(raw.get("productName") or raw.get("name") or "Product"),
            price=str(price),
            discount_price=None if discount is None else str(discount),
            discount_percent=percent,
            image=_text_or_none(raw.get("imageAsset") or raw.get("image")),
            quantity=quantity,
            rating=str(raw.get("rating") or "4.0"),
            currency_symbol=_text_or_none(raw.get("currencySymbol")),
            currency_code=_text_or_none(raw.get("currencyCode")),
        )

    @property
    def base_price(self) -> Decimal:
        return parse_price(self.price)

    @property
    def manual_discount_price(self) -> Decimal:
        return parse_price(self.discount_price)

    @property
    def effective_price(self) -> Decimal:
        # A percentage badge takes precedence over a manual discount price.
        if self.discount_percent > 0:
            return apply_percent_discount(self.base_price, self.discount_percent)
        if ZERO < self.manual_discount_price < self.base_price:
            return self.manual_discount_price
        return self.base_price

    @property
    def has_discount(self) -> bool:
        return self.effective_price < self.base_price

    @property
    def symbol(self) -> str:
        if self.currency_symbol:
            return self.currency_symbol
        if self.currency_code:
            return currency_symbol_from_code(self.currency_code)
        return detect_currency(self.price)

    @property
    def is_sold_out(self) -> bool:
        return self.quantity <= 0


class CartLine(BaseModel):
    """One product in the session cart."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: Optional[str] = None
    price: Decimal = Field(description="Unit price")
    discount_price: Decimal = Field(default=ZERO, description="Unit discount price, 0 when none")
    quantity: int = Field(gt=0)
    image: Optional[str] = None

    @property
    def effective_price(self) -> Decimal:
        return self.discount_price if self.discount_price > 0 else self.price

    @property
    def line_total(self) -> Decimal:
        return to_money(self.effective_price * self.quantity)

    @property
    def line_discount(self) -> Decimal:
        return to_money((self.price - self.effective_price) * self.quantity)


class WishlistEntry(BaseModel):
    """A saved product. A product id appears at most once in the wishlist."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: Optional[str] = None
    price: Decimal = ZERO
    discount_price: Decimal = ZERO
    image: Optional[str] = None
    currency_symbol: str = "$"

    @property
    def effective_price(self) -> Decimal:
        return self.discount_price if self.discount_price > 0 else self.price


class CartSummary(BaseModel):
    """Cart contents with the derived money values."""

    lines: list[CartLine] = Field(default_factory=list)
    total_quantity: int = 0
    subtotal: Decimal = ZERO
    discount_total: Decimal = ZERO
    tax_rate: Decimal = Decimal("18")
    tax: Decimal = ZERO
    total: Decimal = ZERO
    shipping: Decimal = ZERO
    total_with_shipping: Decimal = ZERO
    currency_symbol: str = "$"


# ---------------------------------------------------------------------------
# Realtime events and sync status
# ---------------------------------------------------------------------------


class EventKind(str, Enum):
    """Named events the realtime namespace is known to emit."""

    ROOM_JOINED = "room-joined"
    DYNAMIC_UPDATE = "dynamic-update"
    ADMIN_SPECIFIC_UPDATE = "admin-specific-update"
    SPLASH_SCREEN = "splash-screen"
    HOME_PAGE = "home-page"
    APP_INFO = "app-info"
    TEST_UPDATE = "test-update"
    CONFIGURATION_UPDATE = "configuration-update"


class RealtimeEvent(BaseModel):
    """A server push. The payload is carried but never interpreted."""

    name: str
    payload: Any = None
    received_at: datetime = Field(default_factory=_utcnow)

    @property
    def kind(self) -> Optional[EventKind]:
        try:
            return EventKind(self.name)
        except ValueError:
            return None


class SyncStatus(BaseModel):
    """Point-in-time view of the sync engine, for display and health checks."""

    has_config: bool = False
    config_version: int = 0
    error: Optional[str] = None
    connection_state: str = "disconnected"
    is_connected: bool = False
    last_synced_at: Optional[datetime] = None
    refresh_count: int = 0
    absorbed_events: int = 0


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthCredentials(BaseModel):
    """Authentication credentials."""

    email: str
    password: str


class SessionData(BaseModel):
    """Persisted session for an authenticated storefront user."""

    token: Optional[str] = Field(None, description="Bearer token")
    user_id: Optional[str] = Field(None, description="User ID")
    user_email: Optional[str] = Field(None, description="User email")
    is_authenticated: bool = Field(default=False, description="Authentication status")


class AuthResult(BaseModel):
    """Outcome of a sign-in or sign-up call."""

    success: bool
    token: Optional[str] = None
    user_id: Optional[str] = None
    message: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class Subscription(BaseModel):
    """Subscription record as returned by the subscription endpoints."""

    model_config = ConfigDict(extra="allow")

    status: Optional[str] = None
    end_date: Optional[str] = Field(None, validation_alias=AliasChoices("endDate", "end_date"))

    @field_validator("status", "end_date", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _as_text(value)
