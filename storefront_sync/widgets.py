"""Resolves configured widget descriptors into render units.

The set of widget kinds is closed. Each kind has one builder that reads its
property bag and fills every missing or unparseable property with a default,
so any descriptor resolves. Names outside the table resolve to an empty unit.
"""

import math
import re
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from .catalog import product_cards_from_widget
from .models import ConfigDocument, DesignSettings, Page, ProductCard, StoreInfo, WidgetDescriptor
from .pricing import format_price


class WidgetKind(str, Enum):
    HEADER = "header"
    HERO_BANNER = "hero_banner"
    SEARCH_BAR = "search_bar"
    PRODUCT_GRID = "product_grid"
    STORE_INFO = "store_info"
    IMAGE_SLIDER = "image_slider"
    PRODUCT_DESCRIPTION = "product_description"
    SMALL_CARD = "small_card"
    EMPTY = "empty"
    # Page-level states shown instead of widgets
    LOADING = "loading"
    EMPTY_STATE = "empty_state"
    ERROR_STATE = "error_state"


# Wire name -> kind
WIDGET_NAMES: dict[str, WidgetKind] = {
    "HeaderWidget": WidgetKind.HEADER,
    "HeroBannerWidget": WidgetKind.HERO_BANNER,
    "ProductSearchBarWidget": WidgetKind.SEARCH_BAR,
    "ProductGridWidget": WidgetKind.PRODUCT_GRID,
    "Catalog View Card": WidgetKind.PRODUCT_GRID,
    "Product Detail Card": WidgetKind.PRODUCT_GRID,
    "StoreInfoWidget": WidgetKind.STORE_INFO,
    "ImageSliderWidget": WidgetKind.IMAGE_SLIDER,
    "ProductDescriptionWidget": WidgetKind.PRODUCT_DESCRIPTION,
    "SmallCardWidget": WidgetKind.SMALL_CARD,
}

DEFAULT_PAGE_BACKGROUND = "#FFFFFF"


class RenderUnit(BaseModel):
    """A fully-defaulted, framework-agnostic description of one widget."""

    kind: WidgetKind
    name: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.kind is WidgetKind.EMPTY


class RenderedPage(BaseModel):
    background_color: str = DEFAULT_PAGE_BACKGROUND
    units: list[RenderUnit] = Field(default_factory=list)


EMPTY_UNIT = RenderUnit(kind=WidgetKind.EMPTY)

_HEX = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


# ----- property readers -----


def _text(props: dict[str, Any], key: str, default: str) -> str:
    value = props.get(key)
    return default if value is None else str(value)


def _number(props: dict[str, Any], key: str, default: float) -> float:
    value = props.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(str(value).strip())
    except ValueError:
        return default
    return number if math.isfinite(number) else default


def _integer(props: dict[str, Any], key: str, default: int) -> int:
    value = props.get(key)
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def _flag(props: dict[str, Any], key: str, default: bool) -> bool:
    value = props.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "0", "no", "off", "")
    return bool(value)


def normalize_color(value: Any) -> Optional[str]:
    """``"4fb322"`` -> ``"#4FB322"``; ``"#abc"`` -> ``"#AABBCC"``; junk -> None."""
    if value is None:
        return None
    match = _HEX.match(str(value).strip())
    if not match:
        return None
    digits = match.group(1).upper()
    if len(digits) == 3:
        digits = "".join(c * 2 for c in digits)
    return f"#{digits}"


def _color(props: dict[str, Any], key: str, default: str) -> str:
    return normalize_color(props.get(key)) or default


def _images(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _product_view(card: ProductCard) -> dict[str, Any]:
    symbol = card.symbol
    return {
        "id": card.id,
        "name": card.name,
        "image": card.image,
        "rating": card.rating,
        "currency_symbol": symbol,
        "price": str(card.base_price),
        "effective_price": str(card.effective_price),
        "display_price": format_price(card.effective_price, symbol),
        "original_display_price": format_price(card.base_price, symbol) if card.has_discount else None,
        "discount_percent": str(card.discount_percent),
        "has_discount": card.has_discount,
        "quantity_available": card.quantity,
        "is_sold_out": card.is_sold_out,
    }


# ----- builders -----

Builder = Callable[[WidgetDescriptor, StoreInfo, DesignSettings], dict[str, Any]]


def _header(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    background = props.get("backgroundColor") or design.get("headerColor")
    return {
        "app_name": _text(props, "appName", store.store_name or "My Store"),
        "logo_asset": _text(props, "logoAsset", ""),
        "background_color": normalize_color(background) or "#4FB322",
        "height": _number(props, "height", 60.0),
        "text_color": _color(props, "textColor", "#FFFFFF"),
        "font_size": _number(props, "fontSize", 16.0),
        "alignment": str(props.get("alignment") or props.get("textAlign") or "left"),
        "logo_height": _number(props, "logoHeight", 24.0),
        "logo_width": _number(props, "logoWidth", 24.0),
    }


def _hero_banner(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "image_asset": props.get("imageAsset"),
        "title": _text(props, "title", "Welcome to Our Store!"),
        "subtitle": _text(props, "subtitle", "Shop the latest products"),
        "button_text": _text(props, "buttonText", "Shop Now"),
        "height": _number(props, "height", 200.0),
        "background_color": _color(props, "backgroundColor", "#2196F3"),
        "button_color": _color(props, "buttonColor", "#FF9800"),
        "button_text_color": _color(props, "buttonTextColor", "#FFFFFF"),
        "title_color": _color(props, "titleColor", "#FFFFFF"),
        "subtitle_color": _color(props, "subtitleColor", "#B3FFFFFF"),
        "alignment": _text(props, "alignment", "center"),
        "text_align": _text(props, "textAlign", "center"),
        "show_button": _flag(props, "showButton", True),
        "show_subtitle": _flag(props, "showSubtitle", True),
        "border_radius": _number(props, "borderRadius", 0.0),
    }


def _search_bar(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "placeholder": _text(props, "placeholder", "Search products"),
        "height": _number(props, "height", 50.0),
        "width": _number(props, "width", 300.0),
        "border_radius": _number(props, "borderRadius", 25.0),
        "border_width": _number(props, "borderWidth", 1.0),
        "icon_color": _color(props, "iconColor", "#757575"),
        "text_color": _color(props, "textColor", "#000000"),
        "border_color": _color(props, "borderColor", "#E0E0E0"),
        "background_color": _color(props, "backgroundColor", "#FFFFFF"),
    }


def _product_grid(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "products": [_product_view(card) for card in product_cards_from_widget(widget)],
        "card_background_color": _color(props, "cardBackgroundColor", "#FFFFFF"),
        "border_color": _color(props, "borderColor", "#00000000"),
        "price_color": _color(props, "priceColor", "#2196F3"),
        "discount_badge_color": _color(props, "discountBadgeColor", "#FF5252"),
    }


def _store_info(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties

    def field(key: str, fallback: Optional[str]) -> str:
        value = props.get(key)
        if value is None:
            value = fallback
        return "" if value is None else str(value).strip()

    return {
        "store_name": field("storeName", store.store_name),
        "address": field("address", store.address),
        "email": field("email", store.email),
        "phone": field("phone", store.phone),
        "website": field("website", store.website),
        "footer_text": field("footerText", store.footer_text),
        "store_logo": props.get("storeLogo", store.store_logo),
        "text_color": _color(props, "textColor", "#000000"),
        "icon_color": _color(props, "iconColor", "#2196F3"),
        "background_color": _color(props, "backgroundColor", "#E3F2FD"),
        "border_radius": _number(props, "borderRadius", 8.0),
        "margin": _number(props, "margin", 4.0),
        "padding": _number(props, "padding", 16.0),
    }


def _image_slider(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "slider_images": _images(props.get("sliderImages")),
        "height": _number(props, "height", 150.0),
        "width": _number(props, "width", 300.0),
        "border_radius": _number(props, "borderRadius", 12.0),
        "auto_play": _flag(props, "autoPlay", True),
        "auto_play_interval": _integer(props, "autoPlayInterval", 3),
        "show_indicators": _flag(props, "showIndicators", True),
    }


def _product_description(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "title": _text(props, "descriptionTitle", "Description"),
        "content": _text(props, "descriptionContent", ""),
        "product_image": props.get("productImage"),
        "title_font_size": _number(props, "titleFontSize", 18.0),
        "content_font_size": _number(props, "contentFontSize", 14.0),
        "title_color": _color(props, "titleColor", "#000000"),
        "content_color": _color(props, "contentColor", "#616161"),
        "background_color": _color(props, "backgroundColor", "#FFFFFF"),
    }


def _small_card(widget: WidgetDescriptor, store: StoreInfo, design: DesignSettings) -> dict[str, Any]:
    props = widget.properties
    return {
        "title": _text(props, "title", "Small Card"),
        "subtitle": _text(props, "subtitle", "Card subtitle"),
    }


BUILDERS: dict[WidgetKind, Builder] = {
    WidgetKind.HEADER: _header,
    WidgetKind.HERO_BANNER: _hero_banner,
    WidgetKind.SEARCH_BAR: _search_bar,
    WidgetKind.PRODUCT_GRID: _product_grid,
    WidgetKind.STORE_INFO: _store_info,
    WidgetKind.IMAGE_SLIDER: _image_slider,
    WidgetKind.PRODUCT_DESCRIPTION: _product_description,
    WidgetKind.SMALL_CARD: _small_card,
}


class WidgetResolver:
    """Stateless mapping from widget descriptors to render units."""

    def resolve(
        self,
        widget: WidgetDescriptor,
        store_info: Optional[StoreInfo] = None,
        design_settings: Optional[DesignSettings] = None,
    ) -> RenderUnit:
        kind = WIDGET_NAMES.get(widget.name)
        if kind is None:
            return RenderUnit(kind=WidgetKind.EMPTY, name=widget.name)
        properties = BUILDERS[kind](widget, store_info or StoreInfo(), design_settings or DesignSettings())
        return RenderUnit(kind=kind, name=widget.name, properties=properties)

    def resolve_page(self, page: Page, document: Optional[ConfigDocument] = None) -> RenderedPage:
        """Resolve every widget of a page, keeping the configured order."""
        store_info = document.store_info if document is not None else None
        design = document.design_settings if document is not None else None
        return RenderedPage(
            background_color=_color(page.properties, "backgroundColor", DEFAULT_PAGE_BACKGROUND),
            units=[self.resolve(widget, store_info, design) for widget in page.widgets],
        )

    def resolve_home(
        self,
        document: Optional[ConfigDocument],
        error: Optional[Exception] = None,
        loading: bool = False,
    ) -> RenderedPage:
        """
        Resolve the home page, or an explicit state when there is nothing to show.

        Without a document this never falls back to a built-in storefront.
        """
        if document is None:
            if loading:
                return RenderedPage(units=[RenderUnit(kind=WidgetKind.LOADING, properties={"message": "Loading..."})])
            if error is not None:
                state = RenderUnit(
                    kind=WidgetKind.ERROR_STATE,
                    properties={"message": "Could not load the store", "detail": str(error)},
                )
            else:
                state = RenderUnit(kind=WidgetKind.EMPTY_STATE, properties={"message": "This store has no content yet"})
            return RenderedPage(units=[state])

        page = document.home_page
        if page is None or not page.widgets:
            return RenderedPage(
                units=[RenderUnit(kind=WidgetKind.EMPTY_STATE, properties={"message": "This store has no content yet"})]
            )
        return self.resolve_page(page, document)
