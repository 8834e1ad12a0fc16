"""Product cards embedded in widget configuration, and the storefront search."""

from typing import Iterable, Optional

from .models import ConfigDocument, Page, ProductCard, WidgetDescriptor

PRODUCT_WIDGET_NAMES = frozenset({"ProductGridWidget", "Catalog View Card", "Product Detail Card"})


def product_cards_from_widget(widget: WidgetDescriptor) -> list[ProductCard]:
    raw_cards = widget.properties.get("productCards")
    if not isinstance(raw_cards, list):
        return []
    return [
        ProductCard.from_config(raw, index)
        for index, raw in enumerate(raw_cards)
        if isinstance(raw, dict)
    ]


def extract_product_cards(document: Optional[ConfigDocument], page: Optional[Page] = None) -> list[ProductCard]:
    """
    Collect the product cards configured in product widgets.

    Args:
        document: Current configuration, or None before the first load
        page: Restrict to one page; defaults to every page in the document

    Returns:
        Cards in document order
    """
    if page is not None:
        pages: Iterable[Page] = [page]
    elif document is not None:
        pages = document.pages
    else:
        return []

    cards: list[ProductCard] = []
    for current in pages:
        for widget in current.widgets:
            if widget.name in PRODUCT_WIDGET_NAMES:
                cards.extend(product_cards_from_widget(widget))
    return cards


def find_product(document: Optional[ConfigDocument], product_id: str) -> Optional[ProductCard]:
    for card in extract_product_cards(document):
        if card.id == product_id:
            return card
    return None


def filter_products(products: Iterable[ProductCard], query: Optional[str]) -> list[ProductCard]:
    """Case-insensitive match on name, price or discount price. Empty query keeps all."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(products)
    return [
        product
        for product in products
        if needle in product.name.lower()
        or needle in product.price.lower()
        or needle in (product.discount_price or "").lower()
    ]
