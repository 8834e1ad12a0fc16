"""Wires the sync engine together for one storefront instance."""

import logging
from typing import Optional

from .auth import AuthManager
from .catalog import extract_product_cards, filter_products, find_product
from .config import Settings
from .coordinator import SyncCoordinator
from .errors import ConfigUnavailable, NotFound
from .fetcher import ConfigFetcher
from .local_state import LocalStateStore
from .models import CartLine, ConfigDocument, ProductCard, SessionContext, SyncStatus
from .realtime import RealtimeChannel
from .store import ConfigStore
from .storefront_client import StorefrontClient
from .widgets import RenderedPage, WidgetResolver

logger = logging.getLogger(__name__)


class StorefrontSession:
    """
    One running storefront: configuration sync plus the shopper's local state.

    The session context is fixed at construction. Components can be passed in
    for tests; anything omitted is built from ``settings``.
    """

    def __init__(
        self,
        settings: Settings,
        context: Optional[SessionContext] = None,
        fetcher: Optional[ConfigFetcher] = None,
        channel: Optional[RealtimeChannel] = None,
        auth_manager: Optional[AuthManager] = None,
        realtime: bool = True,
    ) -> None:
        """
        Build the session.

        Args:
            settings: Runtime settings
            context: Session identity; derived from settings when omitted
            fetcher: Configuration fetcher override
            channel: Realtime channel override
            auth_manager: Session persistence override
            realtime: Whether to listen for realtime updates at all

        Raises:
            ValueError: If no tenant id is available
        """
        self.settings = settings
        self.auth_manager = auth_manager or AuthManager(settings.session_file)
        self.context = context or settings.session_context(self.auth_manager.get_token())

        self.store = ConfigStore()
        self.local_state = LocalStateStore(
            capacity=settings.cart_capacity,
            tax_rate=settings.tax_rate,
            currency_symbol=settings.currency,
            shipping_fee=settings.shipping_fee,
            free_shipping_threshold=settings.free_shipping_threshold,
        )
        self.resolver = WidgetResolver()
        self.fetcher = fetcher or ConfigFetcher(self.context, timeout=settings.request_timeout)
        if channel is None and realtime:
            channel = RealtimeChannel(
                self.context,
                namespace=settings.realtime_namespace,
                reconnect_attempts=settings.reconnect_attempts,
                reconnect_delay=settings.reconnect_delay,
                connect_timeout=settings.connect_timeout,
            )
        self.channel = channel
        self.coordinator = SyncCoordinator(self.context.tenant_id, self.fetcher, self.store, self.channel)
        self.client = StorefrontClient(self.context, self.auth_manager, timeout=settings.request_timeout)
        self._started = False

    @property
    def tenant_id(self) -> str:
        return self.context.tenant_id

    async def start(self) -> bool:
        """
        Load the initial configuration and start realtime updates.

        Returns:
            True if the initial configuration loaded
        """
        if self._started:
            return self.store.get() is not None
        self._started = True
        logger.info(f"Starting storefront session for tenant {self.tenant_id}")
        return await self.coordinator.start()

    async def close(self) -> None:
        await self.coordinator.stop()
        await self.fetcher.aclose()
        await self.client.aclose()
        self._started = False
        logger.info("Storefront session closed")

    async def __aenter__(self) -> "StorefrontSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ----- configuration -----

    @property
    def document(self) -> Optional[ConfigDocument]:
        return self.store.get()

    def require_document(self) -> ConfigDocument:
        """
        Raises:
            ConfigUnavailable: If no configuration has been loaded
        """
        document = self.store.get()
        if document is None:
            error = self.store.last_error()
            detail = f": {error}" if error is not None else ""
            raise ConfigUnavailable(f"Store configuration is not available{detail}")
        return document

    def render_home(self) -> RenderedPage:
        loading = self.store.get() is None and self.coordinator.pending is not None
        return self.resolver.resolve_home(self.store.get(), self.store.last_error(), loading=loading)

    def render_page(self, index: int) -> RenderedPage:
        """
        Raises:
            ConfigUnavailable: If no configuration has been loaded
            NotFound: If the page index is out of range
        """
        document = self.require_document()
        if index < 0 or index >= len(document.pages):
            raise NotFound("Page", str(index))
        return self.resolver.resolve_page(document.pages[index], document)

    async def refresh(self) -> bool:
        return await self.coordinator.refresh()

    def status(self) -> SyncStatus:
        return self.coordinator.status()

    # ----- catalog and local state -----

    def products(self, query: Optional[str] = None) -> list[ProductCard]:
        """Configured products filtered by ``query``, or by the stored search query."""
        if query is None:
            query = self.local_state.search_query
        return filter_products(extract_product_cards(self.store.get()), query)

    def get_product(self, product_id: str) -> ProductCard:
        """
        Raises:
            NotFound: If no configured product has this id
        """
        product = find_product(self.store.get(), product_id)
        if product is None:
            raise NotFound("Product", product_id)
        return product

    def add_product_to_cart(self, product_id: str, quantity: Optional[int] = None) -> CartLine:
        """
        Add a configured product to the cart at its current price.

        Args:
            product_id: Product card id
            quantity: Units to add; defaults to the product's quantity selector

        Raises:
            NotFound: If no configured product has this id
            CapacityExceeded: If the cart cap would be exceeded
        """
        product = self.get_product(product_id)
        if quantity is None:
            quantity = self.local_state.selected_quantity(product_id)
        discount = product.effective_price if product.has_discount else 0
        return self.local_state.add_to_cart(
            product.id,
            unit_price=product.base_price,
            unit_discount_price=discount,
            quantity=quantity,
            name=product.name,
            image=product.image,
        )

    def toggle_wishlist_product(self, product_id: str) -> bool:
        """
        Raises:
            NotFound: If the product is neither wishlisted nor configured
        """
        if self.local_state.is_in_wishlist(product_id):
            # Saved products stay removable after they leave the configuration.
            return self.local_state.toggle_wishlist(product_id)
        product = self.get_product(product_id)
        return self.local_state.toggle_wishlist(
            product.id,
            name=product.name,
            price=product.base_price,
            discount_price=product.effective_price if product.has_discount else 0,
            image=product.image,
            currency_symbol=product.symbol,
        )
