"""Session-local cart, wishlist, search and quantity selections.

None of this state belongs to the configuration document, so configuration
reloads never touch it.
"""

import logging
import threading
from decimal import Decimal
from typing import Any, Optional

from .errors import CapacityExceeded, NotFound
from .models import CartLine, CartSummary, WishlistEntry
from .pricing import DEFAULT_CURRENCY, ZERO, apply_shipping, calculate_tax, to_money

logger = logging.getLogger(__name__)

DEFAULT_CART_CAPACITY = 10
DEFAULT_TAX_RATE = Decimal("18")
DEFAULT_SHIPPING_FEE = Decimal("5.99")
DEFAULT_FREE_SHIPPING_THRESHOLD = Decimal("100.00")


class LocalStateStore:
    """Cart and wishlist for one storefront session. Mutations are serialized."""

    def __init__(
        self,
        capacity: int = DEFAULT_CART_CAPACITY,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
        currency_symbol: str = DEFAULT_CURRENCY,
        shipping_fee: Decimal = DEFAULT_SHIPPING_FEE,
        free_shipping_threshold: Decimal = DEFAULT_FREE_SHIPPING_THRESHOLD,
    ) -> None:
        """
        Initialize an empty session state.

        Args:
            capacity: Maximum units across all cart lines
            tax_rate: Tax percentage applied to the subtotal
            currency_symbol: Symbol used when displaying cart totals
            shipping_fee: Flat fee added to orders below the threshold
            free_shipping_threshold: Order total from which shipping is free
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.tax_rate = Decimal(str(tax_rate))
        self.currency_symbol = currency_symbol
        self.shipping_fee = to_money(shipping_fee)
        self.free_shipping_threshold = to_money(free_shipping_threshold)
        self._lock = threading.RLock()
        self._lines: dict[str, CartLine] = {}
        self._wishlist: dict[str, WishlistEntry] = {}
        self._selections: dict[str, int] = {}
        self._search_query = ""

    # ----- cart -----

    @property
    def lines(self) -> list[CartLine]:
        with self._lock:
            return list(self._lines.values())

    @property
    def total_quantity(self) -> int:
        with self._lock:
            return sum(line.quantity for line in self._lines.values())

    def get_line(self, product_id: str) -> Optional[CartLine]:
        with self._lock:
            return self._lines.get(product_id)

    def add_to_cart(
        self,
        product_id: str,
        unit_price: Any,
        unit_discount_price: Any = ZERO,
        quantity: int = 1,
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> CartLine:
        """
        Add units of a product, merging with an existing line.

        Returns:
            The resulting cart line

        Raises:
            ValueError: If quantity is not positive
            CapacityExceeded: If the cart would hold more than ``capacity`` units
        """
        if quantity <= 0:
            raise ValueError("quantity must be at least 1")

        with self._lock:
            current = sum(line.quantity for line in self._lines.values())
            if current + quantity > self.capacity:
                logger.info(f"Rejected add of {quantity} x {product_id}: cart holds {current}/{self.capacity}")
                raise CapacityExceeded(quantity, current, self.capacity)

            existing = self._lines.get(product_id)
            if existing is not None:
                line = existing.model_copy(update={"quantity": existing.quantity + quantity})
            else:
                line = CartLine(
                    product_id=product_id,
                    name=name,
                    price=to_money(unit_price),
                    discount_price=to_money(unit_discount_price),
                    quantity=quantity,
                    image=image,
                )
            self._lines[product_id] = line

        logger.debug(f"Cart: {product_id} -> {line.quantity}")
        return line

    def remove_from_cart(self, product_id: str) -> None:
        """Remove a line. Removing an absent product is a no-op."""
        with self._lock:
            self._lines.pop(product_id, None)

    def set_quantity(self, product_id: str, quantity: int) -> Optional[CartLine]:
        """
        Set the quantity of a line already in the cart.

        A quantity of zero or less removes the line.

        Returns:
            The updated line, or None if it was removed

        Raises:
            NotFound: If the product is not in the cart and quantity > 0
            CapacityExceeded: If the cart would hold more than ``capacity`` units
        """
        with self._lock:
            if quantity <= 0:
                self._lines.pop(product_id, None)
                return None

            existing = self._lines.get(product_id)
            if existing is None:
                raise NotFound("Cart line", product_id)

            others = sum(line.quantity for pid, line in self._lines.items() if pid != product_id)
            if quantity > self.capacity or others + quantity > self.capacity:
                raise CapacityExceeded(quantity - existing.quantity, others + existing.quantity, self.capacity)

            line = existing.model_copy(update={"quantity": quantity})
            self._lines[product_id] = line
            return line

    def clear_cart(self) -> None:
        with self._lock:
            self._lines.clear()
            self._selections.clear()

    def can_add_to_cart(self, quantity: int = 1) -> bool:
        return self.total_quantity + quantity <= self.capacity

    # ----- derived money values -----

    @property
    def subtotal(self) -> Decimal:
        with self._lock:
            return to_money(sum((line.effective_price * line.quantity for line in self._lines.values()), ZERO))

    @property
    def discount_total(self) -> Decimal:
        with self._lock:
            return to_money(
                sum(((line.price - line.effective_price) * line.quantity for line in self._lines.values()), ZERO)
            )

    @property
    def tax(self) -> Decimal:
        return calculate_tax(self.subtotal, self.tax_rate)

    @property
    def total(self) -> Decimal:
        subtotal = self.subtotal
        return to_money(subtotal + calculate_tax(subtotal, self.tax_rate))

    @property
    def shipping(self) -> Decimal:
        """Shipping owed on the current total; an empty cart ships nothing."""
        with self._lock:
            if not self._lines:
                return ZERO
            total = self.total
        return to_money(apply_shipping(total, self.shipping_fee, self.free_shipping_threshold) - total)

    @property
    def total_with_shipping(self) -> Decimal:
        with self._lock:
            return to_money(self.total + self.shipping)

    def summary(self) -> CartSummary:
        with self._lock:
            subtotal = self.subtotal
            tax = calculate_tax(subtotal, self.tax_rate)
            total = to_money(subtotal + tax)
            shipping = self.shipping
            return CartSummary(
                lines=list(self._lines.values()),
                total_quantity=self.total_quantity,
                subtotal=subtotal,
                discount_total=self.discount_total,
                tax_rate=self.tax_rate,
                tax=tax,
                total=total,
                shipping=shipping,
                total_with_shipping=to_money(total + shipping),
                currency_symbol=self.currency_symbol,
            )

    # ----- wishlist -----

    @property
    def wishlist(self) -> list[WishlistEntry]:
        with self._lock:
            return list(self._wishlist.values())

    def is_in_wishlist(self, product_id: str) -> bool:
        with self._lock:
            return product_id in self._wishlist

    def toggle_wishlist(
        self,
        product_id: str,
        name: Optional[str] = None,
        price: Any = ZERO,
        discount_price: Any = ZERO,
        image: Optional[str] = None,
        currency_symbol: str = DEFAULT_CURRENCY,
    ) -> bool:
        """
        Add the product if absent, remove it if present.

        Returns:
            True if the product is in the wishlist after the call
        """
        with self._lock:
            if product_id in self._wishlist:
                del self._wishlist[product_id]
                return False
            self._wishlist[product_id] = WishlistEntry(
                product_id=product_id,
                name=name,
                price=to_money(price),
                discount_price=to_money(discount_price),
                image=image,
                currency_symbol=currency_symbol,
            )
            return True

    def clear_wishlist(self) -> None:
        with self._lock:
            self._wishlist.clear()

    # ----- search and quantity selectors -----

    @property
    def search_query(self) -> str:
        with self._lock:
            return self._search_query

    def set_search_query(self, query: Optional[str]) -> None:
        with self._lock:
            self._search_query = (query or "").strip()

    def selected_quantity(self, product_id: str) -> int:
        """Quantity picked on a product card before adding; defaults to 1."""
        with self._lock:
            return self._selections.get(product_id, 1)

    def select_quantity(self, product_id: str, quantity: int) -> int:
        """Set a card's quantity selector, clamped to ``1..capacity``."""
        with self._lock:
            value = max(1, min(quantity, self.capacity))
            self._selections[product_id] = value
            return value

    def increment_selection(self, product_id: str) -> int:
        return self.select_quantity(product_id, self.selected_quantity(product_id) + 1)

    def decrement_selection(self, product_id: str) -> int:
        return self.select_quantity(product_id, self.selected_quantity(product_id) - 1)
