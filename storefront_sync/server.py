"""MCP server exposing a live storefront session."""

import asyncio
import json
import logging
import os
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .config import Settings
from .models import AuthCredentials, CartSummary, ProductCard
from .pricing import format_price
from .session import StorefrontSession

logger = logging.getLogger("storefront-sync")

# Initialize server
app = Server("storefront-sync")

# Global state
session: Optional[StorefrontSession] = None


def _session() -> StorefrontSession:
    if session is None:
        raise RuntimeError("Storefront session is not running")
    return session


def format_products(products: list[ProductCard], query: str = "") -> str:
    if not products:
        return f"No products found for: {query}" if query else "No products configured"

    result_lines = [f"Found {len(products)} product(s):\n"]
    for i, product in enumerate(products, 1):
        symbol = product.symbol
        result_lines.append(f"\n{i}. {product.name}")
        result_lines.append(f"   ID: {product.id}")
        result_lines.append(f"   Price: {format_price(product.effective_price, symbol)}")
        if product.has_discount:
            result_lines.append(f"   Original Price: {format_price(product.base_price, symbol)} (DISCOUNTED)")
        result_lines.append(f"   Available: {'No' if product.is_sold_out else 'Yes'}")
        result_lines.append(f"   Rating: {product.rating}")
    return "\n".join(result_lines)


def format_cart(summary: CartSummary) -> str:
    if not summary.lines:
        return "Your cart is empty"

    symbol = summary.currency_symbol
    result_lines = [f"Shopping Cart ({summary.total_quantity} items):\n"]
    for i, line in enumerate(summary.lines, 1):
        result_lines.append(f"\n{i}. {line.name or line.product_id}")
        result_lines.append(f"   Product ID: {line.product_id}")
        result_lines.append(f"   Price: {format_price(line.effective_price, symbol)}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: {format_price(line.line_total, symbol)}")

    result_lines.append(f"\n{'=' * 50}")
    result_lines.append(f"Subtotal: {format_price(summary.subtotal, symbol)}")
    if summary.discount_total > 0:
        result_lines.append(f"You save: {format_price(summary.discount_total, symbol)}")
    result_lines.append(f"Tax ({summary.tax_rate.normalize():f}%): {format_price(summary.tax, symbol)}")
    result_lines.append(f"Total: {format_price(summary.total, symbol)}")
    shipping = format_price(summary.shipping, symbol) if summary.shipping > 0 else "Free"
    result_lines.append(f"Shipping: {shipping}")
    result_lines.append(f"Total with shipping: {format_price(summary.total_with_shipping, symbol)}")
    return "\n".join(result_lines)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("storefront://config"),
            name="Store Configuration",
            mimeType="application/json",
            description="Current configuration document",
        ),
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        ),
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)
    current = _session()

    if uri_str == "storefront://config":
        document = current.document
        if document is None:
            return "Error: Store configuration is not available"
        return document.model_dump_json(indent=2, by_alias=True)

    elif uri_str == "storefront://cart":
        return current.local_state.summary().model_dump_json(indent=2)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    product_id = {"type": "string", "description": "Product ID (from search results)"}
    return [
        Tool(
            name="storefront_get_config",
            description="Show the store's home page as currently configured",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_search_products",
            description="Search configured products by name or price",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search term; empty lists every product"},
                },
            },
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add a product to the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id,
                    "quantity": {"type": "integer", "description": "Quantity to add", "default": 1},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product from the shopping cart",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a product in the cart (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id,
                    "quantity": {"type": "integer", "description": "New quantity"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_get_cart",
            description="Get the shopping cart with subtotal, tax and total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_toggle_wishlist",
            description="Add a product to the wishlist, or remove it if already there",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_get_wishlist",
            description="List wishlisted products",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_sync_status",
            description="Show configuration sync and realtime connection status",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_refresh",
            description="Refetch the store configuration now",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_login",
            description="Sign in to the store. Uses STOREFRONT_EMAIL and STOREFRONT_PASSWORD if not provided.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string", "description": "User email address"},
                    "password": {"type": "string", "description": "User password"},
                },
            },
        ),
        Tool(
            name="storefront_logout",
            description="Sign out and clear the saved session",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_subscription_status",
            description="Check whether the signed-in user has an active subscription",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


async def handle_tool(name: str, arguments: dict[str, Any]) -> str:
    """
    Run one tool against the current session.

    Returns:
        Text result for the caller

    Raises:
        StorefrontError: When the underlying operation fails
    """
    current = _session()
    state = current.local_state

    if name == "storefront_get_config":
        page = current.render_home()
        status = current.status()
        result = {
            "config_version": status.config_version,
            "background_color": page.background_color,
            "widgets": [unit.model_dump(mode="json") for unit in page.units],
        }
        return json.dumps(result, indent=2, ensure_ascii=False)

    elif name == "storefront_search_products":
        query = arguments.get("query") or ""
        state.set_search_query(query)
        return format_products(current.products(query), query)

    elif name == "storefront_add_to_cart":
        product_id = arguments["product_id"]
        quantity = int(arguments.get("quantity", 1))
        line = current.add_product_to_cart(product_id, quantity)
        return (
            f"Successfully added product {product_id} (quantity: {quantity}) to cart. "
            f"Now {line.quantity} in cart, {state.total_quantity}/{state.capacity} total"
        )

    elif name == "storefront_remove_from_cart":
        product_id = arguments["product_id"]
        state.remove_from_cart(product_id)
        return f"Removed product {product_id} from cart"

    elif name == "storefront_update_cart_quantity":
        product_id = arguments["product_id"]
        quantity = int(arguments["quantity"])
        line = state.set_quantity(product_id, quantity)
        if line is None:
            return f"Removed product {product_id} from cart"
        return f"Successfully updated product {product_id} to quantity {quantity}"

    elif name == "storefront_get_cart":
        return format_cart(state.summary())

    elif name == "storefront_toggle_wishlist":
        product_id = arguments["product_id"]
        if current.toggle_wishlist_product(product_id):
            return f"Added product {product_id} to wishlist"
        return f"Removed product {product_id} from wishlist"

    elif name == "storefront_get_wishlist":
        entries = state.wishlist
        if not entries:
            return "Your wishlist is empty"
        result_lines = [f"Wishlist ({len(entries)} items):\n"]
        for i, entry in enumerate(entries, 1):
            result_lines.append(f"\n{i}. {entry.name or entry.product_id}")
            result_lines.append(f"   Product ID: {entry.product_id}")
            result_lines.append(f"   Price: {format_price(entry.effective_price, entry.currency_symbol)}")
        return "\n".join(result_lines)

    elif name == "storefront_sync_status":
        return current.status().model_dump_json(indent=2)

    elif name == "storefront_refresh":
        if await current.refresh():
            return f"Configuration refreshed (version {current.store.version})"
        error = current.store.last_error()
        return f"Refresh failed, keeping previous configuration: {error}"

    elif name == "storefront_login":
        email = arguments.get("email") or os.environ.get("STOREFRONT_EMAIL")
        password = arguments.get("password") or os.environ.get("STOREFRONT_PASSWORD")
        if not email or not password:
            return "Error: No credentials provided. Pass email and password or set STOREFRONT_EMAIL and STOREFRONT_PASSWORD."
        await current.client.login(AuthCredentials(email=email, password=password))
        return f"Successfully logged in as {email}"

    elif name == "storefront_logout":
        current.client.logout()
        return "Successfully logged out"

    elif name == "storefront_subscription_status":
        active = await current.client.has_active_subscription()
        return "Subscription is active" if active else "No active subscription"

    return f"Unknown tool: {name}"


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    try:
        text = await handle_tool(name, arguments or {})
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        text = f"Error: {str(e)}"
    return [TextContent(type="text", text=text)]


async def main(settings: Optional[Settings] = None) -> None:
    """Main entry point for the MCP server."""
    global session

    settings = settings or Settings.from_env()
    session = StorefrontSession(settings)
    await session.start()

    logger.info("Starting storefront MCP server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await session.close()
        session = None


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
