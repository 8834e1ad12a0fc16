"""HTTP server exposing a live storefront session, with an SSE stream of configuration changes."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from . import __version__
from .config import Settings
from .errors import AuthenticationError, CapacityExceeded, ConfigUnavailable, NotFound
from .models import AuthCredentials, ConfigDocument
from .session import StorefrontSession

logger = logging.getLogger("storefront-http-server")

# Global state
session: Optional[StorefrontSession] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global session

    # A session injected before startup is used as-is.
    owned = session is None
    if owned:
        session = StorefrontSession(Settings.from_env())

    logger.info(f"Starting storefront HTTP server for tenant {session.tenant_id}...")
    if not await session.start():
        logger.warning("Started without configuration; serving the error state until a refetch succeeds")

    yield

    logger.info("Shutting down storefront HTTP server...")
    await session.close()
    if owned:
        session = None


app = FastAPI(
    title="Storefront Sync",
    description="HTTP API for a storefront kept in sync with its admin configuration",
    version=__version__,
    lifespan=lifespan,
)


# Request/Response Models
class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    success: bool
    message: str


class AddToCartRequest(BaseModel):
    product_id: str
    quantity: Optional[int] = None


class RemoveFromCartRequest(BaseModel):
    product_id: str


class UpdateCartRequest(BaseModel):
    product_id: str
    quantity: int


class WishlistRequest(BaseModel):
    product_id: str


class SelectQuantityRequest(BaseModel):
    product_id: str
    quantity: int


class SearchRequest(BaseModel):
    query: str = ""


def _session() -> StorefrontSession:
    if session is None:
        raise HTTPException(status_code=503, detail="Storefront session is not running")
    return session


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, CapacityExceeded):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConfigUnavailable):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, AuthenticationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Request failed: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=str(e))


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    current = _session()
    return {
        "name": "Storefront Sync",
        "version": __version__,
        "tenant_id": current.tenant_id,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "events": "/events - SSE stream of configuration changes",
            "config": {"home": "GET /config", "page": "GET /pages/{index}"},
            "products": {
                "list": "GET /products?query=",
                "search": "POST /products/search",
                "select_quantity": "POST /products/select-quantity",
            },
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "remove": "POST /cart/remove",
                "update": "POST /cart/update",
                "clear": "POST /cart/clear",
            },
            "wishlist": {"get": "GET /wishlist", "toggle": "POST /wishlist/toggle"},
            "sync": {"status": "GET /sync/status", "refresh": "POST /sync/refresh"},
            "auth": {"login": "POST /auth/login", "logout": "POST /auth/logout", "status": "GET /auth/status"},
        },
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    status = _session().status()
    return {
        "status": "healthy" if status.has_config else "degraded",
        "has_config": status.has_config,
        "connected": status.is_connected,
    }


# Configuration endpoints
@app.get("/config")
async def get_config():
    """Home page resolved into render units, or the explicit empty/error state."""
    current = _session()
    page = current.render_home()
    return {"config_version": current.store.version, **page.model_dump(mode="json")}


@app.get("/pages/{index}")
async def get_page(index: int):
    try:
        return _session().render_page(index).model_dump(mode="json")
    except Exception as e:
        raise _http_error(e)


def _product_listing(current: StorefrontSession, query: str) -> dict:
    products = current.products(query)
    return {
        "query": query,
        "count": len(products),
        "products": [
            {
                **product.model_dump(mode="json"),
                "effective_price": str(product.effective_price),
                "currency_symbol": product.symbol,
                "has_discount": product.has_discount,
                "is_sold_out": product.is_sold_out,
                "in_wishlist": current.local_state.is_in_wishlist(product.id),
                "selected_quantity": current.local_state.selected_quantity(product.id),
            }
            for product in products
        ],
    }


@app.get("/products")
async def list_products(query: Optional[str] = None):
    """
    List configured products.

    Without ``query`` the stored search query applies. A ``query`` parameter
    filters this response only and leaves the stored query unchanged.
    """
    try:
        current = _session()
        current.require_document()
        effective = current.local_state.search_query if query is None else query.strip()
        return _product_listing(current, effective)
    except Exception as e:
        raise _http_error(e)


@app.post("/products/search")
async def search_products(request: SearchRequest):
    """Store the session's search query and return the matching products."""
    try:
        current = _session()
        current.require_document()
        current.local_state.set_search_query(request.query)
        return _product_listing(current, current.local_state.search_query)
    except Exception as e:
        raise _http_error(e)


@app.post("/products/select-quantity")
async def select_quantity(request: SelectQuantityRequest):
    """Set a product card's quantity selector (clamped to the cart cap)."""
    try:
        current = _session()
        current.get_product(request.product_id)
        value = current.local_state.select_quantity(request.product_id, request.quantity)
        return {"product_id": request.product_id, "quantity": value}
    except Exception as e:
        raise _http_error(e)


# Cart endpoints
@app.get("/cart")
async def get_cart():
    return _session().local_state.summary().model_dump(mode="json")


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    try:
        current = _session()
        line = current.add_product_to_cart(request.product_id, request.quantity)
        return {
            "success": True,
            "line": line.model_dump(mode="json"),
            "total_quantity": current.local_state.total_quantity,
        }
    except Exception as e:
        raise _http_error(e)


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    _session().local_state.remove_from_cart(request.product_id)
    return {"success": True, "message": f"Removed product {request.product_id} from cart"}


@app.post("/cart/update")
async def update_cart(request: UpdateCartRequest):
    try:
        line = _session().local_state.set_quantity(request.product_id, request.quantity)
        return {"success": True, "line": line.model_dump(mode="json") if line is not None else None}
    except Exception as e:
        raise _http_error(e)


@app.post("/cart/clear")
async def clear_cart():
    _session().local_state.clear_cart()
    return {"success": True}


# Wishlist endpoints
@app.get("/wishlist")
async def get_wishlist():
    entries = _session().local_state.wishlist
    return {"count": len(entries), "items": [entry.model_dump(mode="json") for entry in entries]}


@app.post("/wishlist/toggle")
async def toggle_wishlist(request: WishlistRequest):
    try:
        in_wishlist = _session().toggle_wishlist_product(request.product_id)
        return {"product_id": request.product_id, "in_wishlist": in_wishlist}
    except Exception as e:
        raise _http_error(e)


# Sync endpoints
@app.get("/sync/status")
async def sync_status():
    return _session().status().model_dump(mode="json")


@app.post("/sync/refresh")
async def sync_refresh():
    """Refetch the configuration now; a failure keeps the previous document."""
    current = _session()
    success = await current.refresh()
    return {"success": success, **current.status().model_dump(mode="json")}


# Authentication endpoints
@app.post("/auth/login", response_model=LoginResponse)
async def login(request: LoginRequest):
    try:
        await _session().client.login(AuthCredentials(email=request.email, password=request.password))
        return LoginResponse(success=True, message=f"Successfully logged in as {request.email}")
    except AuthenticationError as e:
        return LoginResponse(success=False, message=str(e))
    except Exception as e:
        raise _http_error(e)


@app.post("/auth/logout")
async def logout():
    _session().client.logout()
    return {"success": True, "message": "Successfully logged out"}


@app.get("/auth/status")
async def auth_status():
    auth_manager = _session().auth_manager
    authenticated = auth_manager.is_authenticated()
    return {
        "authenticated": authenticated,
        "email": auth_manager.session.user_email if authenticated else None,
    }


@app.get("/auth/subscription")
async def subscription_status():
    try:
        return {"active": await _session().client.has_active_subscription()}
    except Exception as e:
        raise _http_error(e)


# SSE stream of configuration changes
@app.get("/events")
async def events(request: Request):
    """
    Server-Sent Events stream announcing each configuration replace.

    The first event describes the current state; each later ``config`` event
    carries the new version so clients can re-render.
    """
    current = _session()
    queue: asyncio.Queue = asyncio.Queue()

    def on_replace(document: ConfigDocument) -> None:
        queue.put_nowait(document)

    remove_listener = current.store.add_listener(on_replace)

    async def event_stream():
        try:
            logger.info("SSE client connected")
            yield f"event: status\ndata: {current.status().model_dump_json()}\n\n"

            while True:
                if await request.is_disconnected():
                    logger.info("SSE client disconnected")
                    break
                try:
                    document = await asyncio.wait_for(queue.get(), timeout=30)
                except asyncio.TimeoutError:
                    yield ": ping\n\n"
                    continue
                payload = {
                    "version": current.store.version,
                    "pages": len(document.pages),
                    "fetched_at": document.fetched_at.isoformat(),
                }
                yield f"event: config\ndata: {json.dumps(payload)}\n\n"

        except asyncio.CancelledError:
            logger.info("SSE stream cancelled")
        finally:
            remove_listener()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str = "info"):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
        log_level: uvicorn log level
    """
    import uvicorn

    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        uvicorn.run(
            "storefront_sync.http_server:app",
            host=host,
            port=port,
            reload=True,
            reload_dirs=["storefront_sync"],
            log_level=log_level,
        )
    else:
        uvicorn.run(app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    run_http_server(reload=True)
