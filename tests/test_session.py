from decimal import Decimal

import pytest

from storefront_sync.auth import AuthManager
from storefront_sync.errors import CapacityExceeded, ConfigUnavailable, NetworkError, NotFound
from storefront_sync.models import ConfigDocument
from storefront_sync.session import StorefrontSession
from storefront_sync.widgets import WidgetKind


def make_session(settings, fetcher):
    return StorefrontSession(
        settings,
        fetcher=fetcher,
        auth_manager=AuthManager(settings.session_file),
        realtime=False,
    )


@pytest.mark.asyncio
async def test_session_renders_and_shops(settings, make_fetcher, sample_document):
    fetcher = make_fetcher(sample_document)
    async with make_session(settings, fetcher) as session:
        home = session.render_home()
        assert home.units[0].kind is WidgetKind.HEADER

        line = session.add_product_to_cart("product_0", 2)
        assert line.price == Decimal("20.00")
        assert line.discount_price == Decimal("15.00")
        assert line.name == "Cotton Shirt"

        session.local_state.select_quantity("socks", 3)
        assert session.add_product_to_cart("socks").quantity == 3

        assert session.local_state.subtotal == Decimal("60.00")

        with pytest.raises(NotFound):
            session.add_product_to_cart("missing")
        with pytest.raises(CapacityExceeded):
            session.add_product_to_cart("socks", 6)

    assert fetcher.closed


@pytest.mark.asyncio
async def test_products_use_stored_search(settings, make_fetcher, sample_document):
    session = make_session(settings, make_fetcher(sample_document))
    await session.start()

    assert len(session.products()) == 3
    session.local_state.set_search_query("socks")
    assert [p.id for p in session.products()] == ["socks"]
    assert [p.id for p in session.products("jacket")] == ["product_2"]

    await session.close()


@pytest.mark.asyncio
async def test_cart_survives_reload(settings, make_fetcher, sample_document):
    fetcher = make_fetcher(sample_document, ConfigDocument(pages=[]))
    session = make_session(settings, fetcher)
    await session.start()
    session.add_product_to_cart("socks", 2)
    session.toggle_wishlist_product("product_0")

    assert await session.refresh() is True
    assert session.products() == []
    assert session.local_state.get_line("socks").quantity == 2

    # Wishlisted products can still be removed after leaving the configuration
    assert session.toggle_wishlist_product("product_0") is False
    with pytest.raises(NotFound):
        session.toggle_wishlist_product("product_0")

    await session.close()


@pytest.mark.asyncio
async def test_session_without_configuration(settings, make_fetcher):
    session = make_session(settings, make_fetcher(NetworkError("offline")))
    assert await session.start() is False

    assert session.render_home().units[0].kind is WidgetKind.ERROR_STATE
    with pytest.raises(ConfigUnavailable):
        session.require_document()
    with pytest.raises(ConfigUnavailable):
        session.render_page(0)
    assert session.products() == []

    await session.close()


@pytest.mark.asyncio
async def test_render_page_bounds(settings, make_fetcher, sample_document):
    session = make_session(settings, make_fetcher(sample_document))
    await session.start()

    assert session.render_page(1).units[0].kind is WidgetKind.STORE_INFO
    with pytest.raises(NotFound):
        session.render_page(5)

    await session.close()


@pytest.mark.asyncio
async def test_cart_charges_the_displayed_price(settings, make_fetcher):
    document = ConfigDocument.model_validate(
        {
            "pages": [
                {
                    "widgets": [
                        {
                            "name": "ProductGridWidget",
                            "properties": {
                                "productCards": [
                                    {"id": "mug", "price": "10", "discountPrice": "25"},
                                    {"id": "cap", "price": "10", "discountPercent": "20"},
                                ]
                            },
                        }
                    ]
                }
            ]
        }
    )
    async with make_session(settings, make_fetcher(document)) as session:
        mug = session.get_product("mug")
        line = session.add_product_to_cart("mug", 1)
        assert line.effective_price == mug.effective_price == Decimal("10.00")
        assert line.discount_price == Decimal("0.00")

        cap = session.get_product("cap")
        line = session.add_product_to_cart("cap", 1)
        assert line.effective_price == cap.effective_price == Decimal("8.00")

        assert session.local_state.subtotal == Decimal("18.00")


def test_session_requires_tenant(settings, make_fetcher):
    with pytest.raises(ValueError):
        make_session(settings.model_copy(update={"tenant_id": None}), make_fetcher(None))
