import asyncio
import copy
from typing import Optional

import pytest

from storefront_sync.config import Settings
from storefront_sync.models import ConfigDocument

SAMPLE_PAYLOAD = {
    "success": True,
    "pages": [
        {
            "name": "Home",
            "properties": {"backgroundColor": "#FAFAFA"},
            "widgets": [
                {"name": "HeaderWidget", "properties": {}},
                {"name": "ProductSearchBarWidget", "properties": {"placeholder": "Find something"}},
                {
                    "name": "ProductGridWidget",
                    "properties": {
                        "productCards": [
                            {
                                "productName": "Cotton Shirt",
                                "price": "$20.00",
                                "discountPrice": "$15.00",
                                "imageAsset": "shirt.png",
                            },
                            {"productName": "Wool Socks", "price": "$10.00", "id": "socks"},
                            {
                                "productName": "Rain Jacket",
                                "basePrice": "₹1,299.00",
                                "discountPercent": "10",
                                "quantity": "0",
                            },
                        ]
                    },
                },
                {"name": "UnknownWidget", "properties": {"anything": 1}},
            ],
        },
        {"name": "About", "widgets": [{"name": "StoreInfoWidget", "properties": {}}]},
    ],
    "storeInfo": {"storeName": "Acme Outfitters", "email": "shop@acme.test", "phone": 5551234},
    "designSettings": {"headerColor": "#123456"},
}


class FakeFetcher:
    """Returns queued results in order; the last one repeats."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0
        self.tenants: list[Optional[str]] = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def fetch(self, tenant_id=None):
        self.calls += 1
        self.tenants.append(tenant_id)
        if self.gate is not None:
            await self.gate.wait()
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        self.closed = True


@pytest.fixture
def sample_payload():
    return copy.deepcopy(SAMPLE_PAYLOAD)


@pytest.fixture
def sample_document(sample_payload):
    return ConfigDocument.model_validate(sample_payload)


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.delenv("STOREFRONT_AUTH_TOKEN", raising=False)
    monkeypatch.delenv("STOREFRONT_USER_ID", raising=False)
    return Settings(
        api_base="http://backend.test",
        tenant_id="tenant-1",
        app_id="app-1",
        session_file=str(tmp_path / "session.json"),
        reconnect_delay=0,
    )
