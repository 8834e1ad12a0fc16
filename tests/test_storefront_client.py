import json
import os
import stat

import httpx
import pytest

from storefront_sync.auth import AuthManager
from storefront_sync.errors import AuthenticationError
from storefront_sync.models import AuthCredentials, SessionContext
from storefront_sync.storefront_client import StorefrontClient


@pytest.fixture
def auth_manager(tmp_path, monkeypatch):
    monkeypatch.delenv("STOREFRONT_AUTH_TOKEN", raising=False)
    monkeypatch.delenv("STOREFRONT_USER_ID", raising=False)
    return AuthManager(str(tmp_path / "session.json"))


def make_client(auth_manager, handler):
    context = SessionContext(tenant_id="tenant-1", api_base="http://backend.test", app_id="app-1")
    return StorefrontClient(context, auth_manager, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_login_persists_session(auth_manager):
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/api/login"
        assert body == {"email": "a@b.test", "password": "pw", "adminId": "tenant-1", "appId": "app-1"}
        return httpx.Response(200, json={"success": True, "token": "tok-1", "user": {"_id": "u1"}})

    client = make_client(auth_manager, handler)
    result = await client.login(AuthCredentials(email="a@b.test", password="pw"))
    await client.aclose()

    assert result.success
    assert result.user_id == "u1"
    assert auth_manager.get_token() == "tok-1"

    reloaded = AuthManager(auth_manager.session_file)
    assert reloaded.get_session().user_id == "u1"
    assert stat.S_IMODE(os.stat(auth_manager.session_file).st_mode) == 0o600


@pytest.mark.asyncio
async def test_rejected_login_raises(auth_manager):
    def handler(request):
        return httpx.Response(401, json={"success": False, "message": "Invalid credentials"})

    client = make_client(auth_manager, handler)
    with pytest.raises(AuthenticationError, match="Invalid credentials"):
        await client.login(AuthCredentials(email="a@b.test", password="wrong"))
    assert not auth_manager.is_authenticated()


@pytest.mark.asyncio
async def test_register_sends_store_fields(auth_manager):
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/api/signup"
        assert body["firstName"] == "Ada"
        assert body["phone"] == ""
        assert body["adminId"] == "tenant-1"
        return httpx.Response(201, json={"success": True, "token": "tok-2", "user": {"_id": "u2"}})

    client = make_client(auth_manager, handler)
    result = await client.register("Ada", "Lovelace", "ada@b.test", "pw")
    assert result.token == "tok-2"
    assert auth_manager.get_session().user_email == "ada@b.test"


@pytest.mark.asyncio
async def test_profile_requires_token(auth_manager):
    client = make_client(auth_manager, lambda request: httpx.Response(200, json={}))
    with pytest.raises(AuthenticationError):
        await client.get_profile()


@pytest.mark.asyncio
async def test_profile_uses_bearer_token(auth_manager):
    auth_manager.save_session(token="tok-1", user_id="u1")

    def handler(request):
        assert request.headers["Authorization"] == "Bearer tok-1"
        return httpx.Response(200, json={"firstName": "Ada"})

    client = make_client(auth_manager, handler)
    assert await client.get_profile() == {"firstName": "Ada"}


@pytest.mark.asyncio
async def test_subscription_current_endpoint(auth_manager):
    auth_manager.save_session(token="tok-1", user_id="u1")
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json={"subscription": {"status": "active"}})

    client = make_client(auth_manager, handler)
    assert await client.has_active_subscription() is True
    assert paths == ["/api/current-subscription"]


@pytest.mark.asyncio
async def test_subscription_missing_current_is_inactive(auth_manager):
    auth_manager.save_session(token="tok-1", user_id="u1")
    client = make_client(auth_manager, lambda request: httpx.Response(404, json={}))
    assert await client.has_active_subscription() is False


@pytest.mark.asyncio
async def test_subscription_falls_back_to_list(auth_manager):
    auth_manager.save_session(token="tok-1", user_id="u1")

    def handler(request):
        if request.url.path == "/api/current-subscription":
            return httpx.Response(200, json={"subscription": None})
        return httpx.Response(200, json={"subscriptions": [{"status": "approved"}]})

    client = make_client(auth_manager, handler)
    assert await client.has_active_subscription() is True


@pytest.mark.asyncio
async def test_no_user_means_no_subscription(auth_manager):
    client = make_client(auth_manager, lambda request: httpx.Response(500))
    assert await client.has_active_subscription() is False


def test_environment_token_is_loaded(tmp_path, monkeypatch):
    monkeypatch.setenv("STOREFRONT_AUTH_TOKEN", "env-token")
    monkeypatch.setenv("STOREFRONT_USER_ID", "u9")
    manager = AuthManager(str(tmp_path / "session.json"))
    assert manager.get_token() == "env-token"
    assert manager.get_session().user_id == "u9"

    manager.clear_session()
    assert not manager.is_authenticated()
    assert not os.path.exists(manager.session_file)
