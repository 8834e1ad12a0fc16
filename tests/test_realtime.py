import asyncio

import pytest
from socketio.exceptions import ConnectionError as SocketConnectionError

from storefront_sync.models import EventKind, SessionContext
from storefront_sync.realtime import ChannelState, RealtimeChannel

NAMESPACE = "/real-time-updates"


class FakeSocketClient:
    """Stands in for socketio.AsyncClient: records calls, fires handlers on demand."""

    def __init__(self, fail=False):
        self.fail = fail
        self.handlers = {}
        self.emitted = []
        self.connect_kwargs = None
        self.disconnected = False
        self._closed = asyncio.Event()

    def on(self, event, handler, namespace=None):
        assert namespace == NAMESPACE
        self.handlers[event] = handler

    async def connect(self, url, **kwargs):
        self.connect_kwargs = dict(kwargs, url=url)
        if self.fail:
            raise SocketConnectionError("connection refused")
        await self.handlers["connect"]()

    async def emit(self, event, data=None, namespace=None):
        self.emitted.append((event, data, namespace))

    async def wait(self):
        await self._closed.wait()

    async def disconnect(self):
        self.disconnected = True
        self._closed.set()

    async def server_event(self, name, *args):
        await self.handlers["*"](name, *args)

    async def drop(self):
        await self.handlers["disconnect"]("transport close")
        self._closed.set()


class ClientFactory:
    def __init__(self, *clients):
        self.clients = list(clients)
        self.created = []

    def __call__(self):
        client = self.clients.pop(0) if len(self.clients) > 1 else self.clients[0]
        self.created.append(client)
        return client


async def settle(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


def make_channel(factory, attempts=5):
    context = SessionContext(tenant_id="tenant-1", api_base="http://backend.test", auth_token="tok")
    return RealtimeChannel(
        context,
        namespace=NAMESPACE,
        reconnect_attempts=attempts,
        reconnect_delay=0,
        connect_timeout=5,
        client_factory=factory,
    )


@pytest.mark.asyncio
async def test_connect_joins_tenant_room():
    client = FakeSocketClient()
    channel = make_channel(ClientFactory(client))

    await channel.start()
    assert await settle(lambda: channel.is_connected)

    assert client.emitted == [("join-admin-room", {"adminId": "tenant-1"}, NAMESPACE)]
    assert client.connect_kwargs["url"] == "http://backend.test"
    assert client.connect_kwargs["namespaces"] == [NAMESPACE]
    assert client.connect_kwargs["transports"] == ["websocket"]
    assert client.connect_kwargs["headers"] == {"Authorization": "Bearer tok"}

    await channel.close()
    assert channel.state is ChannelState.DISCONNECTED
    assert client.disconnected


@pytest.mark.asyncio
async def test_events_reach_subscribers():
    client = FakeSocketClient()
    channel = make_channel(ClientFactory(client))
    received = []
    async_received = []

    def broken(event):
        raise RuntimeError("subscriber bug")

    async def async_subscriber(event):
        async_received.append(event.name)

    channel.subscribe(broken)
    unsubscribe = channel.subscribe(received.append)
    channel.subscribe(async_subscriber)

    await channel.start()
    assert await settle(lambda: channel.is_connected)

    await client.server_event("room-joined", {"room": "admin-tenant-1"})
    await client.server_event("dynamic-update", {"page": "home"})
    await client.server_event("something-new")

    assert [event.name for event in received] == ["room-joined", "dynamic-update", "something-new"]
    assert received[1].kind is EventKind.DYNAMIC_UPDATE
    assert received[1].payload == {"page": "home"}
    assert received[2].kind is None
    assert async_received == ["room-joined", "dynamic-update", "something-new"]
    assert channel.joined_room == {"room": "admin-tenant-1"}

    unsubscribe()
    await client.server_event("home-page")
    assert len(received) == 3

    await channel.close()


@pytest.mark.asyncio
async def test_reconnects_after_connection_lost():
    first, second = FakeSocketClient(), FakeSocketClient()
    factory = ClientFactory(first, second)
    channel = make_channel(factory)

    await channel.start()
    assert await settle(lambda: channel.is_connected)

    await first.drop()
    assert await settle(lambda: len(factory.created) == 2 and channel.is_connected)
    assert second.emitted[0][0] == "join-admin-room"

    await channel.close()


@pytest.mark.asyncio
async def test_gives_up_after_attempt_cap():
    failing = FakeSocketClient(fail=True)
    factory = ClientFactory(failing)
    channel = make_channel(factory, attempts=2)

    await channel.start()
    assert await settle(lambda: channel._task is not None and channel._task.done())

    # The first attempt plus two retries
    assert len(factory.created) == 3
    assert channel.state is ChannelState.DISCONNECTED
    assert channel.last_error is not None

    await channel.close()


@pytest.mark.asyncio
async def test_close_stops_reconnection():
    client = FakeSocketClient()
    factory = ClientFactory(client)
    channel = make_channel(factory)

    await channel.start()
    assert await settle(lambda: channel.is_connected)
    await channel.close()

    for _ in range(20):
        await asyncio.sleep(0)
    assert len(factory.created) == 1
    assert not channel.is_connected


@pytest.mark.asyncio
async def test_reconnect_starts_fresh():
    first, second = FakeSocketClient(), FakeSocketClient()
    factory = ClientFactory(first, second)
    channel = make_channel(factory)

    await channel.start()
    assert await settle(lambda: channel.is_connected)
    await channel.reconnect()
    assert await settle(lambda: channel.is_connected and len(factory.created) == 2)

    await channel.close()


class BrokenSocketClient(FakeSocketClient):
    """Raises something other than a connection error from connect."""

    async def connect(self, url, **kwargs):
        raise RuntimeError("unexpected handshake payload")


class DroppingSocketClient(FakeSocketClient):
    async def wait(self):
        raise ValueError("packet decode failed")


@pytest.mark.asyncio
async def test_unexpected_connect_error_counts_as_failure():
    broken = BrokenSocketClient()
    factory = ClientFactory(broken)
    channel = make_channel(factory, attempts=1)

    await channel.start()
    assert await settle(lambda: channel._task is not None and channel._task.done())

    assert len(factory.created) == 2
    assert channel._task.exception() is None
    assert channel.state is ChannelState.DISCONNECTED
    assert isinstance(channel.last_error, RuntimeError)
    assert broken.disconnected

    await channel.close()


@pytest.mark.asyncio
async def test_unexpected_error_while_connected_reconnects():
    first, second = DroppingSocketClient(), FakeSocketClient()
    factory = ClientFactory(first, second)
    channel = make_channel(factory)

    await channel.start()
    assert await settle(lambda: len(factory.created) == 2 and channel.is_connected)
    assert isinstance(channel.last_error, ValueError)

    await channel.close()
