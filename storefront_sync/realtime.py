"""Tenant-scoped realtime update channel over Socket.IO."""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from .errors import NetworkError
from .models import EventKind, RealtimeEvent, SessionContext

logger = logging.getLogger(__name__)

EventCallback = Callable[[RealtimeEvent], Union[None, Awaitable[None]]]
ClientFactory = Callable[[], Any]


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def default_client_factory() -> socketio.AsyncClient:
    # Reconnection is handled by RealtimeChannel._run.
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


class RealtimeChannel:
    """
    Persistent connection to the backend's realtime namespace.

    ``start()`` returns immediately; connecting, joining the tenant room and
    reconnecting all happen in a background task. After a failure the channel
    retries up to ``reconnect_attempts`` times with a fixed delay. After
    ``close()`` it never reconnects.
    """

    JOIN_EVENT = "join-admin-room"

    def __init__(
        self,
        context: SessionContext,
        namespace: str = "/real-time-updates",
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        connect_timeout: float = 30.0,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        """
        Initialize the channel.

        Args:
            context: Session identity; its tenant id selects the room
            namespace: Socket.IO namespace carrying update events
            reconnect_attempts: Retries after a failed or lost connection
            reconnect_delay: Seconds to wait between retries
            connect_timeout: Seconds to wait for the namespace handshake
            client_factory: Builds a Socket.IO client per attempt (injectable for tests)
        """
        self.context = context
        self.namespace = namespace
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory or default_client_factory

        self._state = ChannelState.DISCONNECTED
        self._client: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._subscribers: list[EventCallback] = []
        self.last_error: Optional[Exception] = None
        self.joined_room: Any = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ChannelState.CONNECTED

    def _set_state(self, state: ChannelState) -> None:
        if state is not self._state:
            logger.debug(f"Realtime channel {self._state.value} -> {state.value}")
            self._state = state

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """
        Register a callback for every event received.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def start(self) -> None:
        """Begin connecting in the background. No-op if already running."""
        if self._task is not None and not self._task.done():
            return
        self._closed = False
        logger.info(f"Starting realtime updates for tenant {self.context.tenant_id}")
        self._task = asyncio.create_task(self._run(), name=f"realtime-{self.context.tenant_id}")

    async def close(self) -> None:
        """Stop reconnecting and release the socket."""
        self._closed = True
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        client, self._client = self._client, None
        if client is not None:
            await self._release(client)
        self._set_state(ChannelState.DISCONNECTED)
        logger.info("Realtime updates stopped")

    async def reconnect(self) -> None:
        """Drop the current connection and start over with a fresh attempt budget."""
        await self.close()
        await self.start()

    async def _run(self) -> None:
        failures = 0
        while not self._closed:
            client = self._client_factory()
            self._client = client
            self._register_handlers(client)
            self._set_state(ChannelState.CONNECTING)

            try:
                await client.connect(
                    self.context.api_base,
                    namespaces=[self.namespace],
                    transports=["websocket"],
                    headers=self._headers(),
                    wait_timeout=self.connect_timeout,
                )
                failures = 0
                await client.wait()
                if not self._closed:
                    logger.warning("Realtime connection lost")
            except (SocketConnectionError, OSError, asyncio.TimeoutError) as e:
                self.last_error = NetworkError(f"Realtime connection failed: {e}")
                logger.warning(f"Realtime connection error: {e}")
            except Exception as e:
                self.last_error = e
                logger.error(f"Unexpected realtime error: {e}", exc_info=True)

            self._set_state(ChannelState.DISCONNECTED)
            await self._release(client)
            if self._closed:
                break

            failures += 1
            if failures > self.reconnect_attempts:
                logger.error(f"Giving up on realtime updates after {self.reconnect_attempts} reconnection attempt(s)")
                break
            logger.info(
                f"Reconnecting in {self.reconnect_delay}s (attempt {failures}/{self.reconnect_attempts})"
            )
            await asyncio.sleep(self.reconnect_delay)

    def _headers(self) -> dict[str, str]:
        if self.context.auth_token:
            return {"Authorization": f"Bearer {self.context.auth_token}"}
        return {}

    def _register_handlers(self, client: Any) -> None:
        client.on("connect", self._on_connect, namespace=self.namespace)
        client.on("disconnect", self._on_disconnect, namespace=self.namespace)
        client.on("*", self._on_event, namespace=self.namespace)

    async def _release(self, client: Any) -> None:
        try:
            await client.disconnect()
        except (SocketConnectionError, OSError, RuntimeError) as e:
            logger.debug(f"Ignoring error while releasing socket: {e}")

    async def _on_connect(self) -> None:
        self._set_state(ChannelState.CONNECTED)
        logger.info("Realtime channel connected")
        client = self._client
        if client is None:
            return
        try:
            await client.emit(self.JOIN_EVENT, {"adminId": self.context.tenant_id}, namespace=self.namespace)
            logger.info(f"Joining room admin-{self.context.tenant_id}")
        except (SocketConnectionError, OSError, RuntimeError) as e:
            # Delivery still works without the room acknowledgment.
            logger.warning(f"Could not emit {self.JOIN_EVENT}: {e}")

    async def _on_disconnect(self, *args: Any) -> None:
        self._set_state(ChannelState.DISCONNECTED)
        logger.info(f"Realtime channel disconnected {args[0] if args else ''}".rstrip())

    async def _on_event(self, name: str, *args: Any) -> None:
        if len(args) == 1:
            payload = args[0]
        else:
            payload = list(args) or None
        event = RealtimeEvent(name=name, payload=payload)

        if event.kind is EventKind.ROOM_JOINED:
            self.joined_room = payload
            logger.info(f"Joined room: {payload}")
        else:
            logger.info(f"Realtime event received: {name}")
        await self._dispatch(event)

    async def _dispatch(self, event: RealtimeEvent) -> None:
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Realtime subscriber failed on {event.name}: {e}", exc_info=True)
