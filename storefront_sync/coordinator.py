"""Reconciles fetched configuration and realtime signals into the ConfigStore."""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Protocol

from .errors import StorefrontError
from .models import ConfigDocument, EventKind, RealtimeEvent, SyncStatus
from .realtime import RealtimeChannel
from .store import ConfigStore

logger = logging.getLogger(__name__)

# A realtime event is a "something changed" signal; any of these triggers a
# full refetch. Everything else (room-joined, unknown names) is ignored.
RELOAD_EVENT_KINDS = frozenset(
    {
        EventKind.DYNAMIC_UPDATE,
        EventKind.HOME_PAGE,
        EventKind.CONFIGURATION_UPDATE,
        EventKind.ADMIN_SPECIFIC_UPDATE,
        EventKind.SPLASH_SCREEN,
        EventKind.APP_INFO,
        EventKind.TEST_UPDATE,
    }
)


class Fetcher(Protocol):
    async def fetch(self, tenant_id: Optional[str] = None) -> ConfigDocument: ...


class SyncCoordinator:
    """
    Owns the reconciliation policy for one tenant.

    At most one refetch is in flight and triggers that arrive while it runs are
    absorbed into it, so results commit in the order refetches were started.
    A failed refetch keeps the previous document and sets the store's error
    flag; nothing is raised to the caller. The coordinator has no reference to
    session-local state and so cannot disturb it.
    """

    def __init__(
        self,
        tenant_id: str,
        fetcher: Fetcher,
        store: ConfigStore,
        channel: Optional[RealtimeChannel] = None,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            tenant_id: Tenant whose configuration is kept in sync
            fetcher: Source of full configuration documents
            store: Destination of successful fetches
            channel: Optional realtime channel delivering change signals
        """
        self.tenant_id = tenant_id
        self.fetcher = fetcher
        self.store = store
        self.channel = channel

        self._inflight: Optional[asyncio.Task] = None
        self._unsubscribe = None

        self.refresh_count = 0
        self.absorbed_events = 0
        self.last_synced_at: Optional[datetime] = None

    @property
    def pending(self) -> Optional[asyncio.Task]:
        """The in-flight refetch, if any."""
        if self._inflight is not None and not self._inflight.done():
            return self._inflight
        return None

    async def start(self) -> bool:
        """
        Load the initial document, then start listening for changes.

        Returns:
            True if the initial load succeeded
        """
        loaded = await self.refresh()
        if self.channel is not None:
            self._unsubscribe = self.channel.subscribe(self.handle_event)
            await self.channel.start()
        return loaded

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.channel is not None:
            await self.channel.close()

        task = self.pending
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def handle_event(self, event: RealtimeEvent) -> bool:
        """
        React to a realtime event.

        Returns:
            True if the event requested a refetch (new or absorbed)
        """
        if event.kind not in RELOAD_EVENT_KINDS:
            logger.debug(f"Ignoring realtime event {event.name}")
            return False
        self.request_refresh(reason=event.name)
        return True

    def request_refresh(self, reason: str = "manual") -> asyncio.Task:
        """
        Schedule a refetch unless one is already running.

        Returns:
            The task that will carry the result (True on success)
        """
        task = self.pending
        if task is not None:
            self.absorbed_events += 1
            logger.debug(f"Refetch already in flight, absorbing trigger ({reason})")
            return task

        self.refresh_count += 1
        self._inflight = asyncio.create_task(self._refetch(reason), name=f"refetch-{self.refresh_count}")
        return self._inflight

    async def refresh(self) -> bool:
        """Refetch now, or join the refetch already in flight."""
        return await asyncio.shield(self.request_refresh())

    async def _refetch(self, reason: str) -> bool:
        logger.info(f"Refetching configuration for tenant {self.tenant_id} ({reason})")
        try:
            document = await self.fetcher.fetch(self.tenant_id)
        except StorefrontError as e:
            self.store.record_error(e)
            return False
        except Exception as e:
            logger.error(f"Unexpected error while fetching configuration: {e}", exc_info=True)
            self.store.record_error(e)
            return False

        self.store.replace(document)
        self.last_synced_at = document.fetched_at
        return True

    def status(self) -> SyncStatus:
        snapshot = self.store.snapshot()
        state = self.channel.state.value if self.channel is not None else "disabled"
        return SyncStatus(
            has_config=snapshot.document is not None,
            config_version=snapshot.version,
            error=str(snapshot.error) if snapshot.error is not None else None,
            connection_state=state,
            is_connected=self.channel.is_connected if self.channel is not None else False,
            last_synced_at=self.last_synced_at,
            refresh_count=self.refresh_count,
            absorbed_events=self.absorbed_events,
        )
