"""
Offline Mode & Sync Service.
Records are captured locally while offline and uploaded by the sync engine
when the device reconnects, on a periodic backstop, or on user request.

This module wires the engine together and exposes the small surface the UI
needs: unsynced counts, a manual trigger and a status snapshot.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

import httpx
from sqlalchemy.orm import sessionmaker

from ..core.config import settings
from ..models.preference import PreferenceRepository
from .connectivity import ConnectivityMonitor, ConnectivityProbe, NetworkTransport
from .entities import ENTITY_BINDINGS, EntityType
from .job_runtime import AsyncioJobRuntime, JobRuntime
from .record_store import RecordStore
from .scheduler import BackoffPolicy, SchedulerState, SyncScheduler
from .sync_client import RemoteSyncClient
from .sync_coordinator import SyncCoordinator, SyncPassResult
from .sync_executor import SyncExecutor

logger = logging.getLogger(__name__)


@dataclass
class UnsyncedCount:
    per_type: Dict[EntityType, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.per_type.values())

    def to_dict(self) -> dict:
        return {
            "per_type": {t.value: n for t, n in self.per_type.items()},
            "total": self.total,
        }


@dataclass
class SyncStatus:
    is_connected: bool
    unsynced_count: int
    network_type: NetworkTransport

    def to_dict(self) -> dict:
        return {
            "is_connected": self.is_connected,
            "unsynced_count": self.unsynced_count,
            "network_type": self.network_type.value,
        }


class OfflineSyncService:
    """
    Manages offline data capture and synchronization.

    Owns one RecordStore per entity type plus the engine built on top of them
    (client, executors, coordinator, connectivity monitor, scheduler).
    """

    def __init__(
        self,
        stores: Dict[EntityType, RecordStore],
        client: RemoteSyncClient,
        monitor: ConnectivityMonitor,
        runtime: Optional[JobRuntime] = None,
        backoff: Optional[BackoffPolicy] = None,
        require_network: bool = True,
        scheduler_state: Optional[SchedulerState] = None,
        probe: Optional[ConnectivityProbe] = None,
        preferences: Optional[PreferenceRepository] = None,
    ):
        self.stores = stores
        self.client = client
        self.monitor = monitor
        self.runtime = runtime or AsyncioJobRuntime(network_gate=monitor.wait_until_connected)
        self.coordinator = SyncCoordinator(
            [SyncExecutor(t, store, client) for t, store in stores.items()]
        )
        self.scheduler = SyncScheduler(
            self.coordinator,
            monitor,
            self.runtime,
            pending_counter=lambda: self.get_unsynced_count().total,
            backoff=backoff,
            require_network=require_network,
            state=scheduler_state,
        )
        self.probe = probe
        self.preferences = preferences

    def store(self, entity_type: EntityType) -> RecordStore:
        return self.stores[EntityType(entity_type)]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self.probe is not None:
            self.probe.start()
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        if self.probe is not None:
            self.probe.stop()

    # ------------------------------------------------------------------
    # UI-facing surface
    # ------------------------------------------------------------------

    def get_unsynced_count(self) -> UnsyncedCount:
        return UnsyncedCount(
            per_type={t: store.count_pending() for t, store in self.stores.items()}
        )

    def trigger_manual_sync(self) -> bool:
        return self.scheduler.trigger_manual()

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            is_connected=self.monitor.is_currently_connected(),
            unsynced_count=self.get_unsynced_count().total,
            network_type=self.monitor.network_type(),
        )

    async def sync_now(self) -> SyncPassResult:
        """Run (or join) a pass directly, bypassing the scheduler lanes."""
        return await self.coordinator.run_pass()

    def purge_synced(self) -> Dict[EntityType, int]:
        """Retention: drop records the server has accepted."""
        return {t: store.purge_synced() for t, store in self.stores.items()}


def build_offline_sync_service(
    session_factory: sessionmaker,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    monitor: Optional[ConnectivityMonitor] = None,
    base_url_provider: Optional[Callable[[], str]] = None,
) -> OfflineSyncService:
    """Wire the engine from settings and the local database."""
    prefs = PreferenceRepository(session_factory)
    stores = {
        entity_type: RecordStore(entity_type.value, binding.model, session_factory)
        for entity_type, binding in ENTITY_BINDINGS.items()
    }
    url_provider = base_url_provider or (lambda: prefs.get_base_url(settings.API_BASE_URL))
    client = RemoteSyncClient(
        base_url_provider=url_provider,
        token_provider=lambda: prefs.get_auth_token() or settings.API_TOKEN,
        transport=http_transport,
    )
    monitor = monitor or ConnectivityMonitor()
    probe = None
    if settings.CONNECTIVITY_PROBE_ENABLED:
        probe = ConnectivityProbe(
            monitor,
            url_provider,
            interval=settings.CONNECTIVITY_PROBE_INTERVAL_SECONDS,
            timeout=settings.CONNECTIVITY_PROBE_TIMEOUT_SECONDS,
            http_transport=http_transport,
        )
    backoff = BackoffPolicy(
        base=settings.SYNC_PERIODIC_INTERVAL_SECONDS,
        factor=settings.SYNC_BACKOFF_FACTOR,
        cap=settings.SYNC_BACKOFF_MAX_SECONDS,
    )
    return OfflineSyncService(
        stores,
        client,
        monitor,
        backoff=backoff,
        require_network=settings.SYNC_REQUIRE_NETWORK,
        probe=probe,
        preferences=prefs,
    )
