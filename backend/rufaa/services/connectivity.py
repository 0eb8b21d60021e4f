"""
Connectivity monitor.

The host platform reports network snapshots through :meth:`ConnectivityMonitor.report`
(from any thread). The monitor keeps the latest state, suppresses repeats and
fans real transitions out to subscribers as an async stream.

For hosts without a platform network callback, :class:`ConnectivityProbe`
polls the remote service and feeds the monitor instead.
"""
import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


class NetworkTransport(str, Enum):
    WIFI = "wifi"
    CELLULAR = "cellular"
    ETHERNET = "ethernet"
    OTHER = "other"
    NONE = "none"


@dataclass(frozen=True)
class ConnectivityState:
    connected: bool
    transport: NetworkTransport = NetworkTransport.NONE

    @classmethod
    def offline(cls) -> "ConnectivityState":
        return cls(connected=False, transport=NetworkTransport.NONE)

    def to_dict(self) -> dict:
        return {"connected": self.connected, "transport": self.transport.value}


class ConnectivitySubscription:
    """Live stream of connectivity transitions. Iterate with ``async for``."""

    def __init__(self, monitor: "ConnectivityMonitor", loop: asyncio.AbstractEventLoop):
        self._monitor = monitor
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, state: Optional[ConnectivityState]) -> None:
        self._loop.call_soon_threadsafe(self._queue.put_nowait, state)

    def close(self) -> None:
        """Unsubscribe. A consumer blocked in ``async for`` stops iterating."""
        if self._closed:
            return
        self._closed = True
        self._monitor._unsubscribe(self)
        self._push(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ConnectivityState:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state


class ConnectivityMonitor:
    """Deduplicating holder of the device's network state."""

    def __init__(self, initial: Optional[ConnectivityState] = None):
        self._state = initial or ConnectivityState.offline()
        self._subscribers: List[ConnectivitySubscription] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> ConnectivityState:
        with self._lock:
            return self._state

    def is_currently_connected(self) -> bool:
        return self.state.connected

    def network_type(self) -> NetworkTransport:
        return self.state.transport

    def report(self, connected: bool, transport: Optional[NetworkTransport] = None) -> bool:
        """Feed one platform snapshot. Returns True if it was a real change."""
        if transport is None:
            transport = NetworkTransport.OTHER if connected else NetworkTransport.NONE
        new_state = ConnectivityState(connected=bool(connected), transport=NetworkTransport(transport))
        with self._lock:
            if new_state == self._state:
                return False
            old_state, self._state = self._state, new_state
            subscribers = list(self._subscribers)
        logger.info(
            "Network status changed: connected=%s transport=%s (was connected=%s)",
            new_state.connected, new_state.transport.value, old_state.connected,
        )
        for sub in subscribers:
            sub._push(new_state)
        return True

    def subscribe(self) -> ConnectivitySubscription:
        """Attach to the live stream. Must be called from a running event loop."""
        sub = ConnectivitySubscription(self, asyncio.get_running_loop())
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def _unsubscribe(self, sub: ConnectivitySubscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    async def wait_until_connected(self) -> None:
        """Return once the device is connected."""
        if self.is_currently_connected():
            return
        sub = self.subscribe()
        try:
            # Re-check after subscribing so a change in between is not missed
            if self.is_currently_connected():
                return
            async for state in sub:
                if state.connected:
                    return
        finally:
            sub.close()


class ConnectivityProbe:
    """Polls the remote base URL and reports reachability to a monitor.

    Any HTTP answer, whatever its status, means the network path works; only
    transport errors count as offline.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        url_provider: Callable[[], str],
        interval: float = 30.0,
        timeout: float = 5.0,
        transport_detector: Optional[Callable[[], NetworkTransport]] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._monitor = monitor
        self._url_provider = url_provider
        self._interval = interval
        self._timeout = timeout
        self._transport_detector = transport_detector or (lambda: NetworkTransport.OTHER)
        self._http_transport = http_transport
        self._task: Optional[asyncio.Task] = None

    async def probe_once(self) -> Tuple[bool, NetworkTransport]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._http_transport) as client:
                await client.head(self._url_provider())
        except httpx.HTTPError as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            self._monitor.report(False, NetworkTransport.NONE)
            return False, NetworkTransport.NONE
        transport = self._transport_detector()
        self._monitor.report(True, transport)
        return True, transport

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.ensure_future(self._loop())
            logger.info("Connectivity probe started (interval=%.0fs)", self._interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _loop(self) -> None:
        while True:
            await self.probe_once()
            await asyncio.sleep(self._interval)
