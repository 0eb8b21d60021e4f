"""
Sync scheduler: decides when a pass runs.

Three lanes feed the coordinator:
  * reactive  - a disconnected -> connected transition from the monitor
  * periodic  - a backstop timer; its delay backs off after failed passes
  * manual    - explicit user request; the newest not-yet-started request wins

Overlap between lanes is resolved by the coordinator's single-flight rule.
Schedule bookkeeping lives in an explicit :class:`SchedulerState` value.
"""
import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Set

from .connectivity import ConnectivityMonitor, ConnectivitySubscription
from .job_runtime import ExistingJobPolicy, JobRuntime
from .sync_coordinator import SyncCoordinator, SyncPassResult

logger = logging.getLogger(__name__)

SYNC_TAG = "data_sync"
PERIODIC_JOB_KEY = "periodic_data_sync"
MANUAL_JOB_KEY = "manual_data_sync"


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Lane(str, Enum):
    REACTIVE = "reactive"
    PERIODIC = "periodic"
    MANUAL = "manual"


class LaneState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    BACKOFF_WAIT = "backoff_wait"


@dataclass(frozen=True)
class BackoffPolicy:
    base: float = 900.0
    factor: float = 2.0
    cap: float = 6 * 3600.0

    def delay_for(self, consecutive_failures: int) -> float:
        if consecutive_failures <= 0:
            return self.base
        return min(self.base * (self.factor ** consecutive_failures), self.cap)


@dataclass(frozen=True)
class SchedulerState:
    lanes: Dict[Lane, LaneState] = field(
        default_factory=lambda: {lane: LaneState.IDLE for lane in Lane}
    )
    consecutive_failures: int = 0
    next_periodic_delay: Optional[float] = None
    passes_run: int = 0
    last_pass_id: int = 0  # coordinator pass ids restart with each process
    skipped_empty: int = 0
    last_result: Optional[SyncPassResult] = None
    last_run_at: Optional[datetime] = None

    def with_lane(self, lane: Lane, lane_state: LaneState) -> "SchedulerState":
        lanes = dict(self.lanes)
        lanes[lane] = lane_state
        return dataclasses.replace(self, lanes=lanes)

    def after_pass(self, result: SyncPassResult, policy: BackoffPolicy) -> "SchedulerState":
        """Fold one pass result into the backoff bookkeeping.

        Lanes that were coalesced onto the same coordinator pass all receive
        its result. A pass is counted once: an already folded ``pass_id`` is
        ignored and the state is returned unchanged.
        """
        if result.pass_id <= self.last_pass_id:
            return self
        failures = self.consecutive_failures + 1 if result.total_failed > 0 else 0
        return dataclasses.replace(
            self,
            consecutive_failures=failures,
            next_periodic_delay=policy.delay_for(failures),
            passes_run=self.passes_run + 1,
            last_pass_id=result.pass_id,
            last_result=result,
            last_run_at=result.finished_at or datetime.utcnow(),
        )

    def to_dict(self) -> dict:
        return {
            "lanes": {lane.value: s.value for lane, s in self.lanes.items()},
            "consecutive_failures": self.consecutive_failures,
            "next_periodic_delay": self.next_periodic_delay,
            "passes_run": self.passes_run,
            "last_pass_id": self.last_pass_id,
            "skipped_empty": self.skipped_empty,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
        }


class SyncScheduler:
    """Drive the coordinator from connectivity, timer and manual triggers.

    Parameters
    ----------
    coordinator : SyncCoordinator
    monitor : ConnectivityMonitor
    runtime : JobRuntime
        Timer source for the periodic and manual lanes.
    pending_counter : callable, optional
        Returns the total number of unsynced records; a lane skips its pass
        when it returns 0.
    backoff : BackoffPolicy
    require_network : bool
        Passed to the runtime for periodic and manual jobs.
    state : SchedulerState, optional
        Previously saved state to resume from.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        monitor: ConnectivityMonitor,
        runtime: JobRuntime,
        pending_counter: Optional[Callable[[], int]] = None,
        backoff: Optional[BackoffPolicy] = None,
        require_network: bool = True,
        state: Optional[SchedulerState] = None,
    ):
        self._coordinator = coordinator
        self._monitor = monitor
        self._runtime = runtime
        self._pending_counter = pending_counter
        self._backoff = backoff or BackoffPolicy()
        self._require_network = require_network
        # Resumed state keeps its counters; pass ids restart with the new coordinator
        self._state = dataclasses.replace(state, last_pass_id=0) if state else SchedulerState()

        self._subscription: Optional[ConnectivitySubscription] = None
        self._listener: Optional[asyncio.Task] = None
        self._reactive_tasks: Set[asyncio.Task] = set()
        self._was_connected = False
        self._started = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_started(self) -> bool:
        return self._started

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Subscribe to connectivity and arm the periodic lane."""
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        # Baseline: being connected already at start is not a reconnect
        self._was_connected = self._monitor.is_currently_connected()
        self._subscription = self._monitor.subscribe()
        self._listener = asyncio.ensure_future(self._listen(self._subscription))
        self._schedule_periodic()
        logger.info("Sync scheduler started (connected=%s)", self._was_connected)

    def stop(self) -> None:
        """Cancel queued jobs and detach from connectivity. Running passes finish."""
        if not self._started:
            return
        self._started = False
        self._runtime.cancel_all_by_tag(SYNC_TAG)
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        self._listener = None
        for lane in (Lane.PERIODIC, Lane.MANUAL):
            if self._state.lanes[lane] in (LaneState.SCHEDULED, LaneState.BACKOFF_WAIT):
                self._state = self._state.with_lane(lane, LaneState.IDLE)
        logger.info("Sync scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for reactive passes started by this scheduler to finish."""
        while True:
            pending = [t for t in self._reactive_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger_manual(self) -> bool:
        """Queue an immediate pass; replaces a manual request that has not started.

        May be called from any thread. Calls from outside the scheduler's event
        loop are handed over to it with ``call_soon_threadsafe``.
        """
        if not self._started:
            return False
        if _running_loop() is self._loop:
            self._schedule_manual()
        else:
            self._loop.call_soon_threadsafe(self._schedule_manual)
        return True

    def _schedule_manual(self) -> None:
        if not self._started:
            return
        self._runtime.schedule_once(
            MANUAL_JOB_KEY,
            self._manual_job,
            delay=0.0,
            tag=SYNC_TAG,
            policy=ExistingJobPolicy.REPLACE,
            require_network=self._require_network,
        )
        self._state = self._state.with_lane(Lane.MANUAL, LaneState.SCHEDULED)
        logger.info("Triggered manual sync")

    async def _listen(self, subscription: ConnectivitySubscription) -> None:
        async for state in subscription:
            reconnected = state.connected and not self._was_connected
            self._was_connected = state.connected
            if reconnected and self._started:
                logger.info("Network reconnected - triggering sync")
                task = asyncio.ensure_future(self._run_lane(Lane.REACTIVE))
                self._reactive_tasks.add(task)
                task.add_done_callback(self._reactive_tasks.discard)

    def _schedule_periodic(self) -> None:
        delay = self._state.next_periodic_delay or self._backoff.delay_for(self._state.consecutive_failures)
        scheduled = self._runtime.schedule_once(
            PERIODIC_JOB_KEY,
            self._periodic_job,
            delay=delay,
            tag=SYNC_TAG,
            policy=ExistingJobPolicy.KEEP,
            require_network=self._require_network,
        )
        if scheduled:
            lane_state = LaneState.BACKOFF_WAIT if self._state.consecutive_failures else LaneState.SCHEDULED
            self._state = self._state.with_lane(Lane.PERIODIC, lane_state)
            logger.debug("Periodic sync scheduled in %.0fs", delay)

    async def _periodic_job(self) -> None:
        await self._run_lane(Lane.PERIODIC)
        if self._started:
            self._schedule_periodic()

    async def _manual_job(self) -> None:
        await self._run_lane(Lane.MANUAL)

    # ------------------------------------------------------------------
    # Running a pass
    # ------------------------------------------------------------------

    def _nothing_pending(self) -> bool:
        if self._pending_counter is None:
            return False
        try:
            return self._pending_counter() == 0
        except Exception as exc:
            logger.warning("Could not count unsynced records, running the pass anyway: %s", exc)
            return False

    async def _run_lane(self, lane: Lane) -> Optional[SyncPassResult]:
        self._state = self._state.with_lane(lane, LaneState.RUNNING)
        try:
            if self._nothing_pending():
                logger.info("No unsynced data to sync (%s)", lane.value)
                self._state = dataclasses.replace(
                    self._state, skipped_empty=self._state.skipped_empty + 1
                )
                return None

            try:
                result = await self._coordinator.run_pass()
            except Exception:
                logger.exception("Sync pass triggered by %s lane crashed", lane.value)
                result = None

            if result is None:
                self._state = dataclasses.replace(
                    self._state,
                    consecutive_failures=self._state.consecutive_failures + 1,
                    next_periodic_delay=self._backoff.delay_for(self._state.consecutive_failures + 1),
                )
            else:
                folded = self._state.after_pass(result, self._backoff)
                if folded is self._state:
                    logger.debug("Pass %d already recorded (%s lane joined it)", result.pass_id, lane.value)
                elif result.total_failed > 0:
                    logger.warning(
                        "%d items failed to sync, next periodic attempt in %.0fs",
                        result.total_failed, folded.next_periodic_delay,
                    )
                self._state = folded
            return result
        finally:
            self._state = self._state.with_lane(lane, self._lane_state_after_run(lane))

    def _lane_state_after_run(self, lane: Lane) -> LaneState:
        key = {Lane.PERIODIC: PERIODIC_JOB_KEY, Lane.MANUAL: MANUAL_JOB_KEY}.get(lane)
        if key is not None and self._runtime.is_pending(key):
            return LaneState.SCHEDULED
        return LaneState.IDLE
