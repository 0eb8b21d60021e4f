"""
Background job runtime used by the scheduler as its timer source.

:class:`JobRuntime` is the boundary the scheduler depends on; a platform
scheduler that survives process restarts can implement it.
:class:`AsyncioJobRuntime` is the in-process implementation: keyed, tagged
one-shot jobs on the running event loop, optionally gated on
network availability.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[None]]
NetworkGate = Callable[[], Awaitable[None]]


class ExistingJobPolicy(str, Enum):
    KEEP = "keep"        # a pending job under the same key wins, the new one is dropped
    REPLACE = "replace"  # a pending job under the same key is cancelled and replaced


class JobRuntime(Protocol):
    def schedule_once(
        self,
        key: str,
        job: Job,
        *,
        delay: float = 0.0,
        tag: str = "",
        policy: ExistingJobPolicy = ExistingJobPolicy.REPLACE,
        require_network: bool = False,
    ) -> bool: ...

    def cancel_all_by_tag(self, tag: str) -> int: ...

    def is_pending(self, key: str) -> bool: ...


@dataclass
class _JobHandle:
    key: str
    tag: str
    task: Optional[asyncio.Task] = None
    started: bool = False


class AsyncioJobRuntime:
    """Keyed job scheduling on the current event loop.

    A job counts as *pending* until its body starts. Cancellation only ever
    reaches pending jobs; a job whose body is running is left to finish.
    """

    def __init__(self, network_gate: Optional[NetworkGate] = None):
        self._network_gate = network_gate
        self._jobs: Dict[str, _JobHandle] = {}
        self._running: set = set()

    # ------------------------------------------------------------------
    # JobRuntime
    # ------------------------------------------------------------------

    def schedule_once(
        self,
        key: str,
        job: Job,
        *,
        delay: float = 0.0,
        tag: str = "",
        policy: ExistingJobPolicy = ExistingJobPolicy.REPLACE,
        require_network: bool = False,
    ) -> bool:
        existing = self._jobs.get(key)
        if existing is not None and not existing.started:
            if policy == ExistingJobPolicy.KEEP:
                logger.debug("Job %s already pending, keeping it", key)
                return False
            existing.task.cancel()
            logger.debug("Job %s replaced", key)

        handle = _JobHandle(key=key, tag=tag)
        handle.task = asyncio.ensure_future(self._run_once(handle, job, delay, require_network))
        self._jobs[key] = handle
        return True

    def cancel_all_by_tag(self, tag: str) -> int:
        cancelled = 0
        for key, handle in list(self._jobs.items()):
            if handle.tag != tag:
                continue
            if not handle.started:
                handle.task.cancel()
                cancelled += 1
            del self._jobs[key]
        if cancelled:
            logger.info("Cancelled %d scheduled jobs tagged %r", cancelled, tag)
        return cancelled

    def is_pending(self, key: str) -> bool:
        handle = self._jobs.get(key)
        return handle is not None and not handle.started and not handle.task.done()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for job bodies that are currently running."""
        while True:
            pending = [t for t in self._running if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _wait_ready(self, delay: float, require_network: bool) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if require_network and self._network_gate is not None:
            await self._network_gate()

    async def _run_once(self, handle: _JobHandle, job: Job, delay: float, require_network: bool) -> None:
        await self._wait_ready(delay, require_network)
        handle.started = True
        if self._jobs.get(handle.key) is handle:
            del self._jobs[handle.key]

        # The body runs in its own task so cancelling the scheduling task
        # never interrupts work that already began.
        body = asyncio.ensure_future(job())
        self._running.add(body)
        body.add_done_callback(self._running.discard)
        try:
            await asyncio.shield(body)
        except Exception:
            logger.exception("Background job %s failed", handle.key)
