"""
Sync coordinator.
Runs every entity type's executor as one pass and aggregates the results.

Single-flight: at most one pass executes at a time. Requests that arrive while
a pass is running are queued onto one shared follow-up pass, which starts as
soon as the running pass finishes; every queued caller receives that
follow-up's result.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .entities import EntityType
from .sync_executor import EntitySyncResult, SyncExecutor

logger = logging.getLogger(__name__)


@dataclass
class SyncPassResult:
    per_type: Dict[EntityType, EntitySyncResult] = field(default_factory=dict)
    pass_id: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def total_succeeded(self) -> int:
        return sum(r.succeeded for r in self.per_type.values())

    @property
    def total_failed(self) -> int:
        return sum(r.failed for r in self.per_type.values())

    @property
    def all_synced(self) -> bool:
        return self.total_failed == 0 and self.total_succeeded > 0

    def to_dict(self) -> dict:
        return {
            "pass_id": self.pass_id,
            "per_type": {t.value: r.to_dict() for t, r in self.per_type.items()},
            "total_succeeded": self.total_succeeded,
            "total_failed": self.total_failed,
            "all_synced": self.all_synced,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


class SyncCoordinator:
    """Compose the executors into passes, never running two at once."""

    def __init__(self, executors: Sequence[SyncExecutor]):
        self._executors: List[SyncExecutor] = list(executors)
        self._current: Optional[asyncio.Future] = None
        self._follow_up: Optional[asyncio.Future] = None
        self._pass_ids = itertools.count(1)
        self.passes_started = 0

    @property
    def entity_types(self) -> List[EntityType]:
        return [e.entity_type for e in self._executors]

    @property
    def is_running(self) -> bool:
        return self._current is not None and not self._current.done()

    async def run_pass(self) -> SyncPassResult:
        if self._follow_up is not None:
            return await asyncio.shield(self._follow_up)
        if self.is_running:
            logger.info("Pass already running, queueing one follow-up pass")
            self._follow_up = asyncio.ensure_future(self._run_after(self._current))
            return await asyncio.shield(self._follow_up)
        self._current = asyncio.ensure_future(self._execute())
        return await asyncio.shield(self._current)

    async def _run_after(self, previous: asyncio.Future) -> SyncPassResult:
        await asyncio.wait([previous])
        # From here on this task is the running pass; later requests queue behind it
        self._current = self._follow_up
        self._follow_up = None
        return await self._execute()

    async def _execute(self) -> SyncPassResult:
        self.passes_started += 1
        result = SyncPassResult(pass_id=next(self._pass_ids), started_at=datetime.utcnow())
        logger.info("Sync pass %d started", result.pass_id)

        outcomes = await asyncio.gather(
            *(executor.run() for executor in self._executors), return_exceptions=True
        )
        for executor, outcome in zip(self._executors, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("%s executor crashed: %r", executor.entity_type.value, outcome)
                outcome = EntitySyncResult(error=repr(outcome))
            result.per_type[executor.entity_type] = outcome

        result.finished_at = datetime.utcnow()
        logger.info(
            "Sync pass %d finished: %d succeeded, %d failed (%s)",
            result.pass_id, result.total_succeeded, result.total_failed,
            ", ".join(
                f"{t.value} {r.succeeded}/{r.succeeded + r.failed}" for t, r in result.per_type.items()
            ) or "no entity types",
        )
        return result
