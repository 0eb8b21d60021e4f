"""Tests for pass composition and the single-flight rule."""
import asyncio

from rufaa.services.entities import EntityType
from rufaa.services.sync_coordinator import SyncCoordinator
from rufaa.services.sync_executor import EntitySyncResult


class FakeExecutor:
    """Executor whose run() blocks until released, counting invocations."""

    def __init__(self, entity_type, succeeded=1, failed=0, blocking=False):
        self.entity_type = entity_type
        self.succeeded = succeeded
        self.failed = failed
        self.runs = 0
        self.release = asyncio.Event()
        if not blocking:
            self.release.set()

    async def run(self):
        self.runs += 1
        await self.release.wait()
        return EntitySyncResult(succeeded=self.succeeded, failed=self.failed)


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


class CrashingExecutor:
    entity_type = EntityType.VITALS

    async def run(self):
        raise RuntimeError("executor bug")


async def test_pass_aggregates_every_entity_type():
    coordinator = SyncCoordinator([
        FakeExecutor(EntityType.PATIENT, succeeded=2, failed=1),
        FakeExecutor(EntityType.VITALS, succeeded=3),
    ])
    result = await coordinator.run_pass()

    assert set(result.per_type) == {EntityType.PATIENT, EntityType.VITALS}
    assert result.total_succeeded == 5
    assert result.total_failed == 1
    assert not result.all_synced
    assert result.to_dict()["per_type"]["patient"] == {"succeeded": 2, "failed": 1, "error": None}


async def test_crashing_executor_does_not_sink_the_pass():
    patients = FakeExecutor(EntityType.PATIENT)
    coordinator = SyncCoordinator([patients, CrashingExecutor()])
    result = await coordinator.run_pass()

    assert result.per_type[EntityType.PATIENT].succeeded == 1
    assert "executor bug" in result.per_type[EntityType.VITALS].error


async def test_two_triggers_during_a_pass_queue_exactly_one_follow_up():
    executor = FakeExecutor(EntityType.PATIENT, blocking=True)
    coordinator = SyncCoordinator([executor])

    first = asyncio.ensure_future(coordinator.run_pass())
    await settle()
    assert coordinator.is_running

    second = asyncio.ensure_future(coordinator.run_pass())
    third = asyncio.ensure_future(coordinator.run_pass())
    await settle()
    assert executor.runs == 1

    executor.release.set()
    r1, r2, r3 = await asyncio.gather(first, second, third)

    assert coordinator.passes_started == 2
    assert executor.runs == 2
    assert r2 is r3
    assert r1.pass_id != r2.pass_id
    assert not coordinator.is_running


async def test_sequential_passes_each_run():
    executor = FakeExecutor(EntityType.PATIENT)
    coordinator = SyncCoordinator([executor])
    await coordinator.run_pass()
    await coordinator.run_pass()
    assert coordinator.passes_started == 2


async def test_request_after_follow_up_started_runs_again():
    executor = FakeExecutor(EntityType.PATIENT, blocking=True)
    coordinator = SyncCoordinator([executor])

    first = asyncio.ensure_future(coordinator.run_pass())
    await settle()
    follow_up = asyncio.ensure_future(coordinator.run_pass())
    await settle()

    # Finish the first pass, then block whatever runs next
    executor.release.set()
    await first
    executor.release.clear()
    await settle()
    assert executor.runs == 2

    late = asyncio.ensure_future(coordinator.run_pass())
    await settle()
    executor.release.set()
    await asyncio.gather(follow_up, late)

    assert executor.runs == 3
    assert coordinator.passes_started == 3
