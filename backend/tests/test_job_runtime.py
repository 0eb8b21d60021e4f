"""Tests for keyed background jobs on the event loop."""
import asyncio

from rufaa.services.job_runtime import AsyncioJobRuntime, ExistingJobPolicy


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


class Recorder:
    def __init__(self):
        self.calls = []

    def job(self, name, block: asyncio.Event = None):
        async def run():
            self.calls.append(name)
            if block is not None:
                await block.wait()
        return run


async def test_job_runs_after_delay():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    runtime.schedule_once("k", rec.job("a"), delay=0.01)
    assert runtime.is_pending("k")
    await asyncio.sleep(0.05)
    assert rec.calls == ["a"]
    assert not runtime.is_pending("k")


async def test_keep_policy_drops_new_job():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    assert runtime.schedule_once("k", rec.job("first"), delay=0.01, policy=ExistingJobPolicy.KEEP)
    assert not runtime.schedule_once("k", rec.job("second"), delay=0.01, policy=ExistingJobPolicy.KEEP)
    await asyncio.sleep(0.05)
    assert rec.calls == ["first"]


async def test_replace_policy_latest_wins():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    for name in ("one", "two", "three"):
        runtime.schedule_once("k", rec.job(name), delay=0.01, policy=ExistingJobPolicy.REPLACE)
    await asyncio.sleep(0.05)
    assert rec.calls == ["three"]


async def test_replace_does_not_interrupt_a_started_job():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    gate = asyncio.Event()
    runtime.schedule_once("k", rec.job("running", gate))
    await settle()
    assert rec.calls == ["running"]

    runtime.schedule_once("k", rec.job("next"))
    await settle()
    gate.set()
    await runtime.drain()
    assert rec.calls == ["running", "next"]


async def test_cancel_all_by_tag_only_touches_that_tag():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    runtime.schedule_once("a", rec.job("a"), delay=0.01, tag="sync")
    runtime.schedule_once("b", rec.job("b"), delay=0.01, tag="sync")
    runtime.schedule_once("c", rec.job("c"), delay=0.01, tag="other")

    assert runtime.cancel_all_by_tag("sync") == 2
    await asyncio.sleep(0.05)
    assert rec.calls == ["c"]


async def test_cancel_leaves_running_job_alone():
    runtime = AsyncioJobRuntime()
    rec = Recorder()
    gate = asyncio.Event()
    finished = []

    async def job():
        await gate.wait()
        finished.append(True)

    runtime.schedule_once("k", job, tag="sync")
    await settle()
    assert runtime.cancel_all_by_tag("sync") == 0
    gate.set()
    await runtime.drain()
    assert finished == [True]
    assert rec.calls == []


async def test_network_gate_holds_job_until_released():
    online = asyncio.Event()
    runtime = AsyncioJobRuntime(network_gate=online.wait)
    rec = Recorder()
    runtime.schedule_once("gated", rec.job("gated"), require_network=True)
    runtime.schedule_once("free", rec.job("free"))
    await settle()
    assert rec.calls == ["free"]
    assert runtime.is_pending("gated")

    online.set()
    await settle()
    assert rec.calls == ["free", "gated"]


async def test_failing_job_is_logged_not_raised(caplog):
    runtime = AsyncioJobRuntime()

    async def broken():
        raise ValueError("bad job")

    runtime.schedule_once("k", broken)
    await settle()
    await runtime.drain()
    assert "Background job k failed" in caplog.text
