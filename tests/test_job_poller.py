"""
Tests for the background reconciliation poller.
"""

import asyncio

import pytest

from dagflow.src.utilities.engine_client import EngineJob
from dagflow.src.utilities.errors import ExternalEngineError
from dagflow.src.utilities.job_poller import JobPoller
from dagflow.src.utilities.run_lifecycle import RunService
from dagflow.src.workflow_store import RunStatus


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_reconciles_active_runs(self, store, workflow, fake_engine):
        queued = await store.create_run(workflow.id, {}, external_job_id="job-a")
        running = await store.create_run(workflow.id, {}, external_job_id="job-b")
        running.status = RunStatus.RUNNING
        await store.save_run(running)

        fake_engine.jobs["job-a"] = EngineJob(running=True)
        fake_engine.jobs["job-b"] = EngineJob(running=False, success=False, result="timeout")
        poller = JobPoller(store, fake_engine, poll_interval=60)

        assert await poller.poll_once() == 2
        assert (await store.get_run(queued.id)).status == RunStatus.RUNNING
        failed = await store.get_run(running.id)
        assert failed.status == RunStatus.FAILED
        assert failed.error == "timeout"

        # terminal runs drop out of later ticks
        fake_engine.calls.clear()
        assert await poller.poll_once() == 0
        assert fake_engine.calls == [("get_job", "job-a")]

    @pytest.mark.asyncio
    async def test_runs_without_job_are_skipped(self, store, workflow, fake_engine):
        await store.create_run(workflow.id, {})
        poller = JobPoller(store, fake_engine, poll_interval=60)

        assert await poller.poll_once() == 0
        assert fake_engine.calls == []

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_tick(self, store, workflow, fake_engine):
        broken = await store.create_run(workflow.id, {}, external_job_id="job-a")
        healthy = await store.create_run(workflow.id, {}, external_job_id="job-b")
        fake_engine.jobs["job-a"] = ExternalEngineError("boom", status_code=500)
        fake_engine.jobs["job-b"] = EngineJob(running=False, success=True, result={"ok": 1})
        poller = JobPoller(store, fake_engine, poll_interval=60)

        assert await poller.poll_once() == 1
        assert (await store.get_run(broken.id)).status == RunStatus.QUEUED
        assert (await store.get_run(healthy.id)).status == RunStatus.COMPLETED
        assert poller.is_polling is False

    @pytest.mark.asyncio
    async def test_cancel_during_poll_is_kept(self, store, workflow, fake_engine, monkeypatch):
        run = await store.create_run(workflow.id, {}, external_job_id="job-a")

        async def finish_after_cancel(job_id):
            await RunService(store).cancel_run(run.id)
            return EngineJob(id=job_id, running=False, success=True, result={"ok": True})

        monkeypatch.setattr(fake_engine, "get_job", finish_after_cancel)
        poller = JobPoller(store, fake_engine, poll_interval=60)

        assert await poller.poll_once() == 0
        stored = await store.get_run(run.id)
        assert stored.status == RunStatus.CANCELLED
        assert stored.result is None


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_busy_flag_short_circuits(self, store, workflow, fake_engine):
        await store.create_run(workflow.id, {}, external_job_id="job-a")
        poller = JobPoller(store, fake_engine, poll_interval=60)
        poller.is_polling = True

        assert await poller.poll_once() == 0
        assert fake_engine.calls == []

    @pytest.mark.asyncio
    async def test_overlapping_ticks(self, store, workflow, fake_engine):
        await store.create_run(workflow.id, {}, external_job_id="job-a")
        poller = JobPoller(store, fake_engine, poll_interval=60)

        await asyncio.gather(poller.poll_once(), poller.poll_once())

        assert fake_engine.names().count("get_job") == 1


class TestStartStop:
    @pytest.mark.asyncio
    async def test_ticks_until_stopped(self, store, workflow, fake_engine):
        run = await store.create_run(workflow.id, {}, external_job_id="job-a")
        fake_engine.jobs["job-a"] = EngineJob(running=False, success=True, result=None)
        poller = JobPoller(store, fake_engine, poll_interval=0.01)

        poller.start()
        poller.start()
        assert poller.running
        for _ in range(100):
            if (await store.get_run(run.id)).status == RunStatus.COMPLETED:
                break
            await asyncio.sleep(0.01)
        await poller.stop()

        assert not poller.running
        assert (await store.get_run(run.id)).status == RunStatus.COMPLETED
