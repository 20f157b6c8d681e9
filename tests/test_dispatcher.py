"""Tests for the background trigger dispatcher."""

import asyncio

import pytest

from gitlab_agent.errors import PipelineTriggerError
from gitlab_agent.triggers.dispatcher import TriggerDispatcher


class TestTriggerDispatcher:
    @pytest.mark.asyncio
    async def test_successful_task(self):
        dispatcher = TriggerDispatcher()
        done = []

        async def work():
            await asyncio.sleep(0)
            done.append(True)
            return "ok"

        task = dispatcher.submit(work(), name="ok-task")
        await dispatcher.wait_all()

        assert task.result() == "ok"
        assert done == [True]
        assert dispatcher.failures == []
        assert dispatcher.stats() == {"submitted": 1, "completed": 1, "failed": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self):
        dispatcher = TriggerDispatcher()

        async def fail():
            raise PipelineTriggerError(401, "bad token")

        dispatcher.submit(fail(), name="failing-task")
        await dispatcher.wait_all()

        assert len(dispatcher.failures) == 1
        assert isinstance(dispatcher.failures[0], PipelineTriggerError)
        assert dispatcher.stats()["failed"] == 1
        assert dispatcher.stats()["completed"] == 0

    @pytest.mark.asyncio
    async def test_failure_does_not_affect_other_tasks(self):
        dispatcher = TriggerDispatcher()

        async def fail():
            raise RuntimeError("boom")

        async def succeed():
            await asyncio.sleep(0.01)
            return 1

        dispatcher.submit(fail())
        ok = dispatcher.submit(succeed())
        await dispatcher.wait_all()

        assert ok.result() == 1
        assert dispatcher.stats()["submitted"] == 2
        assert dispatcher.stats()["completed"] == 1
        assert dispatcher.stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_pending_until_finished(self):
        dispatcher = TriggerDispatcher()
        release = asyncio.Event()

        async def blocked():
            await release.wait()

        dispatcher.submit(blocked())
        await asyncio.sleep(0)
        assert dispatcher.pending == 1

        release.set()
        await dispatcher.wait_all()
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_cancelled_task_is_not_a_failure(self):
        dispatcher = TriggerDispatcher()

        async def forever():
            await asyncio.sleep(3600)

        task = dispatcher.submit(forever())
        await asyncio.sleep(0)
        task.cancel()
        await dispatcher.wait_all()

        assert dispatcher.failures == []
        assert dispatcher.pending == 0
