"""Tests for the stage reporter."""

import asyncio

import pytest

from fixplan.audit.models import STAGE_NAMES, StageId, StageStatus
from fixplan.audit.stages import StageReporter


class TestStageTable:
    def test_all_pending_in_order(self):
        snapshot = StageReporter().snapshot()
        assert [e.stage_id for e in snapshot] == list(StageId)
        assert all(e.status == StageStatus.PENDING for e in snapshot)
        assert len(snapshot) == 8

    def test_transitions(self):
        reporter = StageReporter()
        reporter.start(StageId.CRAWL)
        assert reporter.status_of(StageId.CRAWL) == StageStatus.RUNNING
        assert reporter.snapshot()[3].message == STAGE_NAMES[StageId.CRAWL]

        reporter.progress(StageId.CRAWL, 150, "3/2")
        assert reporter.snapshot()[3].progress == 100

        reporter.complete(StageId.CRAWL)
        reporter.skip(StageId.PERFORMANCE, "not requested")
        reporter.fail(StageId.SCORE, "boom")
        assert reporter.status_of(StageId.CRAWL) == StageStatus.COMPLETE
        assert reporter.status_of(StageId.PERFORMANCE) == StageStatus.SKIPPED
        assert reporter.snapshot()[-1].error == "boom"
        assert len(reporter.history) == 5


class TestListeners:
    def test_listener_receives_events(self):
        reporter = StageReporter()
        seen = []
        reporter.add_listener(seen.append)
        reporter.start(StageId.VALIDATE)
        reporter.complete(StageId.VALIDATE)
        assert [(e.stage_id, e.status) for e in seen] == [
            (StageId.VALIDATE, StageStatus.RUNNING),
            (StageId.VALIDATE, StageStatus.COMPLETE),
        ]

    def test_failing_listener_does_not_stop_others(self):
        reporter = StageReporter()
        seen = []

        def broken(event):
            raise RuntimeError("listener down")

        reporter.add_listener(broken)
        reporter.add_listener(seen.append)
        reporter.start(StageId.HOMEPAGE)
        assert len(seen) == 1
        assert reporter.status_of(StageId.HOMEPAGE) == StageStatus.RUNNING


@pytest.mark.asyncio
class TestStream:
    async def test_stream_ends_on_close(self):
        reporter = StageReporter()

        async def collect():
            return [e async for e in reporter.stream()]

        task = asyncio.ensure_future(collect())
        await asyncio.sleep(0)
        reporter.start(StageId.VALIDATE)
        reporter.complete(StageId.VALIDATE)
        reporter.close()
        events = await asyncio.wait_for(task, timeout=2)
        assert [e.status for e in events] == [StageStatus.RUNNING, StageStatus.COMPLETE]

    async def test_subscribe_after_close(self):
        reporter = StageReporter()
        reporter.close()
        queue = reporter.subscribe()
        assert await asyncio.wait_for(queue.get(), timeout=1) is None
