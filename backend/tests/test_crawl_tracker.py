"""
Tests for CrawlJobTracker
End-to-end flows over a fake backend: start, completion, failure, stop and restart
"""
import asyncio
import pytest

from crawljobs.core.errors import CrawlerApiError, ErrorCode, LaunchError
from crawljobs.models.jobs import CollectRangeParams, JobKind, Lifecycle
from crawljobs.services.crawl_tracker import CrawlJobTracker
from fakes import FakeCrawlerBackend, snapshot


class TestCrawlJobTracker:
    """Test the job tracker facade"""

    def setup_method(self):
        self.backend = FakeCrawlerBackend()
        self.completed = []
        self.errors = []
        self.tracker = CrawlJobTracker(
            JobKind.METADATA,
            self.backend,
            poll_interval=0.01,
            on_complete=self.completed.append,
            on_error=self.errors.append,
        )

    def test_initial_state(self):
        """Test that a new tracker is idle"""
        assert self.tracker.state.lifecycle == Lifecycle.IDLE
        assert not self.tracker.is_loading

    def test_start_runs_to_completion(self):
        """Test that a started job is polled until COMPLETED and on_complete fires once"""
        self.backend.status_script = [
            snapshot(progress=40),
            snapshot(status="COMPLETED", progress=100, success_count=10),
        ]

        async def scenario():
            started = await self.tracker.start({"start": 1, "end": 10})
            final = await self.tracker.wait(timeout=2.0)
            return started, final

        started, final = asyncio.run(scenario())

        assert started.lifecycle == Lifecycle.RUNNING
        assert started.job_id == "job-1"
        assert final.lifecycle == Lifecycle.COMPLETED
        assert self.tracker.state.lifecycle == Lifecycle.COMPLETED
        assert len(self.completed) == 1
        assert self.errors == []

    def test_start_while_running_is_noop(self):
        """Test that a second start during a running job does nothing"""
        async def scenario():
            await self.tracker.start({"start": 1, "end": 10})
            state = await self.tracker.start({"start": 50, "end": 60})
            self.tracker.stop()
            return state

        state = asyncio.run(scenario())

        assert len(self.backend.start_calls) == 1
        assert state.job_id == "job-1"

    def test_start_failure_raises_and_notifies(self):
        """Test that a rejected start fails the state, fires on_error once and raises"""
        self.backend.start_error = CrawlerApiError("no worker available", status_code=503)

        async def scenario():
            with pytest.raises(LaunchError) as exc_info:
                await self.tracker.start({"start": 1, "end": 10})
            return exc_info.value

        error = asyncio.run(scenario())

        assert error.code == ErrorCode.WORKER_UNAVAILABLE
        assert self.tracker.state.lifecycle == Lifecycle.FAILED
        assert self.tracker.state.error_code == ErrorCode.WORKER_UNAVAILABLE.value
        assert self.errors == [error]

    def test_stop_resets_active_job(self):
        """Test that stop discards a running job and polling ends"""
        async def scenario():
            await self.tracker.start({"start": 1, "end": 10})
            await asyncio.sleep(0.03)
            self.tracker.stop()
            calls = len(self.backend.status_calls)
            await asyncio.sleep(0.05)
            return calls

        calls_at_stop = asyncio.run(scenario())

        assert self.tracker.state.lifecycle == Lifecycle.IDLE
        assert len(self.backend.status_calls) == calls_at_stop, "No queries after stop"

    def test_stop_is_idempotent(self):
        """Test that stop before start and repeated stops are harmless"""
        self.tracker.stop()
        self.tracker.stop()

        assert self.tracker.state.lifecycle == Lifecycle.IDLE

    def test_stop_keeps_finished_job(self):
        """Test that stopping after completion keeps the final state for inspection"""
        self.backend.status_script = [snapshot(status="COMPLETED", progress=100)]

        async def scenario():
            await self.tracker.start({"start": 1, "end": 10})
            await self.tracker.wait(timeout=2.0)
            self.tracker.stop()

        asyncio.run(scenario())

        assert self.tracker.state.lifecycle == Lifecycle.COMPLETED

    def test_stop_during_launch_discards_result(self):
        """Test that a start answer arriving after stop is ignored"""
        self.backend.start_gate = asyncio.Event()

        async def scenario():
            task = asyncio.create_task(self.tracker.start({"start": 1, "end": 10}))
            await asyncio.sleep(0)
            loading = self.tracker.is_loading
            self.tracker.stop()
            self.backend.start_gate.set()
            await task
            await asyncio.sleep(0.05)
            return loading

        loading = asyncio.run(scenario())

        assert loading
        assert self.tracker.state.lifecycle == Lifecycle.IDLE
        assert self.backend.status_calls == []

    def test_restart_resumes_after_failure(self):
        """Test that restart after a failed job resumes right after the checkpoint"""
        self.backend.status_script = [
            snapshot(status="FAILED", error_message="crawler blocked",
                     last_checkpoint_id=500, range_start=1, range_end=1000),
        ]

        async def scenario():
            await self.tracker.start({"start": 1, "end": 1000})
            failed = await self.tracker.wait(timeout=2.0)
            restarted = await self.tracker.restart()
            self.tracker.stop()
            return failed, restarted

        failed, restarted = asyncio.run(scenario())

        assert failed.lifecycle == Lifecycle.FAILED
        assert "500" in failed.error_message
        assert len(self.errors) == 1
        assert self.errors[0].checkpoint == 500
        assert self.backend.start_calls[1] == (JobKind.METADATA, CollectRangeParams(start=501, end=1000))
        assert restarted.lifecycle == Lifecycle.RUNNING
        assert restarted.job_id == "job-2"

    def test_callbacks_registered_later(self):
        """Test that callbacks added after construction are called and errors in them are contained"""
        tracker = CrawlJobTracker(JobKind.DETAILS, self.backend, poll_interval=0.01)
        seen = []

        @tracker.on_complete
        def broken(state):
            raise RuntimeError("callback failure")

        tracker.on_complete(seen.append)
        self.backend.status_script = [snapshot(status="COMPLETED", progress=100)]

        async def scenario():
            await tracker.start()
            return await tracker.wait(timeout=2.0)

        final = asyncio.run(scenario())

        assert final.lifecycle == Lifecycle.COMPLETED
        assert len(seen) == 1
