"""
Unit Tests for BackgroundTaskRunner

Tests fire-and-forget scheduling, failure accounting and shutdown.
"""

import asyncio

import pytest

from techtrend_cache.core.background import BackgroundTaskRunner
from techtrend_cache.core.exceptions import CacheConnectionError
from techtrend_cache.core.resilience.retry import create_retry_decorator


@pytest.mark.unit
class TestBackgroundTaskRunner:
    async def test_spawned_task_runs_and_is_counted(self):
        runner = BackgroundTaskRunner(name="test")
        done = []

        async def work():
            done.append(1)

        runner.spawn(work(), name="work")
        await runner.drain()

        assert done == [1]
        assert runner.get_stats() == {"pending": 0, "completed": 1, "failed": 0}

    async def test_failure_is_counted_not_raised(self):
        runner = BackgroundTaskRunner(name="test")

        async def boom():
            raise RuntimeError("l2 write failed")

        runner.spawn(boom(), name="boom")
        await runner.drain()

        assert runner.get_stats()["failed"] == 1

    async def test_shutdown_cancels_slow_tasks(self):
        runner = BackgroundTaskRunner(name="test")
        task = runner.spawn(asyncio.sleep(10), name="slow")

        await runner.shutdown(timeout=0.05)

        assert task.cancelled()
        assert runner.pending == 0


@pytest.mark.unit
class TestRetryDecorator:
    async def test_retries_connection_errors_then_succeeds(self):
        attempts = []

        @create_retry_decorator(max_attempts=3, base_delay=0.01, max_delay=0.02)
        async def connect():
            attempts.append(1)
            if len(attempts) < 3:
                raise CacheConnectionError("refused")
            return "connected"

        assert await connect() == "connected"
        assert len(attempts) == 3

    async def test_gives_up_and_reraises(self):
        @create_retry_decorator(max_attempts=2, base_delay=0.01, max_delay=0.02)
        async def connect():
            raise CacheConnectionError("refused")

        with pytest.raises(CacheConnectionError):
            await connect()

    async def test_other_errors_are_not_retried(self):
        attempts = []

        @create_retry_decorator(max_attempts=3, base_delay=0.01)
        async def connect():
            attempts.append(1)
            raise ValueError("bad url")

        with pytest.raises(ValueError):
            await connect()
        assert len(attempts) == 1
