"""
Unit Tests for CacheWarmer

Covers the startup lock, per-category failure isolation, manual warming
and the interval bookkeeping behind periodic warming.
"""

import asyncio

import pytest

from techtrend_cache.caches import SearchCache, StatsCache, TrendsCache
from techtrend_cache.config.constants import KEYWORDS_TRENDING_KEY, OVERALL_STATS_KEY, WARMING_STARTUP_LOCK
from techtrend_cache.infrastructure.cache.distributed_lock import DistributedLock
from techtrend_cache.services.cache_warmer import CacheWarmer, WarmingTarget
from tests.test_fixtures.cache_factory import FakeWarmingDataSource


@pytest.fixture
def lock(in_memory_redis_client):
    return DistributedLock(in_memory_redis_client, retry_interval=0.01, max_wait_time=0.1)


@pytest.fixture
def data_source():
    return FakeWarmingDataSource()


def make_warmer(client, lock, data_source, settings):
    return CacheWarmer(
        StatsCache(client, settings=settings),
        TrendsCache(client, settings=settings),
        SearchCache(client, settings=settings),
        lock,
        data_source,
        settings=settings,
    )


@pytest.fixture
def warmer(in_memory_redis_client, lock, data_source, test_settings):
    return make_warmer(in_memory_redis_client, lock, data_source, test_settings)


@pytest.mark.unit
class TestStartupWarming:
    async def test_warms_every_category_in_priority_order(self, warmer, data_source, lock):
        assert await warmer.warm_on_startup() is True

        categories = [call[0] for call in data_source.calls]
        assert categories == ["stats"] + ["trends"] * 3 + ["keywords"] + ["search"] * 5
        assert await warmer.stats_cache.get(OVERALL_STATS_KEY) == {"article_count": 120, "source_count": 8}
        assert await warmer.trends_cache.get(KEYWORDS_TRENDING_KEY) is not None
        assert not await lock.is_locked(WARMING_STARTUP_LOCK)

    async def test_trend_and_search_keys_match_request_keys(self, warmer):
        await warmer.warm_on_startup()

        trend_key = warmer.trends_cache.generate_key({"days": 30})
        search_key = warmer.search_cache.generate_key({"q": "React", "limit": 20})

        assert (await warmer.trends_cache.get(trend_key))["period"]["days"] == 30
        assert (await warmer.search_cache.get(search_key))["query"]["q"] == "react"

    async def test_skipped_when_another_instance_holds_the_lock(self, warmer, data_source, lock):
        await lock.acquire(WARMING_STARTUP_LOCK, ttl=300)

        assert await warmer.warm_on_startup() is False
        assert data_source.calls == []

    async def test_failing_category_does_not_stop_the_others(
        self, in_memory_redis_client, lock, test_settings
    ):
        source = FakeWarmingDataSource(fail={"trends"})
        warmer = make_warmer(in_memory_redis_client, lock, source, test_settings)

        assert await warmer.warm_on_startup() is True

        assert await warmer.stats_cache.get(OVERALL_STATS_KEY) is not None
        assert await warmer.trends_cache.get(KEYWORDS_TRENDING_KEY) is not None
        assert not await lock.is_locked(WARMING_STARTUP_LOCK)


@pytest.mark.unit
class TestManualWarming:
    async def test_reports_outcome_per_category(self, in_memory_redis_client, lock, test_settings):
        warmer = make_warmer(in_memory_redis_client, lock, FakeWarmingDataSource(fail={"search"}), test_settings)

        outcome = await warmer.warm_manual()

        assert outcome == {"stats": True, "trends": True, "keywords": True, "search": False}

    async def test_unknown_targets_are_ignored(self, warmer, data_source):
        assert await warmer.warm_manual(["keywords", "bogus"]) == {"keywords": True}
        assert data_source.calls == [("keywords",)]

    async def test_last_run_is_recorded(self, warmer):
        await warmer.warm_manual(["stats"])

        status = warmer.get_status()
        assert status["config"]["stats"]["last_run"] is not None
        assert status["config"]["trends"]["last_run"] is None
        assert status["is_warming"] is False


@pytest.mark.unit
class TestPeriodicWarming:
    def test_target_is_due(self):
        target = WarmingTarget("search", interval=600, priority=4)
        assert target.is_due(0.0)
        target.last_run = 1000.0
        assert not target.is_due(1599.0)
        assert target.is_due(1600.0)
        target.enabled = False
        assert not target.is_due(5000.0)

    async def test_only_elapsed_targets_run(self, warmer):
        assert await warmer.run_due_targets(now=1000.0) == ["stats", "trends", "keywords", "search"]
        assert await warmer.run_due_targets(now=1300.0) == []
        assert await warmer.run_due_targets(now=1600.0) == ["search"]
        assert await warmer.run_due_targets(now=2800.0) == ["trends", "keywords", "search"]
        assert await warmer.run_due_targets(now=4600.0) == ["stats", "trends", "keywords", "search"]

    async def test_loop_start_and_stop(self, warmer, data_source):
        warmer.loop_interval = 0.01

        warmer.start_periodic_warming()
        warmer.start_periodic_warming()
        assert warmer.get_status()["periodic_warming_active"] is True
        await asyncio.sleep(0.1)
        await warmer.stop_periodic_warming()

        assert warmer.periodic_active is False
        assert data_source.calls
        await warmer.stop_periodic_warming()
