"""
Unit Tests for CacheInvalidator

Seeds raw keys into the in-memory Redis and checks which survive each hook.
"""

import pytest

from techtrend_cache.caches import (
    CacheInvalidator,
    LayeredCache,
    SearchCache,
    StatsCache,
    TagCache,
)
from techtrend_cache.dataloader.batch_optimizer import BatchOptimizer
from techtrend_cache.dataloader.favorite_loader import FavoriteLoaderFactory
from tests.test_fixtures.cache_factory import CacheTestFactory, FakeFavoriteRepository

NS = "@techtrend/cache"


def seed(client, *keys):
    for key in keys:
        client.data[key] = '"cached"'


def remaining(client):
    return set(client.data)


@pytest.fixture
def caches(in_memory_redis_client, test_settings):
    return {
        "tag_cache": TagCache(in_memory_redis_client, settings=test_settings),
        "stats_cache": StatsCache(in_memory_redis_client, settings=test_settings),
        "search_cache": SearchCache(in_memory_redis_client, settings=test_settings),
        "layered_cache": LayeredCache(in_memory_redis_client, test_settings),
    }


@pytest.fixture
def invalidator(in_memory_redis_client, caches, test_settings):
    return CacheInvalidator(in_memory_redis_client, settings=test_settings, **caches)


@pytest.mark.unit
class TestArticleHooks:
    async def test_article_created(self, invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:articles:page:1",
            f"{NS}:tagcloud:all",
            f"{NS}:api:articles:basic:page:1",
            f"{NS}:api:lightweight:articles:basic:page:1",
            f"{NS}:l1:public:articles:basic:category:all",
            f"{NS}:trends:list:category:tech:page:1",
            f"{NS}:filters:source:s1:list",
            f"{NS}:stats:overall-stats",
            "other-app:articles:page:1",
        )

        assert await invalidator.on_article_created("a9", category="tech", source_id="s1") is True

        assert remaining(in_memory_redis_client) == {f"{NS}:stats:overall-stats", "other-app:articles:page:1"}

    async def test_text_change_clears_search_but_not_listings(self, invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:related:related:a1:t1",
            f"{NS}:related:related:a2:t1",
            f"{NS}:article-detail:article:a1:with-relations",
            f"{NS}:favorites:favorite:u1:a1",
            f"{NS}:l3:search:search:react",
            f"{NS}:search:search:abc",
            f"{NS}:l1:public:articles:basic:category:all",
        )

        assert await invalidator.on_article_updated("a1", {"title"}) is True

        assert remaining(in_memory_redis_client) == {
            f"{NS}:related:related:a2:t1",
            f"{NS}:l1:public:articles:basic:category:all",
        }

    async def test_category_change_clears_listings(self, invalidator, in_memory_redis_client):
        seed(in_memory_redis_client, f"{NS}:l1:public:articles:basic:category:all", f"{NS}:l3:search:search:x")

        await invalidator.on_article_updated("a1", {"category"})

        assert remaining(in_memory_redis_client) == {f"{NS}:l3:search:search:x"}

    async def test_article_deleted_also_clears_stats(self, invalidator, in_memory_redis_client):
        seed(in_memory_redis_client, f"{NS}:stats:overall-stats", f"{NS}:trends:keywords:trending")

        assert await invalidator.on_article_deleted("a1") is True

        assert remaining(in_memory_redis_client) == {f"{NS}:trends:keywords:trending"}

    async def test_failure_is_logged_and_reported(self, invalidator, in_memory_redis_client, caches, monkeypatch):
        async def broken():
            raise RuntimeError("scan aborted")

        monkeypatch.setattr(caches["search_cache"], "clear", broken)
        seed(in_memory_redis_client, f"{NS}:related:related:a1:t1")

        assert await invalidator.on_article_updated("a1", {"summary"}) is False
        assert remaining(in_memory_redis_client) == set()


@pytest.mark.unit
class TestOtherHooks:
    async def test_tag_updated(self, invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:tags:tag:t1",
            f"{NS}:tags:tag:t1:articles",
            f"{NS}:tags:tags:0123abcd",
            f"{NS}:tags:tag:t2",
            f"{NS}:tagcloud:all",
            f"{NS}:articles:page:1",
        )

        assert await invalidator.on_tag_updated("t1") is True

        assert remaining(in_memory_redis_client) == {f"{NS}:tags:tag:t2"}

    async def test_source_updated(self, invalidator, in_memory_redis_client):
        seed(in_memory_redis_client, f"{NS}:filters:source:s1:list", f"{NS}:filters:source:s2:list")

        await invalidator.on_source_updated("s1")

        assert remaining(in_memory_redis_client) == {f"{NS}:filters:source:s2:list"}

    async def test_bulk_import(self, invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:articles:page:1",
            f"{NS}:related:related:a1:t1",
            f"{NS}:stats:overall-stats",
            f"{NS}:tags:tag:t1",
            f"{NS}:l1:public:articles:basic:x",
            f"{NS}:trends:keywords:trending",
        )

        assert await invalidator.on_bulk_import() is True

        assert remaining(in_memory_redis_client) == {f"{NS}:trends:keywords:trending"}


@pytest.mark.unit
class TestUserInvalidation:
    @pytest.fixture
    def favorite_loaders(self, in_memory_redis_client, task_runner):
        manager = CacheTestFactory.two_layer_manager(in_memory_redis_client, prefix="favorite", task_runner=task_runner)
        return FavoriteLoaderFactory(manager, FakeFavoriteRepository({"u1": {}}), BatchOptimizer())

    @pytest.fixture
    def user_invalidator(self, in_memory_redis_client, caches, test_settings, favorite_loaders):
        return CacheInvalidator(
            in_memory_redis_client, favorite_loaders=favorite_loaders, settings=test_settings, **caches
        )

    async def test_favorites_only(self, user_invalidator, favorite_loaders, in_memory_redis_client):
        await favorite_loaders.create("u1").load_many(["a1", "a2"])
        seed(in_memory_redis_client, f"{NS}:l2:user:user:u1:articles:page:1")

        assert await user_invalidator.invalidate_user_cache("u1", "favorites") is True

        assert favorite_loaders.manager.l1.size == 0
        assert f"{NS}:l2:user:user:u1:articles:page:1" in in_memory_redis_client.data

    async def test_read_status_clears_user_listings(self, user_invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:l2:user:user:u1:articles:page:1",
            f"{NS}:l2:user:user:u2:articles:page:1",
        )

        await user_invalidator.invalidate_user_cache("u1", "read_status")

        assert remaining(in_memory_redis_client) == {f"{NS}:l2:user:user:u2:articles:page:1"}

    async def test_all(self, user_invalidator, in_memory_redis_client):
        seed(
            in_memory_redis_client,
            f"{NS}:l2:user:user:u1:favorites:x",
            f"{NS}:recommendations:u1:top",
            f"{NS}:recommendations:u2:top",
        )

        await user_invalidator.invalidate_user_cache("u1")

        assert remaining(in_memory_redis_client) == {f"{NS}:recommendations:u2:top"}

    async def test_invalidate_all_stays_in_namespace(
        self, user_invalidator, favorite_loaders, in_memory_redis_client, task_runner
    ):
        await favorite_loaders.create("u1").load("a1")
        await task_runner.drain()
        seed(in_memory_redis_client, f"{NS}:stats:overall-stats", "other-app:stats")

        assert await user_invalidator.invalidate_all() is True

        assert remaining(in_memory_redis_client) == {"other-app:stats"}
        assert favorite_loaders.manager.l1.size == 0

    async def test_article_deleted_drops_loader_statuses(
        self, user_invalidator, favorite_loaders, task_runner
    ):
        await favorite_loaders.create("u1").load_many(["a1", "a2"])
        await task_runner.drain()

        assert await user_invalidator.on_article_deleted("a1") is True

        assert favorite_loaders.manager.l1.keys() == ["favorite:u1:a2"]
