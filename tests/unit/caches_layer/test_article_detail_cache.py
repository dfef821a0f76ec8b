"""
Unit Tests for ArticleDetailCache
"""

from datetime import datetime

import pytest

from techtrend_cache.caches.article_detail_cache import ArticleDetailCache, restore_dates
from tests.test_fixtures.cache_factory import CacheTestFactory, FakeArticleRepository


@pytest.fixture
def repository():
    make = CacheTestFactory.article
    return FakeArticleRepository(
        {
            "a1": make("a1", ["t1", "t2"], day=1),
            "a2": make("a2", ["t1", "t2"], day=2),
            "a3": make("a3", ["t2"], day=3),
            "a4": make("a4", ["t1"], quality=10, day=4),
            "a5": make("a5", ["t9"], day=5),
        }
    )


@pytest.fixture
def cache(in_memory_redis_client, repository, test_settings):
    return ArticleDetailCache(in_memory_redis_client, repository, settings=test_settings)


@pytest.mark.unit
class TestArticleDetail:
    async def test_cached_detail_matches_uncached(self, cache, repository):
        first = await cache.get_article_with_relations("a1")
        second = await cache.get_article_with_relations("a1")

        assert repository.detail_calls == 1
        assert second == first
        assert isinstance(second["published_at"], datetime)
        assert isinstance(second["source"]["created_at"], datetime)
        assert isinstance(second["tags"][0]["created_at"], datetime)

    async def test_missing_article_is_not_cached(self, cache, repository):
        assert await cache.get_article_with_relations("nope") is None
        assert await cache.get_article_with_relations("nope") is None
        assert repository.detail_calls == 2

    def test_keys(self):
        assert ArticleDetailCache.detail_key("a1") == "article:a1:with-relations"
        assert ArticleDetailCache.related_key("a1", ["t2", "t1"]) == "related:a1:t1,t2"


@pytest.mark.unit
class TestRelatedArticles:
    async def test_ranked_by_shared_tags_then_date(self, cache, repository):
        related = await cache.get_related_articles("a1", ["t2", "t1"])

        assert [a["id"] for a in related] == ["a2", "a3"]
        assert repository.related_calls == [
            {"article_id": "a1", "tag_ids": ["t1", "t2"], "min_quality": 30, "limit": 10}
        ]

    async def test_tag_order_shares_cache_entry(self, cache, repository):
        first = await cache.get_related_articles("a1", ["t2", "t1"])
        second = await cache.get_related_articles("a1", ["t1", "t2"])

        assert second == first
        assert len(repository.related_calls) == 1

    async def test_no_tags_means_no_io(self, cache, repository, in_memory_redis_client):
        assert await cache.get_related_articles("a1", []) == []
        assert repository.related_calls == []
        assert in_memory_redis_client.calls == []

    async def test_invalidate_article(self, cache, repository):
        await cache.get_article_with_relations("a1")
        await cache.get_related_articles("a1", ["t1"])
        await cache.get_related_articles("a1", ["t1", "t2"])

        assert await cache.invalidate_article("a1") == 3

        await cache.get_article_with_relations("a1")
        assert repository.detail_calls == 2


@pytest.mark.unit
class TestRestoreDates:
    def test_leaves_non_dates_alone(self):
        restored = restore_dates({"published_at": "not a date", "title": "2024-05-01", "tags": ["raw"]})
        assert restored == {"published_at": "not a date", "title": "2024-05-01", "tags": ["raw"]}

    def test_does_not_mutate_input(self):
        article = {"published_at": "2024-05-01T09:00:00+00:00"}
        restore_dates(article)
        assert article["published_at"] == "2024-05-01T09:00:00+00:00"
