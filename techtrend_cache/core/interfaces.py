"""
Data access contracts.

The cache core never talks to the database itself. Loaders, domain caches
and the warmer receive implementations of these interfaces from the
application, which keeps them testable with in-memory fakes.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ViewRecord(BaseModel):
    """One persisted article view of a user."""

    article_id: str
    viewed_at: datetime | None = None
    is_read: bool = False
    read_at: datetime | None = None


class FavoriteRepository(ABC):
    @abstractmethod
    async def find_favorites(self, user_id: str, article_ids: Sequence[str]) -> dict[str, datetime]:
        """
        Return ``{article_id: favorited_at}`` for the articles the user
        has favorited; articles that are not favorites are omitted.
        """
        pass


class ViewRepository(ABC):
    @abstractmethod
    async def find_views(self, user_id: str, article_ids: Sequence[str]) -> dict[str, ViewRecord]:
        """Return the user's view rows for ``article_ids``, keyed by article id."""
        pass

    @abstractmethod
    async def upsert_view(
        self,
        user_id: str,
        article_id: str,
        is_read: bool | None = None,
        read_at: datetime | None = None,
        viewed_at: datetime | None = None,
    ) -> ViewRecord:
        """Create or update the view row and return it as stored."""
        pass


class ArticleRepository(ABC):
    @abstractmethod
    async def get_article_with_relations(self, article_id: str) -> dict[str, Any] | None:
        """Article with its ``source`` and ``tags`` embedded, or None."""
        pass

    @abstractmethod
    async def find_related_articles(
        self, article_id: str, tag_ids: Sequence[str], min_quality: int = 30, limit: int = 10
    ) -> list[dict[str, Any]]:
        """
        Articles sharing at least one of ``tag_ids``, excluding ``article_id``,
        with quality score >= ``min_quality``; ordered by shared-tag count
        then publish date (newest first), at most ``limit`` rows.
        """
        pass


class WarmingDataSource(ABC):
    """Queries the cache warmer runs to pre-populate domain caches."""

    @abstractmethod
    async def fetch_stats(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_trends(self, days: int, tag: str | None = None) -> dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_trending_keywords(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_search_results(self, query: str, limit: int = 20) -> dict[str, Any]:
        pass
