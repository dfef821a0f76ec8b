"""
Shared plumbing for per-user status loaders.

A factory owns one TwoLayerCacheManager (process-wide) and hands out a
fresh DataLoader per user and request. Each loader batch:

1. Maps article ids to ``{user_id}:{article_id}`` cache keys
2. Resolves them through the two-layer manager (L1 -> L2 -> one DB query)
3. Reports latency, queue wait and hit counts to the query kind's optimizer

Values are cached as JSON-mode dicts and turned back into models on the
way out, so L1, L2 and DB results look identical to callers.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from techtrend_cache.dataloader.batch_optimizer import BatchOptimizer
from techtrend_cache.dataloader.loader import BatchContext, DataLoader
from techtrend_cache.infrastructure.cache.two_layer_cache import (
    BatchLoadReport,
    CacheKeyBuilder,
    TwoLayerCacheManager,
)

M = TypeVar("M", bound=BaseModel)


class UserStatusLoaderFactory(ABC, Generic[M]):
    model: type[M]
    loader_name: str

    def __init__(
        self,
        manager: TwoLayerCacheManager,
        optimizer: BatchOptimizer,
        batch_delay: float = 0.001,
    ):
        self.manager = manager
        self.optimizer = optimizer
        self.batch_delay = batch_delay

    @staticmethod
    def cache_key(user_id: str, article_id: str) -> str:
        return CacheKeyBuilder.user_article(user_id, article_id)

    @abstractmethod
    async def fetch_statuses(self, user_id: str, article_ids: list[str]) -> dict[str, M]:
        """Load statuses for every id in ``article_ids`` from the repository."""

    def create(self, user_id: str, max_batch_size: int | None = None) -> DataLoader[str, M]:
        """
        Build a loader for one user.

        Args:
            user_id: Owner of the statuses
            max_batch_size: Fixed batch size; defaults to the optimizer's
                live recommendation
        """

        async def batch_fn(article_ids: list[str], context: BatchContext) -> list[M]:
            return await self._load_batch(user_id, article_ids, context)

        return DataLoader(
            batch_fn,
            max_batch_size=max_batch_size or self.optimizer.get_batch_size,
            batch_delay=self.batch_delay,
            name=f"{self.loader_name}:{user_id}",
        )

    async def _load_batch(
        self, user_id: str, article_ids: Sequence[str], context: BatchContext
    ) -> list[M]:
        started = time.perf_counter()
        key_to_id = {self.cache_key(user_id, article_id): article_id for article_id in article_ids}
        keys = list(key_to_id)
        reports: list[BatchLoadReport] = []

        async def db_fetcher(missing_keys: list[str]) -> dict[str, Any]:
            missing_ids = [key_to_id[key] for key in missing_keys]
            statuses = await self.fetch_statuses(user_id, missing_ids)
            return {
                self.cache_key(user_id, article_id): statuses[article_id].model_dump(mode="json")
                for article_id in missing_ids
                if article_id in statuses
            }

        values = await self.manager.batch_load(
            keys,
            db_fetcher,
            log_prefix=f"{self.loader_name}:{user_id}",
            stats_callback=reports.append,
        )

        report = reports[0]
        self.optimizer.record_metrics(
            batch_size=len(keys),
            latency=(time.perf_counter() - started) * 1000,
            queue_wait=context.queue_wait_ms,
            item_count=len(keys),
            cache_hits=report.cache_hits,
            cache_misses=report.db_keys,
        )

        return [
            self._to_model(article_id, value) for article_id, value in zip(article_ids, values)
        ]

    def _to_model(self, article_id: str, value: Any) -> M:
        if value is None:
            return self.model(article_id=article_id)
        if isinstance(value, self.model):
            return value
        return self.model.model_validate(value)

    async def invalidate(self, user_id: str, article_id: str) -> None:
        await self.manager.invalidate(self.cache_key(user_id, article_id))

    async def invalidate_user(self, user_id: str) -> int:
        return await self.manager.invalidate_pattern(CacheKeyBuilder.user(user_id))

    async def invalidate_article(self, article_id: str) -> int:
        """Drop the cached status of ``article_id`` for every user."""
        return await self.manager.invalidate_pattern(CacheKeyBuilder.article(article_id))

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.manager.get_stats(),
            "memory_cache": self.manager.l1.get_stats(),
            "optimizer": self.optimizer.get_stats(),
        }

    def reset_stats(self) -> None:
        self.manager.reset_stats()
