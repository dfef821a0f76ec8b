import re
from typing import Any

from techtrend_cache.caches.base import DomainCache
from techtrend_cache.config.constants import NAMESPACE_SEARCH

_WHITESPACE = re.compile(r"\s+")

QUERY_PARAM_NAMES = ("q", "query", "search")


def normalize_query(query: str) -> str:
    """Trim, lower-case and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", query.strip().lower())


class SearchCache(DomainCache):
    """
    Full-text search results. Default TTL 5 minutes.

    Query strings are normalised before hashing, so "  React  Hooks" and
    "react hooks" share one entry.
    """

    namespace_suffix = NAMESPACE_SEARCH
    key_prefix = "search"
    ttl_setting = "CACHE_SEARCH_TTL"

    def generate_key(self, params: dict[str, Any]) -> str:
        normalized = dict(params)
        for name in QUERY_PARAM_NAMES:
            if isinstance(normalized.get(name), str):
                normalized[name] = normalize_query(normalized[name])
        return super().generate_key(normalized)

    def get_search_stats(self) -> dict[str, Any]:
        return {**self.get_stats(), "namespace": self.namespace, "ttl": self.default_ttl}
