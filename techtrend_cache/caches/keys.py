"""
Deterministic cache keys for parameterised queries.

Two requests that differ only in parameter order, or in parameters left
unset (None), must map to the same key.
"""

import hashlib
from typing import Any

import orjson

from techtrend_cache.config.constants import KEY_HASH_LENGTH


def normalize_params(params: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in sorted(params.items()) if value is not None}


def hash_params(params: dict[str, Any]) -> str:
    """First KEY_HASH_LENGTH hex chars of SHA-256 over the normalised params."""
    payload = orjson.dumps(
        normalize_params(params), option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS
    )
    return hashlib.sha256(payload).hexdigest()[:KEY_HASH_LENGTH]


def params_key(prefix: str, params: dict[str, Any]) -> str:
    return f"{prefix}:{hash_params(params)}"
