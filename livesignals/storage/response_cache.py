"""
Short-lived cache of computed worker listing payloads.
"""

import json
from typing import Any, Dict, Iterable, Optional

from .kv_store import KeyValueStore
from ..utils.exceptions import StorageError
from ..utils.logging import get_logger_for_component


def github_key(repos: Iterable[str]) -> str:
    return "gh:" + "|".join(repos)


def rss_key(urls: Iterable[str]) -> str:
    return "rss:" + "|".join(urls)


class ResponseCache:
    """JSON payload cache; misses and store errors both read as None."""

    def __init__(self, store: Optional[KeyValueStore], ttl_seconds: int = 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger_for_component("response_cache")

    @property
    def cache_control(self) -> str:
        return f"public, s-maxage={self.ttl_seconds}"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        if self.store is None:
            return None
        try:
            raw = self.store.get(key)
        except StorageError:
            return None
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None

    def put(self, key: str, payload: Dict[str, Any]) -> None:
        if self.store is None:
            return
        try:
            self.store.put(key, json.dumps(payload), ttl_seconds=self.ttl_seconds)
        except StorageError as e:
            self.logger.warning(f"Response cache write failed for {key}: {e}")
