"""
Client-side result cache: the last processed item set under a namespaced key.
"""

import time
from typing import Callable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .kv_store import KeyValueStore
from ..models import ClientCachePayload, ProcessedItem
from ..utils.exceptions import StorageError
from ..utils.logging import get_logger_for_component


class ClientCache:
    """Processed-item cache valid for ``ttl_seconds`` after it was written.

    Corrupt or expired entries read as a miss and write failures are logged
    and dropped; the cache never fails a pipeline run.
    """

    def __init__(self, store: KeyValueStore, key: str = "livesignals:hybrid-feed-cache:v3",
                 ttl_seconds: float = 3600, clock: Callable[[], float] = time.time):
        self.store = store
        self.key = key
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.logger = get_logger_for_component("client_cache")

    def read(self) -> Optional[List[ProcessedItem]]:
        try:
            raw = self.store.get(self.key)
        except StorageError as e:
            self.logger.warning(f"Client cache read failed: {e}")
            return None
        if not raw:
            return None

        try:
            payload = ClientCachePayload.model_validate_json(raw)
        except PydanticValidationError as e:
            self.logger.warning(f"Discarding corrupt client cache entry: {e.error_count()} errors")
            return None

        if not payload.is_fresh(self._clock(), self.ttl_seconds):
            return None
        return payload.items

    def write(self, items: List[ProcessedItem]) -> None:
        payload = ClientCachePayload(timestamp=self._clock(), items=items)
        try:
            # Entries expire in the store as well so stale payloads are evicted.
            self.store.put(
                self.key,
                payload.model_dump_json(by_alias=True, exclude_none=True),
                ttl_seconds=self.ttl_seconds,
            )
        except StorageError as e:
            self.logger.warning(f"Client cache write failed: {e}")

    def clear(self) -> None:
        try:
            self.store.delete(self.key)
        except StorageError as e:
            self.logger.warning(f"Client cache clear failed: {e}")
