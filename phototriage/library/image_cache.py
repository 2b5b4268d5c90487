"""Bounded in-memory cache of decoded bitmaps."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Optional, Tuple

from PIL import Image

from .image_utils import decoded_cost

logger = logging.getLogger(__name__)

DEFAULT_COST_LIMIT = 120_000_000  # 120MB
DEFAULT_COUNT_LIMIT = 200

CacheKey = Tuple[str, int, int]


class ImageCache:
    """LRU cache keyed by asset identifier, bounded by total cost and entry count.

    Concurrent inserts for the same key are last-write-wins; both are
    decodes of the same bytes.
    """

    def __init__(
        self,
        cost_limit: int = DEFAULT_COST_LIMIT,
        count_limit: int = DEFAULT_COUNT_LIMIT,
    ):
        self.cost_limit = cost_limit
        self.count_limit = count_limit
        self._entries: "OrderedDict[CacheKey, Tuple[Image.Image, int]]" = OrderedDict()
        self._total_cost = 0
        self._lock = threading.Lock()

    @staticmethod
    def key_for(identifier: str, target_size: Tuple[int, int]) -> CacheKey:
        return (identifier, target_size[0], target_size[1])

    def get(self, key: CacheKey) -> Optional[Image.Image]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry[0]

    def put(self, key: CacheKey, image: Image.Image, cost: Optional[int] = None) -> bool:
        """Insert an image; returns False when it alone exceeds the cost limit."""
        cost = decoded_cost(image) if cost is None else cost
        if cost > self.cost_limit:
            logger.debug(f"Not caching {key}: cost {cost} exceeds limit {self.cost_limit}")
            return False

        with self._lock:
            previous = self._entries.pop(key, None)
            if previous is not None:
                self._total_cost -= previous[1]
            self._entries[key] = (image, cost)
            self._total_cost += cost
            self._evict()
        return True

    def _evict(self) -> None:
        while self._entries and (
            self._total_cost > self.cost_limit or len(self._entries) > self.count_limit
        ):
            _, (_, cost) = self._entries.popitem(last=False)
            self._total_cost -= cost

    def remove(self, key: CacheKey) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None:
                self._total_cost -= entry[1]

    def remove_identifier(self, identifier: str) -> None:
        """Drop every cached size of one asset."""
        with self._lock:
            for key in [k for k in self._entries if k[0] == identifier]:
                _, cost = self._entries.pop(key)
                self._total_cost -= cost

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_cost = 0

    @property
    def total_cost(self) -> int:
        return self._total_cost

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries
