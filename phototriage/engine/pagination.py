"""Paged, de-duplicated category views over the asset source.

A page is built by walking the category's newest-first result set in
fixed-size batches. The next page of a session resumes where the previous
one stopped; any other page starts at ``page_index * page_size``. Identifiers
that are kept, hidden by the deletion queue, or already delivered in the
current session are skipped; the rest are decoded (through the image
cache) until the page is full. Heavy filtering can make a batch yield
nothing, so the walk gives up after ``max_batch_attempts`` batches and
returns a short page rather than scanning the whole source. A short or
even empty page therefore does not mean the source is exhausted; keep
requesting the next page index until one comes back empty with
``exhausted`` set.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Set, Tuple

from PIL import Image

from ..library.image_cache import ImageCache
from ..library.models import AssetRef, AuthorizationStatus, Category, PhotoItem
from ..library.source import AssetSource, DecodeError
from ..store.derived_sets import DerivedSetStore
from .deletion_queue import DeletionQueue

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 48
DEFAULT_MAX_BATCH_ATTEMPTS = 5
DEFAULT_TARGET_SIZE = (1170, 2532)


class PaginationEngine:
    """Serves pages of PhotoItems for one category at a time."""

    def __init__(
        self,
        source: AssetSource,
        store: DerivedSetStore,
        deletion_queue: DeletionQueue,
        image_cache: ImageCache,
        page_size: int = DEFAULT_PAGE_SIZE,
        batch_size: Optional[int] = None,
        max_batch_attempts: int = DEFAULT_MAX_BATCH_ATTEMPTS,
        target_size: Tuple[int, int] = DEFAULT_TARGET_SIZE,
        max_workers: int = 4,
    ):
        """
        Initialize engine.

        Args:
            page_size: Items per page
            batch_size: Source items examined per batch (default: page_size)
            max_batch_attempts: Batches walked per request before returning short
            target_size: Bounding box for decoded bitmaps
            max_workers: Parallel decodes per batch
        """
        self.source = source
        self.store = store
        self.deletion_queue = deletion_queue
        self.image_cache = image_cache
        self.page_size = page_size
        self.batch_size = batch_size or page_size
        self.max_batch_attempts = max_batch_attempts
        self.target_size = target_size
        self.max_workers = max_workers

        self._session_category: Optional[Category] = None
        self._delivered: Set[str] = set()
        # (page index the session expects next, source position to resume at)
        self._resume: Optional[Tuple[int, int]] = None
        self.exhausted = False
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Forget what this session has delivered."""
        with self._lock:
            self._session_category = None
            self._delivered.clear()
            self._resume = None

    @property
    def delivered_ids(self) -> Set[str]:
        with self._lock:
            return set(self._delivered)

    def flagged_ids(self) -> Set[str]:
        """SensitiveSet minus KeptSet minus hidden, computed fresh."""
        return (
            self.store.sensitive_ids()
            - self.store.kept_ids()
            - self.deletion_queue.hidden_ids()
        )

    def resolve(self, category: Category) -> Sequence[AssetRef]:
        """Newest-first result set for a category."""
        if category != Category.FLAGGED:
            return self.source.fetch(category)

        wanted = self.flagged_ids()
        if not wanted:
            return []

        assets = self.source.fetch_by_ids(wanted)
        if self.source.authorization_status() == AuthorizationStatus.AUTHORIZED:
            missing = wanted - {asset.identifier for asset in assets}
            if missing:
                logger.info(f"Purging {len(missing)} flagged assets no longer in the library")
                self.store.remove_sensitive(missing)
        return assets

    def load_page(self, category: Category, page_index: int = 0) -> List[PhotoItem]:
        """
        Build one page for a category.

        Args:
            category: Which view to page through
            page_index: Zero-based page number; page 0 starts a new session

        Returns:
            Up to page_size items in source order, none repeated this session.
            Fewer (even none) when max_batch_attempts ran out first; check
            ``exhausted`` before treating a short page as the end.
        """
        if page_index < 0:
            raise ValueError(f"page_index must be >= 0, got {page_index}")

        if not self.source.authorization_status().can_read:
            self.exhausted = True
            return []

        with self._lock:
            if page_index == 0 or category != self._session_category:
                self._delivered.clear()
                self._resume = None
                self._session_category = category
            excluded = self._delivered | self.store.kept_ids() | self.deletion_queue.hidden_ids()
            resume = self._resume

        assets = self.resolve(category)

        collected: List[PhotoItem] = []
        if resume is not None and resume[0] == page_index:
            cursor = resume[1]
        else:
            cursor = page_index * self.page_size
        stopped_at = cursor
        attempts = 0

        while (
            len(collected) < self.page_size
            and cursor < len(assets)
            and attempts < self.max_batch_attempts
        ):
            attempts += 1
            batch = assets[cursor:cursor + self.batch_size]
            cursor += len(batch)

            positions = []
            candidates = []
            for offset, asset in enumerate(batch):
                if asset.identifier in excluded:
                    continue
                # Duplicates within the result set count once
                excluded.add(asset.identifier)
                positions.append(cursor - len(batch) + offset)
                candidates.append(asset)

            stopped_at = cursor
            for position, (asset, image) in zip(positions, self._decode_all(candidates)):
                if image is None:
                    continue
                collected.append(PhotoItem(asset=asset, image=image))
                if len(collected) >= self.page_size:
                    stopped_at = position + 1
                    break

        self.exhausted = stopped_at >= len(assets)
        with self._lock:
            if self._session_category == category:
                self._delivered.update(item.identifier for item in collected)
                self._resume = (page_index + 1, stopped_at)

        if len(collected) < self.page_size and not self.exhausted:
            logger.info(
                f"Page {page_index} of {category.value} returned short "
                f"({len(collected)}/{self.page_size}) after {attempts} batches"
            )
        else:
            logger.debug(f"Page {page_index} of {category.value}: {len(collected)} items")

        return collected

    def _decode_all(self, assets: List[AssetRef]) -> List[Tuple[AssetRef, Optional[Image.Image]]]:
        if not assets:
            return []
        if self.max_workers <= 1 or len(assets) == 1:
            return [(asset, self.load_image(asset)) for asset in assets]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            images = list(executor.map(self.load_image, assets))
        return list(zip(assets, images))

    def load_image(self, asset: AssetRef, target_size: Optional[Tuple[int, int]] = None) -> Optional[Image.Image]:
        """Cached decode; None (logged) when the asset cannot be decoded."""
        size = target_size or self.target_size
        key = ImageCache.key_for(asset.identifier, size)

        cached = self.image_cache.get(key)
        if cached is not None:
            return cached

        try:
            image = self.source.decode(asset, size)
        except DecodeError as e:
            logger.warning(str(e))
            return None

        self.image_cache.put(key, image)
        return image
