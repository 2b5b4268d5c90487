"""Per-category counts, recomputed on demand."""

import logging
from typing import Optional

from ..library.models import Category, MediaCounts
from ..library.source import AssetSource
from ..store.derived_sets import DerivedSetStore
from .deletion_queue import DeletionQueue

logger = logging.getLogger(__name__)

SOURCE_CATEGORIES = (Category.PHOTOS, Category.SCREENSHOTS, Category.VIDEOS)


class CountsAggregator:
    """Counts that exclude kept and hidden identifiers.

    With nothing kept, count-only queries are enough and the few hidden
    identifiers are resolved and subtracted individually. Once anything
    has been kept, every category is enumerated and tested for
    membership, which costs O(library size).
    """

    def __init__(self, source: AssetSource, store: DerivedSetStore, deletion_queue: DeletionQueue):
        self.source = source
        self.store = store
        self.deletion_queue = deletion_queue
        self.last_strategy: Optional[str] = None

    def get_counts(self) -> MediaCounts:
        counts = MediaCounts()
        if not self.source.authorization_status().can_read:
            return counts

        kept = self.store.kept_ids()
        hidden = self.deletion_queue.hidden_ids()

        if not kept:
            self.last_strategy = "count"
            for category in SOURCE_CATEGORIES:
                setattr(counts, category.value, self.source.count(category))
            if hidden:
                for asset in self.source.fetch_by_ids(hidden):
                    counts.decrement(asset.category())
        else:
            self.last_strategy = "enumerate"
            excluded = kept | hidden
            for category in SOURCE_CATEGORIES:
                total = sum(
                    1 for asset in self.source.fetch(category)
                    if asset.identifier not in excluded
                )
                setattr(counts, category.value, total)

        counts.flagged = len(self.store.sensitive_ids() - kept - hidden)

        logger.debug(f"Counts ({self.last_strategy}): {counts.to_dict()}")
        return counts
