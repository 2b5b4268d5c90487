"""Batching buffer between a discard swipe and the irreversible delete."""

import logging
import threading
from typing import List, Set

from ..library.models import DeletionResult
from ..library.source import AssetSource
from ..store.derived_sets import DerivedSetStore

logger = logging.getLogger(__name__)


class DeletionQueue:
    """In-memory ordered set of identifiers waiting to be deleted.

    Anything queued, or reported failed by the last flush, is hidden from
    every view. Nothing here triggers a flush on its own: callers check
    ``flush_due`` after enqueueing and decide.
    """

    def __init__(
        self,
        source: AssetSource,
        store: DerivedSetStore,
        batch_size: int = 10,
        auto_flush: bool = True,
    ):
        self.source = source
        self.store = store
        self.batch_size = batch_size
        self.auto_flush = auto_flush
        self._queue: dict = {}  # insertion-ordered set
        self._failed: dict = {}
        self._lock = threading.Lock()

    def enqueue(self, identifier: str) -> bool:
        """Queue an identifier; returns False if it was already queued."""
        with self._lock:
            if identifier in self._queue:
                return False
            self._failed.pop(identifier, None)
            self._queue[identifier] = None
            return True

    def __contains__(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._queue

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def queued_ids(self) -> List[str]:
        with self._lock:
            return list(self._queue)

    def failed_ids(self) -> List[str]:
        with self._lock:
            return list(self._failed)

    def hidden_ids(self) -> Set[str]:
        """Identifiers that must not appear in pages or counts."""
        with self._lock:
            return set(self._queue) | set(self._failed)

    @property
    def flush_due(self) -> bool:
        return self.auto_flush and len(self) >= self.batch_size

    def clear(self) -> List[str]:
        """Discard the queue (and failed leftovers) without deleting anything."""
        with self._lock:
            restored = list(self._queue) + list(self._failed)
            self._queue.clear()
            self._failed.clear()
        logger.info(f"Deletion queue cleared, {len(restored)} assets restored")
        return restored

    def retry_failed(self) -> int:
        """Move identifiers from the last failed flush back into the queue."""
        with self._lock:
            retried = list(self._failed)
            for identifier in retried:
                self._queue[identifier] = None
            self._failed.clear()
        return len(retried)

    def flush(self) -> DeletionResult:
        """Delete everything queued at call time as one external batch."""
        if not self.source.authorization_status().can_read:
            logger.warning("Flush skipped: library not accessible")
            return DeletionResult()

        with self._lock:
            batch = list(self._queue)
        if not batch:
            return DeletionResult()

        assets = list(self.source.fetch_by_ids(batch))
        found = {asset.identifier for asset in assets}
        already_gone = [identifier for identifier in batch if identifier not in found]

        try:
            outcome = self.source.delete(assets) if assets else None
        except Exception as e:
            logger.error(f"Batch delete of {len(assets)} assets failed: {e}")
            removed = already_gone
            failed = sorted(found)
            error = str(e)
        else:
            removed = already_gone + (outcome.succeeded if outcome else [])
            failed = outcome.failed if outcome else []
            error = outcome.error if outcome else None

        with self._lock:
            for identifier in removed:
                self._queue.pop(identifier, None)
            for identifier in failed:
                self._queue.pop(identifier, None)
                self._failed[identifier] = None

        persisted = self.store.remove_sensitive(removed)

        logger.info(f"Flushed deletion queue: {len(removed)} removed, {len(failed)} failed")
        return DeletionResult(
            removed_count=len(removed),
            failed_identifiers=failed,
            error=error,
            persisted=persisted,
        )
