"""MediaLibrary: the operations a swipe UI calls.

All foreground mutations (keep, enqueue, flush, album moves) and page
loads are serialized through one lock, so a page always reflects every
mutation that finished before it started. The sensitivity scan runs on
its own thread and only touches the Sensitive set, whose writes are
individually durable.

Category switches are tracked with a monotonically increasing token. A
page request that finishes after a newer switch comes back marked stale
with its items dropped; nothing is cancelled.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from ..classifier.gate import ClassificationGate
from ..classifier.model import make_model_loader
from ..library.image_cache import ImageCache
from ..library.models import (
    AlbumRef,
    AuthorizationStatus,
    Category,
    DeletionResult,
    MediaCounts,
    MutationResult,
    PhotoItem,
)
from ..library.source import AssetSource
from ..store.derived_sets import SCAN_COMPLETED, DerivedSetStore
from ..store.settings import SettingsStore, TriageSettings, get_paths
from .counts import CountsAggregator
from .deletion_queue import DeletionQueue
from .events import LibrarySignals
from .pagination import PaginationEngine
from .scan import ScanCoordinator, ScanState

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    category: Category
    page_index: int
    token: int
    items: List[PhotoItem] = field(default_factory=list)
    stale: bool = False
    exhausted: bool = False


class MediaLibrary:
    """Facade over the pagination, scan, deletion and counts components."""

    def __init__(
        self,
        source: AssetSource,
        store: DerivedSetStore,
        settings: SettingsStore,
        gate: Optional[ClassificationGate] = None,
        signals: Optional[LibrarySignals] = None,
    ):
        self.source = source
        self.store = store
        self.settings = settings
        self.signals = signals or LibrarySignals()

        config = settings.current
        if gate is None:
            gate = ClassificationGate(
                make_model_loader(
                    config.classifier_backend,
                    config.model_name,
                    config.pretrained,
                    config.inference_service_url,
                ),
                threshold_provider=settings.threshold,
            )
        self.gate = gate

        self.image_cache = ImageCache(
            cost_limit=config.image_cache_cost_limit,
            count_limit=config.image_cache_count_limit,
        )
        self.deletion_queue = DeletionQueue(
            source,
            store,
            batch_size=config.batch_deletion_size,
            auto_flush=config.auto_batch_deletions,
        )
        self.pagination = PaginationEngine(
            source,
            store,
            self.deletion_queue,
            self.image_cache,
            page_size=config.page_size,
            max_batch_attempts=config.max_batch_attempts,
            max_workers=config.decode_workers,
        )
        self.counts = CountsAggregator(source, store, self.deletion_queue)
        self.scanner = ScanCoordinator(source, store, self.gate, self.signals)

        self._lock = threading.RLock()
        self._token = 0
        self._token_lock = threading.Lock()
        self._bound = False

    @classmethod
    def open(
        cls,
        source: AssetSource,
        data_dir: Optional[Path] = None,
        gate: Optional[ClassificationGate] = None,
    ) -> "MediaLibrary":
        """Open the store and settings under a data directory."""
        paths = get_paths(data_dir)
        settings = SettingsStore(paths.settings_file)
        settings.load()
        store = DerivedSetStore(paths.database)
        return cls(source, store, settings, gate=gate)

    def bind(self) -> bool:
        """First context binding: kicks off the scan if it is not already done."""
        with self._lock:
            if self._bound:
                return False
            self._bound = True
        status = self.source.request_authorization()
        logger.info(f"Library authorization: {status.value}")
        if not status.can_read:
            return False
        return self.scanner.start_if_needed()

    def close(self) -> None:
        self.scanner.cancel()
        self.scanner.wait(timeout=10.0)
        self.store.close()

    @property
    def authorization(self) -> AuthorizationStatus:
        return self.source.authorization_status()

    # -- paging ---------------------------------------------------------

    def select_category(self, category: Category) -> int:
        """Record a category switch; earlier in-flight requests become stale."""
        with self._token_lock:
            self._token += 1
            return self._token

    @property
    def current_token(self) -> int:
        return self._token

    def load_page(self, category: Category, page_index: int = 0, token: Optional[int] = None) -> PageResult:
        """
        Load a page for the UI.

        Args:
            token: Token from select_category; defaults to the current one

        Returns:
            PageResult, with no items and stale=True if superseded meanwhile
        """
        request_token = self._token if token is None else token
        with self._lock:
            items = self.pagination.load_page(category, page_index)
            exhausted = self.pagination.exhausted

        if request_token != self._token:
            logger.debug(f"Dropping stale page {page_index} of {category.value} (token {request_token})")
            return PageResult(category, page_index, request_token, stale=True)
        return PageResult(category, page_index, request_token, items=items, exhausted=exhausted)

    def get_counts(self) -> MediaCounts:
        with self._lock:
            return self.counts.get_counts()

    # -- swipes ---------------------------------------------------------

    def keep(self, identifier: str) -> bool:
        """Right swipe. Returns whether the kept record reached disk."""
        with self._lock:
            persisted = self.store.add_kept(identifier)
        if not persisted:
            logger.warning(f"Kept {identifier} in memory only; will retry persisting")
        return persisted

    def enqueue_deletion(self, identifier: str) -> int:
        """Left swipe. Returns the queue length."""
        with self._lock:
            self.deletion_queue.enqueue(identifier)
            return len(self.deletion_queue)

    @property
    def deletion_queue_count(self) -> int:
        return len(self.deletion_queue)

    @property
    def auto_flush_due(self) -> bool:
        return self.deletion_queue.flush_due

    def flush_deletions(self) -> DeletionResult:
        with self._lock:
            result = self.deletion_queue.flush()
        if result.removed_count:
            self.signals.bump_counts_version()
        if not result.success:
            logger.warning(
                f"{len(result.failed_identifiers)} deletions failed: {result.error}"
            )
        return result

    def clear_deletions(self) -> List[str]:
        with self._lock:
            return self.deletion_queue.clear()

    def retry_failed_deletions(self) -> int:
        with self._lock:
            return self.deletion_queue.retry_failed()

    # -- albums ---------------------------------------------------------

    def fetch_albums(self) -> List[AlbumRef]:
        if not self.authorization.can_read:
            return []
        return self.source.fetch_collections()

    def create_album(self, title: str) -> Optional[str]:
        try:
            return self.source.create_collection(title)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to create album {title!r}: {e}")
            return None

    def move_to_album(self, identifier: str, collection_id: str) -> MutationResult:
        """Keep the asset and file it into an album."""
        with self._lock:
            persisted = self.store.add_kept(identifier)
            assets = self.source.fetch_by_ids([identifier])
            if not assets:
                return MutationResult(failed=[identifier], error="Asset not found")
            try:
                result = self.source.add_to_collection(assets[0], collection_id)
            except Exception as e:
                logger.error(f"Album add failed for {identifier}: {e}")
                result = MutationResult(failed=[identifier], error=str(e))
        if not persisted and result.error is None:
            result.error = "Kept record not yet persisted"
        return result

    def create_album_and_move(self, title: str, identifier: str) -> MutationResult:
        collection_id = self.create_album(title)
        if collection_id is None:
            return MutationResult(failed=[identifier], error=f"Could not create album {title!r}")
        return self.move_to_album(identifier, collection_id)

    # -- scanning -------------------------------------------------------

    def start_scan(self) -> bool:
        """Manual re-scan."""
        if not self.authorization.can_read:
            return False
        return self.scanner.restart()

    def stop_scan(self) -> None:
        self.scanner.cancel()

    def scan_state(self) -> ScanState:
        return self.scanner.state()

    # -- settings -------------------------------------------------------

    def update_settings(self, **changes: Any) -> TriageSettings:
        """Validate and apply settings; live components pick them up immediately."""
        config = self.settings.update(**changes)
        self.deletion_queue.batch_size = config.batch_deletion_size
        self.deletion_queue.auto_flush = config.auto_batch_deletions
        return config

    def reset_settings(self) -> TriageSettings:
        """Restore defaults and forget that the scan completed."""
        config = self.settings.reset()
        self.store.set_bool(SCAN_COMPLETED, False)
        self.deletion_queue.batch_size = config.batch_deletion_size
        self.deletion_queue.auto_flush = config.auto_batch_deletions
        return config
