"""In-memory stand-ins for the asset source and the sensitivity model."""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from PIL import Image

from phototriage.library.models import (
    AlbumRef,
    AssetRef,
    AuthorizationStatus,
    Category,
    MediaKind,
    MutationResult,
)
from phototriage.library.source import AssetSource, DecodeError, sort_newest_first

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def make_asset(identifier: str, minute: int, kind: MediaKind = MediaKind.IMAGE, screenshot: bool = False) -> AssetRef:
    """Larger minute means newer."""
    return AssetRef(
        identifier=identifier,
        media_kind=kind,
        created_at=BASE_TIME + timedelta(minutes=minute),
        is_screenshot=screenshot,
    )


def make_photos(count: int, prefix: str = "p") -> List[AssetRef]:
    return [make_asset(f"{prefix}{i:02d}", i) for i in range(count)]


class FakeAssetSource(AssetSource):
    def __init__(self, assets: Iterable[AssetRef] = (), status: AuthorizationStatus = AuthorizationStatus.AUTHORIZED):
        self.assets: Dict[str, AssetRef] = {a.identifier: a for a in assets}
        self.status = status

        self.count_calls: List[Category] = []
        self.fetch_calls: List[Category] = []
        self.decode_calls: List[str] = []
        self.delete_calls: List[List[str]] = []

        self.decode_failures: set = set()
        self.delete_failures: set = set()
        self.delete_exception: Optional[Exception] = None

        self.collections: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def add(self, *assets: AssetRef) -> None:
        for asset in assets:
            self.assets[asset.identifier] = asset

    def authorization_status(self) -> AuthorizationStatus:
        return self.status

    def count(self, category: Category) -> int:
        self.count_calls.append(category)
        return sum(1 for a in self.assets.values() if a.matches(category))

    def fetch(self, category: Category) -> Sequence[AssetRef]:
        self.fetch_calls.append(category)
        return sort_newest_first(a for a in self.assets.values() if a.matches(category))

    def fetch_by_ids(self, identifiers: Iterable[str]) -> Sequence[AssetRef]:
        return sort_newest_first(self.assets[i] for i in set(identifiers) if i in self.assets)

    def decode(self, asset: AssetRef, target_size: Tuple[int, int]) -> Image.Image:
        with self._lock:
            self.decode_calls.append(asset.identifier)
        if asset.identifier in self.decode_failures:
            raise DecodeError(asset.identifier, "corrupt")
        image = Image.new("RGB", (min(16, target_size[0]), min(16, target_size[1])), "gray")
        image.info["identifier"] = asset.identifier
        return image

    def delete(self, assets: Sequence[AssetRef]) -> MutationResult:
        self.delete_calls.append([a.identifier for a in assets])
        if self.delete_exception is not None:
            raise self.delete_exception

        result = MutationResult()
        for asset in assets:
            if asset.identifier in self.delete_failures:
                result.failed.append(asset.identifier)
            else:
                self.assets.pop(asset.identifier, None)
                result.succeeded.append(asset.identifier)
        if result.failed:
            result.error = f"{len(result.failed)} assets could not be deleted"
        return result

    def create_collection(self, title: str) -> str:
        if not title.strip():
            raise ValueError("empty title")
        self.collections.setdefault(title, [])
        return title

    def add_to_collection(self, asset: AssetRef, collection_id: str) -> MutationResult:
        if collection_id not in self.collections:
            return MutationResult(failed=[asset.identifier], error=f"Unknown album: {collection_id}")
        self.collections[collection_id].append(asset.identifier)
        return MutationResult(succeeded=[asset.identifier])

    def fetch_collections(self) -> List[AlbumRef]:
        return [AlbumRef(id=name, title=name) for name in sorted(self.collections)]


class CountingModel:
    """Returns a fixed probability per identifier and records every call."""

    def __init__(self, probabilities: Optional[Dict[str, float]] = None, default: float = 0.0):
        self.probabilities = probabilities or {}
        self.default = default
        self.calls: List[str] = []
        self.on_predict: Optional[Callable[[str], None]] = None
        self._lock = threading.Lock()

    def predict(self, image: Image.Image) -> float:
        identifier = image.info.get("identifier", "")
        with self._lock:
            self.calls.append(identifier)
        if self.on_predict is not None:
            self.on_predict(identifier)
        return self.probabilities.get(identifier, self.default)
