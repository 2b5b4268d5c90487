"""External asset source capability and its directory-tree binding.

The engine never touches media files directly. Everything it needs from
the photo/video store goes through :class:`AssetSource`: counting and
enumerating assets per category, resolving identifiers, decoding
bitmaps, and the destructive or album-filing mutations.

:class:`DirectoryAssetSource` binds that capability to a folder of
media files. Identifiers are POSIX paths relative to the library root,
albums are sub-directories of a hidden album root, and the corpus is
re-enumerated on every call, so files added or removed between calls
are picked up the way a live photo store would report them.
"""

import logging
import os
import re
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from PIL import Image

from .image_utils import (
    creation_time,
    is_screenshot_name,
    load_image_with_orientation,
    load_video_poster,
    media_kind_for,
)
from .models import (
    AlbumRef,
    AssetRef,
    AuthorizationStatus,
    Category,
    MediaKind,
    MutationResult,
)

logger = logging.getLogger(__name__)

_UNSAFE_TITLE_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


class DecodeError(Exception):
    """Raised when an asset cannot be turned into a bitmap."""

    def __init__(self, identifier: str, reason: str):
        super().__init__(f"Failed to decode {identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason


def sort_newest_first(assets: Iterable[AssetRef]) -> List[AssetRef]:
    """Descending creation time; identifier breaks ties so the order is stable."""
    ordered = sorted(assets, key=lambda a: a.identifier)
    ordered.sort(key=lambda a: a.created_at, reverse=True)
    return ordered


class AssetSource(ABC):
    """Capability the engine consumes from the photo/video store."""

    @abstractmethod
    def authorization_status(self) -> AuthorizationStatus:
        ...

    def request_authorization(self) -> AuthorizationStatus:
        return self.authorization_status()

    @abstractmethod
    def count(self, category: Category) -> int:
        """Count-only query for a non-flagged category."""

    @abstractmethod
    def fetch(self, category: Category) -> Sequence[AssetRef]:
        """All assets matching a non-flagged category, newest first."""

    @abstractmethod
    def fetch_by_ids(self, identifiers: Iterable[str]) -> Sequence[AssetRef]:
        """Resolve identifiers that still exist, newest first."""

    @abstractmethod
    def decode(self, asset: AssetRef, target_size: Tuple[int, int]) -> Image.Image:
        """Decode a bitmap no larger than target_size; raises DecodeError."""

    @abstractmethod
    def delete(self, assets: Sequence[AssetRef]) -> MutationResult:
        """Remove assets as one batch."""

    @abstractmethod
    def create_collection(self, title: str) -> str:
        ...

    @abstractmethod
    def add_to_collection(self, asset: AssetRef, collection_id: str) -> MutationResult:
        ...

    @abstractmethod
    def fetch_collections(self) -> List[AlbumRef]:
        ...


class DirectoryAssetSource(AssetSource):
    """Asset source backed by a directory of media files."""

    def __init__(
        self,
        root: Path,
        album_root: Optional[Path] = None,
        trash_dir: Optional[Path] = None,
    ):
        """
        Initialize source.

        Args:
            root: Library directory; hidden sub-directories are ignored
            album_root: Where albums live (default: <root>/.albums)
            trash_dir: If set, deletions move files here instead of unlinking
        """
        self.root = Path(root).expanduser().resolve()
        self.album_root = Path(album_root) if album_root else self.root / ".albums"
        self.trash_dir = Path(trash_dir) if trash_dir else None

    # -- authorization --------------------------------------------------

    def authorization_status(self) -> AuthorizationStatus:
        if not self.root.is_dir():
            return AuthorizationStatus.RESTRICTED
        if not os.access(self.root, os.R_OK | os.X_OK):
            return AuthorizationStatus.DENIED
        if not os.access(self.root, os.W_OK):
            return AuthorizationStatus.LIMITED
        return AuthorizationStatus.AUTHORIZED

    # -- enumeration ----------------------------------------------------

    def _walk(self) -> Iterator[Path]:
        for dirpath, dirs, files in os.walk(self.root):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for name in sorted(files):
                if name.startswith("."):
                    continue
                yield Path(dirpath) / name

    def _identifier(self, file_path: Path) -> str:
        return file_path.relative_to(self.root).as_posix()

    def _path_for(self, identifier: str) -> Optional[Path]:
        """Lexical path for an identifier; symlinks are not followed."""
        candidate = Path(os.path.normpath(self.root / identifier))
        try:
            relative = candidate.relative_to(self.root)
        except ValueError:
            logger.warning(f"Ignoring identifier outside library root: {identifier}")
            return None
        # Only canonical identifiers (as produced by the walk) resolve
        if relative.as_posix() != identifier:
            logger.warning(f"Ignoring non-canonical identifier: {identifier}")
            return None
        return candidate

    def _make_ref(self, file_path: Path, kind: MediaKind) -> Optional[AssetRef]:
        try:
            created = creation_time(file_path)
        except FileNotFoundError:
            return None
        return AssetRef(
            identifier=self._identifier(file_path),
            media_kind=kind,
            created_at=created,
            is_screenshot=kind == MediaKind.IMAGE and is_screenshot_name(file_path),
        )

    @staticmethod
    def _name_matches(file_path: Path, kind: MediaKind, category: Category) -> bool:
        if category == Category.VIDEOS:
            return kind == MediaKind.VIDEO
        if kind != MediaKind.IMAGE:
            return False
        if category == Category.SCREENSHOTS:
            return is_screenshot_name(file_path)
        return not is_screenshot_name(file_path)

    def count(self, category: Category) -> int:
        if category == Category.FLAGGED:
            raise ValueError("Flagged assets are not a source predicate")
        if not self.authorization_status().can_read:
            return 0

        total = 0
        for file_path in self._walk():
            kind = media_kind_for(file_path)
            if kind is not None and self._name_matches(file_path, kind, category):
                total += 1
        return total

    def fetch(self, category: Category) -> Sequence[AssetRef]:
        if category == Category.FLAGGED:
            raise ValueError("Flagged assets are not a source predicate")
        if not self.authorization_status().can_read:
            return []

        refs = []
        for file_path in self._walk():
            kind = media_kind_for(file_path)
            if kind is None or not self._name_matches(file_path, kind, category):
                continue
            ref = self._make_ref(file_path, kind)
            if ref is not None:
                refs.append(ref)
        return sort_newest_first(refs)

    def fetch_by_ids(self, identifiers: Iterable[str]) -> Sequence[AssetRef]:
        if not self.authorization_status().can_read:
            return []

        refs = []
        for identifier in set(identifiers):
            file_path = self._path_for(identifier)
            if file_path is None or not file_path.is_file():
                continue
            kind = media_kind_for(file_path)
            if kind is None:
                continue
            ref = self._make_ref(file_path, kind)
            if ref is not None:
                refs.append(ref)
        return sort_newest_first(refs)

    # -- decoding -------------------------------------------------------

    def decode(self, asset: AssetRef, target_size: Tuple[int, int]) -> Image.Image:
        file_path = self._path_for(asset.identifier)
        if file_path is None or not file_path.is_file():
            raise DecodeError(asset.identifier, "file not found")

        try:
            if asset.media_kind == MediaKind.VIDEO:
                image = load_video_poster(file_path, target_size)
                if image is None:
                    raise DecodeError(asset.identifier, "no readable video frame")
                return image
            return load_image_with_orientation(file_path, target_size)
        except DecodeError:
            raise
        except Exception as e:
            raise DecodeError(asset.identifier, str(e)) from e

    # -- mutations ------------------------------------------------------

    def delete(self, assets: Sequence[AssetRef]) -> MutationResult:
        result = MutationResult()
        if self.authorization_status() != AuthorizationStatus.AUTHORIZED:
            result.failed = [a.identifier for a in assets]
            result.error = "Library is not writable"
            return result

        for asset in assets:
            file_path = self._path_for(asset.identifier)
            if file_path is None:
                result.failed.append(asset.identifier)
                continue
            try:
                if self.trash_dir is not None:
                    destination = self.trash_dir / asset.identifier
                    destination.parent.mkdir(parents=True, exist_ok=True)
                    shutil.move(str(file_path), str(destination))
                else:
                    file_path.unlink()
                result.succeeded.append(asset.identifier)
            except FileNotFoundError:
                # Already gone counts as removed
                result.succeeded.append(asset.identifier)
            except OSError as e:
                logger.warning(f"Delete failed for {asset.identifier}: {e}")
                result.failed.append(asset.identifier)
                result.error = str(e)

        logger.info(f"Deleted {len(result.succeeded)} assets ({len(result.failed)} failed)")
        return result

    def create_collection(self, title: str) -> str:
        collection_id = _UNSAFE_TITLE_RE.sub("_", title).strip().strip(".")
        if not collection_id:
            raise ValueError(f"Invalid album title: {title!r}")
        (self.album_root / collection_id).mkdir(parents=True, exist_ok=True)
        logger.info(f"Created album {collection_id!r}")
        return collection_id

    def add_to_collection(self, asset: AssetRef, collection_id: str) -> MutationResult:
        album_dir = self.album_root / collection_id
        if not album_dir.is_dir():
            return MutationResult(failed=[asset.identifier], error=f"Unknown album: {collection_id}")

        file_path = self._path_for(asset.identifier)
        if file_path is None or not file_path.is_file():
            return MutationResult(failed=[asset.identifier], error="Asset not found")

        destination = album_dir / file_path.name
        counter = 1
        while destination.exists():
            destination = album_dir / f"{file_path.stem} ({counter}){file_path.suffix}"
            counter += 1

        try:
            shutil.copy2(file_path, destination)
        except OSError as e:
            logger.warning(f"Failed to add {asset.identifier} to album {collection_id}: {e}")
            return MutationResult(failed=[asset.identifier], error=str(e))

        return MutationResult(succeeded=[asset.identifier])

    def fetch_collections(self) -> List[AlbumRef]:
        if not self.album_root.is_dir():
            return []
        albums = [
            AlbumRef(id=entry.name, title=entry.name)
            for entry in self.album_root.iterdir()
            if entry.is_dir()
        ]
        return sorted(albums, key=lambda a: a.title)
