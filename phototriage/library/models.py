"""Value types shared by the asset source, the engine and the HTTP layer."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from PIL import Image


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class Category(str, Enum):
    """The four disjoint views a user swipes through."""

    PHOTOS = "photos"
    SCREENSHOTS = "screenshots"
    VIDEOS = "videos"
    FLAGGED = "flagged"

    @classmethod
    def parse(cls, value: str) -> "Category":
        try:
            return cls(value.strip().lower())
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise ValueError(f"Unknown category {value!r} (expected one of: {valid})")


class AuthorizationStatus(str, Enum):
    AUTHORIZED = "authorized"
    LIMITED = "limited"
    DENIED = "denied"
    RESTRICTED = "restricted"

    @property
    def can_read(self) -> bool:
        return self in (AuthorizationStatus.AUTHORIZED, AuthorizationStatus.LIMITED)


@dataclass(frozen=True)
class AssetRef:
    """Reference to one item owned by the external source."""

    identifier: str
    media_kind: MediaKind
    created_at: datetime
    is_screenshot: bool = False

    def category(self) -> Category:
        """Category predicate this asset satisfies (flagged is never derived from the asset)."""
        if self.media_kind == MediaKind.VIDEO:
            return Category.VIDEOS
        if self.is_screenshot:
            return Category.SCREENSHOTS
        return Category.PHOTOS

    def matches(self, category: Category) -> bool:
        return category != Category.FLAGGED and self.category() == category


@dataclass
class PhotoItem:
    """A card: one asset paired with its decoded bitmap. Never persisted."""

    asset: AssetRef
    image: Image.Image
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def identifier(self) -> str:
        return self.asset.identifier


@dataclass
class MediaCounts:
    photos: int = 0
    screenshots: int = 0
    videos: int = 0
    flagged: int = 0

    def count(self, category: Category) -> int:
        return getattr(self, category.value)

    def decrement(self, category: Category) -> None:
        """Optimistically drop one from a category before the next refresh."""
        setattr(self, category.value, max(0, self.count(category) - 1))

    def to_dict(self) -> dict:
        return {c.value: self.count(c) for c in Category}


@dataclass(frozen=True)
class AlbumRef:
    id: str
    title: str


@dataclass
class MutationResult:
    """Outcome of one batched external mutation (delete, album add)."""

    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.failed and self.error is None


@dataclass
class DeletionResult:
    """Returned by a deletion-queue flush."""

    removed_count: int = 0
    failed_identifiers: List[str] = field(default_factory=list)
    error: Optional[str] = None
    persisted: bool = True

    @property
    def success(self) -> bool:
        return not self.failed_identifiers and self.error is None
