"""Locating and validating the media library directory."""

import logging
import os
from pathlib import Path
from typing import Optional

from .image_utils import media_kind_for

logger = logging.getLogger(__name__)

DEFAULT_LIBRARY_NAME = "PhotoTriage"


def get_default_library() -> Optional[Path]:
    """Get the default library path (~/Pictures/PhotoTriage), if it exists."""
    env_path = os.environ.get("PHOTOTRIAGE_LIBRARY", "").strip()
    if env_path:
        return Path(env_path).expanduser()

    default_path = Path.home() / "Pictures" / DEFAULT_LIBRARY_NAME

    if default_path.exists():
        return default_path

    return None


def validate_library(library_path: Path) -> bool:
    """
    Validate that a path can serve as a media library.

    Args:
        library_path: Path to validate

    Returns:
        True if the path is an existing, readable directory
    """
    if not library_path.exists():
        logger.error(f"Path does not exist: {library_path}")
        return False

    if not library_path.is_dir():
        logger.error(f"Not a directory: {library_path}")
        return False

    if not os.access(library_path, os.R_OK | os.X_OK):
        logger.error(f"Directory is not readable: {library_path}")
        return False

    return True


def count_media_files(library_path: Path) -> int:
    """Approximate count of supported media files (hidden directories skipped)."""
    count = 0
    for root, dirs, files in os.walk(library_path):
        dirs[:] = [d for d in dirs if not d.startswith(".")]
        count += sum(1 for name in files if media_kind_for(Path(name)) is not None)
    return count
