"""Image decoding and file classification utilities."""

import threading
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import cv2
from PIL import Image, ExifTags

from .models import MediaKind

# Register HEIC support
try:
    from pillow_heif import register_heif_opener
    register_heif_opener()
except ImportError:
    pass  # pillow-heif not installed, HEIC files won't be supported


IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".heif", ".webp", ".bmp", ".tiff", ".gif"}
VIDEO_EXTENSIONS = {".mov", ".mp4", ".m4v", ".avi", ".mkv", ".webm"}

# OpenCV/ffmpeg is not safe to drive from several threads at once
_video_lock = threading.Lock()


def media_kind_for(file_path: Path) -> Optional[MediaKind]:
    """Return the media kind for a supported file, or None."""
    suffix = file_path.suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if suffix in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    return None


def is_screenshot_name(file_path: Path) -> bool:
    return "screenshot" in file_path.name.lower()


def creation_time(file_path: Path) -> datetime:
    """Birth time where the platform records it, otherwise mtime."""
    stat = file_path.stat()
    timestamp = getattr(stat, "st_birthtime", None) or stat.st_mtime
    return datetime.fromtimestamp(timestamp)


def extract_exif_data(image: Image.Image) -> dict:
    """Extract EXIF tags by name."""
    exif_data = {}

    try:
        exif = image.getexif()
        for tag_id, value in exif.items():
            tag = ExifTags.TAGS.get(tag_id, tag_id)
            exif_data[tag] = value
    except (AttributeError, KeyError):
        pass

    return exif_data


def apply_orientation(image: Image.Image, orientation: int) -> Image.Image:
    if orientation == 3:
        return image.rotate(180, expand=True)
    if orientation == 6:
        return image.rotate(270, expand=True)
    if orientation == 8:
        return image.rotate(90, expand=True)
    return image


def load_image_with_orientation(
    file_path: Path,
    target_size: Tuple[int, int],
) -> Image.Image:
    """
    Load an image, honour its EXIF orientation and shrink it to fit.

    Args:
        file_path: Path to image file
        target_size: Bounding box (width, height) for the decoded bitmap

    Returns:
        Decoded RGB (or L) image no larger than target_size
    """
    with Image.open(file_path) as opened:
        exif_data = extract_exif_data(opened)
        image = apply_orientation(opened, exif_data.get("Orientation", 1))

        # Convert to RGB if needed
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        else:
            image = image.copy()

    if image.width > target_size[0] or image.height > target_size[1]:
        image.thumbnail(target_size, Image.Resampling.LANCZOS)

    return image


def load_video_poster(
    file_path: Path,
    target_size: Tuple[int, int],
) -> Optional[Image.Image]:
    """
    Read the first frame of a video as a PIL image.

    Returns:
        The frame, or None when the container cannot be opened or read
    """
    with _video_lock:
        cap = cv2.VideoCapture(str(file_path))
        try:
            if not cap.isOpened():
                return None
            ret, frame = cap.read()
        finally:
            cap.release()

    if not ret:
        return None

    # OpenCV hands back BGR
    frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
    image = Image.fromarray(frame_rgb)
    image.thumbnail(target_size, Image.Resampling.LANCZOS)
    return image


def decoded_cost(image: Image.Image) -> int:
    """Approximate decoded size in bytes."""
    return image.width * image.height * len(image.getbands())
