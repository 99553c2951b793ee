"""
Image variants for content images.

Every local image referenced by a page gets a full-size variant bounded by
max_size, a tiny blur-up placeholder and one alternate encoding per
configured format. Variants are only rewritten when the source is newer.
"""

import os
import shutil
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from PIL import Image

from .paths import REGEX_EXTENSION, swap_extension

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.gif', '.webp', '.avif', '.bmp', '.tif', '.tiff')
TINY_SUFFIX = '__tiny'

# Pillow format names for the alternate encodings
FORMAT_NAMES = {
    'webp': 'WEBP',
    'avif': 'AVIF',
    'png': 'PNG',
    'jpg': 'JPEG',
    'jpeg': 'JPEG',
}

logger = logging.getLogger('Kiln.Images')


@dataclass
class ImageEntry:
    src: str
    sizes: Dict[str, str] = field(default_factory=dict)
    width: Optional[int] = None
    height: Optional[int] = None


class ImageMap:
    """Lock-guarded map from absolute source path to ImageEntry, shared by concurrent publishes."""

    def __init__(self):
        self._entries = {}
        self._lock = threading.Lock()

    def get_or_create(self, key, factory):
        with self._lock:
            if key not in self._entries:
                self._entries[key] = factory()
            return self._entries[key]

    def get(self, key):
        with self._lock:
            return self._entries.get(key)

    def items(self):
        with self._lock:
            return list(self._entries.items())

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key):
        with self._lock:
            return key in self._entries

    def __len__(self):
        with self._lock:
            return len(self._entries)


def is_image(path) -> bool:
    return os.path.splitext(str(path))[1].lower() in IMAGE_EXTENSIONS


def tiny_path(path: str) -> str:
    """photo.jpg -> photo__tiny.jpg"""
    match = REGEX_EXTENSION.search(path)
    if not match:
        return path + TINY_SUFFIX
    return path[:match.start()] + TINY_SUFFIX + match.group(0)


def get_image_info(path) -> Optional[Tuple[int, int]]:
    """Return (width, height) of an image, or None if it cannot be read."""
    try:
        with Image.open(path) as img:
            return img.size
    except (IOError, OSError) as e:
        logger.warning(f"Cannot read image size of {path}: {e}")
        return None


def is_newer(dest, src) -> bool:
    """True when dest exists and src is missing or older than dest."""
    if not os.path.exists(dest):
        return False
    if not os.path.exists(src):
        return True
    return os.path.getmtime(dest) > os.path.getmtime(src)


def copy_if_newer(source, dest) -> bool:
    """Copy source to dest unless dest is already newer. Returns True when a copy happened."""
    if is_newer(dest, source):
        return False
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    shutil.copy2(source, dest)
    # copy2 keeps the source mtime, so bump dest to mark it up to date
    os.utime(dest)
    return True


def supported_formats(formats):
    """Keep the alternate formats this Pillow build can encode."""
    Image.init()
    supported = []
    for name in formats or []:
        name = str(name).lower().lstrip('.')
        if FORMAT_NAMES.get(name) in Image.SAVE:
            supported.append(name)
        else:
            logger.warning(f"Image format '{name}' is not supported by Pillow here, skipping it")
    return supported


def _save(img, dest):
    ext = os.path.splitext(dest)[1].lower().lstrip('.')
    image_format = FORMAT_NAMES.get(ext)
    if image_format == 'JPEG' and img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')
    if image_format:
        img.save(dest, image_format)
    else:
        img.save(dest)


class ImageTransformCache:
    """Writes image variants, skipping work when the output is newer than the source."""

    def __init__(self, max_size=(2000, 1200), tiny_size=(10, 10), formats=('avif', 'webp')):
        self.max_size = tuple(max_size)
        self.tiny_size = tuple(tiny_size)
        self.formats = supported_formats(formats)
        self.processed_count = 0
        self._count_lock = threading.Lock()

    def _write_variant(self, source, dest, size) -> bool:
        try:
            with Image.open(source) as img:
                variant = img.copy()
            # thumbnail() keeps the aspect ratio and never enlarges
            variant.thumbnail(size)
            _save(variant, dest)
            return True
        except (IOError, OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to write image variant {dest}: {e}")
            return False

    def ensure_variant(self, source, output) -> bool:
        """
        Write the full-size and tiny variants of source at output.

        Returns False without writing anything when output is already newer
        than source. The two variants are written independently: when one
        fails the other is still attempted.
        """
        if is_newer(output, source):
            return False

        os.makedirs(os.path.dirname(output), exist_ok=True)
        wrote_full = self._write_variant(source, output, self.max_size)
        wrote_tiny = self._write_variant(source, tiny_path(output), self.tiny_size)

        if wrote_full or wrote_tiny:
            with self._count_lock:
                self.processed_count += 1
            logger.debug(f"Wrote image variants for {source}")
        return wrote_full or wrote_tiny

    def transform_image(self, source, dest) -> bool:
        """Variants of source at dest plus one full-size copy per alternate format."""
        wrote = self.ensure_variant(source, dest)
        for image_format in self.formats:
            alternate = swap_extension(dest, '.' + image_format)
            if alternate == dest or is_newer(alternate, source):
                continue
            if self._write_variant(source, alternate, self.max_size):
                wrote = True
        return wrote

    def reset_count(self):
        with self._count_lock:
            self.processed_count = 0
