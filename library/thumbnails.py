"""Local image access used to give every work a cover."""
from __future__ import annotations

import base64
import io
import logging
import os
import re
import zipfile
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from PIL import Image, UnidentifiedImageError

from .types import WorkRecord

LOGGER = logging.getLogger("workshelf.library.thumbnails")

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}
_READABLE_ARCHIVES = {".zip", ".cbz"}
_THUMBNAIL_SIZE = (480, 480)
_THUMBNAIL_QUALITY = 82
_DIGITS_RE = re.compile(r"(\d+)")


class ImageSource(Protocol):
    def list_local_images(self, path: str) -> List[str]:
        ...

    def read_image_as_inline_data(self, path: str, entry: str) -> Optional[str]:
        ...


def _natural_key(name: str) -> Tuple:
    return tuple(int(part) if part.isdigit() else part.lower() for part in _DIGITS_RE.split(name))


def _is_image(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in IMAGE_EXTENSIONS


class LocalImageSource:
    """Read page images from a work folder or a zip-style archive.

    Images are downscaled with Pillow and returned as JPEG data URIs.
    """

    def __init__(self, *, size: Tuple[int, int] = _THUMBNAIL_SIZE, quality: int = _THUMBNAIL_QUALITY) -> None:
        self._size = size
        self._quality = quality

    def list_local_images(self, path: str) -> List[str]:
        target = Path(path)
        if target.is_dir():
            names = [
                str(item.relative_to(target).as_posix())
                for item in target.rglob("*")
                if item.is_file() and _is_image(item.name)
            ]
            return sorted(names, key=_natural_key)
        if target.is_file() and target.suffix.lower() in _READABLE_ARCHIVES:
            try:
                with zipfile.ZipFile(target) as archive:
                    names = [info.filename for info in archive.infolist() if not info.is_dir() and _is_image(info.filename)]
            except (OSError, zipfile.BadZipFile) as exc:
                LOGGER.debug("Cannot list archive %s: %s", target, exc)
                return []
            return sorted(names, key=_natural_key)
        return []

    def read_image_as_inline_data(self, path: str, entry: str) -> Optional[str]:
        target = Path(path)
        try:
            if target.is_dir():
                data = (target / entry).read_bytes()
            else:
                with zipfile.ZipFile(target) as archive:
                    data = archive.read(entry)
        except (OSError, KeyError, NotImplementedError, RuntimeError, zipfile.BadZipFile) as exc:
            LOGGER.debug("Cannot read %s from %s: %s", entry, target, exc)
            return None
        encoded = self._encode(data)
        if encoded is None:
            return None
        return "data:image/jpeg;base64," + base64.b64encode(encoded).decode("ascii")

    def _encode(self, data: bytes) -> Optional[bytes]:
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.thumbnail(self._size, Image.Resampling.LANCZOS)
                if image.mode not in {"RGB", "L"}:
                    image = image.convert("RGB")
                buffer = io.BytesIO()
                image.save(buffer, format="JPEG", quality=self._quality, optimize=True)
        except (OSError, ValueError, Image.DecompressionBombError, UnidentifiedImageError) as exc:
            LOGGER.debug("Cannot decode image: %s", exc)
            return None
        return buffer.getvalue()


def has_usable_thumbnail(record: WorkRecord) -> bool:
    url = record.thumbnail_url or ""
    return url.startswith("http") or url.startswith("data:")


def ensure_thumbnail(record: WorkRecord, source: Optional[ImageSource]) -> WorkRecord:
    """Fill ``thumbnail_url`` from the first local image when none was found online."""

    if source is None or has_usable_thumbnail(record) or not record.local_path:
        return record
    try:
        images = source.list_local_images(record.local_path)
        if not images:
            return record
        inline = source.read_image_as_inline_data(record.local_path, images[0])
    except Exception as exc:
        LOGGER.warning("Cannot build local thumbnail for %s: %s", record.id, exc)
        return record
    if inline:
        record.thumbnail_url = inline
        if not record.sample_images:
            record.sample_images = [inline]
    return record


__all__ = ["ImageSource", "LocalImageSource", "ensure_thumbnail", "has_usable_thumbnail"]
