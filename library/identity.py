"""Stable identities for filesystem entries."""
from __future__ import annotations

import logging
import os
import re
from typing import Optional

LOCAL_PREFIX = "LOCAL_"
ARCHIVE_EXTENSIONS = (".zip", ".cbz", ".rar", ".cbr", ".7z")

_CATALOG_CODE_RE = re.compile(r"[A-Z]{2}\d{6,8}", re.IGNORECASE)
_ARCHIVE_SUFFIX_RE = re.compile(
    r"(?:" + "|".join(re.escape(ext) for ext in ARCHIVE_EXTENSIONS) + r")$",
    re.IGNORECASE,
)
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")
_NAME_FRAGMENT_LEN = 20
_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_UNSAFE_FILENAME_RE = re.compile(r'[\\/:*?"<>|]')

LOGGER = logging.getLogger("workshelf.library.identity")


def extract_catalog_code(name: str) -> Optional[str]:
    """Return the uppercased catalog code embedded in *name*, if any."""

    match = _CATALOG_CODE_RE.search(name or "")
    return match.group(0).upper() if match else None


def strip_archive_extension(name: str) -> str:
    return _ARCHIVE_SUFFIX_RE.sub("", name or "")


def is_archive_name(name: str) -> bool:
    return bool(_ARCHIVE_SUFFIX_RE.search(name or ""))


def is_local_id(work_id: str) -> bool:
    return (work_id or "").startswith(LOCAL_PREFIX)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def name_hash(text: str) -> str:
    """Order-sensitive 32-bit rolling hash of *text* rendered in base 36.

    The hash walks UTF-16 code units so identifiers match catalogs written by
    earlier clients byte for byte.
    """

    encoded = text.encode("utf-16-le")
    value = 0
    for idx in range(0, len(encoded), 2):
        unit = encoded[idx] | (encoded[idx + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return _to_base36(abs(value))


def generate_local_id(name: str) -> str:
    base = strip_archive_extension(name)
    digest = name_hash(base)
    fragment = _NON_ALNUM_RE.sub("", base)[:_NAME_FRAGMENT_LEN].upper()
    if fragment:
        return f"{LOCAL_PREFIX}{fragment}_{digest}"
    return f"{LOCAL_PREFIX}{digest}"


def resolve_identity(name: str) -> str:
    return extract_catalog_code(name) or generate_local_id(name)


# On-disk names -------------------------------------------------------------

def safe_filename(title: str) -> str:
    return _UNSAFE_FILENAME_RE.sub("_", title or "")


def display_name(path: str, title: str, code: Optional[str] = None) -> str:
    """File or folder name for *path* that embeds *code* so later scans keep it.

    Archives keep their extension; folders get none.
    """

    extension = "" if os.path.isdir(path) else os.path.splitext(path)[1]
    safe = safe_filename(title)
    if code and not is_local_id(code):
        return f"[{code}] {safe}{extension}"
    return f"{safe}{extension}"


def rename_entry(path: str, new_name: str) -> Optional[str]:
    """Rename *path* within its directory and return the new path.

    Returns ``None`` when the name is unchanged or the target already
    exists. Raises ``OSError`` when the rename itself fails.
    """

    target = os.path.join(os.path.dirname(path), new_name)
    if target == path:
        return None
    if os.path.exists(target):
        LOGGER.warning("Not renaming %s: %s already exists", path, target)
        return None
    os.rename(path, target)
    LOGGER.info("Renamed %s -> %s", path, target)
    return target


__all__ = [
    "ARCHIVE_EXTENSIONS",
    "LOCAL_PREFIX",
    "display_name",
    "extract_catalog_code",
    "generate_local_id",
    "is_archive_name",
    "is_local_id",
    "name_hash",
    "rename_entry",
    "resolve_identity",
    "safe_filename",
    "strip_archive_extension",
]
