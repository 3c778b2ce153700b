"""Enumerate work candidates directly below a library root."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List

from .identity import is_archive_name, resolve_identity
from .types import ScanCandidate

LOGGER = logging.getLogger("workshelf.library.scanner")


def scan_folder(root: str | os.PathLike[str]) -> List[ScanCandidate]:
    """Return directories and archive files one level below *root*.

    A missing or unreadable root yields an empty list.
    """

    root_path = Path(root)
    if not root_path.is_dir():
        LOGGER.warning("Library root does not exist: %s", root_path)
        return []
    try:
        with os.scandir(root_path) as iterator:
            entries = sorted(iterator, key=lambda entry: entry.name)
    except OSError as exc:
        LOGGER.error("Cannot list library root %s: %s", root_path, exc)
        return []

    results: List[ScanCandidate] = []
    for entry in entries:
        try:
            is_dir = entry.is_dir()
            is_file = entry.is_file()
        except OSError as exc:
            LOGGER.debug("Skipping %s: %s", entry.path, exc)
            continue
        if is_dir:
            results.append(ScanCandidate(id=resolve_identity(entry.name), path=entry.path))
        elif is_file and is_archive_name(entry.name):
            results.append(ScanCandidate(id=resolve_identity(entry.name), path=entry.path, is_archive=True))
        else:
            LOGGER.debug("Skipping non-work entry: %s", entry.name)
    LOGGER.info("Found %d work candidates in %s", len(results), root_path)
    return results


__all__ = ["scan_folder"]
