"""Flat-file persistence for the catalog document and the settings."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.paths import get_catalog_path, get_settings_path
from core.settings import DEFAULT_SETTINGS, load_settings, save_settings

from .types import CatalogDocument, utc_now_iso

LOGGER = logging.getLogger("workshelf.library.store")


@dataclass(slots=True, frozen=True)
class LibraryPath:
    path: str
    primary_source_only: bool = False


@dataclass(slots=True)
class LibrarySettings:
    """Typed view of the settings fields read by the scan pipeline."""

    library_paths: List[LibraryPath] = field(default_factory=list)
    auto_scan: bool = False
    request_delay_ms: int = 1500
    fuzzy_words: List[str] = field(default_factory=list)
    rename_on_discovery: bool = True
    drop_placeholder_on_rename: bool = True
    primary_domains: List[str] = field(default_factory=lambda: list(DEFAULT_SETTINGS["primarySource"]["domains"]))
    primary_timeout_s: float = 15.0
    primary_max_results: int = 10
    secondary_enabled: bool = True
    secondary_timeout_s: float = 10.0
    secondary_max_results: int = 10
    secondary_language: Optional[str] = "ja"
    secondary_api_key: Optional[str] = None
    watch_quiet_period_s: float = 5.0
    watch_depth: int = 3
    watch_stability_ms: int = 1000


def _parse_library_paths(raw: Any) -> List[LibraryPath]:
    paths: List[LibraryPath] = []
    if not isinstance(raw, list):
        return paths
    for entry in raw:
        if isinstance(entry, str) and entry.strip():
            paths.append(LibraryPath(path=entry.strip()))
        elif isinstance(entry, dict):
            value = entry.get("path")
            if not isinstance(value, str) or not value.strip():
                continue
            only = entry.get("primarySourceOnly", entry.get("onlyDLsite", False))
            paths.append(LibraryPath(path=value.strip(), primary_source_only=bool(only)))
    return paths


def load_library_settings(data: Dict[str, Any]) -> LibrarySettings:
    settings = LibrarySettings()
    if not isinstance(data, dict):
        return settings
    settings.library_paths = _parse_library_paths(data.get("libraryPaths"))
    settings.auto_scan = bool(data.get("autoScan", settings.auto_scan))
    try:
        settings.request_delay_ms = max(0, int(data.get("requestDelayMs", settings.request_delay_ms)))
    except (TypeError, ValueError):
        pass
    fuzzy = data.get("fuzzyWords")
    if isinstance(fuzzy, list):
        settings.fuzzy_words = [str(word) for word in fuzzy if str(word).strip()]
    settings.rename_on_discovery = bool(data.get("renameOnDiscovery", settings.rename_on_discovery))
    settings.drop_placeholder_on_rename = bool(
        data.get("dropPlaceholderOnRename", settings.drop_placeholder_on_rename)
    )

    primary = data.get("primarySource") if isinstance(data.get("primarySource"), dict) else {}
    domains = primary.get("domains")
    if isinstance(domains, list) and domains:
        settings.primary_domains = [str(item) for item in domains if str(item).strip()]
    secondary = data.get("secondarySource") if isinstance(data.get("secondarySource"), dict) else {}
    watcher = data.get("watcher") if isinstance(data.get("watcher"), dict) else {}
    try:
        settings.primary_timeout_s = float(primary.get("timeoutS", settings.primary_timeout_s))
        settings.primary_max_results = max(1, int(primary.get("maxSearchResults", settings.primary_max_results)))
        settings.secondary_timeout_s = float(secondary.get("timeoutS", settings.secondary_timeout_s))
        settings.secondary_max_results = max(1, int(secondary.get("maxResults", settings.secondary_max_results)))
        settings.watch_quiet_period_s = max(0.0, float(watcher.get("quietPeriodS", settings.watch_quiet_period_s)))
        settings.watch_depth = max(0, int(watcher.get("depth", settings.watch_depth)))
        settings.watch_stability_ms = max(0, int(watcher.get("stabilityMs", settings.watch_stability_ms)))
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring malformed numeric source/watcher settings")
    settings.secondary_enabled = bool(secondary.get("enabled", settings.secondary_enabled))
    language = secondary.get("language", settings.secondary_language)
    settings.secondary_language = str(language) if language else None
    api_key = secondary.get("apiKey")
    settings.secondary_api_key = str(api_key).strip() or None if api_key else None
    return settings


class CatalogStore:
    """Whole-document load/save of the catalog and the settings.

    Reads fall back to defaults and writes report ``False`` instead of raising.
    """

    def __init__(self, working_dir: Path) -> None:
        self._working_dir = Path(working_dir)
        self._catalog_path = get_catalog_path(self._working_dir)

    @property
    def working_dir(self) -> Path:
        return self._working_dir

    @property
    def catalog_path(self) -> Path:
        return self._catalog_path

    # ------------------------------------------------------------------
    def load(self) -> CatalogDocument:
        try:
            raw = self._catalog_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return CatalogDocument()
        except OSError as exc:
            LOGGER.error("Cannot read catalog %s: %s", self._catalog_path, exc)
            return CatalogDocument()
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("catalog root must be an object")
            document = CatalogDocument.from_dict(payload)
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            LOGGER.error("Catalog %s is not valid, starting fresh: %s", self._catalog_path, exc)
            return CatalogDocument()
        LOGGER.debug("Loaded %d works from catalog", len(document.works))
        return document

    def save(self, document: CatalogDocument) -> bool:
        document.last_updated = utc_now_iso()
        tmp = self._catalog_path.with_suffix(self._catalog_path.suffix + ".tmp")
        try:
            self._catalog_path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(document.to_dict(), ensure_ascii=False, indent=2) + "\n",
                encoding="utf-8",
            )
            os.replace(tmp, self._catalog_path)
        except OSError as exc:
            LOGGER.error("Cannot write catalog %s: %s", self._catalog_path, exc)
            return False
        LOGGER.debug("Saved %d works to catalog", len(document.works))
        return True

    # ------------------------------------------------------------------
    def load_settings(self) -> Dict[str, Any]:
        return load_settings(self._working_dir)

    def save_settings(self, settings: Dict[str, Any]) -> bool:
        try:
            save_settings(settings, self._working_dir)
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.error("Cannot write settings: %s", exc)
            return False
        return True

    def library_settings(self) -> LibrarySettings:
        return load_library_settings(self.load_settings())

    # ------------------------------------------------------------------
    def reset(self) -> bool:
        ok = True
        for path in (self._catalog_path, get_settings_path(self._working_dir)):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                LOGGER.error("Cannot delete %s: %s", path, exc)
                ok = False
        return ok


__all__ = [
    "CatalogStore",
    "LibraryPath",
    "LibrarySettings",
    "load_library_settings",
]
