from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from .paths import get_logs_dir, get_settings_path
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
]

LOGGER = logging.getLogger("workshelf.core.settings")

SETTINGS_VERSION = 2


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "libraryPaths": [],
    "autoScan": False,
    "requestDelayMs": 1500,
    "fuzzyWords": [],
    "viewerTheme": "black",
    "defaultBindingDirection": "reverse",
    "renameOnDiscovery": True,
    "dropPlaceholderOnRename": True,
    "primarySource": {
        "domains": [
            "maniax",
            "home",
            "books",
            "comic",
            "girls",
            "bl",
            "pro",
            "soft",
        ],
        "timeoutS": 15,
        "maxSearchResults": 10,
    },
    "secondarySource": {
        "enabled": True,
        "timeoutS": 10,
        "maxResults": 10,
        "language": "ja",
        "apiKey": None,
    },
    "watcher": {
        "quietPeriodS": 5,
        "depth": 3,
        "stabilityMs": 1000,
    },
}


def merge_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(default: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in default.items():
            if isinstance(value, dict):
                current = payload.get(key)
                if isinstance(current, dict):
                    result[key] = _merge(value, current)
                else:
                    result[key] = _merge(value, {})
            elif isinstance(value, list):
                current = payload.get(key)
                result[key] = list(current) if isinstance(current, list) else list(value)
            else:
                current = payload.get(key, value)
                # Empty strings written by older clients fall back to the default.
                result[key] = value if current in ("", None) and value is not None else current
        for key, value in payload.items():
            if key not in result:
                result[key] = value
        return result

    return _merge(DEFAULT_SETTINGS, data or {})


def _apply_migrations(settings: Dict[str, Any]) -> Dict[str, Any]:
    version = settings.get("version")
    try:
        version_int = int(version)
    except (TypeError, ValueError):
        version_int = 0
    if version_int < SETTINGS_VERSION:
        legacy_delay = settings.pop("requestDelay", None)
        if isinstance(legacy_delay, (int, float)) and not isinstance(legacy_delay, bool):
            settings["requestDelayMs"] = int(legacy_delay)
        direction = settings.get("defaultBindingDirection")
        if direction == "rtl":
            settings["defaultBindingDirection"] = "reverse"
        elif direction == "ltr":
            settings["defaultBindingDirection"] = "forward"
        settings["version"] = SETTINGS_VERSION
    return settings


def _log_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    LOGGER.info("Unknown settings keys: %s", ", ".join(unknown))
    logs_dir = get_logs_dir(working_dir)
    target = logs_dir / "settings_unknown.json"
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as handle:
            json.dump({"unknown": unknown}, handle, ensure_ascii=False, indent=2)
    except OSError:
        return


def load_settings(working_dir: Path) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    path = get_settings_path(working_dir)
    try:
        with open(path, "r", encoding="utf-8") as handle:
            loaded = json.load(handle)
    except FileNotFoundError:
        loaded = None
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Ignoring unreadable settings file %s: %s", path, exc)
        loaded = None
    if isinstance(loaded, dict):
        data = _apply_migrations(dict(loaded))
    merged = merge_defaults(data)
    merged.setdefault("working_dir", str(working_dir))
    _log_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Dict[str, Any], working_dir: Path) -> None:
    merged = merge_defaults(_apply_migrations(dict(settings)))
    merged.setdefault("working_dir", str(working_dir))
    path = get_settings_path(working_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(merged, handle, ensure_ascii=False, indent=2)

