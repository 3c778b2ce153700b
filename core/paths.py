from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

__all__ = [
    "ensure_working_dir_structure",
    "get_catalog_path",
    "get_data_dir",
    "get_logs_dir",
    "get_settings_path",
    "resolve_working_dir",
]

_APP_DIR_NAME = "WorkShelf"


def _expand_path(value: str) -> Path:
    expanded = os.path.expandvars(os.path.expanduser(value))
    return Path(expanded).resolve()


def _ensure_writable_dir(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False
    test_file = path / f".write_test_{os.getpid()}"
    try:
        with open(test_file, "w", encoding="utf-8") as handle:
            handle.write("ok")
        test_file.unlink(missing_ok=True)
        return True
    except OSError:
        try:
            if test_file.exists():
                test_file.unlink()
        except OSError:  # pragma: no cover - cleanup only
            pass
        return False


def _prepare_working_dir(candidate: Path) -> Optional[Path]:
    if not _ensure_writable_dir(candidate):
        return None
    try:
        get_data_dir(candidate).mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    return candidate


def _local_appdata_dir() -> Optional[Path]:
    local_appdata = os.environ.get("LOCALAPPDATA")
    if not local_appdata:
        return None
    try:
        return _expand_path(local_appdata)
    except OSError:
        return None


def resolve_working_dir() -> Path:
    """Resolve the WorkShelf working directory, creating it if required."""

    env_home = os.environ.get("WORKSHELF_HOME")
    if env_home:
        prepared = _prepare_working_dir(_expand_path(env_home))
        if prepared is not None:
            return prepared

    local_base = _local_appdata_dir()
    if local_base is not None:
        prepared = _prepare_working_dir(local_base / _APP_DIR_NAME)
        if prepared is not None:
            return prepared

    fallback = Path.home() / ".workshelf"
    fallback.mkdir(parents=True, exist_ok=True)
    get_data_dir(fallback).mkdir(parents=True, exist_ok=True)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_catalog_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "library.json"


def get_settings_path(working_dir: Path) -> Path:
    return working_dir / "settings.json"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (
        working_dir,
        get_data_dir(working_dir),
        get_logs_dir(working_dir),
    ):
        directory.mkdir(parents=True, exist_ok=True)
