"""Tests for core.settings helpers."""

from __future__ import annotations

import json
from pathlib import Path

from core.settings import load_settings, merge_defaults, save_settings


def test_merge_defaults_includes_source_blocks() -> None:
    merged = merge_defaults({})

    assert merged["requestDelayMs"] == 1500
    assert merged["autoScan"] is False
    assert merged["viewerTheme"] == "black"
    assert merged["defaultBindingDirection"] == "reverse"
    assert merged["primarySource"]["domains"][0] == "maniax"
    assert merged["primarySource"]["timeoutS"] == 15
    assert merged["secondarySource"]["maxResults"] == 10
    assert merged["watcher"] == {"quietPeriodS": 5, "depth": 3, "stabilityMs": 1000}


def test_merge_defaults_fills_missing_nested_fields() -> None:
    merged = merge_defaults({"primarySource": {"domains": ["home"]}, "viewerTheme": ""})

    assert merged["primarySource"]["domains"] == ["home"]
    assert merged["primarySource"]["maxSearchResults"] == 10
    assert merged["viewerTheme"] == "black"


def test_load_settings_migrates_legacy_keys(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    legacy = {
        "libraryPaths": ["D:/works"],
        "requestDelay": 2500,
        "defaultBindingDirection": "ltr",
    }
    path.write_text(json.dumps(legacy), encoding="utf-8")

    loaded = load_settings(tmp_path)

    assert loaded["requestDelayMs"] == 2500
    assert "requestDelay" not in loaded
    assert loaded["defaultBindingDirection"] == "forward"
    assert loaded["libraryPaths"] == ["D:/works"]


def test_load_settings_survives_corrupt_file(tmp_path: Path) -> None:
    (tmp_path / "settings.json").write_text("{not json", encoding="utf-8")

    loaded = load_settings(tmp_path)

    assert loaded["requestDelayMs"] == 1500


def test_unknown_keys_are_reported(tmp_path: Path) -> None:
    payload = {"autoScan": True, "legacyFlag": 1, "watcher": {"depth": 2, "poll": 5}}
    (tmp_path / "settings.json").write_text(json.dumps(payload), encoding="utf-8")

    load_settings(tmp_path)

    report = json.loads((tmp_path / "logs" / "settings_unknown.json").read_text(encoding="utf-8"))
    assert report["unknown"] == ["legacyFlag", "watcher.poll"]


def test_save_settings_writes_merged_document(tmp_path: Path) -> None:
    save_settings({"autoScan": True, "fuzzyWords": ["secret"]}, tmp_path)

    saved = json.loads((tmp_path / "settings.json").read_text(encoding="utf-8"))
    assert saved["autoScan"] is True
    assert saved["fuzzyWords"] == ["secret"]
    assert saved["secondarySource"]["language"] == "ja"
    assert saved["version"] == 2
