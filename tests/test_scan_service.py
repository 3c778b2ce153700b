from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from conftest import FakeImageSource, FakeResponse, FakeSession, write_encrypted_zip, write_settings

from library.pacing import ScanGuard
from library.service import ALREADY_SCANNING, NO_WORKS_FOUND, ScanOrchestrator
from library.store import CatalogStore
from library.thumbnails import LocalImageSource
from library.types import (
    CIRCLE_LOCAL,
    CIRCLE_UNFETCHED,
    TAG_FETCH_FAILED,
    TAG_NOT_FOUND,
    TAG_SEARCH_ERROR,
    CatalogDocument,
    WorkRecord,
)
from metadata.primary import ITEM_URL_TEMPLATE
from metadata.provider import MetadataProvider
from metadata.secondary import VOLUMES_URL

ITEM_PAGE = """
<html><body>
  <h1 id="work_name">Coded Work</h1>
  <span itemprop="brand">Circle</span>
  <div class="main_genre"><a>Fantasy</a></div>
</body></html>
"""


class StubProvider:
    def __init__(
        self,
        items: Optional[Dict[str, WorkRecord]] = None,
        titles: Optional[Dict[str, WorkRecord]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.items = items or {}
        self.titles = titles or {}
        self.error = error
        self.calls: List[tuple] = []

    def fetch_by_code(self, code: str, local_path: str = "") -> Optional[WorkRecord]:
        self.calls.append(("code", code))
        if self.error:
            raise self.error
        record = self.items.get(code)
        if record is not None:
            record.local_path = local_path
        return record

    def search_by_title(self, title, fuzzy_words, *, work_id, local_path="", primary_source_only=False):
        self.calls.append(("title", title, primary_source_only))
        if self.error:
            raise self.error
        record = self.titles.get(title)
        if record is not None:
            record.local_path = local_path
        return record


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _orchestrator(store: CatalogStore, provider, **kwargs) -> ScanOrchestrator:
    clock = kwargs.pop("clock", FakeClock())
    return ScanOrchestrator(
        store,
        provider_factory=lambda settings: provider,
        image_source=kwargs.pop("image_source", FakeImageSource()),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


@pytest.fixture
def library_root(tmp_path: Path) -> Path:
    root = tmp_path / "lib"
    root.mkdir()
    return root


def test_end_to_end_primary_and_secondary_sources(store, library_root) -> None:
    (library_root / "AB123456").mkdir()
    (library_root / "Comic.zip").write_bytes(b"")
    write_settings(store.working_dir, requestDelayMs=0)
    session = FakeSession(
        {
            ITEM_URL_TEMPLATE.format(domain="maniax", code="AB123456"): FakeResponse(200, ITEM_PAGE),
            VOLUMES_URL: FakeResponse(
                200, payload={"items": [{"volumeInfo": {"title": "Comic", "publisher": "Book Publisher"}}]}
            ),
        }
    )
    orchestrator = ScanOrchestrator(
        store,
        provider_factory=lambda settings: MetadataProvider.from_settings(settings, session=session),
        image_source=FakeImageSource(),
    )

    outcome = orchestrator.scan(library_root)

    assert outcome.total_candidates == 2
    assert outcome.success == 2
    assert outcome.failed == 0
    assert outcome.new_work_ids == ["AB123456", "LOCAL_COMIC_12VEPN"]
    document = store.load()
    assert document.works["AB123456"].title == "Coded Work"
    assert document.works["AB123456"].local_path == str(library_root / "AB123456")
    assert document.works["LOCAL_COMIC_12VEPN"].circle == "Book Publisher"
    assert document.scan_paths == [str(library_root)]


def test_second_scan_of_unchanged_root_finds_nothing_new(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()
    provider = StubProvider(items={"RJ123456": WorkRecord(id="RJ123456", title="T", circle="C")})
    orchestrator = _orchestrator(store, provider)

    assert orchestrator.scan(library_root).new_work_ids == ["RJ123456"]
    second = orchestrator.scan(library_root)

    assert second.new_work_ids == []
    assert second.total_candidates == 1
    assert provider.calls == [("code", "RJ123456")]


def test_concurrent_scan_is_rejected_without_touching_catalog(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()
    guard = ScanGuard()
    orchestrator = _orchestrator(store, StubProvider(), guard=guard)
    assert guard.try_acquire()

    outcome = orchestrator.scan(library_root)

    assert outcome.success == 0 and outcome.failed == 0
    assert outcome.errors == [ALREADY_SCANNING]
    assert orchestrator.is_scan_in_progress()
    assert not store.catalog_path.exists()


def test_placeholder_is_healed_on_next_scan(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()
    provider = StubProvider()
    orchestrator = _orchestrator(store, provider)

    first = orchestrator.scan(library_root)
    placeholder = store.load().works["RJ123456"]
    assert placeholder.circle == CIRCLE_UNFETCHED
    assert placeholder.tags == [TAG_FETCH_FAILED]
    assert first.success == 1
    assert any("RJ123456" in error for error in first.errors)

    provider.items["RJ123456"] = WorkRecord(id="RJ123456", title="Healed", circle="Circle")
    second = orchestrator.scan(library_root)

    assert second.new_work_ids == ["RJ123456"]
    assert store.load().works["RJ123456"].title == "Healed"


def test_local_work_not_found_is_stored_as_local_placeholder(store, library_root) -> None:
    (library_root / "Mystery").mkdir()
    provider = StubProvider()

    outcome = _orchestrator(store, provider).scan(library_root, primary_source_only=True)

    (work_id,) = outcome.new_work_ids
    record = store.load().works[work_id]
    assert record.circle == CIRCLE_LOCAL
    assert TAG_NOT_FOUND in record.tags
    assert record.is_placeholder
    assert provider.calls == [("title", "Mystery", True)]
    assert "Mystery: not found online" in outcome.errors


def test_provider_errors_become_placeholders(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()
    (library_root / "Loose").mkdir()

    outcome = _orchestrator(store, StubProvider(error=RuntimeError("parser exploded"))).scan(library_root)

    works = store.load().works
    assert outcome.success == 2
    assert works["RJ123456"].circle == "error"
    local = next(work for work_id, work in works.items() if work_id.startswith("LOCAL_"))
    assert TAG_SEARCH_ERROR in local.tags


def test_discovered_code_renames_folder(store, library_root) -> None:
    (library_root / "Secret Diary").mkdir()
    provider = StubProvider(titles={"Secret Diary": WorkRecord(id="BJ012345", title="Secret Diary: Vol?", circle="C")})
    orchestrator = _orchestrator(store, provider)

    outcome = orchestrator.scan(library_root)

    renamed = library_root / "[BJ012345] Secret Diary_ Vol_"
    assert renamed.is_dir()
    assert outcome.new_work_ids == ["BJ012345"]
    works = store.load().works
    assert list(works) == ["BJ012345"]
    assert works["BJ012345"].local_path == str(renamed)
    assert orchestrator.scan(library_root).new_work_ids == []


def test_rename_on_discovery_can_be_disabled(store, library_root) -> None:
    (library_root / "Secret Diary").mkdir()
    write_settings(store.working_dir, renameOnDiscovery=False)
    provider = StubProvider(titles={"Secret Diary": WorkRecord(id="BJ012345", title="Other", circle="C")})
    orchestrator = _orchestrator(store, provider)

    orchestrator.scan(library_root)

    assert (library_root / "Secret Diary").is_dir()
    assert store.load().works["BJ012345"].local_path == str(library_root / "Secret Diary")

    second = orchestrator.scan(library_root)

    assert second.new_work_ids == []
    assert list(store.load().works) == ["BJ012345"]
    assert len(provider.calls) == 1


def test_requests_are_spaced_but_not_after_the_last_item(store, library_root) -> None:
    for name in ("RJ000001", "RJ000002", "RJ000003"):
        (library_root / name).mkdir()
    write_settings(store.working_dir, requestDelayMs=1000)
    clock = FakeClock()

    _orchestrator(store, StubProvider(), clock=clock).scan(library_root)

    assert clock.sleeps == [1.0, 1.0]


def test_progress_and_state_notifications(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()
    orchestrator = _orchestrator(store, StubProvider())
    states: List[bool] = []
    updates: List[Optional[str]] = []
    progress = []
    orchestrator.events.on_scan_state_changed(states.append)
    orchestrator.events.on_updated(updates.append)

    orchestrator.scan(library_root, on_progress=progress.append)

    assert states == [True, False]
    assert [(event.current, event.total, event.id) for event in progress][0] == (1, 1, "RJ123456")
    assert {event.status for event in progress} == {"processing", "fetching"}
    assert updates == [None]


def test_empty_root_reports_and_records_path(store, library_root) -> None:
    outcome = _orchestrator(store, StubProvider()).scan(library_root)

    assert outcome.errors == [NO_WORKS_FOUND]
    assert store.load().scan_paths == [str(library_root)]


def test_failed_saves_are_counted(store, library_root, monkeypatch) -> None:
    (library_root / "RJ123456").mkdir()
    monkeypatch.setattr(store, "save", lambda document: False)

    outcome = _orchestrator(store, StubProvider()).scan(library_root)

    assert outcome.failed == 1
    assert outcome.success == 0
    assert outcome.new_work_ids == []


def test_unexpected_errors_are_reported_and_release_the_guard(store, library_root) -> None:
    (library_root / "RJ123456").mkdir()

    def broken_factory(settings):
        raise RuntimeError("no provider")

    orchestrator = ScanOrchestrator(store, provider_factory=broken_factory, image_source=FakeImageSource())
    outcome = orchestrator.scan(library_root)

    assert outcome.errors == ["Scan failed: no provider"]
    assert not orchestrator.is_scan_in_progress()


def test_cleanup_removes_records_without_files(store, library_root) -> None:
    present = library_root / "RJ000001"
    present.mkdir()
    document = CatalogDocument(
        works={
            "RJ000001": WorkRecord(id="RJ000001", title="A", local_path=str(present)),
            "RJ000002": WorkRecord(id="RJ000002", title="B", local_path=str(library_root / "gone")),
        }
    )
    store.save(document)

    result = _orchestrator(store, StubProvider()).cleanup_missing()

    assert result.removed_ids == ["RJ000002"]
    assert list(store.load().works) == ["RJ000001"]


def test_scan_configured_roots_uses_per_root_flags(store, tmp_path) -> None:
    first = tmp_path / "one"
    second = tmp_path / "two"
    for root, name in ((first, "Alpha"), (second, "Beta")):
        (root / name).mkdir(parents=True)
    write_settings(
        store.working_dir,
        requestDelayMs=0,
        libraryPaths=[str(first), {"path": str(second), "primarySourceOnly": True}],
    )
    provider = StubProvider()

    outcomes = _orchestrator(store, provider).scan_configured_roots()

    assert len(outcomes) == 2
    assert provider.calls == [("title", "Alpha", False), ("title", "Beta", True)]
    saved = json.loads(store.catalog_path.read_text(encoding="utf-8"))
    assert saved["scanPaths"] == [str(first), str(second)]


def test_unreadable_archive_does_not_stop_other_items(store, library_root) -> None:
    write_encrypted_zip(library_root / "A Locked.zip", "001.png", b"\x89PNG")
    (library_root / "RJ123456").mkdir()
    provider = StubProvider(items={"RJ123456": WorkRecord(id="RJ123456", title="Coded", circle="C")})
    orchestrator = _orchestrator(store, provider, image_source=LocalImageSource())

    outcome = orchestrator.scan(library_root)

    assert outcome.success == 2
    assert outcome.new_work_ids[-1] == "RJ123456"
    works = store.load().works
    assert works["RJ123456"].title == "Coded"
    locked = next(work for work_id, work in works.items() if work_id.startswith("LOCAL_"))
    assert locked.thumbnail_url == ""
    assert TAG_NOT_FOUND in locked.tags

    assert orchestrator.scan(library_root).errors == ["A Locked: not found online"]
