"""Scan orchestration: scan, reconcile, acquire metadata, persist."""
from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional

from metadata.provider import MetadataProvider

from .events import LibraryEvents, ProgressListener
from .identity import display_name, is_local_id, rename_entry, strip_archive_extension
from .pacing import RateLimiter, ScanGuard
from .reconcile import reconcile
from .scanner import scan_folder
from .store import CatalogStore, LibrarySettings
from .thumbnails import ImageSource, LocalImageSource, ensure_thumbnail
from .types import (
    CIRCLE_ERROR,
    CIRCLE_LOCAL,
    CIRCLE_UNFETCHED,
    TAG_ERROR,
    TAG_FETCH_FAILED,
    TAG_LOCAL,
    TAG_NOT_FOUND,
    TAG_SEARCH_ERROR,
    CatalogDocument,
    CleanupResult,
    ProgressEvent,
    ScanCandidate,
    ScanOutcome,
    WorkRecord,
)

LOGGER = logging.getLogger("workshelf.library.scan")

ALREADY_SCANNING = "Already scanning"
NO_WORKS_FOUND = "No works (folders or archives) found"

STATUS_PROCESSING = "processing"
STATUS_SEARCHING = "searching by title"
STATUS_FETCHING = "fetching"

ProviderFactory = Callable[[LibrarySettings], MetadataProvider]


class ScanOrchestrator:
    """Run one scan of a library root at a time.

    Every new item is persisted as soon as it is processed, so an
    interrupted run keeps the work done so far. Items that cannot be
    resolved are stored as placeholders and retried on the next scan.
    """

    def __init__(
        self,
        store: CatalogStore,
        *,
        provider_factory: ProviderFactory = MetadataProvider.from_settings,
        events: Optional[LibraryEvents] = None,
        image_source: Optional[ImageSource] = None,
        guard: Optional[ScanGuard] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._provider_factory = provider_factory
        self._events = events or LibraryEvents()
        self._image_source = image_source if image_source is not None else LocalImageSource()
        self._guard = guard or ScanGuard()
        self._clock = clock
        self._sleep = sleep

    @property
    def events(self) -> LibraryEvents:
        return self._events

    @property
    def store(self) -> CatalogStore:
        return self._store

    def is_scan_in_progress(self) -> bool:
        return self._guard.active

    # ------------------------------------------------------------------
    def scan(
        self,
        root: str | os.PathLike[str],
        primary_source_only: bool = False,
        on_progress: Optional[ProgressListener] = None,
    ) -> ScanOutcome:
        if not self._guard.try_acquire():
            LOGGER.warning("Scan already in progress, skipping %s", root)
            return ScanOutcome(errors=[ALREADY_SCANNING])
        outcome = ScanOutcome()
        self._events.scan_state_changed(True)
        try:
            self._run(str(root), primary_source_only, on_progress, outcome)
        except Exception as exc:
            LOGGER.exception("Scan of %s failed", root)
            outcome.errors.append(f"Scan failed: {exc}")
        finally:
            self._guard.release()
            self._events.scan_state_changed(False)
        LOGGER.info(
            "Scan of %s finished: %d succeeded, %d failed, %d candidates",
            root,
            outcome.success,
            outcome.failed,
            outcome.total_candidates,
        )
        return outcome

    def scan_configured_roots(self) -> List[ScanOutcome]:
        """Scan every configured library root in turn."""

        outcomes = []
        for entry in self._store.library_settings().library_paths:
            outcomes.append(self.scan(entry.path, entry.primary_source_only))
        return outcomes

    def cleanup_missing(self, document: Optional[CatalogDocument] = None) -> CleanupResult:
        """Drop records whose local path no longer exists."""

        document = document if document is not None else self._store.load()
        result = CleanupResult()
        for work_id, work in list(document.works.items()):
            if work.local_path and os.path.exists(work.local_path):
                continue
            LOGGER.info("Missing on disk, removing %s (%s)", work_id, work.local_path)
            del document.works[work_id]
            result.removed_ids.append(work_id)
        if result.removed_ids:
            if not self._store.save(document):
                result.errors.append("Cannot save catalog after cleanup")
            LOGGER.info("Cleaned up %d missing works", len(result.removed_ids))
        return result

    # ------------------------------------------------------------------
    def _run(
        self,
        root: str,
        primary_source_only: bool,
        on_progress: Optional[ProgressListener],
        outcome: ScanOutcome,
    ) -> None:
        settings = self._store.library_settings()
        document = self._store.load()
        document.add_scan_path(root)

        candidates = scan_folder(root)
        outcome.total_candidates = len(candidates)
        if not candidates:
            outcome.errors.append(NO_WORKS_FOUND)
            self._store.save(document)
            return

        plan = reconcile(candidates, document, drop_placeholders_on_rename=settings.drop_placeholder_on_rename)
        if plan.existing or plan.migrations:
            for candidate in plan.existing:
                ensure_thumbnail(document.works[candidate.id], self._image_source)
            self._store.save(document)
            self._events.updated()

        LOGGER.info("New works to acquire: %d, existing: %d", len(plan.new), len(plan.existing))
        if plan.new:
            provider = self._provider_factory(settings)
            limiter = RateLimiter(settings.request_delay_ms / 1000.0, clock=self._clock, sleep=self._sleep)
            total = len(plan.new)
            for index, candidate in enumerate(plan.new, start=1):
                self._events.progress(ProgressEvent(index, total, candidate.id, STATUS_PROCESSING), on_progress)
                limiter.wait()
                try:
                    if is_local_id(candidate.id):
                        self._events.progress(
                            ProgressEvent(index, total, candidate.id, STATUS_SEARCHING), on_progress
                        )
                        work_id = self._acquire_local(candidate, document, provider, settings, primary_source_only, outcome)
                    else:
                        self._events.progress(ProgressEvent(index, total, candidate.id, STATUS_FETCHING), on_progress)
                        work_id = self._acquire_coded(candidate, document, provider, outcome)
                except Exception as exc:
                    LOGGER.exception("Acquiring %s failed", candidate.id)
                    document.works[candidate.id] = _placeholder(
                        candidate, _title_from_path(candidate.path), CIRCLE_ERROR, [TAG_ERROR], f"Error: {exc}"
                    )
                    outcome.errors.append(f"{candidate.id}: stored as placeholder after an error")
                    work_id = candidate.id
                finally:
                    limiter.release()
                if self._store.save(document):
                    outcome.success += 1
                    outcome.new_work_ids.append(work_id)
                else:
                    outcome.failed += 1
                    outcome.errors.append(f"{work_id}: could not be saved")
                self._events.updated()
            self._store.save(document)

        cleanup = self.cleanup_missing()
        outcome.errors.extend(cleanup.errors)
        if cleanup.removed_ids:
            self._events.updated()

    def _store_record(self, document: CatalogDocument, record: WorkRecord) -> None:
        document.works[record.id] = ensure_thumbnail(record, self._image_source)

    def _acquire_local(
        self,
        candidate: ScanCandidate,
        document: CatalogDocument,
        provider: MetadataProvider,
        settings: LibrarySettings,
        primary_source_only: bool,
        outcome: ScanOutcome,
    ) -> str:
        title = _title_from_path(candidate.path)
        try:
            record = provider.search_by_title(
                title,
                settings.fuzzy_words,
                work_id=candidate.id,
                local_path=candidate.path,
                primary_source_only=primary_source_only,
            )
        except Exception as exc:
            LOGGER.exception("Title search failed for %r", title)
            self._store_record(
                document,
                _placeholder(candidate, title, CIRCLE_LOCAL, [TAG_LOCAL, TAG_SEARCH_ERROR], f"Search failed: {exc}"),
            )
            outcome.errors.append(f"{title}: search error")
            return candidate.id

        if record is None:
            self._store_record(
                document,
                _placeholder(candidate, title, CIRCLE_LOCAL, [TAG_LOCAL, TAG_NOT_FOUND], "No information found online."),
            )
            outcome.errors.append(f"{title}: not found online")
            return candidate.id

        if settings.rename_on_discovery:
            self._rename_discovered(candidate, record, title)
        self._store_record(document, record)
        if record.id != candidate.id:
            LOGGER.info("Discovered catalog code %s for %s", record.id, candidate.id)
            document.works.pop(candidate.id, None)
        return record.id

    def _acquire_coded(
        self,
        candidate: ScanCandidate,
        document: CatalogDocument,
        provider: MetadataProvider,
        outcome: ScanOutcome,
    ) -> str:
        title = _title_from_path(candidate.path)
        try:
            record = provider.fetch_by_code(candidate.id, candidate.path)
        except Exception as exc:
            LOGGER.exception("Fetching %s failed", candidate.id)
            self._store_record(
                document, _placeholder(candidate, title, CIRCLE_ERROR, [TAG_ERROR], f"Error: {exc}")
            )
            outcome.errors.append(f"{candidate.id}: stored as placeholder after an error")
            return candidate.id

        if record is None:
            self._store_record(
                document,
                _placeholder(candidate, title, CIRCLE_UNFETCHED, [TAG_FETCH_FAILED], "Metadata could not be fetched."),
            )
            outcome.errors.append(f"{candidate.id}: metadata unavailable, stored as placeholder")
            return candidate.id

        record.id = candidate.id
        record.local_path = candidate.path
        self._store_record(document, record)
        return candidate.id

    def _rename_discovered(self, candidate: ScanCandidate, record: WorkRecord, title_from_file: str) -> None:
        if not is_local_id(record.id):
            new_name = display_name(candidate.path, record.title, record.id)
        elif record.title != title_from_file:
            new_name = display_name(candidate.path, record.title)
        else:
            return
        try:
            new_path = rename_entry(candidate.path, new_name)
        except OSError as exc:
            LOGGER.error("Cannot rename %s after discovery: %s", candidate.path, exc)
            return
        if new_path:
            record.local_path = new_path


def _title_from_path(path: str) -> str:
    return strip_archive_extension(Path(path).name)


def _placeholder(candidate: ScanCandidate, title: str, circle: str, tags: List[str], description: str) -> WorkRecord:
    return WorkRecord(
        id=candidate.id,
        title=title,
        circle=circle,
        tags=tags,
        description=description,
        local_path=candidate.path,
    )


__all__ = ["ALREADY_SCANNING", "NO_WORKS_FOUND", "ScanOrchestrator"]
