"""User-driven catalog mutations.

Each action loads the whole document, changes one record and saves the
whole document again.
"""
from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from metadata.provider import MetadataProvider

from .identity import (
    display_name,
    extract_catalog_code,
    generate_local_id,
    is_local_id,
    rename_entry,
    safe_filename,
)
from .store import CatalogStore, LibrarySettings
from .thumbnails import ImageSource, LocalImageSource, ensure_thumbnail
from .types import WorkRecord, utc_now_iso

LOGGER = logging.getLogger("workshelf.library.actions")

# Fields owned by the user that fetched metadata never overwrites.
USER_STATE_KEYS = frozenset(
    {"isHidden", "isFavorite", "readingStatus", "lastReadAt", "lastReadPage", "totalPages", "bindingDirection"}
)
_LOCATION_KEYS = frozenset({"id", "localPath"})


@dataclass(slots=True)
class ActionResult:
    success: bool
    work_id: str
    error: Optional[str] = None


class LibraryActions:
    def __init__(
        self,
        store: CatalogStore,
        *,
        provider_factory: Callable[[LibrarySettings], MetadataProvider] = MetadataProvider.from_settings,
        image_source: Optional[ImageSource] = None,
    ) -> None:
        self._store = store
        self._provider_factory = provider_factory
        self._image_source = image_source if image_source is not None else LocalImageSource()

    # ------------------------------------------------------------------
    def remove_work(self, work_id: str) -> ActionResult:
        """Forget *work_id* without touching its files."""

        document = self._store.load()
        if document.works.pop(work_id, None) is None:
            return self._not_found(work_id)
        LOGGER.info("Removed work from library: %s", work_id)
        return self._save(document, work_id)

    def delete_work_with_files(self, work_id: str) -> ActionResult:
        document = self._store.load()
        work = document.works.get(work_id)
        if work is None:
            return self._not_found(work_id)
        path = work.local_path
        try:
            if path and os.path.isdir(path):
                shutil.rmtree(path)
                LOGGER.info("Deleted folder %s", path)
            elif path and os.path.exists(path):
                os.remove(path)
                LOGGER.info("Deleted file %s", path)
            else:
                LOGGER.info("Nothing on disk for %s (already deleted?): %s", work_id, path)
        except OSError as exc:
            LOGGER.error("Cannot delete files of %s: %s", work_id, exc)
            return ActionResult(False, work_id, str(exc))
        del document.works[work_id]
        return self._save(document, work_id)

    def toggle_visibility(self, work_id: str) -> ActionResult:
        document = self._store.load()
        work = document.works.get(work_id)
        if work is None:
            return self._not_found(work_id)
        work.is_hidden = not work.is_hidden
        LOGGER.info("Work %s hidden=%s", work_id, work.is_hidden)
        return self._save(document, work_id)

    def toggle_favorite(self, work_id: str) -> ActionResult:
        document = self._store.load()
        work = document.works.get(work_id)
        if work is None:
            return self._not_found(work_id)
        work.is_favorite = not work.is_favorite
        LOGGER.info("Work %s favorite=%s", work_id, work.is_favorite)
        return self._save(document, work_id)

    def update_reading_progress(self, work_id: str, current_page: int, total_pages: int) -> ActionResult:
        """Record the last page read; pages are zero-based."""

        document = self._store.load()
        work = document.works.get(work_id)
        if work is None:
            return self._not_found(work_id)
        work.last_read_at = utc_now_iso()
        work.last_read_page = current_page
        work.total_pages = total_pages
        if total_pages > 0 and current_page + 1 >= total_pages:
            work.reading_status = "completed"
        else:
            work.reading_status = "reading"
        LOGGER.info("Reading progress for %s: page %d/%d", work_id, current_page + 1, total_pages)
        return self._save(document, work_id)

    def update_work_info(self, work_id: str, updates: Mapping[str, Any]) -> ActionResult:
        """Apply user edits given as persisted (camelCase) fields.

        A new title renames the item on disk. A new ``id`` that is a catalog
        code refetches metadata, which wins over the other edits. A local
        record without an explicit id change takes the id of its new title.
        """

        document = self._store.load()
        work = document.works.get(work_id)
        if work is None:
            return self._not_found(work_id)
        changes: Dict[str, Any] = dict(updates)
        new_title = str(changes.get("title") or "").strip()
        if new_title and new_title != work.title:
            self._rename_on_disk(work, new_title, work_id)

        current_id = work_id
        requested_id = str(changes.pop("id", "") or "").strip().upper()
        if requested_id and requested_id != work_id:
            LOGGER.info("Updating work id: %s -> %s", work_id, requested_id)
            current_id = requested_id
            if extract_catalog_code(requested_id) == requested_id:
                fetched = self._fetch(requested_id, work.local_path)
                if fetched is not None:
                    metadata = fetched.to_dict()
                    changes.update(
                        {key: value for key, value in metadata.items() if key not in USER_STATE_KEYS | _LOCATION_KEYS}
                    )
            self._rename_on_disk(work, str(changes.get("title") or work.title), current_id)
            del document.works[work_id]
        elif is_local_id(work_id) and new_title:
            derived = generate_local_id(safe_filename(new_title))
            if derived != work_id:
                LOGGER.info("Updating local work id after title change: %s -> %s", work_id, derived)
                current_id = derived
                del document.works[work_id]

        merged = work.to_dict()
        merged.update(changes)
        record = WorkRecord.from_dict(merged)
        record.id = current_id
        document.works[current_id] = record
        return self._save(document, current_id)

    # ------------------------------------------------------------------
    def _fetch(self, code: str, local_path: str) -> Optional[WorkRecord]:
        provider = self._provider_factory(self._store.library_settings())
        record = provider.fetch_by_code(code, local_path)
        if record is None:
            LOGGER.warning("No metadata found for edited id %s", code)
            return None
        return ensure_thumbnail(record, self._image_source)

    def _rename_on_disk(self, work: WorkRecord, title: str, code: str) -> None:
        if not work.local_path or not os.path.exists(work.local_path):
            return
        try:
            new_path = rename_entry(work.local_path, display_name(work.local_path, title, code))
        except OSError as exc:
            LOGGER.error("Cannot rename %s on disk: %s", work.local_path, exc)
            return
        if new_path:
            work.local_path = new_path

    def _save(self, document, work_id: str) -> ActionResult:
        if self._store.save(document):
            return ActionResult(True, work_id)
        return ActionResult(False, work_id, "Cannot save catalog")

    @staticmethod
    def _not_found(work_id: str) -> ActionResult:
        LOGGER.error("Work not found: %s", work_id)
        return ActionResult(False, work_id, "Work not found")


__all__ = ["ActionResult", "LibraryActions", "USER_STATE_KEYS"]
