"""Shared dataclasses for the work catalog."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

CATALOG_VERSION = "1.0.0"

DESCRIPTION_MAX_CHARS = 1000
SAMPLE_IMAGES_MAX = 10

READING_STATUSES = ("unread", "reading", "completed")
BINDING_DIRECTIONS = ("reverse", "forward")

# Placeholder markers written by this package.
CIRCLE_UNFETCHED = "unfetched"
CIRCLE_ERROR = "error"
CIRCLE_UNREGISTERED = "unregistered"
CIRCLE_UNSET = "unset"
CIRCLE_LOCAL = "local work"

TAG_LOCAL = "local"
TAG_FETCH_FAILED = "fetch failed"
TAG_NOT_FOUND = "not found online"
TAG_SEARCH_ERROR = "search error"
TAG_ERROR = "error"
TAG_UNFETCHED = "unfetched"

# Markers written by older (Japanese-locale) clients.
_LEGACY_PLACEHOLDER_CIRCLES = {"未取得", "エラー", "未登録", "未設定"}
_LEGACY_PLACEHOLDER_TAGS = {"未取得", "エラー"}
_LEGACY_LOCAL_CIRCLE = "ローカル作品"

PLACEHOLDER_CIRCLES = frozenset(
    {CIRCLE_UNFETCHED, CIRCLE_ERROR, CIRCLE_UNREGISTERED, CIRCLE_UNSET} | _LEGACY_PLACEHOLDER_CIRCLES
)
PLACEHOLDER_TAGS = frozenset(
    {TAG_UNFETCHED, TAG_ERROR, TAG_FETCH_FAILED, TAG_NOT_FOUND, TAG_SEARCH_ERROR} | _LEGACY_PLACEHOLDER_TAGS
)
LOCAL_CIRCLES = frozenset({CIRCLE_LOCAL, _LEGACY_LOCAL_CIRCLE})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def unique_non_empty(values) -> List[str]:
    seen: List[str] = []
    for value in values or ():
        text = str(value).strip()
        if text and text not in seen:
            seen.append(text)
    return seen


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass(slots=True)
class WorkRecord:
    """One cataloged item."""

    id: str
    title: str
    circle: str = ""
    authors: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    description: str = ""
    thumbnail_url: str = ""
    sample_images: List[str] = field(default_factory=list)
    local_path: str = ""
    fetched_at: str = field(default_factory=utc_now_iso)
    release_date: Optional[str] = None
    age_rating: Optional[str] = None
    work_type: Optional[str] = None
    is_hidden: bool = False
    is_favorite: bool = False
    reading_status: str = "unread"
    last_read_at: Optional[str] = None
    last_read_page: Optional[int] = None
    total_pages: Optional[int] = None
    binding_direction: Optional[str] = None

    def __post_init__(self) -> None:
        self.authors = unique_non_empty(self.authors)
        self.tags = unique_non_empty(self.tags)
        self.description = (self.description or "")[:DESCRIPTION_MAX_CHARS]
        self.sample_images = unique_non_empty(self.sample_images)[:SAMPLE_IMAGES_MAX]
        if self.reading_status not in READING_STATUSES:
            self.reading_status = "unread"
        if self.binding_direction not in BINDING_DIRECTIONS:
            self.binding_direction = None

    @property
    def is_placeholder(self) -> bool:
        if self.circle in PLACEHOLDER_CIRCLES or self.circle in LOCAL_CIRCLES:
            return True
        return any(tag in PLACEHOLDER_TAGS for tag in self.tags)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "circle": self.circle,
            "authors": list(self.authors),
            "tags": list(self.tags),
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "sampleImages": list(self.sample_images),
            "localPath": self.local_path,
            "fetchedAt": self.fetched_at,
            "isHidden": self.is_hidden,
            "isFavorite": self.is_favorite,
            "readingStatus": self.reading_status,
        }
        optional = {
            "releaseDate": self.release_date,
            "ageRating": self.age_rating,
            "workType": self.work_type,
            "lastReadAt": self.last_read_at,
            "lastReadPage": self.last_read_page,
            "totalPages": self.total_pages,
            "bindingDirection": self.binding_direction,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, fallback_id: str = "") -> "WorkRecord":
        work_id = str(data.get("id") or data.get("rjCode") or fallback_id)

        def _opt_int(key: str) -> Optional[int]:
            value = data.get(key)
            try:
                return int(value) if value is not None else None
            except (TypeError, ValueError):
                return None

        return cls(
            id=work_id,
            title=str(data.get("title") or ""),
            circle=str(data.get("circle") or ""),
            authors=_string_list(data.get("authors")),
            tags=_string_list(data.get("tags")),
            description=str(data.get("description") or ""),
            thumbnail_url=str(data.get("thumbnailUrl") or ""),
            sample_images=_string_list(data.get("sampleImages")),
            local_path=str(data.get("localPath") or ""),
            fetched_at=str(data.get("fetchedAt") or utc_now_iso()),
            release_date=data.get("releaseDate") or None,
            age_rating=data.get("ageRating") or None,
            work_type=data.get("workType") or None,
            is_hidden=bool(data.get("isHidden", False)),
            is_favorite=bool(data.get("isFavorite", False)),
            reading_status=str(data.get("readingStatus") or "unread"),
            last_read_at=data.get("lastReadAt") or None,
            last_read_page=_opt_int("lastReadPage"),
            total_pages=_opt_int("totalPages"),
            binding_direction=data.get("bindingDirection") or None,
        )


@dataclass(slots=True)
class CatalogDocument:
    """The whole persisted catalog."""

    version: str = CATALOG_VERSION
    last_updated: str = field(default_factory=utc_now_iso)
    scan_paths: List[str] = field(default_factory=list)
    works: Dict[str, WorkRecord] = field(default_factory=dict)

    def add_scan_path(self, path: str) -> None:
        if path not in self.scan_paths:
            self.scan_paths.append(path)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": self.last_updated,
            "scanPaths": list(self.scan_paths),
            "works": {work_id: work.to_dict() for work_id, work in self.works.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogDocument":
        works_raw = data.get("works")
        if not isinstance(works_raw, Mapping):
            raise ValueError("catalog 'works' must be an object")
        works: Dict[str, WorkRecord] = {}
        for key, value in works_raw.items():
            if not isinstance(value, Mapping):
                continue
            record = WorkRecord.from_dict(value, fallback_id=str(key))
            record.id = str(key)
            works[str(key)] = record
        scan_paths = data.get("scanPaths")
        return cls(
            version=str(data.get("version") or CATALOG_VERSION),
            last_updated=str(data.get("lastUpdated") or utc_now_iso()),
            scan_paths=unique_non_empty(scan_paths if isinstance(scan_paths, list) else []),
            works=works,
        )


@dataclass(slots=True, frozen=True)
class ScanCandidate:
    """A filesystem entry that may be a work."""

    id: str
    path: str
    is_archive: bool = False


@dataclass(slots=True)
class ScanOutcome:
    success: int = 0
    failed: int = 0
    total_candidates: int = 0
    new_work_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "failed": self.failed,
            "totalCandidates": self.total_candidates,
            "newWorkIds": list(self.new_work_ids),
            "errors": list(self.errors),
        }


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    current: int
    total: int
    id: str
    status: str


@dataclass(slots=True)
class CleanupResult:
    removed_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
