"""Secondary metadata source: the Google Books volumes API."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.logging_utils import redact_secret
from library.types import WorkRecord, utc_now_iso

from .http import HttpClient

LOGGER = logging.getLogger("workshelf.metadata.secondary")

VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"


@dataclass(slots=True)
class Volume:
    title: str
    publisher: str = ""
    authors: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    description: str = ""
    thumbnail_url: str = ""
    published_date: Optional[str] = None


def _https(url: str) -> str:
    if url.startswith("http://"):
        return "https://" + url[len("http://") :]
    return url


def parse_volume(item: Dict[str, Any]) -> Optional[Volume]:
    info = item.get("volumeInfo") if isinstance(item, dict) else None
    if not isinstance(info, dict):
        return None
    title = str(info.get("title") or "").strip()
    if not title:
        return None
    subtitle = str(info.get("subtitle") or "").strip()
    if subtitle:
        title = f"{title} {subtitle}"
    links = info.get("imageLinks") if isinstance(info.get("imageLinks"), dict) else {}
    thumbnail = links.get("thumbnail") or links.get("smallThumbnail") or ""
    return Volume(
        title=title,
        publisher=str(info.get("publisher") or "").strip(),
        authors=[str(name) for name in info.get("authors") or [] if name],
        categories=[str(name) for name in info.get("categories") or [] if name],
        description=str(info.get("description") or ""),
        thumbnail_url=_https(str(thumbnail)),
        published_date=str(info.get("publishedDate")) if info.get("publishedDate") else None,
    )


class SecondarySource:
    """Title search against a single structured API endpoint."""

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        *,
        timeout_s: float = 10.0,
        max_results: int = 10,
        language: Optional[str] = "ja",
        api_key: Optional[str] = None,
    ) -> None:
        self._client = client or HttpClient()
        self._timeout = float(timeout_s)
        self._max_results = max(1, min(40, int(max_results)))
        self._language = language
        self._api_key = api_key

    def search(self, query: str) -> List[Volume]:
        """Return parsed volumes for *query*.

        Raises :class:`~metadata.errors.SourceUnavailable` on transport failures.
        """

        params: Dict[str, Any] = {"q": f"intitle:{query}", "maxResults": self._max_results}
        if self._language:
            params["langRestrict"] = self._language
        if self._api_key:
            params["key"] = self._api_key
        LOGGER.debug("Querying volumes API for %r (key=%s)", query, redact_secret(self._api_key))
        payload = self._client.get_json(VOLUMES_URL, params=params, timeout=self._timeout)
        items = payload.get("items") if isinstance(payload, dict) else None
        volumes: List[Volume] = []
        for item in items or []:
            volume = parse_volume(item)
            if volume is not None:
                volumes.append(volume)
            if len(volumes) >= self._max_results:
                break
        return volumes


def volume_to_record(volume: Volume, work_id: str, local_path: str) -> WorkRecord:
    return WorkRecord(
        id=work_id,
        title=volume.title,
        circle=volume.publisher,
        authors=volume.authors,
        tags=volume.categories,
        description=volume.description,
        thumbnail_url=volume.thumbnail_url,
        local_path=local_path,
        fetched_at=utc_now_iso(),
        release_date=volume.published_date,
        work_type="book",
    )


__all__ = ["SecondarySource", "VOLUMES_URL", "Volume", "parse_volume", "volume_to_record"]
