"""Metadata acquisition with domain, query-variant and source fallbacks."""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from library.store import LibrarySettings
from library.types import WorkRecord, utc_now_iso

from .errors import SourceUnavailable
from .http import BROWSER_HEADERS, HttpClient
from .matching import build_query_variants, is_good_match
from .primary import AGE_GATE_COOKIES, PrimarySource, SearchHit
from .secondary import SecondarySource, volume_to_record

LOGGER = logging.getLogger("workshelf.metadata.provider")


class MetadataProvider:
    """Resolve catalog codes and titles to :class:`WorkRecord` objects.

    Exhausting the fallback lists is the retry policy; nothing is retried
    with backoff. ``None`` means "not found".
    """

    def __init__(self, primary: PrimarySource, secondary: Optional[SecondarySource] = None) -> None:
        self._primary = primary
        self._secondary = secondary

    @classmethod
    def from_settings(cls, settings: LibrarySettings, session=None) -> "MetadataProvider":
        primary = PrimarySource(
            HttpClient(session, headers=BROWSER_HEADERS, cookies=AGE_GATE_COOKIES),
            domains=settings.primary_domains,
            timeout_s=settings.primary_timeout_s,
            max_search_results=settings.primary_max_results,
        )
        secondary = None
        if settings.secondary_enabled:
            secondary = SecondarySource(
                HttpClient(session),
                timeout_s=settings.secondary_timeout_s,
                max_results=settings.secondary_max_results,
                language=settings.secondary_language,
                api_key=settings.secondary_api_key,
            )
        return cls(primary, secondary)

    # ------------------------------------------------------------------
    def fetch_by_code(self, code: str, local_path: str = "") -> Optional[WorkRecord]:
        return self._primary.fetch_item(code, local_path)

    def search_by_title(
        self,
        title: str,
        fuzzy_words: Sequence[str],
        *,
        work_id: str,
        local_path: str = "",
        primary_source_only: bool = False,
    ) -> Optional[WorkRecord]:
        variants = build_query_variants(title, fuzzy_words)
        for query in variants:
            for domain in self._primary.domains:
                try:
                    hits = self._primary.search_hits(domain, query)
                except SourceUnavailable:
                    continue
                for hit in hits:
                    if not is_good_match(query, hit.title, fuzzy_words):
                        continue
                    record = self._resolve_hit(hit, work_id, local_path)
                    if record is not None:
                        LOGGER.info("Matched %r to %s via query %r", title, record.id, query)
                        return record
        LOGGER.info("No primary-source match for %r", title)
        if primary_source_only:
            return None
        return self.search_secondary_source(title, fuzzy_words, work_id=work_id, local_path=local_path)

    def search_secondary_source(
        self,
        title: str,
        fuzzy_words: Sequence[str],
        *,
        work_id: str,
        local_path: str = "",
    ) -> Optional[WorkRecord]:
        if self._secondary is None:
            return None
        for query in build_query_variants(title, fuzzy_words):
            try:
                volumes = self._secondary.search(query)
            except SourceUnavailable:
                continue
            for volume in volumes:
                if is_good_match(query, volume.title, fuzzy_words):
                    LOGGER.info("Matched %r to secondary-source volume %r", title, volume.title)
                    return volume_to_record(volume, work_id, local_path)
        LOGGER.info("No secondary-source match for %r", title)
        return None

    # ------------------------------------------------------------------
    def _resolve_hit(self, hit: SearchHit, work_id: str, local_path: str) -> Optional[WorkRecord]:
        if hit.code:
            return self.fetch_by_code(hit.code, local_path)
        return WorkRecord(
            id=work_id,
            title=hit.title,
            thumbnail_url=hit.thumbnail_url,
            local_path=local_path,
            fetched_at=utc_now_iso(),
        )


__all__ = ["MetadataProvider"]
