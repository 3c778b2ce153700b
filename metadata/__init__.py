"""Metadata acquisition from the primary and secondary sources."""
from __future__ import annotations

from .errors import MetadataError, NotAnItemPage, SourceUnavailable
from .matching import build_query_variants, is_good_match, normalize_title
from .provider import MetadataProvider

__all__ = [
    "MetadataError",
    "MetadataProvider",
    "NotAnItemPage",
    "SourceUnavailable",
    "build_query_variants",
    "is_good_match",
    "normalize_title",
]
