"""Title normalisation and fuzzy matching.

Titles and fuzzy words come from filenames, settings and remote pages, so
every character that reaches a regular expression goes through
``re.escape`` unless it is deliberately turned into a wildcard.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Optional, Pattern, Sequence

# Symbols conventionally used to obscure part of a title.
CENSOR_GLYPHS = frozenset("●○◯〇■□◆◇★☆×✕＊*♥♡")

_BRACKETS = "()[]{}【】「」『』〔〕〈〉《》〘〙〚〛［］（）｛｝"
_HYPHENS = "-‐‑‒–—―−"
_STRIP_RE = re.compile("[" + re.escape(_BRACKETS + _HYPHENS) + r"\s]+")
_DIGITS_RE = re.compile(r"\d+")
_WHITESPACE_RE = re.compile(r"\s+")
_KATAKANA_RUN_RE = re.compile(r"[ァ-ヺー]{2,}|[ｦ-ﾟ]{2,}")


def normalize_title(text: str) -> str:
    """Lowercase, fold fullwidth forms and drop brackets, hyphens and spaces."""

    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text).lower()
    return _STRIP_RE.sub("", folded)


def digit_signature(text: str) -> str:
    return "".join(_DIGITS_RE.findall(text))


def _normalized_words(fuzzy_words: Iterable[str]) -> List[str]:
    words = []
    for word in fuzzy_words or ():
        normalized = normalize_title(str(word))
        if normalized and normalized not in words:
            words.append(normalized)
    return words


def wildcard_mask(text: str, fuzzy_words: Sequence[str]) -> List[bool]:
    """Mark positions of *text* that should match any single character."""

    mask = [char in CENSOR_GLYPHS for char in text]
    for word in _normalized_words(fuzzy_words):
        start = text.find(word)
        while start != -1:
            for idx in range(start, start + len(word)):
                mask[idx] = True
            start = text.find(word, start + len(word))
    return mask


def build_wildcard_pattern(text: str, fuzzy_words: Sequence[str] = ()) -> Optional[Pattern[str]]:
    """Compile *text* (already normalised) into a pattern with wildcard holes.

    Returns ``None`` when no usable pattern can be built.
    """

    if not text:
        return None
    mask = wildcard_mask(text, fuzzy_words)
    if all(mask):
        return None
    source = "".join("." if wild else re.escape(char) for char, wild in zip(text, mask))
    try:
        return re.compile(source, re.DOTALL)
    except re.error:
        return None


def remove_fuzzy_words(text: str, fuzzy_words: Sequence[str]) -> str:
    for word in _normalized_words(fuzzy_words):
        text = text.replace(word, "")
    return text


def is_good_match(query: str, candidate: str, fuzzy_words: Sequence[str] = ()) -> bool:
    """Decide whether *candidate* is the same work as *query*.

    Differing digit runs always reject, so volume 1 never matches volume 2.
    """

    left = normalize_title(query)
    right = normalize_title(candidate)
    if not left or not right:
        return False
    if digit_signature(left) != digit_signature(right):
        return False

    for source, other in ((left, right), (right, left)):
        pattern = build_wildcard_pattern(source, fuzzy_words)
        if pattern is not None and pattern.search(other):
            return True

    if left in right or right in left:
        return True

    punched_left = remove_fuzzy_words(left, fuzzy_words)
    punched_right = remove_fuzzy_words(right, fuzzy_words)
    if punched_left and punched_right and (punched_left in punched_right or punched_right in punched_left):
        return True
    return False


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def blank_censor_glyphs(title: str) -> str:
    return _collapse("".join(" " if char in CENSOR_GLYPHS else char for char in title or ""))


def punch_fuzzy_words(title: str, fuzzy_words: Sequence[str]) -> tuple[str, bool]:
    """Remove configured fuzzy words (case-insensitive) from *title*."""

    matched = False
    result = title
    for word in fuzzy_words or ():
        word = str(word).strip()
        if not word:
            continue
        pattern = re.compile(re.escape(word), re.IGNORECASE)
        result, count = pattern.subn(" ", result)
        matched = matched or count > 0
    return _collapse(result), matched


def blank_katakana_runs(title: str) -> str:
    return _collapse(_KATAKANA_RUN_RE.sub(" ", title or ""))


def build_query_variants(title: str, fuzzy_words: Sequence[str] = ()) -> List[str]:
    """Return the raw, hole-punched and relaxed search queries in order."""

    variants: List[str] = []
    raw = blank_censor_glyphs(title)
    variants.append(raw)
    punched, matched = punch_fuzzy_words(raw, fuzzy_words)
    if matched:
        variants.append(punched)
    variants.append(blank_katakana_runs(raw))
    ordered: List[str] = []
    for variant in variants:
        if variant and variant not in ordered:
            ordered.append(variant)
    return ordered


__all__ = [
    "CENSOR_GLYPHS",
    "blank_censor_glyphs",
    "blank_katakana_runs",
    "build_query_variants",
    "build_wildcard_pattern",
    "digit_signature",
    "is_good_match",
    "normalize_title",
    "punch_fuzzy_words",
    "remove_fuzzy_words",
    "wildcard_mask",
]
