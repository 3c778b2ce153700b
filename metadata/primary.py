"""Primary metadata source: DLsite item and search pages."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup, Tag

from library.identity import extract_catalog_code
from library.types import SAMPLE_IMAGES_MAX, WorkRecord, unique_non_empty, utc_now_iso

from .errors import NotAnItemPage, SourceUnavailable
from .http import BROWSER_HEADERS, HttpClient

LOGGER = logging.getLogger("workshelf.metadata.primary")

BASE_URL = "https://www.dlsite.com"
ITEM_URL_TEMPLATE = BASE_URL + "/{domain}/work/=/product_id/{code}.html"
SEARCH_URL_TEMPLATE = BASE_URL + "/{domain}/fsr/=/keyword/{keyword}/"

# Skips the age-confirmation interstitial.
AGE_GATE_COOKIES = {"adultchecked": "1", "locale": "ja-jp"}

AUTHOR_ROLES = frozenset({"作者", "著者", "作画", "原作", "声優", "イラスト", "シナリオ", "音楽"})
RELEASE_DATE_LABELS = frozenset({"販売日", "発売日", "配信開始日"})
FORMAT_LABELS = frozenset({"作品形式", "ファイル形式", "その他"})
AGE_LABELS = frozenset({"年齢指定"})

# Format, age and media-type words that are not descriptive tags.
NOISE_TAGS = frozenset(
    {
        "全年齢",
        "18禁",
        "R-15",
        "R15",
        "成人向け",
        "一般向け",
        "マンガ",
        "コミック",
        "劇画",
        "単話",
        "単行本",
        "CG・イラスト",
        "ボイス・ASMR",
        "音声",
        "動画",
        "ゲーム",
        "ノベル",
        "PDF",
        "JPEG",
        "PNG",
        "HTML",
        "HTML版",
        "ブラウザ視聴",
        "専用ビューア",
        "アプリ",
        "同梱",
        "WAV",
        "MP3",
        "MP4",
    }
)

# Ordered: the first work type with a keyword among the tags wins.
WORK_TYPE_KEYWORDS = (
    ("manga", ("マンガ", "コミック", "劇画", "単話", "単行本", "webtoon")),
    ("cg", ("CG・イラスト", "CG集", "イラスト集")),
    ("voice", ("ボイス・ASMR", "音声", "ASMR", "音楽")),
    ("video", ("動画", "アニメ")),
    ("game", ("ゲーム", "アドベンチャー", "ロールプレイング", "シミュレーション", "アクション")),
    ("novel", ("ノベル", "小説", "デジタルノベル")),
)

AGE_ADULT = "18+"
AGE_R15 = "R-15"
AGE_ALL = "all ages"

DESCRIPTION_SELECTORS = ('[itemprop="description"]', ".work_parts_container")
TITLE_SELECTORS = ("#work_name", 'h1[itemprop="name"]', ".work_name")
CIRCLE_SELECTORS = ('span[itemprop="brand"]', ".maker_name a", "#work_maker .maker_name a")
TAG_SELECTORS = (".main_genre a", ".work_genre a", "div.genre a")
SAMPLE_SELECTORS = (
    (".product-slider-data div", "data-src"),
    ("img.slider_item", "src"),
    ("img.target_type", "src"),
)
SEARCH_ITEM_SELECTORS = (
    "#search_result_list .work_name a",
    "dd.work_name a",
    "div.multiline_truncate a",
    ".work_name a",
)


@dataclass(slots=True, frozen=True)
class SearchHit:
    title: str
    url: str
    code: Optional[str]
    thumbnail_url: str = ""


def _text(node: Optional[Tag]) -> str:
    if node is None:
        return ""
    return node.get_text(" ", strip=True)


def _first_text(soup: BeautifulSoup, selectors: Iterable[str]) -> str:
    for selector in selectors:
        value = _text(soup.select_one(selector))
        if value:
            return value
    return ""


def absolutize(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return ""
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("http://") or url.startswith("https://") or url.startswith("data:"):
        return url
    return urljoin(BASE_URL + "/", url)


def _outline_rows(soup: BeautifulSoup) -> List[tuple[str, Tag]]:
    rows = []
    for row in soup.select("#work_outline tr"):
        header = _text(row.find("th"))
        cell = row.find("td")
        if header and isinstance(cell, Tag):
            rows.append((header, cell))
    return rows


def _cell_links(cell: Tag) -> List[str]:
    links = [_text(link) for link in cell.find_all("a")]
    links = [value for value in links if value]
    if links:
        return links
    value = _text(cell)
    return [value] if value else []


def parse_authors(soup: BeautifulSoup) -> List[str]:
    authors: List[str] = []
    for header, cell in _outline_rows(soup):
        if header in AUTHOR_ROLES:
            authors.extend(_cell_links(cell))
    return unique_non_empty(authors)


def parse_raw_genres(soup: BeautifulSoup) -> List[str]:
    genres: List[str] = []
    for selector in TAG_SELECTORS:
        genres.extend(_text(node) for node in soup.select(selector))
    for header, cell in _outline_rows(soup):
        if header in FORMAT_LABELS:
            genres.extend(_cell_links(cell))
    return unique_non_empty(genres)


def classify_work_type(tags: Sequence[str]) -> Optional[str]:
    tag_set = set(tags)
    for work_type, keywords in WORK_TYPE_KEYWORDS:
        if any(keyword in tag_set for keyword in keywords):
            return work_type
    return None


def parse_age_rating(soup: BeautifulSoup) -> str:
    if soup.select_one(".work_genre .icon_ADL, .icon_ADL, .age_18"):
        return AGE_ADULT
    if soup.select_one(".work_genre .icon_RG, .icon_R15"):
        return AGE_R15
    for header, cell in _outline_rows(soup):
        if header in AGE_LABELS:
            value = _text(cell)
            if "18" in value:
                return AGE_ADULT
            if "15" in value:
                return AGE_R15
    return AGE_ALL


def parse_release_date(soup: BeautifulSoup) -> Optional[str]:
    for header, cell in _outline_rows(soup):
        if header in RELEASE_DATE_LABELS:
            links = _cell_links(cell)
            if links:
                return links[0]
    return None


def parse_thumbnail(soup: BeautifulSoup) -> str:
    img = soup.select_one('img[itemprop="image"]')
    if img is not None:
        url = img.get("src") or img.get("data-src") or ""
        if url:
            return absolutize(str(url))
    meta = soup.select_one('meta[property="og:image"]')
    if meta is not None and meta.get("content"):
        return absolutize(str(meta.get("content")))
    return ""


def parse_sample_images(soup: BeautifulSoup) -> List[str]:
    urls: List[str] = []
    for selector, attribute in SAMPLE_SELECTORS:
        for node in soup.select(selector):
            value = node.get(attribute)
            if value:
                urls.append(absolutize(str(value)))
        if urls:
            break
    return unique_non_empty(urls)[:SAMPLE_IMAGES_MAX]


def parse_description(soup: BeautifulSoup) -> str:
    for selector in DESCRIPTION_SELECTORS:
        node = soup.select_one(selector)
        if node is not None:
            value = node.get_text("\n", strip=True)
            if value:
                return value
    return ""


def parse_item_page(html: str, code: str, local_path: str = "") -> WorkRecord:
    """Build a :class:`WorkRecord` from an item page.

    Raises :class:`NotAnItemPage` when no title can be found.
    """

    soup = BeautifulSoup(html, "html.parser")
    title = _first_text(soup, TITLE_SELECTORS)
    if not title:
        raise NotAnItemPage(f"no title on page for {code}")
    raw_genres = parse_raw_genres(soup)
    return WorkRecord(
        id=code,
        title=title,
        circle=_first_text(soup, CIRCLE_SELECTORS),
        authors=parse_authors(soup),
        tags=[tag for tag in raw_genres if tag not in NOISE_TAGS],
        description=parse_description(soup),
        thumbnail_url=parse_thumbnail(soup),
        sample_images=parse_sample_images(soup),
        local_path=local_path,
        fetched_at=utc_now_iso(),
        release_date=parse_release_date(soup),
        age_rating=parse_age_rating(soup),
        work_type=classify_work_type(raw_genres),
    )


def parse_search_page(html: str, limit: int) -> List[SearchHit]:
    soup = BeautifulSoup(html, "html.parser")
    hits: List[SearchHit] = []
    seen: set[str] = set()
    for selector in SEARCH_ITEM_SELECTORS:
        for link in soup.select(selector):
            href = absolutize(str(link.get("href") or ""))
            title = str(link.get("title") or "").strip() or _text(link)
            if not href or not title or href in seen:
                continue
            seen.add(href)
            thumbnail = ""
            container = link.find_parent("li") or link.find_parent("tr")
            if container is not None:
                img = container.find("img")
                if img is not None:
                    thumbnail = absolutize(str(img.get("src") or img.get("data-src") or ""))
            hits.append(SearchHit(title=title, url=href, code=extract_catalog_code(href), thumbnail_url=thumbnail))
            if len(hits) >= limit:
                return hits
        if hits:
            break
    return hits


class PrimarySource:
    """Fetch item and search pages across the configured domains in order."""

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        *,
        domains: Sequence[str],
        timeout_s: float = 15.0,
        max_search_results: int = 10,
    ) -> None:
        self._client = client or HttpClient(headers=BROWSER_HEADERS, cookies=AGE_GATE_COOKIES)
        self._domains = [domain for domain in domains if domain]
        self._timeout = float(timeout_s)
        self._max_results = max(1, int(max_search_results))

    @property
    def domains(self) -> List[str]:
        return list(self._domains)

    def item_url(self, domain: str, code: str) -> str:
        return ITEM_URL_TEMPLATE.format(domain=domain, code=code)

    def search_url(self, domain: str, query: str) -> str:
        return SEARCH_URL_TEMPLATE.format(domain=domain, keyword=quote(query, safe=""))

    def fetch_item(self, code: str, local_path: str = "") -> Optional[WorkRecord]:
        code = code.upper()
        for domain in self._domains:
            url = self.item_url(domain, code)
            LOGGER.debug("Fetching %s", url)
            try:
                html = self._client.get_text(url, timeout=self._timeout)
                record = parse_item_page(html, code, local_path)
            except SourceUnavailable:
                continue
            except NotAnItemPage:
                LOGGER.info("No work title at %s", url)
                continue
            LOGGER.info("Fetched %s from %s: %s", code, domain, record.title)
            return record
        LOGGER.info("Work %s not found on any domain", code)
        return None

    def search_hits(self, domain: str, query: str) -> List[SearchHit]:
        """Top search results for *query* on *domain*.

        Raises :class:`SourceUnavailable` when the search page cannot be loaded.
        """

        url = self.search_url(domain, query)
        LOGGER.debug("Searching %s", url)
        html = self._client.get_text(url, timeout=self._timeout)
        return parse_search_page(html, self._max_results)


__all__ = [
    "AGE_GATE_COOKIES",
    "PrimarySource",
    "SearchHit",
    "absolutize",
    "classify_work_type",
    "parse_item_page",
    "parse_search_page",
]
