"""HTTP access shared by the metadata sources."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from .errors import SourceUnavailable

LOGGER = logging.getLogger("workshelf.metadata.http")

BROWSER_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ja,en-US;q=0.7,en;q=0.3",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


class HttpClient:
    """Thin wrapper over a ``requests`` session.

    Any non-200 answer, timeout or transport error surfaces as
    :class:`SourceUnavailable` so callers can move on to the next option.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        cookies: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._session = session or requests.Session()
        self._headers = dict(headers or {})
        self._cookies = dict(cookies or {})

    def get_text(self, url: str, *, timeout: float) -> str:
        response = self._get(url, params=None, timeout=timeout)
        return response.text

    def get_json(self, url: str, *, params: Optional[Mapping[str, Any]] = None, timeout: float) -> Any:
        response = self._get(url, params=params, timeout=timeout)
        try:
            return response.json()
        except ValueError as exc:
            raise SourceUnavailable(f"invalid JSON from {url}: {exc}") from exc

    def _get(self, url: str, *, params: Optional[Mapping[str, Any]], timeout: float) -> requests.Response:
        try:
            response = self._session.get(
                url,
                params=params,
                headers=self._headers,
                cookies=self._cookies,
                timeout=timeout,
                allow_redirects=True,
            )
        except requests.Timeout as exc:
            LOGGER.info("Timeout after %ss: %s", timeout, url)
            raise SourceUnavailable(f"timeout: {url}") from exc
        except requests.RequestException as exc:
            LOGGER.info("Request failed for %s: %s", url, exc)
            raise SourceUnavailable(f"transport error: {url}: {exc}") from exc
        if response.status_code != 200:
            LOGGER.info("HTTP %s for %s", response.status_code, url)
            raise SourceUnavailable(f"HTTP {response.status_code}: {url}")
        return response


__all__ = ["BROWSER_HEADERS", "HttpClient"]
