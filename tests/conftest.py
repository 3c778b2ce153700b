from __future__ import annotations

import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from library.store import CatalogStore


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "", payload: Any = None) -> None:
        self.status_code = status_code
        self.text = text
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Stand-in for ``requests.Session`` keyed by URL."""

    def __init__(self, routes: Optional[Dict[str, Any]] = None) -> None:
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Tuple[str, Optional[dict], dict]] = []

    def get(self, url: str, params=None, headers=None, cookies=None, timeout=None, allow_redirects=True):
        self.calls.append((url, dict(params or {}), dict(cookies or {})))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(404, "")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url, params)
        return route


class FakeTimer:
    """Manually fired replacement for ``threading.Timer``."""

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.fired = True
            self.function()


class TimerFactory:
    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def live(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled and not timer.fired]


class FakeImageSource:
    def __init__(self, images: Optional[Dict[str, List[str]]] = None) -> None:
        self.images = images or {}

    def list_local_images(self, path: str) -> List[str]:
        return list(self.images.get(path, []))

    def read_image_as_inline_data(self, path: str, entry: str) -> Optional[str]:
        return f"data:image/jpeg;base64,{entry}"


def write_settings(working_dir: Path, **values: Any) -> None:
    working_dir.mkdir(parents=True, exist_ok=True)
    (working_dir / "settings.json").write_text(json.dumps(values), encoding="utf-8")


def write_encrypted_zip(path: Path, entry: str, data: bytes) -> None:
    """Write a one-entry zip whose entry is flagged as password protected."""

    with zipfile.ZipFile(path, "w") as handle:
        handle.writestr(entry, data)
    raw = bytearray(path.read_bytes())
    raw[6] |= 0x01
    central = raw.find(b"PK\x01\x02")
    raw[central + 8] |= 0x01
    path.write_bytes(bytes(raw))


@pytest.fixture
def store(tmp_path: Path) -> CatalogStore:
    working_dir = tmp_path / "working"
    working_dir.mkdir()
    return CatalogStore(working_dir)


@pytest.fixture
def timer_factory() -> TimerFactory:
    return TimerFactory()
