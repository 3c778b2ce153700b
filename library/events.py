"""Listener registry for scan notifications."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .types import ProgressEvent

LOGGER = logging.getLogger("workshelf.library.events")

ProgressListener = Callable[[ProgressEvent], None]
UpdatedListener = Callable[[Optional[str]], None]
StateListener = Callable[[bool], None]


class LibraryEvents:
    """Fan out progress, document-updated and scan-state notifications.

    Listener failures are logged and never interrupt the emitting run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress: List[ProgressListener] = []
        self._updated: List[UpdatedListener] = []
        self._state: List[StateListener] = []

    def on_progress(self, listener: ProgressListener) -> None:
        with self._lock:
            self._progress.append(listener)

    def on_updated(self, listener: UpdatedListener) -> None:
        with self._lock:
            self._updated.append(listener)

    def on_scan_state_changed(self, listener: StateListener) -> None:
        with self._lock:
            self._state.append(listener)

    # ------------------------------------------------------------------
    def progress(self, event: ProgressEvent, extra: Optional[ProgressListener] = None) -> None:
        with self._lock:
            listeners = list(self._progress)
        if extra is not None:
            listeners.append(extra)
        for listener in listeners:
            self._call(listener, event)

    def updated(self, source: Optional[str] = None) -> None:
        with self._lock:
            listeners = list(self._updated)
        for listener in listeners:
            self._call(listener, source)

    def scan_state_changed(self, scanning: bool) -> None:
        with self._lock:
            listeners = list(self._state)
        for listener in listeners:
            self._call(listener, scanning)

    @staticmethod
    def _call(listener: Callable, payload) -> None:
        try:
            listener(payload)
        except Exception:
            LOGGER.exception("Library event listener %r failed", listener)


__all__ = ["LibraryEvents"]
