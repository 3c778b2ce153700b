"""Filesystem watcher that re-triggers library scans after a quiet period."""
from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import LibraryEvents
from .pacing import Debouncer, TimerFactory
from .service import ScanOrchestrator
from .store import CatalogStore

LOGGER = logging.getLogger("workshelf.library.watcher")

WATCHER_SOURCE = "watcher"


def _file_size(path: str) -> Optional[int]:
    try:
        return os.path.getsize(path)
    except OSError:
        return None


class StableWriteGate:
    """Hold file-creation events until the file size stops changing.

    A file whose size is unchanged after *delay_s* (or that has vanished)
    is passed to *on_stable*; otherwise the check is rescheduled.
    """

    def __init__(
        self,
        delay_s: float,
        on_stable: Callable[[str], None],
        *,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._delay = delay_s
        self._on_stable = on_stable
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._pending: Dict[str, Tuple[Debouncer, Optional[int]]] = {}

    def watch(self, path: str) -> None:
        with self._lock:
            entry = self._pending.get(path)
            debouncer = entry[0] if entry else Debouncer(
                self._delay,
                lambda: self._check(path),
                timer_factory=self._timer_factory,
                name=f"stable-write:{path}",
            )
            self._pending[path] = (debouncer, _file_size(path))
        debouncer.trigger()

    def touch(self, path: str) -> None:
        """Restart the stability window for *path* if it is being held."""

        with self._lock:
            held = path in self._pending
        if held:
            self.watch(path)

    @property
    def pending_paths(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._pending.values())
            self._pending.clear()
        for debouncer, _ in entries:
            debouncer.cancel()

    def _check(self, path: str) -> None:
        current = _file_size(path)
        with self._lock:
            entry = self._pending.get(path)
            if entry is None:
                return
            debouncer, previous = entry
            settled = current is None or current == previous
            if settled:
                del self._pending[path]
            else:
                self._pending[path] = (debouncer, current)
        if settled:
            self._on_stable(path)
        else:
            LOGGER.debug("Still writing %s (%s bytes)", path, current)
            debouncer.trigger()


class LibraryEventHandler(FileSystemEventHandler):
    """Forward add/remove events under *root* up to *depth* levels deep."""

    def __init__(
        self,
        root: str,
        depth: int,
        on_change: Callable[[str], None],
        gate: StableWriteGate,
    ) -> None:
        super().__init__()
        self._root = Path(root)
        self._depth = depth
        self._on_change = on_change
        self._gate = gate

    def within_depth(self, path: str) -> bool:
        try:
            relative = Path(path).relative_to(self._root)
        except ValueError:
            return False
        return 0 < len(relative.parts) <= self._depth + 1

    def on_created(self, event: FileSystemEvent) -> None:
        path = str(event.src_path)
        if not self.within_depth(path):
            return
        if event.is_directory:
            LOGGER.info("Directory added: %s", path)
            self._on_change(path)
        else:
            LOGGER.debug("File added, waiting for stable size: %s", path)
            self._gate.watch(path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._gate.touch(str(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = str(event.src_path)
        if self.within_depth(path):
            LOGGER.info("%s removed: %s", "Directory" if event.is_directory else "File", path)
            self._on_change(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        src = str(event.src_path)
        dest = str(getattr(event, "dest_path", "") or "")
        if self.within_depth(src) or (dest and self.within_depth(dest)):
            LOGGER.info("Moved: %s -> %s", src, dest)
            self._on_change(dest or src)


class ChangeWatcher:
    """Watch the configured library roots and rescan after changes settle.

    Every accepted event reschedules one shared quiet-period timer; when it
    fires the roots are scanned one after another on the timer thread.
    """

    def __init__(
        self,
        store: CatalogStore,
        orchestrator: ScanOrchestrator,
        *,
        events: Optional[LibraryEvents] = None,
        observer_factory: Callable[[], Observer] = Observer,
        timer_factory: TimerFactory = threading.Timer,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._events = events or orchestrator.events
        self._observer_factory = observer_factory
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._observer = None
        self._debouncer: Optional[Debouncer] = None
        self._gate: Optional[StableWriteGate] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> bool:
        """(Re)create the observer from the current settings.

        Returns ``False`` when auto-scan is off or no root exists.
        """

        with self._lock:
            self._teardown()
            settings = self._store.library_settings()
            roots = [entry.path for entry in settings.library_paths if os.path.isdir(entry.path)]
            if not settings.auto_scan or not roots:
                LOGGER.info("Real-time monitoring is disabled or has no paths")
                return False

            self._debouncer = Debouncer(
                settings.watch_quiet_period_s,
                self._on_quiet,
                timer_factory=self._timer_factory,
                name="library-rescan",
            )
            self._gate = StableWriteGate(
                settings.watch_stability_ms / 1000.0,
                self._accept,
                timer_factory=self._timer_factory,
            )
            observer = self._observer_factory()
            observer.daemon = True
            for root in roots:
                handler = LibraryEventHandler(root, settings.watch_depth, self._accept, self._gate)
                observer.schedule(handler, root, recursive=True)
            observer.start()
            self._observer = observer
            LOGGER.info("Watching %d library paths: %s", len(roots), roots)
            return True

    def restart(self) -> bool:
        return self.start()

    def stop(self) -> None:
        with self._lock:
            self._teardown()

    def _teardown(self) -> None:
        if self._debouncer is not None:
            self._debouncer.cancel()
            self._debouncer = None
        if self._gate is not None:
            self._gate.cancel_all()
            self._gate = None
        if self._observer is not None:
            observer, self._observer = self._observer, None
            observer.stop()
            observer.join(timeout=5)
            LOGGER.info("Library watcher stopped")

    # ------------------------------------------------------------------
    def _accept(self, path: str) -> None:
        debouncer = self._debouncer
        if debouncer is not None:
            debouncer.trigger()

    def _on_quiet(self) -> None:
        LOGGER.info("Change detected, triggering auto-scan")
        outcomes = self._orchestrator.scan_configured_roots()
        cleanup = self._orchestrator.cleanup_missing()
        self._events.updated(WATCHER_SOURCE)
        LOGGER.info(
            "Auto-scan completed: %d roots, %d new works, %d cleaned up",
            len(outcomes),
            sum(len(outcome.new_work_ids) for outcome in outcomes),
            len(cleanup.removed_ids),
        )


__all__ = ["ChangeWatcher", "LibraryEventHandler", "StableWriteGate", "WATCHER_SOURCE"]
