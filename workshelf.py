import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from core.logging_utils import configure_json_logging
from core.paths import ensure_working_dir_structure, resolve_working_dir
from library.actions import LibraryActions
from library.service import ScanOrchestrator
from library.store import CatalogStore
from library.types import ProgressEvent
from library.watcher import ChangeWatcher

LOGGER = logging.getLogger("workshelf.cli")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scan library folders and enrich the WorkShelf catalog."
    )
    parser.add_argument(
        "--working-dir",
        help="Override the working directory (defaults to WORKSHELF_HOME or the per-user location).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Also log debug messages to the console.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    scan = commands.add_parser("scan", help="Scan one library root.")
    scan.add_argument("path", help="Folder whose immediate children are works.")
    scan.add_argument(
        "--primary-only",
        action="store_true",
        help="Do not fall back to the secondary source for title searches.",
    )
    commands.add_parser("scan-all", help="Scan every configured library root.")
    commands.add_parser("cleanup", help="Remove records whose files are gone.")
    commands.add_parser("watch", help="Watch configured roots and rescan after changes.")
    remove = commands.add_parser("remove", help="Forget a work without deleting its files.")
    remove.add_argument("work_id", metavar="ID")
    return parser.parse_args(argv)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _print_progress(event: ProgressEvent) -> None:
    print(f"[{event.current}/{event.total}] {event.id}: {event.status}", file=sys.stderr)


def _watch(store: CatalogStore, orchestrator: ScanOrchestrator) -> int:
    watcher = ChangeWatcher(store, orchestrator)
    if not watcher.start():
        print("Auto-scan is disabled or no library path exists.", file=sys.stderr)
        return 1
    stop = threading.Event()
    print("Watching library paths. Press Ctrl+C to stop.", file=sys.stderr)
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, stopping watcher")
    finally:
        watcher.stop()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    working_dir = Path(args.working_dir).expanduser() if args.working_dir else resolve_working_dir()
    ensure_working_dir_structure(working_dir)
    configure_json_logging(
        working_dir=working_dir,
        level=logging.DEBUG if args.verbose else logging.INFO,
        console=args.verbose,
    )
    LOGGER.info("Working directory: %s", working_dir)

    store = CatalogStore(working_dir)
    orchestrator = ScanOrchestrator(store)

    if args.command == "scan":
        outcome = orchestrator.scan(args.path, args.primary_only, on_progress=_print_progress)
        _print_json(outcome.to_dict())
        return 0 if not outcome.failed else 1
    if args.command == "scan-all":
        outcomes = orchestrator.scan_configured_roots()
        _print_json([outcome.to_dict() for outcome in outcomes])
        return 0 if all(not outcome.failed for outcome in outcomes) else 1
    if args.command == "cleanup":
        result = orchestrator.cleanup_missing()
        _print_json({"removed": result.removed_ids, "errors": result.errors})
        return 0 if not result.errors else 1
    if args.command == "watch":
        return _watch(store, orchestrator)
    if args.command == "remove":
        result = LibraryActions(store).remove_work(args.work_id)
        _print_json({"success": result.success, "id": result.work_id, "error": result.error})
        return 0 if result.success else 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
