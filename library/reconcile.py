"""Diff scanned candidates against the catalog."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Tuple

from .identity import is_local_id
from .types import CatalogDocument, ScanCandidate

LOGGER = logging.getLogger("workshelf.library.reconcile")


@dataclass(slots=True)
class ReconcilePlan:
    new: List[ScanCandidate] = field(default_factory=list)
    existing: List[ScanCandidate] = field(default_factory=list)
    # (old_id, new_id, carried_forward)
    migrations: List[Tuple[str, str, bool]] = field(default_factory=list)


def _index_by_path(document: CatalogDocument) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for work_id, work in document.works.items():
        if work.local_path and work.local_path not in index:
            index[work.local_path] = work_id
    return index


def migrate_renamed(
    candidates: Iterable[ScanCandidate],
    document: CatalogDocument,
    *,
    drop_placeholders: bool = True,
) -> List[Tuple[str, str, bool]]:
    """Re-key records whose path now resolves to a different id.

    Placeholder records are dropped instead of carried forward when
    *drop_placeholders* is set, so the new id is fetched from scratch.
    """

    by_path = _index_by_path(document)
    claimed: set[str] = set()
    migrations: List[Tuple[str, str, bool]] = []
    for candidate in candidates:
        if candidate.path in claimed:
            continue
        old_id = by_path.get(candidate.path)
        if old_id is None or old_id == candidate.id:
            continue
        if is_local_id(candidate.id) and not is_local_id(old_id):
            # code discovered online for an entry whose name carries none
            continue
        old_record = document.works.get(old_id)
        if old_record is None:
            continue
        claimed.add(candidate.path)
        carried = not (drop_placeholders and old_record.is_placeholder)
        if carried:
            document.works[candidate.id] = replace(old_record, id=candidate.id)
            LOGGER.info("Migrating renamed work %s -> %s", old_id, candidate.id)
        else:
            LOGGER.info("Dropping placeholder %s renamed to %s for re-acquisition", old_id, candidate.id)
        del document.works[old_id]
        migrations.append((old_id, candidate.id, carried))
    return migrations


def reconcile(
    candidates: List[ScanCandidate],
    document: CatalogDocument,
    *,
    drop_placeholders_on_rename: bool = True,
) -> ReconcilePlan:
    plan = ReconcilePlan()
    plan.migrations = migrate_renamed(candidates, document, drop_placeholders=drop_placeholders_on_rename)
    by_path = _index_by_path(document)
    seen: set[str] = set()
    for candidate in candidates:
        known_id = by_path.get(candidate.path)
        if known_id and is_local_id(candidate.id) and not is_local_id(known_id):
            candidate = replace(candidate, id=known_id)
        if candidate.id in seen:
            LOGGER.warning("Duplicate work id %s at %s; keeping the first entry", candidate.id, candidate.path)
            continue
        seen.add(candidate.id)
        existing = document.works.get(candidate.id)
        if existing is None or existing.is_placeholder:
            plan.new.append(candidate)
            continue
        existing.local_path = candidate.path
        plan.existing.append(candidate)
    LOGGER.info(
        "Reconciled %d candidates: %d new, %d existing, %d migrated",
        len(candidates),
        len(plan.new),
        len(plan.existing),
        len(plan.migrations),
    )
    return plan


__all__ = ["ReconcilePlan", "migrate_renamed", "reconcile"]
