"""Repository cleanup strategies.

This module reconciles stored metadata with the repository directory.
Each strategy returns the number of records or payloads it removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
import shutil
from typing import Protocol

from core.constants import (
    PENDING_FILE_NAME,
    REPLACE_BACKUP_SUFFIX,
    REPLACE_STAGING_SUFFIX,
    STALE_PENDING_SUFFIX,
)
from core.logging_config import get_logger
from core.types import utc_now
from store.record_store import RecordStore

_LOGGER = get_logger(__name__)


class CleanupStrategy(Protocol):
    """Reconciliation pass run against an open record store."""

    def clean(self, store: RecordStore, repository_root: Path) -> int:
        """Apply the strategy and return how many entries it altered."""
        ...


def payload_path(repository_root: Path, dataset_id: str) -> Path:
    """Return the payload directory of a dataset."""
    return repository_root / dataset_id


@dataclass(frozen=True)
class ExistsCleanup:
    """Drop records whose payload directory no longer exists."""

    def clean(self, store: RecordStore, repository_root: Path) -> int:
        removed = 0
        for record in store.get_all():
            if payload_path(repository_root, record.dataset_id).exists():
                continue
            store.remove(record)
            removed += 1
            _LOGGER.warning(
                "dangling_record_removed",
                dataset_id=record.dataset_id,
                name=record.name,
            )
        return removed


@dataclass(frozen=True)
class RetentionCleanup:
    """Drop records older than a maximum age.

    Attributes:
        max_age: Records stamped before ``now - max_age`` are removed.
        now: Reference time; current UTC time when omitted.
    """

    max_age: timedelta
    now: datetime | None = None

    def clean(self, store: RecordStore, repository_root: Path) -> int:
        cutoff = (self.now or utc_now()) - self.max_age
        removed = 0
        for record in store.get_all():
            if record.timestamp < cutoff:
                store.remove(record)
                removed += 1
        return removed


@dataclass(frozen=True)
class SizeBudgetCleanup:
    """Drop the oldest records until total payload size fits the budget."""

    max_total_bytes: int

    def clean(self, store: RecordStore, repository_root: Path) -> int:
        total = sum(record.size_bytes for record in store.get_all())
        removed = 0
        for record in sorted(store.get_all(), key=lambda item: item.timestamp):
            if total <= self.max_total_bytes:
                break
            store.remove(record)
            total -= record.size_bytes
            removed += 1
        return removed


@dataclass(frozen=True)
class OrphanPayloadCleanup:
    """Delete payload entries that no stored record references.

    Dot-files and the live pending snapshot are kept. Stale pending
    snapshots and abandoned replace directories are deleted too.
    """

    def clean(self, store: RecordStore, repository_root: Path) -> int:
        removed = 0
        for entry in sorted(repository_root.iterdir()):
            if _is_reserved_entry(entry.name) or entry.name in store:
                continue
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
            removed += 1
            _LOGGER.info("orphan_payload_removed", path=str(entry))
        return removed


def _is_reserved_entry(name: str) -> bool:
    if _is_session_leftover(name):
        return False
    return name.startswith(".") or name == PENDING_FILE_NAME


def _is_session_leftover(name: str) -> bool:
    """Stale pending snapshots and abandoned replace directories."""
    if name.startswith(PENDING_FILE_NAME + STALE_PENDING_SUFFIX):
        return True
    return name.startswith(".") and name.endswith((REPLACE_STAGING_SUFFIX, REPLACE_BACKUP_SUFFIX))
