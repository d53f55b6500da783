"""Metadata session manager.

This module owns the repository metadata file for one open session.
It holds the repository lock, applies record mutations in memory,
and commits them with a temp-file snapshot and a single atomic rename.

Every mutation rewrites the complete record set into the pending file.
The permanent file only changes when ``close`` renames the pending file
over it, so a crash leaves either the old or the new snapshot intact.
"""

from __future__ import annotations

import os
from pathlib import Path
from types import TracebackType
from typing import Any

from core.config import DataRepoConfig
from core.constants import METADATA_FILE_NAME, PENDING_FILE_NAME, STALE_PENDING_SUFFIX
from core.errors import (
    RepositoryBusyError,
    RepositoryClosedError,
    RepositoryUnreadableError,
    RepositoryWriteFailedError,
)
from core.logging_config import get_logger
from core.types import Criteria, DatasetRecord, utc_now
from store.cleanup import CleanupStrategy, ExistsCleanup
from store.metadata_document import (
    document_with_records,
    new_document,
    read_document,
    records_from_document,
    render_document,
)
from store.record_store import RecordStore
from store.repository_lock import RepositoryLock

_LOGGER = get_logger(__name__)

_OPEN_ROOTS: set[Path] = set()


class MetadataManager:
    """Exclusive metadata session bound to one repository root.

    Obtain instances with :meth:`open`; the repository path is fixed for
    the lifetime of the handle. Calls must come from one logical thread.
    """

    def __init__(
        self,
        repository_root: Path,
        lock: RepositoryLock,
        document: dict[str, Any],
        store: RecordStore,
    ) -> None:
        self._repository_root = repository_root
        self._lock = lock
        self._document = document
        self._store = store
        self._open = True
        self._pending_complete = False

    @classmethod
    def open(
        cls,
        repository_root: Path | str,
        config: DataRepoConfig | None = None,
    ) -> "MetadataManager":
        """Open an exclusive session on a repository directory.

        Args:
            repository_root: Existing repository directory.
            config: Optional runtime config for lock retry settings.

        Returns:
            Open metadata session.

        Raises:
            RepositoryUnreadableError: If the root is missing or metadata cannot be read.
            RepositoryCorruptError: If the metadata file cannot be parsed.
            RepositoryBusyError: If another session holds the repository.
            RepositoryWriteFailedError: If the initial pending snapshot cannot be written.
        """
        root = Path(repository_root).expanduser().resolve()
        if root in _OPEN_ROOTS:
            raise RepositoryBusyError(
                f"Repository at {root} already has an open session in this process. "
                "Close it before opening another one."
            )
        if not root.is_dir():
            raise RepositoryUnreadableError(
                f"Repository directory not found at {root}. "
                "Create the directory before opening it as a repository."
            )
        runtime_config = config or DataRepoConfig(repository_root=root)
        lock = RepositoryLock(
            root,
            attempts=runtime_config.lock_attempts,
            retry_seconds=runtime_config.lock_retry_seconds,
        )
        lock.acquire()
        try:
            document, store = _load_session_state(root)
        except Exception:
            lock.release()
            raise
        _OPEN_ROOTS.add(root)
        manager = cls(root, lock, document, store)
        _LOGGER.info("repository_opened", repository_root=str(root), record_count=len(store))
        try:
            manager.run_cleanup(ExistsCleanup())
        except Exception:
            _LOGGER.error("repository_open_failed", repository_root=str(root))
            manager._abandon()
            raise
        return manager

    @property
    def repository_root(self) -> Path:
        return self._repository_root

    @property
    def metadata_path(self) -> Path:
        return self._repository_root / METADATA_FILE_NAME

    @property
    def pending_path(self) -> Path:
        return self._repository_root / PENDING_FILE_NAME

    @property
    def is_open(self) -> bool:
        return self._open

    def add(self, record: DatasetRecord) -> bool:
        """Store a record and write the pending snapshot.

        Adding a record whose id is already stored replaces it.
        The permanent file changes only on :meth:`close`.

        Raises:
            InvalidArgumentError: If record is malformed.
            RepositoryWriteFailedError: If the pending snapshot cannot be written.
        """
        self._ensure_open()
        self._store.put(record)
        self.write_pending()
        return True

    def remove(self, record_or_id: DatasetRecord | str) -> bool:
        """Remove a record by id and write the pending snapshot.

        Returns:
            True if a record with that id existed.

        Raises:
            RepositoryWriteFailedError: If the pending snapshot cannot be written.
        """
        self._ensure_open()
        if self._store.remove(record_or_id) is None:
            return False
        self.write_pending()
        return True

    def get_all_metadata(self) -> list[DatasetRecord]:
        self._ensure_open()
        return self._store.get_all()

    def get_matching_metadata(self, criteria: Criteria) -> list[DatasetRecord]:
        self._ensure_open()
        return self._store.query(criteria)

    def get_metadata(self, dataset_id: str) -> DatasetRecord | None:
        self._ensure_open()
        return self._store.get(dataset_id)

    def run_cleanup(self, strategy: CleanupStrategy) -> int:
        """Run a cleanup strategy and write the pending snapshot.

        Args:
            strategy: Strategy applied to the store and repository root.

        Returns:
            Number of entries the strategy altered or removed.
        """
        self._ensure_open()
        altered = strategy.clean(self._store, self._repository_root)
        self.write_pending()
        _LOGGER.info(
            "cleanup_completed",
            repository_root=str(self._repository_root),
            strategy=type(strategy).__name__,
            altered=altered,
        )
        return altered

    def write_pending(self) -> None:
        """Write the full record set to the pending snapshot file.

        Raises:
            RepositoryWriteFailedError: If writing fails. The partial file is kept
                on disk and close refuses to commit it until a later write succeeds.
        """
        self._ensure_open()
        self._document = document_with_records(self._document, self._store.get_all())
        text = render_document(self._document)
        self._pending_complete = False
        try:
            with open(self.pending_path, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            self._pending_complete = True
        except OSError as error:
            _LOGGER.error(
                "pending_snapshot_failed",
                pending_path=str(self.pending_path),
                error=str(error),
            )
            raise RepositoryWriteFailedError(
                f"Failed to write pending metadata snapshot at {self.pending_path}: {error}. "
                "The permanent metadata file is unchanged; retry the operation."
            ) from error
        _LOGGER.debug(
            "pending_snapshot_written",
            pending_path=str(self.pending_path),
            record_count=len(self._store),
        )

    def close(self) -> None:
        """Commit the pending snapshot and release the repository.

        The pending file is renamed over the permanent file before the
        lock is released. The lock is released even if the rename fails.

        Raises:
            RepositoryWriteFailedError: If the last pending write failed, or the
                rename, directory sync or unlock fails. An uncommitted pending
                file stays on disk for recovery.
        """
        if not self._open:
            return
        self._open = False
        _OPEN_ROOTS.discard(self._repository_root)
        try:
            self._commit_pending()
        finally:
            self._lock.release()
        _LOGGER.info("repository_closed", repository_root=str(self._repository_root))

    def __enter__(self) -> "MetadataManager":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _commit_pending(self) -> None:
        """Atomically move the pending snapshot over the permanent file."""
        if not self.pending_path.exists():
            return
        if not self._pending_complete:
            _LOGGER.error("commit_skipped_incomplete_snapshot", pending_path=str(self.pending_path))
            raise RepositoryWriteFailedError(
                f"Pending metadata snapshot at {self.pending_path} is incomplete after a "
                f"failed write and was not committed. {self.metadata_path} is unchanged; "
                "the next open sets the pending file aside for inspection."
            )
        try:
            os.replace(self.pending_path, self.metadata_path)
        except OSError as error:
            _LOGGER.error(
                "commit_failed",
                pending_path=str(self.pending_path),
                metadata_path=str(self.metadata_path),
                error=str(error),
            )
            raise RepositoryWriteFailedError(
                f"Failed to commit metadata snapshot {self.pending_path} "
                f"to {self.metadata_path}: {error}. "
                "The pending file was kept; move it into place manually to recover."
            ) from error
        try:
            _fsync_directory(self._repository_root)
        except OSError as error:
            _LOGGER.error(
                "commit_sync_failed",
                metadata_path=str(self.metadata_path),
                error=str(error),
            )
            raise RepositoryWriteFailedError(
                f"Committed metadata snapshot to {self.metadata_path} but failed to sync "
                f"{self._repository_root}: {error}. The commit may not survive a power loss; "
                "check the disk and reopen the repository to verify it."
            ) from error

    def _abandon(self) -> None:
        """Release the session without committing anything."""
        self._open = False
        _OPEN_ROOTS.discard(self._repository_root)
        self._lock.release()

    def _ensure_open(self) -> None:
        if not self._open:
            raise RepositoryClosedError(
                f"Metadata session for {self._repository_root} is closed. "
                "Open the repository again to continue."
            )


def _load_session_state(root: Path) -> tuple[dict[str, Any], RecordStore]:
    """Load the metadata document, or synthesize one for a new repository."""
    metadata_path = root / METADATA_FILE_NAME
    _set_aside_stale_pending(root)
    if metadata_path.exists():
        document = read_document(metadata_path)
        records = records_from_document(metadata_path, document)
    else:
        document = new_document(utc_now())
        records = []
        _LOGGER.info("metadata_initialized", repository_root=str(root))
    return document, RecordStore(records)


def _set_aside_stale_pending(root: Path) -> None:
    """Move a pending file left by an interrupted session out of the way."""
    pending_path = root / PENDING_FILE_NAME
    if not pending_path.exists():
        return
    stamp = utc_now().strftime("%Y%m%dT%H%M%SZ")
    stale_path = root / f"{PENDING_FILE_NAME}{STALE_PENDING_SUFFIX}{stamp}"
    try:
        os.replace(pending_path, stale_path)
    except OSError as error:
        raise RepositoryUnreadableError(
            f"Failed to set aside stale pending snapshot at {pending_path}: {error}. "
            "Move or delete the file manually and retry."
        ) from error
    _LOGGER.warning(
        "stale_pending_snapshot",
        pending_path=str(pending_path),
        stale_path=str(stale_path),
    )


def _fsync_directory(directory: Path) -> None:
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
