"""Dataset repository façade.

This module moves dataset payloads in and out of a repository
directory and keeps the metadata session in step with them.
"""

from __future__ import annotations

from pathlib import Path
import shutil
from types import TracebackType

from core.config import DataRepoConfig
from core.constants import REPLACE_BACKUP_SUFFIX, REPLACE_STAGING_SUFFIX
from core.errors import InvalidArgumentError, RepositoryWriteFailedError
from core.logging_config import get_logger
from core.types import Criteria, DatasetRecord, new_dataset_id, utc_now
from store.cleanup import CleanupStrategy, payload_path
from store.metadata_manager import MetadataManager

_LOGGER = get_logger(__name__)


class DataRepository:
    """Payload-aware repository operations over one metadata session.

    Each dataset lives under ``<root>/<dataset_id>/<source name>``.
    """

    def __init__(self, manager: MetadataManager) -> None:
        self._manager = manager

    @classmethod
    def open(cls, config: DataRepoConfig) -> "DataRepository":
        """Open the repository configured by ``config.repository_root``."""
        return cls(MetadataManager.open(config.repository_root, config))

    @property
    def root(self) -> Path:
        return self._manager.repository_root

    @property
    def manager(self) -> MetadataManager:
        return self._manager

    def add(
        self,
        source: Path | str,
        name: str | None = None,
        description: str = "",
        move: bool = False,
    ) -> DatasetRecord:
        """Copy or move a file or directory into the repository.

        Args:
            source: Payload file or directory.
            name: Display name; the source file name when omitted.
            description: Optional free text.
            move: Move the source instead of copying it.

        Returns:
            Stored dataset record.

        Raises:
            InvalidArgumentError: If the source does not exist.
        """
        source_path = _require_source(source)
        dataset_id = new_dataset_id()
        target_dir = payload_path(self.root, dataset_id)
        _transfer_payload(source_path, target_dir, move)
        file_count, size_bytes = _measure_payload(target_dir)
        record = DatasetRecord(
            dataset_id=dataset_id,
            name=name if name is not None else source_path.name,
            description=description,
            file_count=file_count,
            size_bytes=size_bytes,
            timestamp=utc_now(),
        )
        try:
            self._manager.add(record)
        except Exception:
            if move:
                shutil.move(str(target_dir / source_path.name), str(source_path))
            shutil.rmtree(target_dir, ignore_errors=True)
            raise
        _LOGGER.info(
            "dataset_added",
            dataset_id=dataset_id,
            name=record.name,
            file_count=file_count,
            size_bytes=size_bytes,
        )
        return record

    def delete(self, criteria: Criteria) -> list[DatasetRecord]:
        """Delete every dataset matching criteria, payload included."""
        deleted = self._manager.get_matching_metadata(criteria)
        for record in deleted:
            self._manager.remove(record)
            shutil.rmtree(payload_path(self.root, record.dataset_id), ignore_errors=True)
            _LOGGER.info("dataset_deleted", dataset_id=record.dataset_id, name=record.name)
        return deleted

    def replace(
        self,
        dataset_id: str,
        source: Path | str,
        description: str | None = None,
        move: bool = False,
    ) -> DatasetRecord:
        """Swap the payload of an existing dataset, keeping its id.

        Args:
            dataset_id: Dataset to replace.
            source: New payload file or directory.
            description: New description; the old one when omitted.
            move: Move the source instead of copying it.

        Returns:
            The replacement record with a fresh timestamp.

        Raises:
            InvalidArgumentError: If the dataset or source does not exist.
            RepositoryWriteFailedError: If the new record cannot be written; the
                previous payload and record are put back.
        """
        current = self._manager.get_metadata(dataset_id)
        if current is None:
            raise InvalidArgumentError(
                f"Dataset {dataset_id} not found. Use list to discover valid dataset ids."
            )
        source_path = _require_source(source)
        target_dir = payload_path(self.root, dataset_id)
        staging_dir = self.root / f".{dataset_id}{REPLACE_STAGING_SUFFIX}"
        backup_dir = self.root / f".{dataset_id}{REPLACE_BACKUP_SUFFIX}"
        shutil.rmtree(staging_dir, ignore_errors=True)
        shutil.rmtree(backup_dir, ignore_errors=True)
        _transfer_payload(source_path, staging_dir, move)
        file_count, size_bytes = _measure_payload(staging_dir)
        record = DatasetRecord(
            dataset_id=dataset_id,
            name=source_path.name,
            description=current.description if description is None else description,
            file_count=file_count,
            size_bytes=size_bytes,
            timestamp=utc_now(),
        )
        # The old payload stays in backup_dir until the new record is written.
        if target_dir.exists():
            target_dir.rename(backup_dir)
        staging_dir.rename(target_dir)
        try:
            self._manager.add(record)
        except Exception:
            _undo_payload_swap(source_path, target_dir, backup_dir, move)
            self._restore_record(current)
            raise
        shutil.rmtree(backup_dir, ignore_errors=True)
        _LOGGER.info("dataset_replaced", dataset_id=dataset_id, name=record.name)
        return record

    def list_datasets(self, criteria: Criteria | None = None) -> list[DatasetRecord]:
        return self._manager.get_matching_metadata(criteria or Criteria.match_all())

    def export(self, criteria: Criteria, target_dir: Path | str) -> list[DatasetRecord]:
        """Copy payloads of matching datasets into a target directory.

        Each dataset lands in ``<target>/<dataset_id>/`` so payloads that
        share a file name never collide.

        Raises:
            InvalidArgumentError: If the target is not an existing directory or
                already holds an export of a matching dataset.
        """
        target = Path(target_dir).expanduser()
        if not target.is_dir():
            raise InvalidArgumentError(
                f"Export target {target} is not a directory. Create it before exporting."
            )
        exported = self._manager.get_matching_metadata(criteria)
        taken = [record.dataset_id for record in exported if (target / record.dataset_id).exists()]
        if taken:
            raise InvalidArgumentError(
                f"Export target {target} already contains {', '.join(taken)}. "
                "Remove those entries or choose an empty target directory."
            )
        for record in exported:
            _copy_entry(payload_path(self.root, record.dataset_id), target / record.dataset_id)
            _LOGGER.info("dataset_exported", dataset_id=record.dataset_id, target=str(target))
        return exported

    def cleanup(self, strategy: CleanupStrategy) -> int:
        return self._manager.run_cleanup(strategy)

    def close(self) -> None:
        self._manager.close()

    def _restore_record(self, record: DatasetRecord) -> None:
        """Put a record back in memory after a failed replace.

        The store is updated before the snapshot write, so memory is
        restored even when the write fails again.
        """
        try:
            self._manager.add(record)
        except RepositoryWriteFailedError as error:
            _LOGGER.error(
                "dataset_restore_not_persisted",
                dataset_id=record.dataset_id,
                error=str(error),
            )

    def __enter__(self) -> "DataRepository":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


def _require_source(source: Path | str) -> Path:
    source_path = Path(source).expanduser().resolve()
    if not source_path.exists():
        raise InvalidArgumentError(
            f"Dataset source not found at {source_path}. Provide an existing file or directory."
        )
    return source_path


def _transfer_payload(source_path: Path, target_dir: Path, move: bool) -> None:
    """Place a source file or directory inside a fresh payload directory."""
    target_dir.mkdir(parents=True, exist_ok=False)
    destination = target_dir / source_path.name
    if move:
        shutil.move(str(source_path), str(destination))
    else:
        _copy_entry(source_path, destination)


def _undo_payload_swap(source_path: Path, target_dir: Path, backup_dir: Path, move: bool) -> None:
    """Put the previous payload back and return a moved source."""
    if move:
        shutil.move(str(target_dir / source_path.name), str(source_path))
    shutil.rmtree(target_dir, ignore_errors=True)
    if backup_dir.exists():
        backup_dir.rename(target_dir)


def _copy_entry(source: Path, destination: Path) -> None:
    if source.is_dir():
        shutil.copytree(source, destination)
    else:
        shutil.copy2(source, destination)


def _measure_payload(payload_dir: Path) -> tuple[int, int]:
    """Return file count and total byte size under a payload directory."""
    file_count = 0
    size_bytes = 0
    for file_path in payload_dir.rglob("*"):
        if file_path.is_file():
            file_count += 1
            size_bytes += file_path.stat().st_size
    return file_count, size_bytes
