"""Unit tests for the metadata session manager."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import errno
import json
import os

import pytest

from core.config import DataRepoConfig
from core.errors import (
    InvalidArgumentError,
    RepositoryBusyError,
    RepositoryClosedError,
    RepositoryCorruptError,
    RepositoryUnreadableError,
    RepositoryWriteFailedError,
)
from core.types import Criteria, DatasetRecord
from store.cleanup import RetentionCleanup
from store.metadata_manager import MetadataManager
from store.repository_lock import RepositoryLock

T1 = datetime(2015, 10, 1, 12, 0, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(hours=1)


def _config(tmp_path) -> DataRepoConfig:
    return DataRepoConfig(repository_root=tmp_path, lock_attempts=1, lock_retry_seconds=0.0)


def _record(dataset_id: str, name: str = "Docs", timestamp: datetime = T1) -> DatasetRecord:
    return DatasetRecord(
        dataset_id=dataset_id,
        name=name,
        description="",
        file_count=3,
        size_bytes=100,
        timestamp=timestamp,
    )


def _open(tmp_path) -> MetadataManager:
    return MetadataManager.open(tmp_path, _config(tmp_path))


def _read_json(path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def test_open_empty_repository_synthesizes_document(tmp_path) -> None:
    """Opening an empty directory should stage an empty versioned document."""
    manager = _open(tmp_path)

    pending = _read_json(manager.pending_path)

    assert pending["repository"]["version"] == "1.0"
    assert pending["repository"]["datasets"] == []
    assert not manager.metadata_path.exists()
    manager.close()


def test_add_close_reopen_keeps_single_record(tmp_path) -> None:
    """A record added and committed should be visible after reopening."""
    (tmp_path / "A").mkdir()
    record = _record("A")
    manager = _open(tmp_path)
    manager.add(record)
    assert manager.get_all_metadata() == [record]
    manager.close()

    reopened = _open(tmp_path)

    assert reopened.get_all_metadata() == [record]
    reopened.close()


def test_close_commits_pending_file(tmp_path) -> None:
    """Close should rename the pending snapshot over the permanent file."""
    (tmp_path / "A").mkdir()
    manager = _open(tmp_path)
    manager.add(_record("A"))

    manager.close()

    assert not (tmp_path / "tmp.metadata").exists()
    assert _read_json(tmp_path / ".metadata")["repository"]["datasets"][0]["id"] == "A"


def test_mutation_leaves_permanent_file_untouched(tmp_path) -> None:
    """Mutations should only reach the pending file before close."""
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A"))
    committed = (tmp_path / ".metadata").read_text(encoding="utf-8")
    manager = _open(tmp_path)

    manager.add(_record("B"))

    assert (tmp_path / ".metadata").read_text(encoding="utf-8") == committed
    assert len(_read_json(manager.pending_path)["repository"]["datasets"]) == 2
    manager.close()


def test_after_criteria_returns_later_record(tmp_path) -> None:
    """Criteria with an after bound should return only later records."""
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A", name="Foo", timestamp=T1))
        manager.add(_record("B", name="Bar", timestamp=T2))

        result = manager.get_matching_metadata(Criteria(after=T1))

    assert [record.dataset_id for record in result] == ["B"]


def test_remove_reports_whether_record_existed(tmp_path) -> None:
    """Remove should be true only for stored ids."""
    (tmp_path / "A").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A"))

        removed = manager.remove("A")
        removed_again = manager.remove(_record("A"))

    assert removed and not removed_again


def test_add_rejects_malformed_record(tmp_path) -> None:
    """Invalid records should fail without changing the store."""
    with _open(tmp_path) as manager:
        with pytest.raises(InvalidArgumentError):
            manager.add(_record("A", name=""))

        assert manager.get_all_metadata() == []


def test_open_drops_records_without_payload(tmp_path) -> None:
    """The default cleanup should run on open."""
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A"))
        manager.add(_record("B"))
    (tmp_path / "B").rmdir()

    with _open(tmp_path) as manager:
        ids = [record.dataset_id for record in manager.get_all_metadata()]

    assert ids == ["A"]


def test_run_cleanup_returns_altered_count(tmp_path) -> None:
    """Custom strategies should report what they removed."""
    (tmp_path / "A").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A", timestamp=T1))

        altered = manager.run_cleanup(RetentionCleanup(max_age=timedelta(days=1), now=T2 + timedelta(days=5)))

        assert altered == 1 and manager.get_metadata("A") is None


def test_second_open_in_process_is_busy_without_mutation(tmp_path) -> None:
    """A root can only have one open session per process."""
    manager = _open(tmp_path)
    listing = sorted(path.name for path in tmp_path.iterdir())

    with pytest.raises(RepositoryBusyError):
        _open(tmp_path)

    assert sorted(path.name for path in tmp_path.iterdir()) == listing
    manager.close()


def test_open_fails_when_lock_is_held_elsewhere(tmp_path) -> None:
    """A lock held by another holder should make open fail without writes."""
    holder = RepositoryLock(tmp_path, attempts=1, retry_seconds=0.0)
    holder.acquire()

    with pytest.raises(RepositoryBusyError):
        _open(tmp_path)

    assert sorted(path.name for path in tmp_path.iterdir()) == [".lock"]
    holder.release()


def test_open_rejects_missing_directory(tmp_path) -> None:
    """Opening a missing directory should fail as unreadable."""
    with pytest.raises(RepositoryUnreadableError):
        _open(tmp_path / "missing")


def test_open_corrupt_file_establishes_no_session(tmp_path) -> None:
    """A corrupt metadata file should fail open and release the lock."""
    (tmp_path / ".metadata").write_text("[1, 2", encoding="utf-8")

    with pytest.raises(RepositoryCorruptError):
        _open(tmp_path)

    (tmp_path / ".metadata").unlink()
    manager = _open(tmp_path)
    assert manager.is_open
    manager.close()


def test_failed_pending_write_is_redone_by_next_write(tmp_path) -> None:
    """A failed pending write keeps memory state and the next write is complete."""
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()
    manager = _open(tmp_path)
    manager.pending_path.unlink()
    manager.pending_path.mkdir()

    with pytest.raises(RepositoryWriteFailedError):
        manager.add(_record("A"))

    assert manager.get_metadata("A") == _record("A")
    manager.pending_path.rmdir()
    manager.add(_record("B"))
    ids = [entry["id"] for entry in _read_json(manager.pending_path)["repository"]["datasets"]]
    assert ids == ["A", "B"]
    manager.close()


class _HalfWritingFile:
    """File stand-in that writes half the text and then reports a full disk."""

    def __init__(self, path) -> None:
        self._handle = open(path, "w", encoding="utf-8")

    def __enter__(self) -> "_HalfWritingFile":
        return self

    def __exit__(self, *exc_info) -> None:
        self._handle.close()

    def write(self, text: str) -> None:
        self._handle.write(text[: len(text) // 2])
        self._handle.flush()
        raise OSError(errno.ENOSPC, "No space left on device")


def test_partial_pending_write_is_not_committed(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Close should refuse a truncated pending file and keep the permanent file."""
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()
    with _open(tmp_path) as manager:
        manager.add(_record("A"))
    committed = (tmp_path / ".metadata").read_text(encoding="utf-8")
    manager = _open(tmp_path)
    monkeypatch.setattr(
        "store.metadata_manager.open",
        lambda path, mode="r", **kwargs: _HalfWritingFile(path),
        raising=False,
    )

    with pytest.raises(RepositoryWriteFailedError):
        manager.add(_record("B"))
    with pytest.raises(RepositoryWriteFailedError):
        manager.close()

    monkeypatch.undo()
    assert (tmp_path / ".metadata").read_text(encoding="utf-8") == committed
    partial = (tmp_path / "tmp.metadata").read_text(encoding="utf-8")
    assert partial and partial != committed
    with _open(tmp_path) as reopened:
        ids = [record.dataset_id for record in reopened.get_all_metadata()]
    assert ids == ["A"]


def test_failed_directory_sync_reports_committed_snapshot(
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A sync failure after the rename should not claim a pending file was kept."""
    (tmp_path / "A").mkdir()
    manager = _open(tmp_path)
    manager.add(_record("A"))

    def _failing_fsync_directory(directory) -> None:
        raise OSError("sync failed")

    monkeypatch.setattr("store.metadata_manager._fsync_directory", _failing_fsync_directory)

    with pytest.raises(RepositoryWriteFailedError, match="Committed metadata snapshot"):
        manager.close()

    assert not manager.pending_path.exists()
    assert _read_json(manager.metadata_path)["repository"]["datasets"][0]["id"] == "A"


def test_failed_commit_keeps_pending_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A failed rename should surface and leave the pending file for recovery."""
    manager = _open(tmp_path)

    def _failing_replace(source, destination) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", _failing_replace)

    with pytest.raises(RepositoryWriteFailedError):
        manager.close()

    monkeypatch.undo()
    assert manager.pending_path.exists() and not manager.metadata_path.exists()
    next_holder = RepositoryLock(tmp_path, attempts=1, retry_seconds=0.0)
    next_holder.acquire()
    next_holder.release()


def test_closed_session_rejects_calls(tmp_path) -> None:
    """Closed sessions should refuse further operations; close is idempotent."""
    manager = _open(tmp_path)
    manager.close()
    manager.close()

    with pytest.raises(RepositoryClosedError):
        manager.get_all_metadata()


def test_stale_pending_file_is_set_aside(tmp_path) -> None:
    """A pending file from an interrupted session should be kept aside on open."""
    (tmp_path / "tmp.metadata").write_text("partial", encoding="utf-8")

    with _open(tmp_path):
        stale = [path.name for path in tmp_path.iterdir() if ".stale-" in path.name]

    assert len(stale) == 1
    assert (tmp_path / stale[0]).read_text(encoding="utf-8") == "partial"
