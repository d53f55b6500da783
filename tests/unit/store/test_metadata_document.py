"""Unit tests for metadata document mapping."""

from __future__ import annotations

from datetime import datetime, timezone
import json

import pytest

from core.errors import RepositoryCorruptError, RepositoryUnreadableError
from core.types import DatasetRecord
from store.metadata_document import (
    document_with_records,
    new_document,
    read_document,
    record_to_payload,
    records_from_document,
    render_document,
)

NOW = datetime(2014, 9, 18, 13, 40, 18, tzinfo=timezone.utc)


def _sample_records() -> list[DatasetRecord]:
    return [
        DatasetRecord(
            dataset_id="38141ec3-fcc6-4590-b9cb-dff7a4b7c354",
            name="MyDocuments",
            description="Some of my documents",
            file_count=34,
            size_bytes=2433993827,
            timestamp=NOW,
        ),
        DatasetRecord(
            dataset_id="b2",
            name="Empty",
            description="",
            file_count=0,
            size_bytes=0,
            timestamp=NOW,
        ),
    ]


def _write(tmp_path, payload: object):
    path = tmp_path / ".metadata"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_new_document_is_stamped_with_version() -> None:
    """A synthesized document should carry version and timestamp."""
    document = new_document(NOW)

    assert document == {
        "repository": {"version": "1.0", "timestamp": "2014-09-18T13:40:18", "datasets": []}
    }


def test_empty_description_is_omitted() -> None:
    """Empty descriptions should not be persisted."""
    payload = record_to_payload(_sample_records()[1])

    assert "description" not in payload and payload["filecount"] == 0


def test_document_roundtrip_preserves_records(tmp_path) -> None:
    """Writing and re-reading a document should yield equal records."""
    document = document_with_records(new_document(NOW), _sample_records())
    path = tmp_path / ".metadata"
    path.write_text(render_document(document), encoding="utf-8")

    loaded = records_from_document(path, read_document(path))

    assert set(loaded) == set(_sample_records()) and loaded[1].description == ""


def test_numeric_fields_are_truncated_to_integers(tmp_path) -> None:
    """Floating point counts should read back as integers."""
    entry = {
        "id": "x",
        "name": "Floaty",
        "filecount": 3.0,
        "size": 1024.9,
        "timestamp": "2014-09-18T13:42:38",
    }
    path = _write(tmp_path, {"repository": {"version": "1.0", "datasets": [entry]}})

    record = records_from_document(path, read_document(path))[0]

    assert record.file_count == 3 and record.size_bytes == 1024


def test_document_with_records_keeps_unknown_keys() -> None:
    """Replacing datasets should carry over other document keys."""
    document = new_document(NOW)
    document["repository"]["owner"] = "lab"

    updated = document_with_records(document, _sample_records())

    assert updated["repository"]["owner"] == "lab" and document["repository"]["datasets"] == []


def test_read_document_raises_for_invalid_json(tmp_path) -> None:
    """Unparseable metadata should be reported as corrupt."""
    path = tmp_path / ".metadata"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(RepositoryCorruptError):
        read_document(path)


def test_read_document_raises_for_unknown_version(tmp_path) -> None:
    """Unsupported format versions should be reported as corrupt."""
    path = _write(tmp_path, {"repository": {"version": "9.9", "datasets": []}})

    with pytest.raises(RepositoryCorruptError):
        read_document(path)


def test_read_document_raises_for_missing_file(tmp_path) -> None:
    """A missing file should be reported as unreadable."""
    with pytest.raises(RepositoryUnreadableError):
        read_document(tmp_path / ".metadata")


@pytest.mark.parametrize(
    "entry",
    [
        {"name": "NoId", "filecount": 1, "size": 1, "timestamp": "2014-09-18T13:42:38"},
        {"id": "x", "name": "Bad", "filecount": "1", "size": 1, "timestamp": "2014-09-18T13:42:38"},
        {"id": "x", "name": "Bad", "filecount": 1, "size": 1, "timestamp": "yesterday"},
        {"id": "x", "name": "", "filecount": 1, "size": 1, "timestamp": "2014-09-18T13:42:38"},
        {"id": "x", "name": "Neg", "filecount": -1, "size": 1, "timestamp": "2014-09-18T13:42:38"},
    ],
)
def test_records_from_document_rejects_malformed_entries(tmp_path, entry: dict) -> None:
    """Malformed dataset entries should be reported as corrupt."""
    path = _write(tmp_path, {"repository": {"version": "1.0", "datasets": [entry]}})
    document = read_document(path)

    with pytest.raises(RepositoryCorruptError):
        records_from_document(path, document)


def test_records_from_document_rejects_duplicate_ids(tmp_path) -> None:
    """Repeated ids should be reported as corrupt."""
    entry = {"id": "x", "name": "Dup", "filecount": 1, "size": 1, "timestamp": "2014-09-18T13:42:38"}
    path = _write(tmp_path, {"repository": {"version": "1.0", "datasets": [entry, entry]}})
    document = read_document(path)

    with pytest.raises(RepositoryCorruptError):
        records_from_document(path, document)
