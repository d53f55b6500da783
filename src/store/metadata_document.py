"""Metadata document persistence helpers.

This module isolates JSON document IO and record mapping.
It keeps the metadata manager focused on session and commit flow.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Iterable, cast

from core.constants import (
    DATASETS_KEY,
    DESCRIPTION_KEY,
    FILE_COUNT_KEY,
    FORMAT_VERSION,
    ID_KEY,
    NAME_KEY,
    REPOSITORY_KEY,
    SIZE_KEY,
    TIMESTAMP_FORMAT,
    TIMESTAMP_KEY,
    VERSION_KEY,
)
from core.errors import RepositoryCorruptError, RepositoryUnreadableError
from core.types import DatasetRecord, validate_record


def format_timestamp(value: datetime) -> str:
    """Render a timestamp in the persisted UTC text format."""
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """Parse a persisted timestamp into an aware UTC datetime.

    Raises:
        ValueError: If text does not follow the persisted format.
    """
    return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def new_document(now: datetime) -> dict[str, Any]:
    """Build an empty metadata document.

    Args:
        now: Creation time stamped on the repository.

    Returns:
        Document with format version and no datasets.
    """
    return {
        REPOSITORY_KEY: {
            VERSION_KEY: FORMAT_VERSION,
            TIMESTAMP_KEY: format_timestamp(now),
            DATASETS_KEY: [],
        }
    }


def record_to_payload(record: DatasetRecord) -> dict[str, Any]:
    """Serialize a record into its persisted JSON object.

    The description key is omitted when the description is empty.
    """
    payload: dict[str, Any] = {
        ID_KEY: record.dataset_id,
        NAME_KEY: record.name,
    }
    if record.description:
        payload[DESCRIPTION_KEY] = record.description
    payload[FILE_COUNT_KEY] = record.file_count
    payload[SIZE_KEY] = record.size_bytes
    payload[TIMESTAMP_KEY] = format_timestamp(record.timestamp)
    return payload


def record_from_payload(payload: Any) -> DatasetRecord:
    """Deserialize a persisted JSON object into a record.

    Args:
        payload: One entry of the datasets array.

    Returns:
        Typed dataset record.

    Raises:
        ValueError: If a field is missing or has the wrong type.
    """
    if not isinstance(payload, dict):
        raise ValueError("dataset entry is not a JSON object")
    description = payload.get(DESCRIPTION_KEY, "")
    if not isinstance(description, str):
        raise ValueError(f"dataset '{DESCRIPTION_KEY}' is not a string")
    return DatasetRecord(
        dataset_id=_required_string(payload, ID_KEY),
        name=_required_string(payload, NAME_KEY),
        description=description,
        file_count=_required_integer(payload, FILE_COUNT_KEY),
        size_bytes=_required_integer(payload, SIZE_KEY),
        timestamp=parse_timestamp(_required_string(payload, TIMESTAMP_KEY)),
    )


def read_document(metadata_path: Path) -> dict[str, Any]:
    """Read and validate a metadata document.

    Args:
        metadata_path: Permanent metadata file path.

    Returns:
        Parsed document.

    Raises:
        RepositoryUnreadableError: If the file cannot be read.
        RepositoryCorruptError: If the content is not a valid document.
    """
    try:
        text = metadata_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise RepositoryUnreadableError(
            f"Failed to read metadata file at {metadata_path}: {error}. "
            "Check file permissions and retry."
        ) from error
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise RepositoryCorruptError(
            f"Failed to parse metadata file at {metadata_path}: {error.msg}. "
            "Restore the file from a backup or a pending snapshot."
        ) from error
    _validate_document_shape(metadata_path, payload)
    return cast(dict[str, Any], payload)


def records_from_document(metadata_path: Path, document: dict[str, Any]) -> list[DatasetRecord]:
    """Extract dataset records from a validated document.

    Args:
        metadata_path: Source path used in error messages.
        document: Parsed metadata document.

    Returns:
        Records in document order.

    Raises:
        RepositoryCorruptError: If an entry is malformed or ids repeat.
    """
    entries = cast(list[Any], document[REPOSITORY_KEY][DATASETS_KEY])
    records: list[DatasetRecord] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            record = validate_record(record_from_payload(entry))
        except ValueError as error:
            raise RepositoryCorruptError(
                f"Invalid dataset entry {index} in metadata file at {metadata_path}: {error}. "
                "Fix or remove the entry and retry."
            ) from error
        if record.dataset_id in seen_ids:
            raise RepositoryCorruptError(
                f"Duplicate dataset id {record.dataset_id} in metadata file at {metadata_path}. "
                "Remove the duplicate entry and retry."
            )
        seen_ids.add(record.dataset_id)
        records.append(record)
    return records


def document_with_records(
    document: dict[str, Any],
    records: Iterable[DatasetRecord],
) -> dict[str, Any]:
    """Return a copy of the document with its datasets array replaced.

    Version, root timestamp, and unknown keys are carried over.
    """
    updated = copy.deepcopy(document)
    updated[REPOSITORY_KEY][DATASETS_KEY] = [record_to_payload(record) for record in records]
    return updated


def render_document(document: dict[str, Any]) -> str:
    """Render a document as indented JSON text with trailing newline."""
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def _validate_document_shape(metadata_path: Path, payload: Any) -> None:
    """Check root structure and format version.

    Raises:
        RepositoryCorruptError: If the structure is not a metadata document.
    """
    repository = payload.get(REPOSITORY_KEY) if isinstance(payload, dict) else None
    if not isinstance(repository, dict):
        raise RepositoryCorruptError(
            f"Failed to parse metadata file at {metadata_path}: "
            f"expected a top-level '{REPOSITORY_KEY}' object. Restore the file from a backup."
        )
    version = repository.get(VERSION_KEY)
    if version != FORMAT_VERSION:
        raise RepositoryCorruptError(
            f"Unsupported metadata format version {version!r} at {metadata_path}; "
            f"expected '{FORMAT_VERSION}'."
        )
    if not isinstance(repository.get(DATASETS_KEY), list):
        raise RepositoryCorruptError(
            f"Failed to parse metadata file at {metadata_path}: "
            f"'{DATASETS_KEY}' must be a JSON array. Restore the file from a backup."
        )


def _required_string(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValueError(f"dataset '{key}' is missing or not a string")
    return value


def _required_integer(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"dataset '{key}' is missing or not a number")
    try:
        return int(value)
    except (OverflowError, ValueError) as error:
        raise ValueError(f"dataset '{key}' is not a finite number") from error
