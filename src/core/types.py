"""Shared typed models.

This module defines the immutable dataset record and query criteria
used by the metadata store, the repository façade, and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import uuid

from core.constants import MAX_SIZE_BYTES
from core.errors import InvalidArgumentError


def new_dataset_id() -> str:
    """Return a fresh random dataset identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return current UTC time truncated to whole seconds.

    Persisted timestamps carry second precision, so records stamped
    with this value compare equal after a metadata round-trip.
    """
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True)
class DatasetRecord:
    """Metadata describing one stored dataset.

    Attributes:
        dataset_id: Unique UUID string, never reused.
        name: Non-empty display name.
        description: Free text, empty when not provided.
        file_count: Number of files in the payload.
        size_bytes: Total payload size in bytes.
        timestamp: UTC time of creation or last replacement.
    """

    dataset_id: str
    name: str
    description: str
    file_count: int
    size_bytes: int
    timestamp: datetime


@dataclass(frozen=True)
class Criteria:
    """Conjunctive filter over dataset records.

    Every field is optional and an absent field is unconstrained. An id
    criteria is a point lookup and may not be combined with other fields.

    Attributes:
        dataset_id: Exact dataset id.
        name: Exact, case-sensitive name.
        text: Substring of the name or the description.
        after: Exclusive lower timestamp bound.
        before: Exclusive upper timestamp bound.
    """

    dataset_id: str | None = None
    name: str | None = None
    text: str | None = None
    after: datetime | None = None
    before: datetime | None = None

    def __post_init__(self) -> None:
        if self.dataset_id is not None:
            if not isinstance(self.dataset_id, str) or not self.dataset_id:
                raise InvalidArgumentError("Criteria id must be a non-empty string.")
            if any(
                value is not None for value in (self.name, self.text, self.after, self.before)
            ):
                raise InvalidArgumentError(
                    "Criteria id cannot be combined with name, text, after or before. "
                    "Use Criteria.for_id for point lookups."
                )
        _require_non_empty_text("name", self.name)
        _require_non_empty_text("text", self.text)
        _require_aware_datetime("after", self.after)
        _require_aware_datetime("before", self.before)

    @classmethod
    def match_all(cls) -> "Criteria":
        """Return criteria matched by every record."""
        return cls()

    @classmethod
    def for_id(cls, dataset_id: str) -> "Criteria":
        """Return criteria matched only by the record with this id."""
        return cls(dataset_id=dataset_id)

    @property
    def is_id_only(self) -> bool:
        return self.dataset_id is not None

    @property
    def is_match_all(self) -> bool:
        return all(
            value is None
            for value in (self.dataset_id, self.name, self.text, self.after, self.before)
        )


def validate_record(record: object) -> DatasetRecord:
    """Check that a value is a well-formed dataset record.

    Args:
        record: Candidate record.

    Returns:
        The same record, typed.

    Raises:
        InvalidArgumentError: If any field violates the record invariants.
    """
    if not isinstance(record, DatasetRecord):
        raise InvalidArgumentError(
            f"Expected a DatasetRecord, got {type(record).__name__}."
        )
    if not isinstance(record.dataset_id, str) or not record.dataset_id:
        raise InvalidArgumentError("Dataset id must be a non-empty string.")
    if not isinstance(record.name, str) or not record.name:
        raise InvalidArgumentError(
            f"Dataset {record.dataset_id} must have a non-empty name."
        )
    if not isinstance(record.description, str):
        raise InvalidArgumentError(
            f"Dataset {record.dataset_id} description must be a string, "
            "use an empty string when there is none."
        )
    _require_count("file_count", record.file_count, record.dataset_id)
    _require_count("size_bytes", record.size_bytes, record.dataset_id)
    if record.size_bytes > MAX_SIZE_BYTES:
        raise InvalidArgumentError(
            f"Dataset {record.dataset_id} size {record.size_bytes} exceeds {MAX_SIZE_BYTES}."
        )
    if not isinstance(record.timestamp, datetime) or record.timestamp.tzinfo is None:
        raise InvalidArgumentError(
            f"Dataset {record.dataset_id} timestamp must be a timezone-aware datetime."
        )
    return record


def _require_count(field_name: str, value: object, dataset_id: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidArgumentError(
            f"Dataset {dataset_id} {field_name} must be a non-negative integer, got {value!r}."
        )


def _require_non_empty_text(field_name: str, value: object) -> None:
    if value is None:
        return
    if not isinstance(value, str) or not value:
        raise InvalidArgumentError(f"Criteria {field_name} must be a non-empty string.")


def _require_aware_datetime(field_name: str, value: object) -> None:
    if value is None:
        return
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise InvalidArgumentError(
            f"Criteria {field_name} must be a timezone-aware datetime."
        )
