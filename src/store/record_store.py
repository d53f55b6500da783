"""In-memory dataset record store.

This module holds the authoritative record set of an open session.
Records are keyed by id and kept in insertion order.
"""

from __future__ import annotations

from typing import Iterable

from core.types import Criteria, DatasetRecord, validate_record
from store.criteria_matching import filter_records


class RecordStore:
    """Insertion-ordered collection of records keyed by dataset id.

    The store performs no locking; the owning metadata session
    serializes every call.
    """

    def __init__(self, records: Iterable[DatasetRecord] = ()) -> None:
        """Initialize store with records.

        Args:
            records: Initial records; later duplicates overwrite earlier ones.

        Raises:
            InvalidArgumentError: If any record is malformed.
        """
        self._records: dict[str, DatasetRecord] = {}
        for record in records:
            self.put(record)

    def put(self, record: DatasetRecord) -> bool:
        """Insert a record or replace the record with the same id.

        Args:
            record: Record to store.

        Returns:
            True once the record is stored.

        Raises:
            InvalidArgumentError: If record is malformed.
        """
        validated = validate_record(record)
        self._records[validated.dataset_id] = validated
        return True

    def remove(self, record_or_id: DatasetRecord | str) -> DatasetRecord | None:
        """Remove the record with a matching id.

        Args:
            record_or_id: Record or bare dataset id.

        Returns:
            The removed record, or None when no record had that id.
        """
        dataset_id = _dataset_id_of(record_or_id)
        return self._records.pop(dataset_id, None)

    def get(self, dataset_id: str) -> DatasetRecord | None:
        return self._records.get(dataset_id)

    def query(self, criteria: Criteria) -> list[DatasetRecord]:
        """Return records matching criteria in insertion order.

        Args:
            criteria: Query constraints.

        Returns:
            Matching records; at most one for id criteria.
        """
        if criteria.is_id_only:
            record = self.get(str(criteria.dataset_id))
            return [record] if record is not None else []
        return filter_records(self._records.values(), criteria)

    def get_all(self) -> list[DatasetRecord]:
        return list(self._records.values())

    def ids(self) -> list[str]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, dataset_id: object) -> bool:
        return dataset_id in self._records


def _dataset_id_of(record_or_id: DatasetRecord | str) -> str:
    if isinstance(record_or_id, DatasetRecord):
        return record_or_id.dataset_id
    return record_or_id
