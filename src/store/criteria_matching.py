"""Record criteria matching helpers.

This module evaluates conjunctive criteria against dataset records.
Id criteria are point lookups and are resolved by the record store.
"""

from __future__ import annotations

from typing import Iterable

from core.types import Criteria, DatasetRecord


def matches(criteria: Criteria, record: DatasetRecord | None) -> bool:
    """Return whether a record satisfies every present criteria field.

    Args:
        criteria: Filter constraints.
        record: Candidate record, may be None.

    Returns:
        True when all present constraints hold.
    """
    if record is None:
        return False
    if criteria.name is not None and record.name != criteria.name:
        return False
    if criteria.text is not None:
        if criteria.text not in record.name and criteria.text not in record.description:
            return False
    if criteria.after is not None and not record.timestamp > criteria.after:
        return False
    if criteria.before is not None and not record.timestamp < criteria.before:
        return False
    return True


def filter_records(
    records: Iterable[DatasetRecord],
    criteria: Criteria,
) -> list[DatasetRecord]:
    """Filter records using criteria constraints.

    Args:
        records: Input records to filter.
        criteria: Filter constraints.

    Returns:
        Matching records in input order.
    """
    return [record for record in records if matches(criteria, record)]
