"""Public SDK surface for datarepo.

This module provides a stable import path for repository users.
It re-exports the session manager, façade, and typed models.
"""

from __future__ import annotations

from core.config import DataRepoConfig
from core.errors import (
    DataRepoConfigError,
    DataRepoError,
    InvalidArgumentError,
    RepositoryBusyError,
    RepositoryClosedError,
    RepositoryCorruptError,
    RepositoryUnreadableError,
    RepositoryWriteFailedError,
)
from core.types import Criteria, DatasetRecord, new_dataset_id, utc_now
from store.cleanup import (
    CleanupStrategy,
    ExistsCleanup,
    OrphanPayloadCleanup,
    RetentionCleanup,
    SizeBudgetCleanup,
)
from store.dataset_repository import DataRepository
from store.metadata_manager import MetadataManager
from store.record_store import RecordStore

__all__ = [
    "CleanupStrategy",
    "Criteria",
    "DataRepoConfig",
    "DataRepoConfigError",
    "DataRepoError",
    "DataRepository",
    "DatasetRecord",
    "ExistsCleanup",
    "InvalidArgumentError",
    "MetadataManager",
    "OrphanPayloadCleanup",
    "RecordStore",
    "RepositoryBusyError",
    "RepositoryClosedError",
    "RepositoryCorruptError",
    "RepositoryUnreadableError",
    "RepositoryWriteFailedError",
    "RetentionCleanup",
    "SizeBudgetCleanup",
    "new_dataset_id",
    "utc_now",
]
