"""datarepo exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each repository failure mode maps to one specific error type.
"""

from __future__ import annotations


class DataRepoError(Exception):
    """Base exception for all datarepo failures."""


class DataRepoConfigError(DataRepoError):
    """Raised for invalid runtime configuration."""


class InvalidArgumentError(DataRepoError, ValueError):
    """Raised for malformed records or criteria before any state change."""


class RepositoryBusyError(DataRepoError):
    """Raised when another session holds the repository lock."""


class RepositoryUnreadableError(DataRepoError):
    """Raised when the repository or its metadata file cannot be read."""


class RepositoryCorruptError(DataRepoError):
    """Raised when the metadata file cannot be parsed into records."""


class RepositoryWriteFailedError(DataRepoError):
    """Raised when a pending snapshot or final commit cannot be written."""


class RepositoryClosedError(DataRepoError):
    """Raised when a closed metadata session is used."""
