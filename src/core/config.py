"""Runtime configuration model for datarepo.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from core.constants import (
    DEFAULT_LOCK_ATTEMPTS,
    DEFAULT_LOCK_RETRY_SECONDS,
    DEFAULT_REPOSITORY_ROOT,
)
from core.errors import DataRepoConfigError


@dataclass(frozen=True)
class DataRepoConfig:
    """Validated runtime configuration.

    Attributes:
        repository_root: Directory holding dataset payloads and metadata.
        lock_attempts: Number of lock acquisition attempts before giving up.
        lock_retry_seconds: Sleep between lock acquisition attempts.
    """

    repository_root: Path
    lock_attempts: int = DEFAULT_LOCK_ATTEMPTS
    lock_retry_seconds: float = DEFAULT_LOCK_RETRY_SECONDS

    @classmethod
    def from_env(cls) -> "DataRepoConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            DataRepoConfigError: If environment values are invalid.
        """
        root_value = os.getenv("DATAREPO_ROOT", str(DEFAULT_REPOSITORY_ROOT))
        attempts_value = os.getenv("DATAREPO_LOCK_ATTEMPTS", str(DEFAULT_LOCK_ATTEMPTS))
        retry_value = os.getenv("DATAREPO_LOCK_RETRY_SECONDS", str(DEFAULT_LOCK_RETRY_SECONDS))
        return cls(
            repository_root=Path(root_value).expanduser().resolve(),
            lock_attempts=_parse_lock_attempts(attempts_value),
            lock_retry_seconds=_parse_lock_retry_seconds(retry_value),
        )


def _parse_lock_attempts(raw_value: str) -> int:
    """Parse the lock attempts environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive attempt count.

    Raises:
        DataRepoConfigError: If value is not a positive integer.
    """
    try:
        attempts = int(raw_value)
    except ValueError as error:
        raise DataRepoConfigError(
            "Invalid DATAREPO_LOCK_ATTEMPTS value: "
            f"expected integer, got '{raw_value}'. "
            "Set DATAREPO_LOCK_ATTEMPTS to a positive number."
        ) from error
    if attempts < 1:
        raise DataRepoConfigError(
            f"Invalid DATAREPO_LOCK_ATTEMPTS value: expected >= 1, got {attempts}. "
            "Set DATAREPO_LOCK_ATTEMPTS to a positive number."
        )
    return attempts


def _parse_lock_retry_seconds(raw_value: str) -> float:
    """Parse the lock retry delay environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed non-negative delay in seconds.

    Raises:
        DataRepoConfigError: If value is not a non-negative number.
    """
    try:
        delay = float(raw_value)
    except ValueError as error:
        raise DataRepoConfigError(
            "Invalid DATAREPO_LOCK_RETRY_SECONDS value: "
            f"expected number, got '{raw_value}'. "
            "Set DATAREPO_LOCK_RETRY_SECONDS to a numeric value."
        ) from error
    if delay < 0:
        raise DataRepoConfigError(
            f"Invalid DATAREPO_LOCK_RETRY_SECONDS value: expected >= 0, got {delay}. "
            "Set DATAREPO_LOCK_RETRY_SECONDS to zero or a positive number."
        )
    return delay
