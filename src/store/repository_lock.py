"""Advisory repository lock.

This module guards a repository against concurrent sessions using
a zero-length marker file locked with ``fcntl.flock``.
"""

from __future__ import annotations

import fcntl
import os
from pathlib import Path
import time

from core.constants import DEFAULT_LOCK_ATTEMPTS, DEFAULT_LOCK_RETRY_SECONDS, LOCK_FILE_NAME
from core.errors import RepositoryBusyError, RepositoryWriteFailedError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


class RepositoryLock:
    """Exclusive, non-blocking advisory lock on one repository root."""

    def __init__(
        self,
        repository_root: Path,
        attempts: int = DEFAULT_LOCK_ATTEMPTS,
        retry_seconds: float = DEFAULT_LOCK_RETRY_SECONDS,
    ) -> None:
        self._lock_path = repository_root / LOCK_FILE_NAME
        self._attempts = max(1, attempts)
        self._retry_seconds = retry_seconds
        self._fd: int | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Acquire the lock, retrying a bounded number of times.

        Raises:
            RepositoryBusyError: If the lock stays held elsewhere or the
                marker file cannot be opened.
        """
        if self._fd is not None:
            return
        try:
            fd = os.open(self._lock_path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as error:
            raise RepositoryBusyError(
                f"Failed to open repository lock file at {self._lock_path}: {error}. "
                "Check repository permissions and retry."
            ) from error
        for attempt in range(1, self._attempts + 1):
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                _LOGGER.debug("lock_retry", lock_path=str(self._lock_path), attempt=attempt)
                if attempt < self._attempts:
                    time.sleep(self._retry_seconds)
                continue
            except OSError as error:
                os.close(fd)
                raise RepositoryBusyError(
                    f"Failed to lock repository at {self._lock_path}: {error}. "
                    "Check that the file system supports advisory locks."
                ) from error
            self._fd = fd
            _LOGGER.debug("lock_acquired", lock_path=str(self._lock_path), attempt=attempt)
            return
        os.close(fd)
        raise RepositoryBusyError(
            f"Repository lock at {self._lock_path} is held by another session "
            f"after {self._attempts} attempts. Close the other session and retry."
        )

    def release(self) -> None:
        """Release the lock if held; the marker file stays in place.

        Raises:
            RepositoryWriteFailedError: If unlocking fails.
        """
        if self._fd is None:
            return
        fd = self._fd
        self._fd = None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        except OSError as error:
            raise RepositoryWriteFailedError(
                f"Failed to release repository lock at {self._lock_path}: {error}."
            ) from error
        finally:
            os.close(fd)
        _LOGGER.debug("lock_released", lock_path=str(self._lock_path))
