"""Core constants used across datarepo modules.

This module centralizes file names, format tags, and defaults.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_REPOSITORY_ROOT = Path(".")
METADATA_FILE_NAME = ".metadata"
PENDING_FILE_PREFIX = "tmp"
PENDING_FILE_NAME = PENDING_FILE_PREFIX + METADATA_FILE_NAME
STALE_PENDING_SUFFIX = ".stale-"
REPLACE_STAGING_SUFFIX = ".replace"
REPLACE_BACKUP_SUFFIX = ".previous"
LOCK_FILE_NAME = ".lock"
FORMAT_VERSION = "1.0"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
DISPLAY_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
DISPLAY_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_LOCK_ATTEMPTS = 3
DEFAULT_LOCK_RETRY_SECONDS = 0.5
MAX_SIZE_BYTES = 2**63 - 1
REPOSITORY_KEY = "repository"
VERSION_KEY = "version"
TIMESTAMP_KEY = "timestamp"
DATASETS_KEY = "datasets"
ID_KEY = "id"
NAME_KEY = "name"
DESCRIPTION_KEY = "description"
FILE_COUNT_KEY = "filecount"
SIZE_KEY = "size"
