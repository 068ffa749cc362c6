from __future__ import annotations

from haccp.services.archive.locks import KeyedLocks, RedisKeyedLocks, build_archive_locks
from haccp.services.archive.store import (
    ARCHIVE_SUFFIX,
    ArchiveEntry,
    ArchiveKey,
    ArchiveStore,
    LocalArchiveStore,
    blob_name,
    parse_blob_name,
)


__all__ = [
    "ARCHIVE_SUFFIX",
    "ArchiveEntry",
    "ArchiveKey",
    "ArchiveStore",
    "KeyedLocks",
    "LocalArchiveStore",
    "RedisKeyedLocks",
    "blob_name",
    "build_archive_locks",
    "parse_blob_name",
]
