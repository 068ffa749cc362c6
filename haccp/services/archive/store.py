from __future__ import annotations

import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import re
import tempfile
import threading
from typing import Iterator, Protocol
from urllib.parse import quote, unquote

from haccp.core.errors import PersistError, PurgeError
from haccp.domain.period import Period


logger = logging.getLogger(__name__)

# Fixed blob suffix; "<YYYY-MM>-Rapport_HACCP.txt" is the persisted naming contract.
ARCHIVE_SUFFIX = "Rapport_HACCP.txt"
_STAGING_PREFIX = ".staging-"
_BLOB_NAME_RE = re.compile(r"^(\d{4})-(\d{2})-" + re.escape(ARCHIVE_SUFFIX) + r"$")


@dataclass(frozen=True, order=True)
class ArchiveKey:
    tenant_id: str
    period: Period

    def __post_init__(self) -> None:
        if not self.tenant_id or self.tenant_id in {".", ".."}:
            raise ValueError(f"invalid tenant id for archive key: {self.tenant_id!r}")

    @property
    def name(self) -> str:
        return blob_name(self.period)

    def __str__(self) -> str:
        return f"{self.tenant_id}/{self.name}"


@dataclass(frozen=True)
class ArchiveEntry:
    # Metadata record for one published report; callers never parse blob names themselves.
    tenant_id: str
    period: Period
    created_at: datetime
    size_bytes: int
    name: str

    @property
    def key(self) -> ArchiveKey:
        return ArchiveKey(self.tenant_id, self.period)


class ArchiveStore(Protocol):
    def put(self, key: ArchiveKey, content: bytes) -> ArchiveEntry:
        ...

    def get(self, key: ArchiveKey) -> bytes | None:
        ...

    def delete(self, key: ArchiveKey) -> bool:
        ...

    def list(self, tenant_id: str | None = None) -> Iterator[ArchiveEntry]:
        ...


def blob_name(period: Period) -> str:
    return f"{period.key}-{ARCHIVE_SUFFIX}"


def parse_blob_name(name: str) -> Period | None:
    match = _BLOB_NAME_RE.match(name)
    if match is None:
        return None
    try:
        return Period(int(match.group(1)), int(match.group(2)))
    except ValueError:
        return None


def _tenant_dirname(tenant_id: str) -> str:
    # Percent-encode so any tenant id maps to one safe, visible directory name.
    encoded = quote(tenant_id, safe="")
    if encoded.startswith("."):
        encoded = "%2E" + encoded[1:]
    return encoded


class LocalArchiveStore:
    """Filesystem archive: ``<base_dir>/<tenant>/<YYYY-MM>-Rapport_HACCP.txt``.

    ``put`` writes a hidden staging file next to the target and renames it into
    place, so readers see either the previous content or the new one, never a
    partial file. Writers for the same key are serialized with a thread lock.
    """

    def __init__(self, base_dir: Path | str) -> None:
        self.base_dir = Path(base_dir)
        self._locks: dict[ArchiveKey, threading.Lock] = {}
        self._users: dict[ArchiveKey, int] = {}
        self._locks_guard = threading.Lock()

    @contextlib.contextmanager
    def _hold(self, key: ArchiveKey) -> Iterator[None]:
        # Same refcounting as KeyedLocks: a key's lock is dropped once nobody holds or waits on it.
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                remaining = self._users[key] - 1
                if remaining:
                    self._users[key] = remaining
                else:
                    self._users.pop(key, None)
                    self._locks.pop(key, None)

    @property
    def held_keys(self) -> int:
        with self._locks_guard:
            return len(self._locks)

    def path_for(self, key: ArchiveKey) -> Path:
        return self.base_dir / _tenant_dirname(key.tenant_id) / key.name

    def put(self, key: ArchiveKey, content: bytes) -> ArchiveEntry:
        target = self.path_for(key)
        with self._hold(key):
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                fd, staging = tempfile.mkstemp(prefix=_STAGING_PREFIX, suffix=".tmp", dir=target.parent)
                try:
                    with os.fdopen(fd, "wb") as handle:
                        handle.write(content)
                        handle.flush()
                        os.fsync(handle.fileno())
                    os.replace(staging, target)
                except BaseException:
                    with contextlib.suppress(FileNotFoundError):
                        os.unlink(staging)
                    raise
                stat = target.stat()
            except OSError as exc:
                raise PersistError(f"failed to publish archive entry {key}") from exc
        logger.info("archive_entry_published key=%s size=%s", key, stat.st_size)
        return ArchiveEntry(
            tenant_id=key.tenant_id,
            period=key.period,
            created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size_bytes=stat.st_size,
            name=key.name,
        )

    def get(self, key: ArchiveKey) -> bytes | None:
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError:
            return None

    def delete(self, key: ArchiveKey) -> bool:
        # Deleting an absent entry is a no-op.
        with self._hold(key):
            try:
                self.path_for(key).unlink()
            except FileNotFoundError:
                return False
            except OSError as exc:
                raise PurgeError(f"failed to delete archive entry {key}") from exc
        return True

    def list(self, tenant_id: str | None = None) -> Iterator[ArchiveEntry]:
        # Each call returns a fresh lazy walk, so enumeration is restartable.
        return self._iter_entries(tenant_id)

    def _iter_entries(self, tenant_id: str | None) -> Iterator[ArchiveEntry]:
        if not os.path.isdir(self.base_dir):
            return
        if tenant_id is not None:
            tenant_dirs = [self.base_dir / _tenant_dirname(tenant_id)]
        else:
            tenant_dirs = []
            try:
                children = sorted(self.base_dir.iterdir())
            except OSError as exc:
                logger.warning("archive_root_unreadable base_dir=%s", self.base_dir, exc_info=exc)
                return
            for child in children:
                if child.name.startswith("."):
                    continue
                if os.path.isdir(child):
                    tenant_dirs.append(child)
                else:
                    logger.warning("archive_entry_skipped reason=outside_tenant_dir name=%s", child.name)
        for tenant_dir in tenant_dirs:
            if not os.path.isdir(tenant_dir):
                continue
            tenant = unquote(tenant_dir.name)
            try:
                names = sorted(os.listdir(tenant_dir))
            except OSError as exc:
                logger.warning("archive_tenant_dir_unreadable tenant=%s", tenant, exc_info=exc)
                continue
            for name in names:
                if name.startswith("."):
                    continue
                period = parse_blob_name(name)
                if period is None:
                    logger.warning("archive_entry_skipped reason=unparseable tenant=%s name=%s", tenant, name)
                    continue
                try:
                    stat = (tenant_dir / name).stat()
                except OSError:
                    # Removed between listing and stat; nothing to report.
                    continue
                yield ArchiveEntry(
                    tenant_id=tenant,
                    period=period,
                    created_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size_bytes=stat.st_size,
                    name=name,
                )
