"""Persistent TTL cache of public keys backed by a single JSON file."""
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from kbkeys.config import CacheConfig, default_cache_config
from kbkeys.exceptions import CacheError
from kbkeys.state.locking import ReadWriteLock
from kbkeys.state.models import CacheStats, PublicKeyRecord

logger = logging.getLogger(__name__)


class KeyCache:
    """Thread-safe username -> PublicKeyRecord store persisted to one file.

    Every mutation is written to disk before it becomes visible in memory,
    so a failed write leaves both the file and the in-memory view unchanged.
    Writes go to a sibling temporary file which then replaces the target,
    so readers (including other processes) never see a partial file.

    Expired records are treated as absent by ``get`` but are only removed
    by ``prune_expired``, ``delete`` or ``clear``.
    """

    def __init__(self, config: Optional[CacheConfig] = None) -> None:
        config = config or default_cache_config()
        self._path = Path(config.path)
        self._ttl = config.ttl
        self._entries: dict[str, PublicKeyRecord] = {}
        self._lock = ReadWriteLock()
        try:
            self._path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(f"failed to create cache directory {self._path.parent}: {e}") from e
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def load(self) -> None:
        """(Re)load entries from disk. A missing file yields an empty cache."""
        with self._lock.write():
            if not self._path.exists():
                self._entries = {}
                return
            try:
                raw = self._path.read_text(encoding="utf-8")
            except OSError as e:
                raise CacheError(f"failed to read cache file {self._path}: {e}") from e
            self._entries = _parse_cache_file(raw, self._path)
            logger.info("Loaded %d cached key(s) from %s", len(self._entries), self._path)

    def get(self, username: str) -> Optional[PublicKeyRecord]:
        with self._lock.read():
            record = self._entries.get(username)
        if record is None or record.is_expired():
            return None
        return record

    def set(self, username: str, public_key: str, key_id: str) -> PublicKeyRecord:
        """Store a key for *username*, replacing any existing record."""
        now = datetime.now(timezone.utc)
        record = PublicKeyRecord(username=username, public_key=public_key, key_id=key_id,
                                 fetched_at=now, expires_at=now + self._ttl)
        with self._lock.write():
            entries = dict(self._entries)
            entries[username] = record
            self._persist(entries)
            self._entries = entries
        return record

    def delete(self, username: str) -> None:
        with self._lock.write():
            if username not in self._entries:
                return
            entries = {u: r for u, r in self._entries.items() if u != username}
            self._persist(entries)
            self._entries = entries

    def clear(self) -> None:
        with self._lock.write():
            self._persist({})
            self._entries = {}

    def prune_expired(self) -> int:
        """Remove expired records and return how many were removed.

        Nothing is written when no record has expired.
        """
        now = datetime.now(timezone.utc)
        with self._lock.write():
            entries = {u: r for u, r in self._entries.items() if not r.is_expired(now)}
            removed = len(self._entries) - len(entries)
            if not removed:
                return 0
            self._persist(entries)
            self._entries = entries
        logger.info("Pruned %d expired key(s) from %s", removed, self._path)
        return removed

    def stats(self) -> CacheStats:
        now = datetime.now(timezone.utc)
        with self._lock.read():
            total = len(self._entries)
            expired = sum(1 for r in self._entries.values() if r.is_expired(now))
        return CacheStats(total=total, valid=total - expired, expired=expired)

    def _persist(self, entries: dict[str, PublicKeyRecord]) -> None:
        """Atomically write *entries* to disk. Caller must hold the write lock."""
        try:
            payload = json.dumps({"entries": {u: r.to_dict() for u, r in entries.items()}}, indent=2)
        except (TypeError, ValueError) as e:
            raise CacheError(f"failed to serialize cache: {e}") from e
        tmp_path: Optional[Path] = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent)
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
            tmp_path = None
            logger.info("Wrote %d cached key(s) to %s", len(entries), self._path)
        except OSError as e:
            raise CacheError(f"failed to write cache file {self._path}: {e}") from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)


def _parse_cache_file(raw: str, path: Path) -> dict[str, PublicKeyRecord]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CacheError(f"failed to parse cache file {path}: {e}") from e
    if not isinstance(data, dict):
        raise CacheError(f"failed to parse cache file {path}: expected a JSON object")
    raw_entries = data.get("entries") or {}
    if not isinstance(raw_entries, dict):
        raise CacheError(f"failed to parse cache file {path}: 'entries' must be an object")
    entries: dict[str, PublicKeyRecord] = {}
    for username, item in raw_entries.items():
        try:
            entries[username] = PublicKeyRecord.from_dict(item)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise CacheError(f"failed to parse cache entry {username!r} in {path}: {e}") from e
    return entries
