"""Bounded, TTL-based documentation cache with a SQLite snapshot on disk.

Entries live in an in-memory LRU map. Reads never take a lock. Every
``set`` under active persistence rewrites the full snapshot: a fresh
SQLite file is written next to the target and renamed over it, so readers
never see a half-written snapshot. Snapshot writes are serialised by one
``asyncio.Lock``.

Write-time TTL: an entry expires ``ttl`` after it was stored, regardless
of how often it is read.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from collections import OrderedDict
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from pydantic import ValidationError

from godocs.errors import ErrorCode, GodocsError
from godocs.models.cache import CacheEntry, Provenance

if TYPE_CHECKING:
    from godocs.config import CacheSettings
    from godocs.models.source import ModuleInfo

log = structlog.get_logger()

_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_FNV64_MASK = 0xFFFFFFFFFFFFFFFF

_CREATE_ENTRIES_TABLE = """
CREATE TABLE IF NOT EXISTS entries (
    position   INTEGER PRIMARY KEY,
    key        TEXT NOT NULL UNIQUE,
    payload    TEXT NOT NULL,
    stored_at  TEXT NOT NULL
)
"""


def cache_key(import_path: str, version: str, symbol: str) -> str:
    """FNV-1a 64 of the three components separated by NUL bytes, as hex."""
    h = _FNV64_OFFSET
    for byte in b"\x00".join(part.encode("utf-8") for part in (import_path, version, symbol)):
        h ^= byte
        h = (h * _FNV64_PRIME) & _FNV64_MASK
    return format(h, "x")


def uniq_keys(*keys: str) -> list[str]:
    """Drop empty and repeated keys, keeping first occurrences in order."""
    return list(dict.fromkeys(k for k in keys if k))


def derive_provenance(
    module: ModuleInfo | None,
    resolved_version: str,
    toolchain_version: str,
    *,
    remote: bool = False,
) -> Provenance:
    """Record what a freshly built entry depends on.

    Packages outside any module (the standard library) depend on the
    toolchain; dependency modules on their own version; the main module
    on both. A remote package with a known module version is immutable,
    so it does not depend on the toolchain.
    """
    resolved = resolved_version.strip()
    if module is None or not module.path:
        prov = Provenance(toolchain_version=toolchain_version)
    elif not module.main:
        prov = Provenance(module_version=module.version.strip() or resolved)
    else:
        prov = Provenance(toolchain_version=toolchain_version, module_version=resolved)

    if remote:
        if not prov.module_version and resolved:
            prov.module_version = resolved
        if prov.module_version:
            prov.toolchain_version = ""
    return prov


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _write_failure(path: Path, exc: BaseException) -> GodocsError:
    reason = "permission denied" if isinstance(exc, PermissionError) else str(exc)
    return GodocsError(
        code=ErrorCode.CACHE_WRITE_FAILED,
        message=f"Could not write cache snapshot {path}: {reason}",
        suggestion="Check that the cache directory is writable, or set cache.persist to false.",
        recoverable=True,
    )


@dataclass
class _Slot:
    entry: CacheEntry
    stored_at: datetime


class CacheStore:
    """In-memory LRU cache of ``CacheEntry`` objects with optional persistence."""

    def __init__(
        self,
        *,
        max_entries: int = 10_000,
        ttl: timedelta = timedelta(hours=24),
        path: Path | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.max_entries = max_entries
        self.ttl = ttl
        self.path = path
        self._clock = clock
        self._entries: OrderedDict[str, _Slot] = OrderedDict()
        self._lock = asyncio.Lock()

    @classmethod
    async def open(cls, settings: CacheSettings) -> CacheStore:
        """Create the store and load the snapshot named by ``settings``.

        An unreadable snapshot disables persistence for the process; only a
        cache directory that cannot be created is fatal.
        """
        path = Path(settings.path).expanduser() if settings.persist else None
        store = cls(max_entries=settings.max_entries, ttl=timedelta(hours=settings.ttl_hours), path=path)
        if path is None:
            return store

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise GodocsError(
                code=ErrorCode.CACHE_UNAVAILABLE,
                message=f"Could not create cache directory {path.parent}: {exc}",
                suggestion="Set cache.path to a writable location.",
                recoverable=False,
            ) from exc

        if not path.exists():
            return store

        try:
            await store.load(path)
        except GodocsError as exc:
            log.warning("cache_snapshot_load_failed", path=str(path), error=exc.message)
            store.path = None
        return store

    @property
    def persistent(self) -> bool:
        return self.path is not None

    def __len__(self) -> int:
        return len(self._entries)

    def _expired(self, slot: _Slot, now: datetime) -> bool:
        return now - slot.stored_at >= self.ttl

    def _put(self, key: str, slot: _Slot) -> None:
        self._entries[key] = slot
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("cache_evicted", key=evicted)

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key``, or None if absent or expired."""
        slot = self._entries.get(key)
        if slot is None:
            return None
        if self._expired(slot, self._clock()):
            self._entries.pop(key, None)
            return None
        with suppress(KeyError):
            self._entries.move_to_end(key)
        return slot.entry

    async def set(self, entry: CacheEntry, *keys: str) -> None:
        """Store ``entry`` under every key, then persist the snapshot.

        The in-memory update is kept even when the snapshot write fails;
        the failure is raised as ``CACHE_WRITE_FAILED``.
        """
        now = self._clock()
        for key in keys:
            if key:
                self._put(key, _Slot(entry, now))
        if self.path is not None:
            await self.persist()

    async def persist(self) -> None:
        """Write a full snapshot of the live entries."""
        if self.path is None:
            return
        path = self.path
        async with self._lock:
            now = self._clock()
            rows = [
                (i, key, slot.entry.model_dump_json(), slot.stored_at.isoformat())
                for i, (key, slot) in enumerate(list(self._entries.items()))
                if not self._expired(slot, now)
            ]
            try:
                await self._write_snapshot(path, rows)
            except (OSError, aiosqlite.Error) as exc:
                log.warning("cache_snapshot_write_failed", path=str(path), exc_info=True)
                raise _write_failure(path, exc) from exc
        log.debug("cache_persisted", path=str(path), entries=len(rows))

    @staticmethod
    async def _write_snapshot(path: Path, rows: list[tuple[int, str, str, str]]) -> None:
        fd, tmp = tempfile.mkstemp(prefix=".cache-", suffix=".db", dir=path.parent)
        os.close(fd)
        try:
            async with aiosqlite.connect(tmp) as db:
                await db.execute(_CREATE_ENTRIES_TABLE)
                await db.executemany(
                    "INSERT INTO entries (position, key, payload, stored_at) VALUES (?, ?, ?, ?)",
                    rows,
                )
                await db.commit()
            os.replace(tmp, path)
        except BaseException:
            with suppress(OSError):
                os.unlink(tmp)
            raise

    async def load(self, path: Path) -> None:
        """Load a snapshot written by ``persist``, in its recorded LRU order.

        Raises ``GodocsError(CACHE_UNAVAILABLE)`` when the file is not a
        readable snapshot.
        """
        try:
            async with aiosqlite.connect(f"{Path(path).resolve().as_uri()}?mode=ro", uri=True) as db:
                cursor = await db.execute("SELECT key, payload, stored_at FROM entries ORDER BY position")
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise GodocsError(
                code=ErrorCode.CACHE_UNAVAILABLE,
                message=f"Unreadable cache snapshot {path}: {exc}",
                suggestion="Delete the snapshot file; it is rebuilt on the next write.",
                recoverable=False,
            ) from exc

        slots: list[tuple[str, _Slot]] = []
        for key, payload, stored_at in rows:
            try:
                slot = _Slot(CacheEntry.model_validate_json(payload), datetime.fromisoformat(stored_at))
            except (ValidationError, ValueError, TypeError) as exc:
                raise GodocsError(
                    code=ErrorCode.CACHE_UNAVAILABLE,
                    message=f"Corrupt cache snapshot entry {key!r} in {path}: {exc}",
                    suggestion="Delete the snapshot file; it is rebuilt on the next write.",
                    recoverable=False,
                ) from exc
            slots.append((key, slot))

        now = self._clock()
        loaded = 0
        for key, slot in slots:
            if not self._expired(slot, now):
                self._put(key, slot)
                loaded += 1
        log.info("cache_snapshot_loaded", path=str(path), entries=loaded)
