"""PromptStore — SQLite-backed prompt persistence with an in-memory metadata cache.

Two key/value tables hold the current generation (metadata and bodies, keyed by
the JSON form of a PromptId). Two older tables keyed by bare UUIDs are read once
per open and folded forward by recency. All SQL runs on aiosqlite's connection
thread; metadata reads and listing are served from the cache.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncIterator, Optional
from uuid import UUID

import aiosqlite
from pydantic import ValidationError

from .cache import MetadataCache
from .config import config
from .errors import PromptNotFoundError, PromptPermissionError, PromptStorageError
from .fuzzy import StringMatchCandidate, match_strings
from .schemas import (
    BUILT_IN_PROMPTS,
    DEPRECATED_BUILT_INS,
    PromptId,
    PromptMetadata,
    PromptMetadataV1,
)

logger = logging.getLogger("promptlib.storage")

METADATA_TABLE = "metadata.v2"
BODIES_TABLE = "bodies.v2"
LEGACY_METADATA_TABLE = "metadata"
LEGACY_BODIES_TABLE = "bodies"

_STORAGE_ERRORS = (sqlite3.Error, OSError)


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class PromptStore:
    """Durable prompt storage plus the metadata cache built from it."""

    def __init__(self, store_dir: Path | None = None, search_max_results: int | None = None):
        self.store_dir = Path(store_dir) if store_dir is not None else config.store_dir
        self.db_path = self.store_dir / config.db_filename
        self.search_max_results = (
            config.search_max_results if search_max_results is None else search_max_results
        )
        self._db: aiosqlite.Connection | None = None
        # One connection is shared by every task; transactions must not interleave on it.
        self._txn_lock = asyncio.Lock()
        self._cache = MetadataCache()

    async def init_db(self):
        """Open the database, purge/seed built-ins, migrate legacy tables, build the cache."""
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(str(self.db_path), isolation_level=None)
            await self._db.execute("PRAGMA journal_mode = WAL")
            await self._db.executescript(SCHEMA_SQL)
        except _STORAGE_ERRORS as e:
            raise PromptStorageError(f"failed to open prompt store at {self.db_path}: {e}") from e

        async with self._transaction(write=True):
            await self._purge_deprecated_built_ins()
            await self._seed_built_ins()

        try:
            await self._purge_legacy_built_ins()
        except Exception as e:
            logger.warning(f"Legacy built-in purge failed (non-fatal): {e}")

        try:
            merged = await self._migrate_legacy()
            if merged:
                logger.info(f"Migration: merged {merged} legacy prompts into {METADATA_TABLE}")
        except Exception as e:
            logger.warning(f"Legacy prompt migration failed (non-fatal): {e}")

        async with self._transaction(write=False):
            records = await self._load_metadata()
        self._cache = MetadataCache(records)
        logger.info(f"Prompt store opened at {self.db_path} ({len(records)} prompts)")

    async def close(self):
        if self._db:
            await self._db.close()
            self._db = None

    # ── Transactions ──

    @asynccontextmanager
    async def _transaction(self, write: bool) -> AsyncIterator[aiosqlite.Connection]:
        """Run the body inside one BEGIN/COMMIT, serialized with every other transaction.

        Engine errors raised inside the block surface as PromptStorageError.
        """
        if self._db is None:
            raise PromptStorageError("prompt store is not open")
        async with self._txn_lock:
            try:
                await self._db.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            except _STORAGE_ERRORS as e:
                raise PromptStorageError(f"failed to begin transaction: {e}") from e
            try:
                yield self._db
            except BaseException as exc:
                try:
                    await self._db.execute("ROLLBACK")
                except _STORAGE_ERRORS as e:
                    logger.warning(f"Rollback failed: {e}")
                if isinstance(exc, _STORAGE_ERRORS):
                    raise PromptStorageError(str(exc)) from exc
                raise
            try:
                await self._db.execute("COMMIT")
            except _STORAGE_ERRORS as e:
                raise PromptStorageError(f"commit failed: {e}") from e

    async def _get(self, table: str, key: str) -> Optional[str]:
        async with self._db.execute(f'SELECT value FROM "{table}" WHERE key = ?', (key,)) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def _put(self, table: str, key: str, value: str):
        await self._db.execute(
            f'INSERT OR REPLACE INTO "{table}" (key, value) VALUES (?, ?)', (key, value)
        )

    async def _delete(self, table: str, key: str):
        await self._db.execute(f'DELETE FROM "{table}" WHERE key = ?', (key,))

    async def _items(self, table: str) -> list[tuple[str, str]]:
        async with self._db.execute(f'SELECT key, value FROM "{table}"') as cursor:
            return [(row[0], row[1]) for row in await cursor.fetchall()]

    async def _table_exists(self, table: str) -> bool:
        async with self._db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
        ) as cursor:
            return await cursor.fetchone() is not None

    # ── Open-time maintenance ──

    async def _purge_deprecated_built_ins(self):
        """Drop retired built-ins from the current tables."""
        for kind in DEPRECATED_BUILT_INS:
            key = PromptId.built_in(kind).to_key()
            if await self._get(METADATA_TABLE, key) is not None:
                logger.info(f"Purging deprecated built-in prompt {kind.value}")
            await self._delete(METADATA_TABLE, key)
            await self._delete(BODIES_TABLE, key)

    async def _purge_legacy_built_ins(self):
        """Drop retired built-ins from the legacy tables, whichever of them exist."""
        async with self._transaction(write=True):
            for table in (LEGACY_METADATA_TABLE, LEGACY_BODIES_TABLE):
                if not await self._table_exists(table):
                    continue
                for kind in DEPRECATED_BUILT_INS:
                    for key in (PromptId.built_in(kind).to_key(), kind.value):
                        await self._delete(table, key)

    async def _seed_built_ins(self):
        for kind, (title, body) in BUILT_IN_PROMPTS.items():
            prompt_id = PromptId.built_in(kind)
            key = prompt_id.to_key()
            if await self._get(METADATA_TABLE, key) is not None:
                continue
            record = PromptMetadata(id=prompt_id, title=title, default=False)
            await self._put(METADATA_TABLE, key, record.model_dump_json())
            await self._put(BODIES_TABLE, key, body)
            logger.info(f"Seeded built-in prompt {kind.value}")

    async def _migrate_legacy(self) -> int:
        """Fold the bare-UUID tables into the current ones. Newer saved_at wins.

        Safe to run on every open: with nothing newer in the legacy tables it
        writes nothing. Returns the number of prompts written.
        """
        merged = 0
        async with self._transaction(write=True):
            if not await self._table_exists(LEGACY_BODIES_TABLE):
                return 0
            if not await self._table_exists(LEGACY_METADATA_TABLE):
                return 0

            legacy_bodies: dict[UUID, str] = {}
            for key, body in await self._items(LEGACY_BODIES_TABLE):
                try:
                    legacy_bodies[UUID(key)] = body
                except ValueError:
                    logger.warning(f"Skipping legacy body with malformed key {key!r}")

            for key, value in await self._items(LEGACY_METADATA_TABLE):
                try:
                    legacy = PromptMetadataV1.model_validate_json(value)
                except ValidationError as e:
                    logger.warning(f"Skipping malformed legacy metadata {key!r}: {e}")
                    continue
                body = legacy_bodies.pop(legacy.id, None)
                if body is None:
                    continue

                upgraded = legacy.upgrade()
                current_key = upgraded.id.to_key()
                current_raw = await self._get(METADATA_TABLE, current_key)
                if current_raw is not None:
                    try:
                        current = PromptMetadata.model_validate_json(current_raw)
                    except ValidationError:
                        current = None
                    if current is not None and upgraded.saved_at <= current.saved_at:
                        continue

                await self._put(METADATA_TABLE, current_key, upgraded.model_dump_json())
                await self._put(BODIES_TABLE, current_key, body)
                merged += 1
        return merged

    async def _load_metadata(self) -> list[PromptMetadata]:
        records = []
        for key, value in await self._items(METADATA_TABLE):
            try:
                records.append(PromptMetadata.model_validate_json(value))
            except ValidationError as e:
                logger.warning(f"Skipping malformed metadata record {key!r}: {e}")
        return records

    # ── Reads ──

    async def get_body(self, id: PromptId) -> str:
        """Load a prompt body with line endings normalized to \\n."""
        async with self._transaction(write=False):
            body = await self._get(BODIES_TABLE, id.to_key())
        if body is None:
            raise PromptNotFoundError(f"prompt {id} not found")
        return normalize_line_endings(body)

    def metadata(self, id: PromptId) -> PromptMetadata | None:
        return self._cache.get(id)

    def all_metadata(self) -> list[PromptMetadata]:
        return self._cache.snapshot()

    def first(self) -> PromptMetadata | None:
        return self._cache.first()

    def prompt_count(self) -> int:
        """Return the number of prompts in the store."""
        return len(self._cache)

    def default_prompt_metadata(self) -> list[PromptMetadata]:
        return self._cache.defaults()

    def id_for_title(self, title: str) -> PromptId | None:
        record = self._cache.find_by_title(title)
        return record.id if record else None

    def titles(self) -> set[str]:
        return self._cache.titles()

    # ── Writes ──

    def _next_saved_at(self, id: PromptId) -> datetime:
        """Current UTC time, bumped past the previous saved_at for this id if needed."""
        now = datetime.now(timezone.utc)
        previous = self._cache.get(id)
        if previous is not None and now <= previous.saved_at:
            now = previous.saved_at + timedelta(microseconds=1)
        return now

    def stage(self, id: PromptId, title: str | None, default: bool) -> PromptMetadata:
        """Reflect an edit in the cache now, ahead of the durable save that will follow."""
        if id.is_built_in():
            raise PromptPermissionError("built-in prompts cannot be saved")
        record = PromptMetadata(id=id, title=title, default=default, saved_at=self._next_saved_at(id))
        self._cache.insert(record)
        return record

    async def save(self, id: PromptId, title: str | None, default: bool, body: str) -> PromptMetadata:
        """Write metadata and body together in one transaction.

        The cache is updated before the write commits; if the process dies in
        between, this edit is lost on disk even though readers already saw it.
        """
        record = self.stage(id, title, default)

        key = id.to_key()
        async with self._transaction(write=True):
            await self._put(METADATA_TABLE, key, record.model_dump_json())
            await self._put(BODIES_TABLE, key, body)
        return record

    async def save_metadata(self, id: PromptId, title: str | None, default: bool) -> PromptMetadata:
        """Update title/default without touching the body. Built-ins keep their stored title."""
        existing = self._cache.get(id)
        if existing is None:
            raise PromptNotFoundError(f"prompt {id} not found")
        if id.is_built_in():
            title = existing.title

        record = PromptMetadata(id=id, title=title, default=default, saved_at=self._next_saved_at(id))
        self._cache.insert(record)

        async with self._transaction(write=True):
            await self._put(METADATA_TABLE, id.to_key(), record.model_dump_json())
        return record

    async def delete(self, id: PromptId):
        """Remove metadata and body in one transaction."""
        if id.is_built_in():
            raise PromptPermissionError("built-in prompts cannot be deleted")
        self._cache.remove(id)

        key = id.to_key()
        async with self._transaction(write=True):
            await self._delete(METADATA_TABLE, key)
            await self._delete(BODIES_TABLE, key)
        logger.info(f"Deleted prompt {id}")

    # ── Search ──

    async def search(self, query: str, cancel_flag: threading.Event | None = None) -> list[PromptMetadata]:
        """Fuzzy-match titles on a worker thread. Default prompts always sort first."""
        cached = self._cache.snapshot()
        return await asyncio.to_thread(
            _search_snapshot, cached, query, self.search_max_results, cancel_flag
        )


def _search_snapshot(
    cached: list[PromptMetadata],
    query: str,
    max_results: int,
    cancel_flag: threading.Event | None,
) -> list[PromptMetadata]:
    if not query:
        matches = list(cached)
    else:
        candidates = [
            StringMatchCandidate(ix, metadata.title)
            for ix, metadata in enumerate(cached)
            if metadata.title is not None
        ]
        found = match_strings(candidates, query, False, max_results, cancel_flag)
        matches = [cached[mat.candidate_id] for mat in found]
    matches.sort(key=lambda metadata: not metadata.default)
    return matches


async def open_store(store_dir: Path | None = None, search_max_results: int | None = None) -> PromptStore:
    """Create and initialize a PromptStore. Closes the connection if init fails."""
    store = PromptStore(store_dir, search_max_results)
    try:
        await store.init_db()
    except BaseException:
        await store.close()
        raise
    return store


# ── SQLite Schema ──
# Only the current generation is created here; the legacy tables are read if present.

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS "metadata.v2" (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS "bodies.v2" (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""
