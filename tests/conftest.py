"""Shared fixtures for promptlib tests.

Every store lives under pytest's tmp_path, so tests never touch ~/.promptlib.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

import pytest
import pytest_asyncio

from promptlib.library import PromptLibrary
from promptlib.storage import PromptStore, open_store

TEST_THROTTLE = 0.01


@pytest.fixture
def store_dir(tmp_path) -> Path:
    return tmp_path / "prompts-library-db.0"


@pytest_asyncio.fixture
async def store(store_dir):
    """Freshly opened PromptStore on an empty directory."""
    s = await open_store(store_dir)
    yield s
    await s.close()


@pytest_asyncio.fixture
async def library(store):
    """PromptLibrary with a short save throttle so drains finish quickly."""
    lib = PromptLibrary(store, throttle=TEST_THROTTLE)
    yield lib
    await lib.flush()


async def reopen(store: PromptStore) -> PromptStore:
    """Close a store and open the same directory again."""
    await store.close()
    return await open_store(store.store_dir)


def write_legacy_db(
    store_dir: Path,
    records: list[tuple[UUID, str | None, bool, datetime]],
    bodies: dict[UUID, str],
    extra_metadata: dict[str, str] | None = None,
):
    """Create the bare-UUID tables an older release would have left behind."""
    store_dir.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(store_dir / "prompts.db")
    try:
        conn.execute("CREATE TABLE IF NOT EXISTS metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        conn.execute("CREATE TABLE IF NOT EXISTS bodies (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        for uuid, title, default, saved_at in records:
            value = json.dumps({
                "id": str(uuid),
                "title": title,
                "default": default,
                "saved_at": saved_at.astimezone(timezone.utc).isoformat(),
            })
            conn.execute("INSERT OR REPLACE INTO metadata VALUES (?, ?)", (str(uuid), value))
        for uuid, body in bodies.items():
            conn.execute("INSERT OR REPLACE INTO bodies VALUES (?, ?)", (str(uuid), body))
        for key, value in (extra_metadata or {}).items():
            conn.execute("INSERT OR REPLACE INTO metadata VALUES (?, ?)", (key, value))
        conn.commit()
    finally:
        conn.close()
