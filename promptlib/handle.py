"""StoreHandle — a lazily opened PromptStore shared by every caller in the process.

The first ``await handle.get()`` starts opening the store on the running loop;
later callers await the same task. A failed open is terminal for that handle:
every awaiter receives the same StoreOpenError, and nothing crashes.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .config import config
from .errors import StoreOpenError
from .storage import PromptStore, open_store

logger = logging.getLogger("promptlib.handle")


class StoreHandle:
    def __init__(self, store_dir: Path | None = None, search_max_results: int | None = None):
        self.store_dir = Path(store_dir) if store_dir is not None else config.store_dir
        self.search_max_results = search_max_results
        self._task: asyncio.Task[PromptStore] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def start(self) -> asyncio.Task[PromptStore]:
        """Begin opening if nobody has yet on this loop. Must be called with a running loop.

        A task left over from an earlier, finished event loop cannot be awaited, so a
        new loop gets a fresh open.
        """
        loop = asyncio.get_running_loop()
        if self._task is None or self._loop is not loop:
            if self._task is not None:
                logger.debug(f"Event loop changed, reopening prompt store at {self.store_dir}")
            self._loop = loop
            self._task = loop.create_task(self._open())
        return self._task

    async def _open(self) -> PromptStore:
        try:
            return await open_store(self.store_dir, self.search_max_results)
        except Exception as e:
            logger.error(f"Failed to open prompt store at {self.store_dir}: {e}")
            raise StoreOpenError(f"failed to open prompt store at {self.store_dir}: {e}") from e

    async def get(self) -> PromptStore:
        # Shielded so one caller giving up does not cancel the open for everyone else.
        return await asyncio.shield(self.start())

    @property
    def ready(self) -> bool:
        task = self._task
        return task is not None and task.done() and not task.cancelled() and task.exception() is None

    async def close(self):
        if self._task is None or self._loop is not asyncio.get_running_loop():
            return
        try:
            store = await self._task
        except StoreOpenError:
            return
        await store.close()


_handles: dict[Path, StoreHandle] = {}


def get_handle(store_dir: Path | None = None) -> StoreHandle:
    """Return the process-wide handle for a store directory, creating it on first use."""
    key = (Path(store_dir) if store_dir is not None else config.store_dir).resolve()
    handle = _handles.get(key)
    if handle is None:
        handle = _handles[key] = StoreHandle(key)
    return handle


def forget_handle(store_dir: Path | None = None):
    """Drop the cached handle so the next get_handle() opens afresh."""
    key = (Path(store_dir) if store_dir is not None else config.store_dir).resolve()
    _handles.pop(key, None)
