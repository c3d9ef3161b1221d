"""SaveCoalescer — per-prompt write pipeline that collapses bursts of edits.

Each prompt is either idle (no entry in ``_pipelines``) or draining (a drain
task is alive). Edits overwrite a single pending slot; the drain task takes the
slot, saves it, sleeps for the throttle interval and repeats until the slot is
empty. At most one save per prompt is in flight, and only the newest edit
submitted before each save starts is ever written.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from .config import config
from .errors import PromptPermissionError
from .schemas import PromptId

if TYPE_CHECKING:
    from .storage import PromptStore

logger = logging.getLogger("promptlib.saver")


@dataclass(frozen=True)
class PendingSave:
    title: str | None
    default: bool
    body: str


@dataclass
class _Pipeline:
    next: PendingSave | None = None
    task: asyncio.Task | None = None


class SaveCoalescer:
    """Throttled, coalescing writer in front of a PromptStore.

    ``store`` needs ``stage(id, title, default)`` and an async
    ``save(id, title, default, body)``; tests pass a recording double.
    """

    def __init__(self, store: PromptStore, throttle: float | None = None):
        self.store = store
        self.throttle = config.save_throttle if throttle is None else throttle
        self._pipelines: dict[PromptId, _Pipeline] = {}

    def submit(self, id: PromptId, title: str | None, default: bool, body: str):
        """Queue an edit. The cache reflects it immediately; the disk within one throttle."""
        if id.is_built_in():
            raise PromptPermissionError("built-in prompts cannot be edited")

        self.store.stage(id, title, default)
        pipeline = self._pipelines.get(id)
        if pipeline is None:
            pipeline = self._pipelines[id] = _Pipeline()
        pipeline.next = PendingSave(title, default, body)
        if pipeline.task is None:
            pipeline.task = asyncio.get_running_loop().create_task(self._drain(id, pipeline))

    async def _drain(self, id: PromptId, pipeline: _Pipeline):
        try:
            while True:
                pending, pipeline.next = pipeline.next, None
                if pending is None:
                    break
                try:
                    await self.store.save(id, pending.title, pending.default, pending.body)
                except Exception as e:
                    logger.warning(f"Save failed for prompt {id}, keeping pipeline alive: {e}")
                await asyncio.sleep(self.throttle)
        finally:
            pipeline.task = None
            if self._pipelines.get(id) is pipeline:
                del self._pipelines[id]

    def peek(self, id: PromptId) -> PendingSave | None:
        """The edit waiting to be written for this prompt, if any."""
        pipeline = self._pipelines.get(id)
        return pipeline.next if pipeline else None

    def amend_default(self, id: PromptId, default: bool):
        """Carry a default-flag change into a waiting edit so the drain does not undo it."""
        pipeline = self._pipelines.get(id)
        if pipeline is not None and pipeline.next is not None:
            pipeline.next = replace(pipeline.next, default=default)

    def discard(self, id: PromptId):
        """Drop any waiting edit. A save already in flight still completes."""
        pipeline = self._pipelines.get(id)
        if pipeline is not None:
            pipeline.next = None

    def is_draining(self, id: PromptId) -> bool:
        return id in self._pipelines

    @property
    def pending_count(self) -> int:
        return len(self._pipelines)

    async def flush(self, id: PromptId | None = None):
        """Wait until the given prompt (or every prompt) is idle."""
        while True:
            if id is not None:
                pipeline = self._pipelines.get(id)
                tasks = [pipeline.task] if pipeline and pipeline.task else []
            else:
                tasks = [p.task for p in self._pipelines.values() if p.task]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
