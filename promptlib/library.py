"""PromptLibrary — the operations editors and assistants call into.

Wraps a shared PromptStore with the save pipeline and adds the entry-level
workflows: create, duplicate, toggle default, delete, search sessions, and
assembling the default prompt.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from .errors import PromptNotFoundError, PromptPermissionError, SearchCancelledError
from .handle import StoreHandle, get_handle
from .saver import SaveCoalescer
from .schemas import UNTITLED, PromptId, PromptMetadata
from .storage import PromptStore, normalize_line_endings

logger = logging.getLogger("promptlib.library")

DUPLICATE_SUFFIX = " copy"


class SearchSession:
    """One caller's stream of searches. A newer query supersedes older ones.

    A superseded search raises SearchCancelledError instead of returning
    stale results; its matcher is also told to stop early.
    """

    def __init__(self, store: PromptStore):
        self.store = store
        self._generation = 0
        self._cancel: threading.Event | None = None

    async def update(self, query: str) -> list[PromptMetadata]:
        self._generation += 1
        generation = self._generation
        if self._cancel is not None:
            self._cancel.set()
        cancel = self._cancel = threading.Event()

        matches = await self.store.search(query, cancel)
        if generation != self._generation:
            raise SearchCancelledError(f"search for {query!r} was superseded")
        return matches


class PromptLibrary:
    def __init__(self, store: PromptStore, throttle: float | None = None):
        self.store = store
        self.saver = SaveCoalescer(store, throttle)

    @classmethod
    async def open(cls, handle: StoreHandle | None = None, throttle: float | None = None) -> PromptLibrary:
        store = await (handle or get_handle()).get()
        return cls(store, throttle)

    # ── Listing ──

    def list_all(self) -> list[PromptMetadata]:
        return self.store.all_metadata()

    def metadata(self, id: PromptId) -> PromptMetadata | None:
        return self.store.metadata(id)

    def list_default(self) -> list[PromptMetadata]:
        return self.store.default_prompt_metadata()

    def find_by_title(self, title: str) -> PromptId | None:
        return self.store.id_for_title(title)

    def resolve(self, ref: str) -> PromptId:
        """Accept a UUID, a built-in kind, an id key, or an exact title."""
        by_title = self.find_by_title(ref)
        if by_title is not None:
            return by_title
        try:
            prompt_id = PromptId.parse(ref)
        except ValueError:
            raise PromptNotFoundError(f"no prompt with id or title {ref!r}") from None
        if self.metadata(prompt_id) is None:
            raise PromptNotFoundError(f"no prompt with id or title {ref!r}")
        return prompt_id

    def search_session(self) -> SearchSession:
        return SearchSession(self.store)

    async def search(self, query: str) -> list[PromptMetadata]:
        return await self.store.search(query)

    # ── Bodies ──

    async def load(self, id: PromptId) -> str:
        pending = self.saver.peek(id)
        if pending is not None:
            return normalize_line_endings(pending.body)
        return await self.store.get_body(id)

    async def default_prompt(self) -> str:
        """Bodies of every default prompt, in listing order, separated by a blank line."""
        bodies = []
        for metadata in self.list_default():
            try:
                body = await self.load(metadata.id)
            except PromptNotFoundError:
                logger.warning(f"Default prompt {metadata.id} has no body, skipping")
                continue
            bodies.append(body.strip("\n"))
        return "\n\n".join(bodies)

    # ── Edits ──

    def create(self, title: str | None = None, default: bool = False, body: str = "") -> PromptId:
        prompt_id = PromptId.new()
        self.saver.submit(prompt_id, title, default, body)
        return prompt_id

    def new_prompt(self) -> PromptId:
        """Reuse the untitled prompt at the top of the list, if there is one."""
        first = self.store.first()
        if first is not None and first.title is None:
            return first.id
        return self.create()

    def save(self, id: PromptId, title: str, body: str):
        """Record an edit of title and body. Blank titles are stored as untitled."""
        if id.is_built_in():
            raise PromptPermissionError("built-in prompts are read-only")
        metadata = self.metadata(id)
        default = metadata.default if metadata else False
        self.saver.submit(id, title if title.strip() else None, default, body)

    async def toggle_default(self, id: PromptId) -> PromptMetadata:
        metadata = self.metadata(id)
        if metadata is None:
            raise PromptNotFoundError(f"prompt {id} not found")
        default = not metadata.default
        self.saver.amend_default(id, default)
        return await self.store.save_metadata(id, metadata.title, default)

    async def duplicate(self, source_id: PromptId) -> PromptId:
        source = self.metadata(source_id)
        if source is None:
            raise PromptNotFoundError(f"prompt {source_id} not found")
        pending = self.saver.peek(source_id)
        if pending is not None:
            base, body = pending.title, pending.body
        else:
            base, body = source.title, await self.store.get_body(source_id)
        title = self.duplicate_title(base or UNTITLED)
        return self.create(title=title, default=False, body=body)

    def duplicate_title(self, base: str) -> str:
        existing = self.store.titles()
        title = base + DUPLICATE_SUFFIX
        if title not in existing:
            return title
        i = 1
        while f"{title} {i}" in existing:
            i += 1
        return f"{title} {i}"

    async def delete(self, id: PromptId):
        if id.is_built_in():
            raise PromptPermissionError("built-in prompts cannot be deleted")
        self.saver.discard(id)
        await self.store.delete(id)

    async def import_markdown(self, paths: list[Path]) -> list[PromptId]:
        """Create one prompt per markdown file, titled by its first heading."""
        created = []
        for path in paths:
            text = normalize_line_endings(Path(path).read_text(encoding="utf-8"))
            created.append(self.create(title=markdown_title(text, Path(path).stem), body=text))
        logger.info(f"Imported {len(created)} prompts from markdown")
        return created

    # ── Lifecycle ──

    async def flush(self):
        await self.saver.flush()

    async def close(self):
        await self.saver.flush()
        await self.store.close()


def markdown_title(text: str, fallback: str) -> str:
    for line in text.split("\n"):
        if line.startswith("#"):
            heading = line.lstrip("#").strip()
            if heading:
                return heading
    return fallback
