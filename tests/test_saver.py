"""SaveCoalescer: bursts collapse, failures do not kill the pipeline."""

import asyncio

import pytest

from promptlib.errors import PromptPermissionError, PromptStorageError
from promptlib.saver import SaveCoalescer
from promptlib.schemas import BuiltInKind, PromptId


class RecordingStore:
    """Stand-in store that records every staged edit and durable write."""

    def __init__(self, fail_first: int = 0):
        self.staged: list[tuple] = []
        self.writes: list[tuple] = []
        self.fail_first = fail_first
        self.release = asyncio.Event()
        self.release.set()

    def stage(self, id, title, default):
        self.staged.append((id, title, default))

    async def save(self, id, title, default, body):
        await self.release.wait()
        if self.fail_first:
            self.fail_first -= 1
            raise PromptStorageError("disk full")
        self.writes.append((id, title, default, body))


@pytest.mark.asyncio
async def test_burst_while_saving_collapses_to_latest():
    store = RecordingStore()
    store.release.clear()
    saver = SaveCoalescer(store, throttle=0.01)
    prompt_id = PromptId.new()

    saver.submit(prompt_id, "T", False, "e1")
    await asyncio.sleep(0)  # drain picks up e1 and blocks in save
    saver.submit(prompt_id, "T", False, "e2")
    saver.submit(prompt_id, "T", False, "e3")
    store.release.set()
    await saver.flush()

    assert [w[3] for w in store.writes] == ["e1", "e3"]
    assert not saver.is_draining(prompt_id)


@pytest.mark.asyncio
async def test_burst_before_drain_runs_writes_once():
    store = RecordingStore()
    saver = SaveCoalescer(store, throttle=0.01)
    prompt_id = PromptId.new()

    for body in ("e1", "e2", "e3"):
        saver.submit(prompt_id, "T", False, body)
    await saver.flush()

    assert store.writes == [(prompt_id, "T", False, "e3")]
    assert len(store.staged) == 3


@pytest.mark.asyncio
async def test_edit_during_throttle_is_written_after_it():
    store = RecordingStore()
    saver = SaveCoalescer(store, throttle=0.05)
    prompt_id = PromptId.new()

    saver.submit(prompt_id, "T", False, "first")
    await asyncio.sleep(0.01)
    assert [w[3] for w in store.writes] == ["first"]
    saver.submit(prompt_id, "T", False, "second")
    saver.submit(prompt_id, "T", False, "third")
    assert [w[3] for w in store.writes] == ["first"]

    await saver.flush()
    assert [w[3] for w in store.writes] == ["first", "third"]


@pytest.mark.asyncio
async def test_independent_ids_do_not_coalesce():
    store = RecordingStore()
    saver = SaveCoalescer(store, throttle=0.01)
    a, b = PromptId.new(), PromptId.new()

    saver.submit(a, "A", False, "a")
    saver.submit(b, "B", False, "b")
    assert saver.pending_count == 2
    await saver.flush()

    assert sorted(w[3] for w in store.writes) == ["a", "b"]
    assert saver.pending_count == 0


@pytest.mark.asyncio
async def test_failed_save_keeps_pipeline_alive():
    store = RecordingStore(fail_first=1)
    store.release.clear()
    saver = SaveCoalescer(store, throttle=0.01)
    prompt_id = PromptId.new()

    saver.submit(prompt_id, "T", False, "lost")
    await asyncio.sleep(0)
    saver.submit(prompt_id, "T", False, "kept")
    store.release.set()
    await saver.flush()

    assert store.writes == [(prompt_id, "T", False, "kept")]


@pytest.mark.asyncio
async def test_submit_built_in_rejected():
    store = RecordingStore()
    saver = SaveCoalescer(store, throttle=0.01)
    with pytest.raises(PromptPermissionError):
        saver.submit(PromptId.built_in(BuiltInKind.COMMIT_MESSAGE), "x", False, "x")
    assert store.staged == []
    assert saver.pending_count == 0


@pytest.mark.asyncio
async def test_peek_amend_and_discard():
    store = RecordingStore()
    store.release.clear()
    saver = SaveCoalescer(store, throttle=0.01)
    prompt_id = PromptId.new()

    saver.submit(prompt_id, "T", False, "in flight")
    await asyncio.sleep(0)
    saver.submit(prompt_id, "T", False, "waiting")
    assert saver.peek(prompt_id).body == "waiting"

    saver.amend_default(prompt_id, True)
    assert saver.peek(prompt_id).default is True

    saver.discard(prompt_id)
    assert saver.peek(prompt_id) is None

    store.release.set()
    await saver.flush(prompt_id)
    assert [w[3] for w in store.writes] == ["in flight"]


@pytest.mark.asyncio
async def test_flush_single_id_when_idle():
    saver = SaveCoalescer(RecordingStore(), throttle=0.01)
    await saver.flush(PromptId.new())
