"""Title search through the store and through a SearchSession."""

import asyncio

import pytest

from promptlib.errors import SearchCancelledError
from promptlib.library import SearchSession
from promptlib.schemas import PromptId
from promptlib.storage import open_store


async def _seed(store, *entries):
    ids = []
    for title, default in entries:
        prompt_id = PromptId.new()
        await store.save(prompt_id, title, default, f"body of {title}")
        ids.append(prompt_id)
    return ids


@pytest.mark.asyncio
async def test_empty_query_returns_everything_in_listing_order(store):
    await _seed(store, ("beta", False), ("alpha", False), (None, False))
    titles = [m.title for m in await store.search("")]
    assert titles == [None, "Commit message", "alpha", "beta"]


@pytest.mark.asyncio
async def test_empty_query_puts_defaults_first(store):
    await _seed(store, ("beta", True), ("alpha", False))
    titles = [m.title for m in await store.search("")]
    assert titles == ["beta", "Commit message", "alpha"]


@pytest.mark.asyncio
async def test_no_match_is_empty(store):
    await _seed(store, ("alpha", False))
    assert await store.search("zzz") == []


@pytest.mark.asyncio
async def test_untitled_entries_are_not_candidates(store):
    await _seed(store, (None, True))
    assert await store.search("untitled") == []


@pytest.mark.asyncio
async def test_default_sorts_before_equally_relevant(store):
    default, plain = await _seed(store, ("Review", True), ("Review", False))
    found = await store.search("review")
    assert [m.id for m in found] == [default, plain]


@pytest.mark.asyncio
async def test_default_sorts_before_more_relevant(store):
    await _seed(store, ("Review", False), ("Review the release notes", True))
    found = await store.search("review")
    assert [m.title for m in found] == ["Review the release notes", "Review"]


@pytest.mark.asyncio
async def test_results_capped(store_dir):
    store = await open_store(store_dir, search_max_results=3)
    try:
        await _seed(store, *((f"note {i}", False) for i in range(6)))
        assert len(await store.search("note")) == 3
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_session_returns_latest_results(store):
    await _seed(store, ("alpha", False), ("beta", False))
    session = SearchSession(store)
    assert [m.title for m in await session.update("alp")] == ["alpha"]
    assert [m.title for m in await session.update("bet")] == ["beta"]


@pytest.mark.asyncio
async def test_session_cancels_superseded_search(store):
    await _seed(store, *((f"prompt {i}", False) for i in range(50)))
    session = SearchSession(store)

    older, newer = await asyncio.gather(
        session.update("prompt"),
        session.update("prompt 4"),
        return_exceptions=True,
    )

    assert isinstance(older, SearchCancelledError)
    assert [m.title for m in newer][0] == "prompt 4"


@pytest.mark.asyncio
async def test_titles_with_lengthening_characters_do_not_break_search(store):
    await _seed(store, ("Kİİ", False), ("kiwi", False))
    assert [m.title for m in await store.search("i")] == ["kiwi", "Commit message"]
    assert [m.title for m in await store.search("k")] == ["Kİİ", "kiwi"]


@pytest.mark.asyncio
async def test_zero_result_cap_is_respected(store_dir):
    store = await open_store(store_dir, search_max_results=0)
    try:
        await _seed(store, ("note", False))
        assert await store.search("note") == []
        assert len(await store.search("")) == 2
    finally:
        await store.close()
