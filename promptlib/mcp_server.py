"""promptlib MCP server — exposes the prompt library to an assistant over stdio.

Usage:
    python -m promptlib.mcp_server
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import asynccontextmanager

from mcp.server.fastmcp import FastMCP

from promptlib.errors import PromptLibraryError
from promptlib.handle import get_handle
from promptlib.library import PromptLibrary
from promptlib.schemas import PromptMetadata

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],  # stderr so stdout stays clean for MCP protocol
)
logger = logging.getLogger("promptlib.mcp")

library: PromptLibrary | None = None


@asynccontextmanager
async def lifespan(server: FastMCP):
    """Open the prompt store when the server starts; flush pending saves on exit."""
    global library
    logger.info("promptlib MCP server starting...")
    library = await PromptLibrary.open(get_handle())
    logger.info(f"promptlib MCP server ready ({library.store.prompt_count()} prompts)")
    yield
    logger.info("promptlib MCP server shutting down...")
    if library:
        await library.close()


mcp = FastMCP(
    "promptlib",
    instructions=(
        "promptlib is the user's persistent prompt library. "
        "Use prompt_default to fetch the user's default prompt before starting work. "
        "Use prompt_search and prompt_get to find and read stored prompts."
    ),
    lifespan=lifespan,
)


def _summary(metadata: PromptMetadata) -> dict:
    return {
        "id": str(metadata.id),
        "title": metadata.title,
        "default": metadata.default,
        "built_in": metadata.id.is_built_in(),
        "saved_at": metadata.saved_at.isoformat(),
    }


def _error(e: PromptLibraryError) -> str:
    return json.dumps({"error": type(e).__name__, "message": str(e)})


# ── Prompt Tools ──

@mcp.tool()
async def prompt_list(default_only: bool = False) -> str:
    """List prompts in the library (title order), optionally only those in the default prompt."""
    prompts = library.list_default() if default_only else library.list_all()
    return json.dumps([_summary(m) for m in prompts])


@mcp.tool()
async def prompt_search(query: str) -> str:
    """Fuzzy-search prompt titles. Default prompts are listed first.

    Args:
        query: Text to match against titles; empty returns everything
    """
    matches = await library.search(query)
    return json.dumps([_summary(m) for m in matches])


@mcp.tool()
async def prompt_get(prompt: str) -> str:
    """Read a prompt's body.

    Args:
        prompt: Exact title or id of the prompt
    """
    try:
        prompt_id = library.resolve(prompt)
        body = await library.load(prompt_id)
    except PromptLibraryError as e:
        return _error(e)
    return json.dumps({**_summary(library.metadata(prompt_id)), "body": body})


@mcp.tool()
async def prompt_create(body: str, title: str | None = None, default: bool = False) -> str:
    """Store a new prompt.

    Args:
        body: Prompt text
        title: Title shown in the library (optional)
        default: Include this prompt in the default prompt
    """
    prompt_id = library.create(title=title, default=default, body=body)
    return json.dumps({"id": str(prompt_id), "stored": True})


@mcp.tool()
async def prompt_update(prompt: str, body: str, title: str | None = None) -> str:
    """Replace a user prompt's body, and its title if given.

    Args:
        prompt: Exact title or id of the prompt
        body: New prompt text
        title: New title (optional, keeps the current one when omitted)
    """
    try:
        prompt_id = library.resolve(prompt)
        current = library.metadata(prompt_id)
        library.save(prompt_id, title if title is not None else (current.title or ""), body)
    except PromptLibraryError as e:
        return _error(e)
    return json.dumps({"id": str(prompt_id), "updated": True})


@mcp.tool()
async def prompt_duplicate(prompt: str) -> str:
    """Copy a prompt under a new "<title> copy" title.

    Args:
        prompt: Exact title or id of the prompt to copy
    """
    try:
        new_id = await library.duplicate(library.resolve(prompt))
    except PromptLibraryError as e:
        return _error(e)
    return json.dumps(_summary(library.metadata(new_id)))


@mcp.tool()
async def prompt_toggle_default(prompt: str) -> str:
    """Add a prompt to the default prompt, or remove it if already included.

    Args:
        prompt: Exact title or id of the prompt
    """
    try:
        metadata = await library.toggle_default(library.resolve(prompt))
    except PromptLibraryError as e:
        return _error(e)
    return json.dumps(_summary(metadata))


@mcp.tool()
async def prompt_delete(prompt: str) -> str:
    """Delete a user prompt. Built-in prompts cannot be deleted.

    Args:
        prompt: Exact title or id of the prompt
    """
    try:
        prompt_id = library.resolve(prompt)
        await library.delete(prompt_id)
    except PromptLibraryError as e:
        return _error(e)
    return json.dumps({"id": str(prompt_id), "deleted": True})


@mcp.tool()
async def prompt_default() -> str:
    """Get the user's default prompt: every prompt flagged default, concatenated."""
    return await library.default_prompt()


def main():
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
