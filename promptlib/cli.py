#!/usr/bin/env python3
"""promptlib — manage the prompt library from the terminal.

Works directly on the local store (no server needed). Edits go through the
same save pipeline an editor uses and are flushed before the command exits.

Usage:
    promptlib list
    promptlib search "commit"
    promptlib show "Code review"
    promptlib add "Review this diff for bugs." --title "Code review" --default
    echo "some prompt" | promptlib add --title "From stdin"
    promptlib duplicate "Code review"
    promptlib toggle-default "Code review"
    promptlib delete "Code review copy"
    promptlib default-prompt
    promptlib import prompts/*.md
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import config
from .errors import PromptLibraryError
from .handle import StoreHandle
from .library import PromptLibrary
from .schemas import PromptMetadata

logger = logging.getLogger("promptlib.cli")


def _format_row(metadata: PromptMetadata) -> str:
    flags = "*" if metadata.default else " "
    lock = "built-in" if metadata.id.is_built_in() else ""
    saved = metadata.saved_at.strftime("%Y-%m-%d %H:%M")
    return f"{flags} {str(metadata.id):36}  {saved}  {metadata.display_title} {lock}".rstrip()


async def cmd_list(library: PromptLibrary, args) -> int:
    """List every prompt, defaults marked with '*'."""
    prompts = library.list_default() if args.default_only else library.list_all()
    if not prompts:
        print("No prompts.")
        return 0
    for metadata in prompts:
        print(_format_row(metadata))
    return 0


async def cmd_search(library: PromptLibrary, args) -> int:
    """Fuzzy-search prompt titles."""
    query = " ".join(args.query)
    matches = await library.search(query)
    if not matches:
        print("No prompts found matching your search.")
        return 0
    for metadata in matches[: args.limit]:
        print(_format_row(metadata))
    return 0


async def cmd_show(library: PromptLibrary, args) -> int:
    """Print a prompt body."""
    prompt_id = library.resolve(args.prompt)
    body = await library.load(prompt_id)
    if args.header:
        metadata = library.metadata(prompt_id)
        print(f"# {metadata.display_title}")
        print()
    print(body, end="" if body.endswith("\n") else "\n")
    return 0


async def cmd_add(library: PromptLibrary, args) -> int:
    """Create a new prompt."""
    body = " ".join(args.body) if args.body else None

    # Read from stdin if no body provided
    if body is None:
        if sys.stdin.isatty():
            print("Usage: promptlib add <body> --title <title>", file=sys.stderr)
            print("  or:  echo <body> | promptlib add --title <title>", file=sys.stderr)
            return 1
        body = sys.stdin.read()

    prompt_id = library.create(title=args.title or None, default=args.default, body=body)
    print(f"Created: {prompt_id}")
    return 0


async def cmd_duplicate(library: PromptLibrary, args) -> int:
    """Copy a prompt under a disambiguated title."""
    source_id = library.resolve(args.prompt)
    new_id = await library.duplicate(source_id)
    print(f"Created: {new_id} ({library.metadata(new_id).display_title})")
    return 0


async def cmd_toggle_default(library: PromptLibrary, args) -> int:
    """Add a prompt to (or remove it from) the default prompt."""
    prompt_id = library.resolve(args.prompt)
    metadata = await library.toggle_default(prompt_id)
    state = "added to" if metadata.default else "removed from"
    print(f"{metadata.display_title}: {state} default prompt")
    return 0


async def cmd_delete(library: PromptLibrary, args) -> int:
    """Delete a user prompt."""
    prompt_id = library.resolve(args.prompt)
    title = library.metadata(prompt_id).display_title
    await library.delete(prompt_id)
    print(f"Deleted: {title}")
    return 0


async def cmd_default_prompt(library: PromptLibrary, args) -> int:
    """Print the assembled default prompt."""
    text = await library.default_prompt()
    if text:
        print(text)
    return 0


async def cmd_import(library: PromptLibrary, args) -> int:
    """Import markdown files as prompts."""
    created = await library.import_markdown([Path(p) for p in args.files])
    for prompt_id in created:
        print(f"Created: {prompt_id} ({library.metadata(prompt_id).display_title})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptlib",
        description="Manage the persistent prompt library",
    )
    parser.add_argument("--data-dir", type=Path, default=None,
                        help=f"Store directory (default: {config.store_dir})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # list
    p_list = sub.add_parser("list", aliases=["ls"], help="List prompts")
    p_list.add_argument("--default-only", action="store_true", help="Only default prompts")
    p_list.set_defaults(func=cmd_list)

    # search
    p_search = sub.add_parser("search", aliases=["s"], help="Fuzzy-search prompt titles")
    p_search.add_argument("query", nargs="*", help="Search text (empty lists everything)")
    p_search.add_argument("--limit", "-n", type=int, default=config.search_max_results,
                          help="Maximum results to print")
    p_search.set_defaults(func=cmd_search)

    # show
    p_show = sub.add_parser("show", aliases=["cat"], help="Print a prompt body")
    p_show.add_argument("prompt", help="Prompt title or id")
    p_show.add_argument("--header", action="store_true", help="Print the title as a heading")
    p_show.set_defaults(func=cmd_show)

    # add
    p_add = sub.add_parser("add", aliases=["new"], help="Create a prompt")
    p_add.add_argument("body", nargs="*", help="Prompt text (or pipe via stdin)")
    p_add.add_argument("--title", "-t", default="", help="Prompt title")
    p_add.add_argument("--default", "-d", action="store_true", help="Include in the default prompt")
    p_add.set_defaults(func=cmd_add)

    # duplicate
    p_dup = sub.add_parser("duplicate", aliases=["dup"], help="Duplicate a prompt")
    p_dup.add_argument("prompt", help="Prompt title or id")
    p_dup.set_defaults(func=cmd_duplicate)

    # toggle-default
    p_toggle = sub.add_parser("toggle-default", aliases=["td"], help="Toggle default membership")
    p_toggle.add_argument("prompt", help="Prompt title or id")
    p_toggle.set_defaults(func=cmd_toggle_default)

    # delete
    p_delete = sub.add_parser("delete", aliases=["rm"], help="Delete a prompt")
    p_delete.add_argument("prompt", help="Prompt title or id")
    p_delete.set_defaults(func=cmd_delete)

    # default-prompt
    p_default = sub.add_parser("default-prompt", aliases=["dp"], help="Print the default prompt")
    p_default.set_defaults(func=cmd_default_prompt)

    # import
    p_import = sub.add_parser("import", help="Import markdown files as prompts")
    p_import.add_argument("files", nargs="+", help="Markdown files")
    p_import.set_defaults(func=cmd_import)

    return parser


async def _run(args) -> int:
    handle = StoreHandle(args.data_dir)
    logger.debug(f"Opening prompt store at {handle.store_dir}")
    try:
        # One-shot process: write each edit immediately.
        library = await PromptLibrary.open(handle, throttle=0)
    except PromptLibraryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    try:
        return await args.func(library, args)
    except PromptLibraryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await library.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
