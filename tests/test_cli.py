"""End-to-end CLI runs against a temporary store directory."""

import io
import re

import pytest

from promptlib.cli import main

UUID_RE = re.compile(r"Created: ([0-9a-f-]{36})")


@pytest.fixture
def run(tmp_path, capsys):
    data_dir = tmp_path / "store"

    def _run(*argv):
        code = main(["--data-dir", str(data_dir), *argv])
        out, err = capsys.readouterr()
        return code, out, err

    return _run


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage: promptlib" in capsys.readouterr().out


def test_list_fresh_store_shows_built_in(run):
    code, out, _ = run("list")
    assert code == 0
    assert "Commit message" in out
    assert "built-in" in out


def test_add_show_and_list(run):
    code, out, _ = run("add", "Look", "for", "bugs.", "--title", "Review", "--default")
    assert code == 0
    prompt_id = UUID_RE.search(out).group(1)

    _, out, _ = run("show", "Review")
    assert out == "Look for bugs.\n"

    _, out, _ = run("cat", prompt_id, "--header")
    assert out.startswith("# Review\n\n")

    _, out, _ = run("ls", "--default-only")
    assert "Review" in out
    assert "Commit message" not in out


def test_add_from_stdin(run, monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("piped body\n"))
    code, _, _ = run("add", "--title", "Piped")
    assert code == 0
    _, out, _ = run("show", "Piped")
    assert out == "piped body\n"


def test_search(run):
    run("add", "x", "--title", "Release notes")
    run("add", "y", "--title", "Code review")

    _, out, _ = run("search", "review")
    assert "Code review" in out
    assert "Release notes" not in out

    _, out, _ = run("search", "zzz")
    assert "No prompts found" in out


def test_duplicate_toggle_delete(run):
    run("add", "body", "--title", "Foo")

    _, out, _ = run("duplicate", "Foo")
    assert "(Foo copy)" in out
    _, out, _ = run("dup", "Foo")
    assert "(Foo copy 1)" in out

    _, out, _ = run("toggle-default", "Foo copy")
    assert "added to default prompt" in out
    _, out, _ = run("default-prompt")
    assert out == "body\n"

    _, out, _ = run("rm", "Foo copy")
    assert "Deleted: Foo copy" in out
    _, out, _ = run("list")
    assert "Foo copy 1" in out
    assert "Foo copy\n" not in out


def test_delete_built_in_fails(run):
    code, _, err = run("delete", "Commit message")
    assert code == 1
    assert "Error:" in err


def test_unknown_prompt_fails(run):
    code, _, err = run("show", "does not exist")
    assert code == 1
    assert "does not exist" in err


def test_import(run, tmp_path):
    md = tmp_path / "triage.md"
    md.write_text("# Bug triage\n\nSort the bugs.\n", encoding="utf-8")

    code, out, _ = run("import", str(md))
    assert code == 0
    assert "(Bug triage)" in out
    _, out, _ = run("show", "Bug triage")
    assert "Sort the bugs." in out
