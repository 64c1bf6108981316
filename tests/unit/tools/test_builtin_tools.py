"""Built-in filesystem, shell and git tool handlers."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from vibe_runtime.sandbox.policy import SandboxPolicy
from vibe_runtime.tools import ToolContext
from vibe_runtime.tools.builtin import (
    file_edit,
    file_glob,
    file_read,
    file_search,
    file_tree,
    file_write,
    git_branch,
    git_commit,
    git_diff,
    git_status,
    shell_exec,
)


def _ctx(root: Path, **kwargs: object) -> ToolContext:
    return ToolContext(working_dir=root, **kwargs)  # type: ignore[arg-type]


async def test_file_read_full_and_line_range(project_dir: Path) -> None:
    (project_dir / "lines.txt").write_text("1\n2\n3\n4", encoding="utf-8")
    ctx = _ctx(project_dir)

    assert (await file_read({"path": "lines.txt"}, ctx)).output == "1\n2\n3\n4"
    ranged = await file_read({"path": "lines.txt", "line_start": 2, "line_end": 3}, ctx)
    assert ranged.output == "2\n3"
    missing = await file_read({"path": "nope.txt"}, ctx)
    assert missing.error == "File not found: nope.txt"
    escaped = await file_read({"path": "../../etc/passwd"}, ctx)
    assert escaped.success is False


async def test_file_write_modes(project_dir: Path) -> None:
    ctx = _ctx(project_dir)

    written = await file_write({"path": "out/new.txt", "content": "a\nc"}, ctx)
    assert written.output == "Written to out/new.txt"
    assert written.files_changed == ("out/new.txt",)

    await file_write(
        {"path": "out/new.txt", "content": "b", "mode": "insert", "line_number": 2}, ctx
    )
    await file_write({"path": "out/new.txt", "content": "\nd", "mode": "append"}, ctx)
    assert (project_dir / "out" / "new.txt").read_text(encoding="utf-8") == "a\nb\nc\nd"

    invalid = await file_write({"path": "x", "content": "", "mode": "truncate"}, ctx)
    assert invalid.error == "Invalid write mode: truncate"


async def test_file_write_insert_rejects_out_of_range_line(project_dir: Path) -> None:
    target = project_dir / "notes.txt"
    target.write_text("a\nb", encoding="utf-8")
    ctx = _ctx(project_dir)

    result = await file_write(
        {"path": "notes.txt", "content": "x", "mode": "insert", "line_number": 9}, ctx
    )

    assert result.success is False
    assert result.error == "line 9 out of range (1-3)"
    assert target.read_text(encoding="utf-8") == "a\nb"


async def test_file_write_keeps_crlf_line_endings(project_dir: Path) -> None:
    target = project_dir / "win.txt"
    target.write_bytes(b"one\r\ntwo\r\n")
    ctx = _ctx(project_dir)

    await file_write({"path": "win.txt", "content": "three\r\n", "mode": "append"}, ctx)

    assert target.read_bytes() == b"one\r\ntwo\r\nthree\r\n"
    assert (await file_read({"path": "win.txt"}, ctx)).output == "one\r\ntwo\r\nthree\r\n"


async def test_file_edit_applies_operation(project_dir: Path) -> None:
    ctx = _ctx(project_dir)

    result = await file_edit(
        {"type": "replace", "file": "src/app.py", "search_pattern": "1", "replacement": "2"}, ctx
    )

    assert result.success
    assert result.files_changed == ("src/app.py",)
    assert "+    return 2" in result.output
    bad = await file_edit({"type": "insert", "file": "src/app.py", "line_number": 0}, ctx)
    assert bad.success is False


async def test_file_glob_tree_and_search(project_dir: Path) -> None:
    (project_dir / "src" / "util.py").write_text("TOKEN = 'x'\n", encoding="utf-8")
    (project_dir / "node_modules").mkdir()
    (project_dir / "node_modules" / "dep.py").write_text("TOKEN\n", encoding="utf-8")
    ctx = _ctx(project_dir)

    globbed = await file_glob({"pattern": "**/*.py", "ignore": ["src/util*"]}, ctx)
    assert globbed.data == {"files": ["src/app.py"]}

    tree = await file_tree({}, ctx)
    assert tree.output.splitlines() == ["src/", "  app.py", "  util.py", "README.md"]
    shallow = await file_tree({"max_depth": 1}, ctx)
    assert shallow.output.splitlines() == ["src/", "README.md"]

    found = await file_search({"pattern": r"TOKEN\s*=", "file_type": ".py"}, ctx)
    assert found.data == {"files": ["src/util.py"]}
    invalid = await file_search({"pattern": "("}, ctx)
    assert invalid.error is not None and invalid.error.startswith("Invalid search pattern")


@pytest.mark.skipif(shutil.which("sh") is None, reason="POSIX shell required")
async def test_shell_exec_success_failure_and_policy(project_dir: Path) -> None:
    ok = await shell_exec({"command": "cat README.md"}, _ctx(project_dir))
    assert ok.success
    assert ok.output == "# demo\n"
    assert ok.exit_code == 0

    failed = await shell_exec({"command": "echo bad >&2; exit 2"}, _ctx(project_dir))
    assert failed.success is False
    assert failed.error == "bad"
    assert failed.exit_code == 2

    timed_out = await shell_exec({"command": "sleep 5", "timeout_ms": 100}, _ctx(project_dir))
    assert timed_out.error == "Command timed out"

    blocked = await shell_exec(
        {"command": "rm README.md"}, _ctx(project_dir, sandbox_policy=SandboxPolicy())
    )
    assert blocked.error == "Command blocked: rm"
    assert (project_dir / "README.md").exists()


async def test_git_status_diff_and_commit(git_repo: Path) -> None:
    ctx = _ctx(git_repo)

    clean = await git_status({}, ctx)
    assert clean.output.splitlines() == ["On branch main", "nothing to commit, working tree clean"]

    (git_repo / "README.md").write_text("# changed\n", encoding="utf-8")
    status = await git_status({"short": True}, ctx)
    assert status.output == " M README.md"

    diff = await git_diff({"file": "README.md"}, ctx)
    assert "+# changed" in diff.output

    committed = await git_commit({"message": "update readme", "all": True}, ctx)
    assert committed.success
    assert committed.data is not None
    commit_hash = str(committed.data["commit"])
    assert len(commit_hash) == 40
    assert committed.output == f"Committed {commit_hash}"

    empty = await git_commit({"message": "nothing"}, ctx)
    assert empty.success is False


async def test_git_branch_operations(git_repo: Path) -> None:
    ctx = _ctx(git_repo)

    created = await git_branch({"operation": "create", "name": "feature/x"}, ctx)
    assert created.output == "Created branch feature/x"
    listed = await git_branch({}, ctx)
    assert listed.data == {"branches": ["feature/x", "main"]}

    deleted = await git_branch({"operation": "delete", "name": "feature/x"}, ctx)
    assert deleted.output == "Deleted branch feature/x"

    assert (await git_branch({"operation": "rename", "name": "y"}, ctx)).error == (
        "Invalid branch operation"
    )
    assert (await git_branch({"operation": "create"}, ctx)).error == "Invalid branch operation"
    unsafe = await git_branch({"operation": "create", "name": "-bad"}, ctx)
    assert unsafe.success is False


async def test_git_tools_fail_outside_repository(project_dir: Path, git_env: None) -> None:
    result = await git_status({}, _ctx(project_dir))
    assert result.success is False
