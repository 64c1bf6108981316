"""Per-agent working directories and artifact collection."""

from __future__ import annotations

from pathlib import Path

import pytest

from vibe_runtime.sandbox.isolation import AgentSandbox, IsolationStrategy


def test_temp_directory_copies_project_and_cleans_up(project_dir: Path, tmp_path: Path) -> None:
    sandbox = AgentSandbox(project_dir, base_dir=tmp_path / "sandboxes")
    path = sandbox.create("agt-1")

    assert path != project_dir.resolve()
    assert path.parent == tmp_path / "sandboxes"
    assert path.name.startswith("vibe-agt-1-")
    copied = (path / "src" / "app.py").read_text(encoding="utf-8")
    assert copied == (project_dir / "src" / "app.py").read_text(encoding="utf-8")

    (path / "src" / "app.py").write_text("changed\n", encoding="utf-8")
    assert (project_dir / "src" / "app.py").read_text(encoding="utf-8").startswith("def main")

    sandbox.cleanup()
    assert sandbox.path is None
    assert not path.exists()
    sandbox.cleanup()


def test_create_twice_is_an_error(project_dir: Path, tmp_path: Path) -> None:
    sandbox = AgentSandbox(project_dir, base_dir=tmp_path)
    sandbox.create("agt-1")
    with pytest.raises(RuntimeError, match="already created"):
        sandbox.create("agt-1")
    sandbox.cleanup()


def test_artifacts_are_new_or_changed_top_level_files(project_dir: Path, tmp_path: Path) -> None:
    sandbox = AgentSandbox(project_dir, base_dir=tmp_path)
    path = sandbox.create("agt-1")

    assert sandbox.collect_artifacts() == []

    (path / "report.md").write_text("# findings\n", encoding="utf-8")
    (path / "README.md").write_text("# rewritten\n", encoding="utf-8")
    (path / "image.png").write_bytes(b"\x89PNG")
    (path / ".hidden.txt").write_text("x", encoding="utf-8")
    (path / "src" / "new.py").write_text("x = 1\n", encoding="utf-8")

    assert [artifact.name for artifact in sandbox.collect_artifacts()] == [
        "README.md",
        "report.md",
    ]
    sandbox.cleanup()


def test_shared_strategy_uses_project_directory(project_dir: Path) -> None:
    sandbox = AgentSandbox(project_dir, strategy="shared")
    path = sandbox.create("agt-1")

    assert sandbox.strategy is IsolationStrategy.SHARED
    assert path == project_dir.resolve()
    assert [artifact.name for artifact in sandbox.collect_artifacts()] == ["README.md"]

    sandbox.cleanup()
    assert project_dir.is_dir()


def test_git_worktree_strategy_checks_out_head(git_repo: Path, tmp_path: Path) -> None:
    sandbox = AgentSandbox(git_repo, strategy=IsolationStrategy.GIT_WORKTREE, base_dir=tmp_path)
    path = sandbox.create("agt-1")

    assert path.name == "worktree"
    assert (path / "README.md").read_text(encoding="utf-8") == "# demo\n"
    assert (path / ".git").exists()

    sandbox.cleanup()
    assert not path.exists()


def test_git_worktree_falls_back_to_copy_outside_git(
    project_dir: Path, tmp_path: Path, git_env: None
) -> None:
    sandbox = AgentSandbox(project_dir, strategy="git-worktree", base_dir=tmp_path / "sb")
    path = sandbox.create("agt-1")

    assert (path / "README.md").is_file()
    assert path.name != "worktree"
    sandbox.cleanup()
