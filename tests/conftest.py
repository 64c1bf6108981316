"""Shared fixtures: isolated git environment and small sample projects."""

from __future__ import annotations

import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path


def run_git(repo_root: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=repo_root,
        check=False,
        text=True,
        capture_output=True,
    )
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise RuntimeError(f"git command failed: git {' '.join(args)}: {detail}")
    return result.stdout


@pytest.fixture
def git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Runtime Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "runtime-test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Runtime Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "runtime-test@example.com")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Plain (non-git) project with a couple of files."""

    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def main() -> int:\n    return 1\n", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    return root


@pytest.fixture
def git_repo(tmp_path: Path, git_env: None) -> Path:
    """Git repository with one commit on branch ``main``."""

    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    run_git(root, "init", "--initial-branch=main", "--quiet")
    (root / "src" / "app.py").write_text("def main() -> int:\n    return 1\n", encoding="utf-8")
    (root / "README.md").write_text("# demo\n", encoding="utf-8")
    run_git(root, "add", ".")
    run_git(root, "commit", "--quiet", "-m", "initial")
    return root
