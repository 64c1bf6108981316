"""Thin git CLI wrapper used by checkpoints, sandboxes and the git tools."""

from __future__ import annotations

import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

_BRANCH_NAME_RE = re.compile(r"^[A-Za-z0-9._/-]+$")


class GitError(RuntimeError):
    """Base error for git wrapper failures."""


class GitCommandError(GitError):
    """Raised when a git subprocess command exits non-zero."""

    def __init__(
        self,
        *,
        command: Sequence[str],
        returncode: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One ``git status --porcelain`` line."""

    code: str
    path: str


class GitClient:
    """Deterministic wrapper around the git CLI for one working tree."""

    def __init__(self, repo_path: Path | str, *, env_overrides: Mapping[str, str] | None = None):
        self.repo_path = Path(repo_path).resolve()
        self._env_overrides = dict(env_overrides or {})

    @staticmethod
    def is_repository(path: Path | str) -> bool:
        """Return ``True`` when ``path`` is a working tree root (has ``.git``)."""
        return (Path(path) / ".git").exists()

    def list_modified_files(self) -> list[str]:
        """Tracked files whose working copy differs from the index."""
        return _split_nul(self._run_git(["ls-files", "-z", "-m"]).stdout)

    def list_tracked_files(self) -> list[str]:
        return _split_nul(self._run_git(["ls-files", "-z"]).stdout)

    def list_untracked_files(self) -> list[str]:
        return _split_nul(
            self._run_git(["ls-files", "-z", "--others", "--exclude-standard"]).stdout
        )

    def checkout_paths(self, paths: Sequence[str]) -> None:
        """Reset ``paths`` to their index content."""
        if paths:
            self._run_git(["checkout", "--", *paths])

    def status(self) -> list[StatusEntry]:
        output = self._run_git(["status", "--porcelain"]).stdout
        entries: list[StatusEntry] = []
        for line in output.splitlines():
            if len(line) < 4:
                continue
            entries.append(StatusEntry(code=line[:2], path=line[3:]))
        return entries

    def diff(self, *, staged: bool = False, paths: Sequence[str] = ()) -> str:
        args = ["diff"]
        if staged:
            args.append("--cached")
        if paths:
            args.extend(["--", *paths])
        return self._run_git(args).stdout

    def commit(
        self,
        message: str,
        *,
        paths: Sequence[str] = (),
        stage_all: bool = False,
        amend: bool = False,
    ) -> str:
        """Create (or amend) a commit and return its hash."""
        if not message.strip():
            raise GitError("commit message must not be empty")
        if stage_all:
            self._run_git(["add", "-A"])
        elif paths:
            self._run_git(["add", "--", *paths])
        self._run_git(["commit", "-m", message, *(["--amend"] if amend else [])])
        return self._run_git(["rev-parse", "HEAD"]).stdout.strip()

    def current_branch(self) -> str:
        return self._run_git(["rev-parse", "--abbrev-ref", "HEAD"]).stdout.strip()

    def list_branches(self) -> list[str]:
        output = self._run_git(["branch", "--format=%(refname:short)"]).stdout
        return _split_lines(output)

    def create_branch(self, name: str) -> None:
        _validate_branch_name(name)
        self._run_git(["branch", name])

    def delete_branch(self, name: str, *, force: bool = False) -> None:
        _validate_branch_name(name)
        self._run_git(["branch", "-D" if force else "-d", name])

    def add_worktree(self, path: Path | str) -> Path:
        """Create a detached worktree of ``HEAD`` at ``path``."""
        target = Path(path)
        self._run_git(["worktree", "add", "--detach", "--force", str(target), "HEAD"])
        return target

    def remove_worktree(self, path: Path | str) -> None:
        """Remove a worktree path and prune stale entries."""
        self._run_git(["worktree", "remove", "--force", str(Path(path))])
        self._run_git(["worktree", "prune"], check=False)

    def _run_git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> CommandResult:
        command = ("git", *args)
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
        env.update(self._env_overrides)

        try:
            completed = subprocess.run(
                command,
                cwd=self.repo_path,
                env=env,
                text=True,
                capture_output=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise GitError(f"git executable not available: {exc}") from exc

        result = CommandResult(
            command=command,
            cwd=self.repo_path.as_posix(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
        if check and result.returncode != 0:
            raise GitCommandError(
                command=result.command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result


def _split_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if line.strip()]


def _split_nul(output: str) -> list[str]:
    return [item for item in output.split("\0") if item]


def _validate_branch_name(name: str) -> None:
    if not name or not _BRANCH_NAME_RE.fullmatch(name) or ".." in name or name.startswith("-"):
        raise GitError(f"unsafe branch name: {name!r}")


__all__ = [
    "CommandResult",
    "GitClient",
    "GitCommandError",
    "GitError",
    "StatusEntry",
]
