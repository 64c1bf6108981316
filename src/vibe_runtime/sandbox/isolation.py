"""Per-agent working directories."""

from __future__ import annotations

import shutil
import tempfile
from enum import StrEnum
from pathlib import Path
from typing import Final

import structlog

from vibe_runtime.utils.fs import copy_project_tree
from vibe_runtime.vcs.git import GitClient, GitError

logger = structlog.get_logger(__name__)

ARTIFACT_SUFFIXES: Final[frozenset[str]] = frozenset(
    {".py", ".js", ".ts", ".json", ".md", ".txt", ".log"}
)


class IsolationStrategy(StrEnum):
    TEMP_DIRECTORY = "temp-directory"
    GIT_WORKTREE = "git-worktree"
    SHARED = "shared"


class AgentSandbox:
    """
    Working directory allocated to one agent.

    ``temp-directory`` copies the project (minus VCS, dependency and build
    directories) into a fresh temporary directory. ``git-worktree`` adds a
    detached worktree and falls back to a copy when git refuses.
    ``shared`` hands out the project directory itself.
    """

    def __init__(
        self,
        working_dir: Path | str,
        *,
        strategy: IsolationStrategy | str = IsolationStrategy.TEMP_DIRECTORY,
        base_dir: Path | str | None = None,
    ) -> None:
        self._working_dir = Path(working_dir).resolve()
        self._strategy = IsolationStrategy(strategy)
        self._base_dir = Path(base_dir) if base_dir is not None else None
        self._path: Path | None = None
        self._temp_root: Path | None = None
        self._worktree = False

    @property
    def strategy(self) -> IsolationStrategy:
        return self._strategy

    @property
    def path(self) -> Path | None:
        return self._path

    def create(self, agent_id: str) -> Path:
        if self._path is not None:
            raise RuntimeError(f"sandbox already created at {self._path}")

        if self._strategy is IsolationStrategy.SHARED:
            self._path = self._working_dir
            return self._path

        if self._base_dir is not None:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        self._temp_root = Path(
            tempfile.mkdtemp(prefix=f"vibe-{agent_id}-", dir=self._base_dir)
        )

        if self._strategy is IsolationStrategy.GIT_WORKTREE:
            target = self._temp_root / "worktree"
            try:
                self._path = GitClient(self._working_dir).add_worktree(target)
                self._worktree = True
                logger.debug("sandbox_worktree_created", agent_id=agent_id, path=str(target))
                return self._path
            except GitError as exc:
                logger.warning(
                    "sandbox_worktree_fallback",
                    agent_id=agent_id,
                    error=str(exc),
                )

        copied = copy_project_tree(self._working_dir, self._temp_root)
        self._path = self._temp_root
        logger.debug(
            "sandbox_created",
            agent_id=agent_id,
            strategy=self._strategy.value,
            path=str(self._path),
            files=copied,
        )
        return self._path

    def collect_artifacts(self) -> list[Path]:
        """Top-level artifact files the agent created or changed in its sandbox."""

        if self._path is None or not self._path.is_dir():
            return []
        return sorted(
            entry
            for entry in self._path.iterdir()
            if entry.is_file()
            and not entry.name.startswith(".")
            and entry.suffix in ARTIFACT_SUFFIXES
            and self._differs_from_project(entry)
        )

    def _differs_from_project(self, entry: Path) -> bool:
        if self._path == self._working_dir:
            return True
        original = self._working_dir / entry.name
        if not original.is_file():
            return True
        try:
            return original.read_bytes() != entry.read_bytes()
        except OSError:
            return True

    def cleanup(self) -> None:
        """Remove the sandbox. Failures are logged, never raised."""

        if self._strategy is IsolationStrategy.SHARED or self._temp_root is None:
            self._path = None
            return

        if self._worktree and self._path is not None:
            try:
                GitClient(self._working_dir).remove_worktree(self._path)
            except GitError as exc:
                logger.warning(
                    "sandbox_worktree_remove_failed", path=str(self._path), error=str(exc)
                )
        try:
            shutil.rmtree(self._temp_root)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("sandbox_cleanup_failed", path=str(self._temp_root), error=str(exc))
        self._path = None
        self._temp_root = None
        self._worktree = False


__all__ = ["ARTIFACT_SUFFIXES", "AgentSandbox", "IsolationStrategy"]
