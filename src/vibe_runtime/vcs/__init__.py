"""Version-control helpers."""

from vibe_runtime.vcs.git import CommandResult, GitClient, GitCommandError, GitError, StatusEntry

__all__ = ["CommandResult", "GitClient", "GitCommandError", "GitError", "StatusEntry"]
