"""Command and path policy applied before sandboxed execution."""

from __future__ import annotations

import re
import shlex
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Final

from vibe_runtime.utils.fs import is_within


class SandboxError(RuntimeError):
    """Base error for sandbox failures."""


class SandboxPolicyError(SandboxError):
    """Raised when a command or path violates sandbox policy."""


DEFAULT_BLOCKED_COMMANDS: Final[tuple[str, ...]] = (
    "rm",
    "mkfs",
    "dd",
    "chmod",
    "chown",
    "useradd",
    "passwd",
    "sudo",
    "su",
    "ssh",
    "scp",
    "ftp",
    "telnet",
    "curl",
    "wget",
    "nc",
    "netcat",
    "ncat",
)

DEFAULT_BLOCKED_PATHS: Final[tuple[str, ...]] = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/boot",
    ".ssh",
    ".aws",
    ".gcloud",
)

_COMMAND_SEPARATORS = re.compile(r"&&|\|\||[;|\n]")
_ENV_ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


@dataclass(frozen=True, slots=True)
class SandboxPolicy:
    """
    Allow/deny rules for shell commands and filesystem paths.

    Absolute entries in ``blocked_paths`` block that directory tree; bare names
    such as ``.ssh`` block any path containing that component. An empty
    ``allowed_commands`` allows every command that is not blocked.
    """

    blocked_commands: frozenset[str] = frozenset(DEFAULT_BLOCKED_COMMANDS)
    allowed_commands: frozenset[str] = frozenset()
    blocked_paths: tuple[str, ...] = DEFAULT_BLOCKED_PATHS
    allowed_paths: tuple[str, ...] = ()

    @classmethod
    def permissive(cls) -> SandboxPolicy:
        return cls(blocked_commands=frozenset(), blocked_paths=())

    def command_names(self, command: str) -> list[str]:
        """Executable names of every segment in a shell pipeline or command list."""

        names: list[str] = []
        for segment in _COMMAND_SEPARATORS.split(command):
            try:
                tokens = shlex.split(segment)
            except ValueError as exc:
                raise SandboxPolicyError(f"Unable to parse command: {exc}") from exc
            tokens = [token for token in tokens if not _ENV_ASSIGNMENT.match(token)]
            if tokens:
                names.append(PurePosixPath(tokens[0]).name.lower())
        return names

    def check_command(self, command: str) -> None:
        names = self.command_names(command)
        if not names:
            raise SandboxPolicyError("Command must not be empty")
        for name in names:
            if name in self.blocked_commands:
                raise SandboxPolicyError(f"Command blocked: {name}")
            if self.allowed_commands and name not in self.allowed_commands:
                raise SandboxPolicyError(f"Command not in allow list: {name}")

    def is_command_allowed(self, command: str) -> bool:
        try:
            self.check_command(command)
        except SandboxPolicyError:
            return False
        return True

    def check_path(self, path: Path | str, *, root: Path | str) -> Path:
        """Resolve ``path`` against ``root`` and reject blocked or outside locations."""

        candidate = Path(path)
        resolved = (candidate if candidate.is_absolute() else Path(root) / candidate).resolve()
        for blocked in self.blocked_paths:
            if blocked.startswith("/"):
                if is_within(resolved, blocked):
                    raise SandboxPolicyError(f"Path not allowed: {path}")
            elif blocked in resolved.parts:
                raise SandboxPolicyError(f"Path not allowed: {path}")
        if is_within(resolved, root):
            return resolved
        if any(is_within(resolved, allowed) for allowed in self.allowed_paths):
            return resolved
        raise SandboxPolicyError(f"Path not allowed: {path}")

    def with_allowed_commands(self, commands: Iterable[str]) -> SandboxPolicy:
        return SandboxPolicy(
            blocked_commands=self.blocked_commands,
            allowed_commands=frozenset(command.lower() for command in commands),
            blocked_paths=self.blocked_paths,
            allowed_paths=self.allowed_paths,
        )


__all__ = [
    "DEFAULT_BLOCKED_COMMANDS",
    "DEFAULT_BLOCKED_PATHS",
    "SandboxError",
    "SandboxPolicy",
    "SandboxPolicyError",
]
