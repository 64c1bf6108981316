"""Asynchronous command execution inside a contained working directory."""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

import psutil
import structlog

from vibe_runtime.constants import DEFAULT_TOOL_TIMEOUT_MS, MAX_TOOL_OUTPUT_CHARS
from vibe_runtime.sandbox.policy import SandboxPolicy, SandboxPolicyError
from vibe_runtime.utils.fs import is_within

if TYPE_CHECKING:
    from collections.abc import Mapping

    from vibe_runtime.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

_TERMINATE_GRACE_SECONDS: Final[float] = 3.0
_SANDBOX_ENV: Final[dict[str, str]] = {"NO_COLOR": "1", "VIBE_SANDBOX": "1"}


@dataclass(frozen=True, slots=True)
class SandboxCommandResult:
    """Normalized outcome of one shell command."""

    command: str
    cwd: Path
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool
    cancelled: bool
    duration_ms: int

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and not self.cancelled and self.returncode == 0


def terminate_process_tree(pid: int, *, grace_seconds: float = _TERMINATE_GRACE_SECONDS) -> int:
    """Terminate ``pid`` and all of its descendants; returns how many were signalled."""

    try:
        root = psutil.Process(pid)
        processes = [*root.children(recursive=True), root]
    except psutil.NoSuchProcess:
        return 0

    for process in processes:
        with contextlib.suppress(psutil.NoSuchProcess):
            process.terminate()
    _, alive = psutil.wait_procs(processes, timeout=grace_seconds)
    for process in alive:
        with contextlib.suppress(psutil.NoSuchProcess):
            process.kill()
    if alive:
        psutil.wait_procs(alive, timeout=grace_seconds)
    logger.debug("process_tree_terminated", pid=pid, count=len(processes), killed=len(alive))
    return len(processes)


class SandboxManager:
    """
    Run shell commands under a workspace root.

    The working directory must lie inside ``workspace_root`` and every command
    is checked against ``policy`` first. Timeouts and cancellation terminate
    the whole process tree rather than only the shell.
    """

    def __init__(
        self,
        workspace_root: Path | str,
        *,
        policy: SandboxPolicy | None = None,
        default_timeout_ms: int = DEFAULT_TOOL_TIMEOUT_MS,
        env_overrides: Mapping[str, str] | None = None,
        inherit_host_env: bool = True,
        max_output_chars: int = MAX_TOOL_OUTPUT_CHARS,
    ) -> None:
        root = Path(workspace_root).resolve(strict=True)
        if not root.is_dir():
            raise NotADirectoryError(f"{root!s} is not a directory")
        if default_timeout_ms <= 0:
            raise ValueError("default_timeout_ms must be > 0")

        self._workspace_root = root
        self._policy = policy or SandboxPolicy()
        self._default_timeout_ms = default_timeout_ms
        self._env_overrides = dict(env_overrides or {})
        self._inherit_host_env = inherit_host_env
        self._max_output_chars = max_output_chars

    @property
    def workspace_root(self) -> Path:
        return self._workspace_root

    @property
    def policy(self) -> SandboxPolicy:
        return self._policy

    async def run_command(
        self,
        command: str,
        *,
        cwd: Path | str | None = None,
        timeout_ms: int | None = None,
        cancel_token: CancellationToken | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SandboxCommandResult:
        self._policy.check_command(command)
        resolved_cwd = self._resolve_cwd(cwd)
        effective_timeout = self._default_timeout_ms if timeout_ms is None else timeout_ms
        if effective_timeout <= 0:
            raise ValueError("timeout_ms must be > 0")

        started = time.perf_counter()
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=resolved_cwd,
            env=self._build_environment(env),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
        logger.debug("sandbox_command_started", command=command, pid=process.pid)

        communicate = asyncio.ensure_future(process.communicate())
        waiters: set[asyncio.Future[Any]] = {communicate}
        cancel_wait: asyncio.Future[None] | None = None
        if cancel_token is not None:
            cancel_wait = asyncio.ensure_future(cancel_token.wait())
            waiters.add(cancel_wait)

        timed_out = False
        cancelled = False
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=effective_timeout / 1000,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if communicate not in done:
                cancelled = cancel_wait is not None and cancel_wait in done
                timed_out = not cancelled
                await asyncio.to_thread(terminate_process_tree, process.pid)
            stdout, stderr = await communicate
        except asyncio.CancelledError:
            await asyncio.shield(asyncio.to_thread(terminate_process_tree, process.pid))
            communicate.cancel()
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        duration_ms = int((time.perf_counter() - started) * 1000)
        result = SandboxCommandResult(
            command=command,
            cwd=resolved_cwd,
            returncode=None if timed_out or cancelled else process.returncode,
            stdout=self._truncate(stdout),
            stderr=self._truncate(stderr),
            timed_out=timed_out,
            cancelled=cancelled,
            duration_ms=duration_ms,
        )
        logger.info(
            "sandbox_command_finished",
            command=command,
            returncode=result.returncode,
            timed_out=timed_out,
            cancelled=cancelled,
            duration_ms=duration_ms,
        )
        return result

    def _resolve_cwd(self, cwd: Path | str | None) -> Path:
        path = self._workspace_root if cwd is None else Path(cwd)
        if not path.is_absolute():
            path = self._workspace_root / path
        resolved = path.resolve(strict=True)
        if not resolved.is_dir():
            raise NotADirectoryError(f"{resolved!s} is not a directory")
        if not is_within(resolved, self._workspace_root):
            raise SandboxPolicyError(
                f"working directory {resolved!s} is outside sandbox workspace "
                f"{self._workspace_root!s}"
            )
        return resolved

    def _build_environment(self, env: Mapping[str, str] | None) -> dict[str, str]:
        if self._inherit_host_env:
            merged = dict(os.environ)
        else:
            merged = {}
            host_path = os.environ.get("PATH")
            if host_path:
                merged["PATH"] = host_path
        merged.update(_SANDBOX_ENV)
        merged.update(self._env_overrides)
        if env is not None:
            merged.update(env)
        return merged

    def _truncate(self, raw: bytes | None) -> str:
        text = (raw or b"").decode("utf-8", errors="replace")
        if len(text) <= self._max_output_chars:
            return text
        return text[: self._max_output_chars] + "\n... (output truncated)"


__all__ = ["SandboxCommandResult", "SandboxManager", "terminate_process_tree"]
