"""Built-in filesystem, shell and git tools."""

from __future__ import annotations

import asyncio
import fnmatch
import re
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final

from vibe_runtime.constants import DEFAULT_TOOL_TIMEOUT_MS, MAX_TOOL_OUTPUT_CHARS
from vibe_runtime.diff.editor import DiffEditor
from vibe_runtime.diff.engine import split_lines
from vibe_runtime.domain.models import (
    EditOperation,
    RiskLevel,
    ToolCategory,
    ToolResult,
)
from vibe_runtime.sandbox.manager import SandboxManager
from vibe_runtime.sandbox.policy import SandboxPolicy, SandboxPolicyError
from vibe_runtime.tools.registry import ToolDefinition, ToolRegistry, ToolSchema
from vibe_runtime.utils.fs import (
    atomic_write,
    is_ignored,
    iter_project_files,
    read_text_exact,
    resolve_inside,
)
from vibe_runtime.vcs.git import GitClient, GitError

if TYPE_CHECKING:
    from vibe_runtime.tools.context import ToolContext

_DEFAULT_TREE_DEPTH: Final[int] = 3
_WRITE_MODES: Final[frozenset[str]] = frozenset({"overwrite", "append", "insert"})
_BRANCH_OPERATIONS: Final[frozenset[str]] = frozenset({"list", "create", "delete"})


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


async def file_read(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    try:
        path = resolve_inside(ctx.working_dir, args["path"])
    except ValueError as exc:
        return ToolResult.failure(str(exc))
    if not path.is_file():
        return ToolResult.failure(f"File not found: {args['path']}")

    try:
        content = await asyncio.to_thread(read_text_exact, path)
    except (OSError, UnicodeDecodeError) as exc:
        return ToolResult.failure(str(exc))

    line_start = args.get("line_start")
    line_end = args.get("line_end")
    if line_start is not None or line_end is not None:
        lines = content.split("\n")
        start = max(1, line_start or 1)
        end = line_end or len(lines)
        content = "\n".join(lines[start - 1 : end])
    return ToolResult(success=True, output=content)


async def file_write(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    mode = args.get("mode") or "overwrite"
    if mode not in _WRITE_MODES:
        return ToolResult.failure(f"Invalid write mode: {mode}")
    try:
        path = resolve_inside(ctx.working_dir, args["path"])
    except ValueError as exc:
        return ToolResult.failure(str(exc))

    content: str = args["content"]
    if mode != "overwrite" and path.is_file():
        existing = await asyncio.to_thread(read_text_exact, path)
        if mode == "append":
            content = existing + content
        else:
            lines = split_lines(existing)
            line_number = args.get("line_number") or 1
            if not 1 <= line_number <= len(lines) + 1:
                return ToolResult.failure(
                    f"line {line_number} out of range (1-{len(lines) + 1})"
                )
            lines.insert(line_number - 1, content)
            content = "\n".join(lines)

    await asyncio.to_thread(atomic_write, path, content)
    relative = path.relative_to(ctx.working_dir).as_posix()
    return ToolResult(success=True, output=f"Written to {relative}", files_changed=(relative,))


async def file_edit(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    try:
        op = EditOperation.from_dict(args)
    except ValueError as exc:
        return ToolResult.failure(str(exc))
    result = await DiffEditor().apply(op, working_dir=ctx.working_dir)
    if not result.success:
        return ToolResult.failure(result.error or "edit failed")
    return ToolResult(
        success=True,
        output=result.diff or "No changes",
        files_changed=(op.file,) if result.changes else (),
        data={"changes": len(result.changes)},
    )


async def file_glob(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    try:
        base = resolve_inside(ctx.working_dir, args.get("path") or ".")
    except ValueError as exc:
        return ToolResult.failure(str(exc))
    pattern: str = args["pattern"]
    ignore = tuple(str(item) for item in args.get("ignore") or ())

    def _collect() -> list[str]:
        matches: list[str] = []
        for candidate in base.glob(pattern):
            if not candidate.is_file():
                continue
            relative = candidate.relative_to(ctx.working_dir)
            if is_ignored(relative):
                continue
            text = relative.as_posix()
            if any(fnmatch.fnmatch(text, item) for item in ignore):
                continue
            matches.append(text)
        return sorted(matches)

    try:
        files = await asyncio.to_thread(_collect)
    except ValueError as exc:
        return ToolResult.failure(f"Invalid glob pattern: {exc}")
    return ToolResult(success=True, output="\n".join(files), data={"files": files})


async def file_tree(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    try:
        base = resolve_inside(ctx.working_dir, args.get("path") or ".")
    except ValueError as exc:
        return ToolResult.failure(str(exc))
    if not base.is_dir():
        return ToolResult.failure(f"Not a directory: {args.get('path')}")
    max_depth = args.get("max_depth") or _DEFAULT_TREE_DEPTH
    lines = await asyncio.to_thread(_render_tree, base, ctx.working_dir, max_depth)
    return ToolResult(success=True, output="\n".join(lines))


def _render_tree(directory: Path, root: Path, max_depth: int, depth: int = 0) -> list[str]:
    if depth >= max_depth:
        return []
    lines: list[str] = []
    entries = sorted(directory.iterdir(), key=lambda entry: (not entry.is_dir(), entry.name))
    for entry in entries:
        if is_ignored(entry.relative_to(root)):
            continue
        indent = "  " * depth
        if entry.is_dir() and not entry.is_symlink():
            lines.append(f"{indent}{entry.name}/")
            lines.extend(_render_tree(entry, root, max_depth, depth + 1))
        else:
            lines.append(f"{indent}{entry.name}")
    return lines


async def file_search(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    try:
        regex = re.compile(args["pattern"])
    except re.error as exc:
        return ToolResult.failure(f"Invalid search pattern: {exc}")
    try:
        base = resolve_inside(ctx.working_dir, args.get("path") or ".")
    except ValueError as exc:
        return ToolResult.failure(str(exc))
    file_type = args.get("file_type")

    def _search() -> list[str]:
        found: list[str] = []
        for relative in iter_project_files(base):
            if file_type and not relative.name.endswith(file_type):
                continue
            try:
                content = read_text_exact(base / relative)
            except (OSError, UnicodeDecodeError):
                continue
            if regex.search(content):
                found.append((base / relative).relative_to(ctx.working_dir).as_posix())
        return found

    files = await asyncio.to_thread(_search)
    return ToolResult(success=True, output="\n".join(files), data={"files": files})


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------


async def shell_exec(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    manager = SandboxManager(
        ctx.working_dir,
        policy=ctx.sandbox_policy or SandboxPolicy.permissive(),
        max_output_chars=MAX_TOOL_OUTPUT_CHARS,
    )
    try:
        result = await manager.run_command(
            args["command"],
            timeout_ms=args.get("timeout_ms") or DEFAULT_TOOL_TIMEOUT_MS,
            cancel_token=ctx.cancel_token,
        )
    except SandboxPolicyError as exc:
        return ToolResult.failure(str(exc))

    if result.timed_out:
        error: str | None = "Command timed out"
    elif result.cancelled:
        error = "Command cancelled"
    elif result.returncode != 0:
        error = result.stderr.strip() or f"Command exited with status {result.returncode}"
    else:
        error = None
    return ToolResult(
        success=result.succeeded,
        output=result.stdout,
        error=error,
        exit_code=result.returncode,
        duration_ms=result.duration_ms,
    )


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


async def git_status(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    client = GitClient(ctx.working_dir)
    try:
        branch = await asyncio.to_thread(client.current_branch)
        entries = await asyncio.to_thread(client.status)
    except GitError as exc:
        return ToolResult.failure(str(exc))

    lines = [f"{entry.code} {entry.path}" for entry in entries]
    if not args.get("short"):
        body = lines or ["nothing to commit, working tree clean"]
        lines = [f"On branch {branch}", *body]
    return ToolResult(
        success=True,
        output="\n".join(lines),
        data={
            "branch": branch,
            "entries": [{"code": entry.code, "path": entry.path} for entry in entries],
        },
    )


async def git_diff(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    client = GitClient(ctx.working_dir)
    paths = (args["file"],) if args.get("file") else ()
    try:
        output = await asyncio.to_thread(client.diff, staged=bool(args.get("staged")), paths=paths)
    except GitError as exc:
        return ToolResult.failure(str(exc))
    return ToolResult(success=True, output=output)


async def git_commit(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    client = GitClient(ctx.working_dir)
    try:
        commit_hash = await asyncio.to_thread(
            client.commit,
            args["message"],
            stage_all=bool(args.get("all")),
            amend=bool(args.get("amend")),
        )
    except GitError as exc:
        return ToolResult.failure(str(exc))
    return ToolResult(success=True, output=f"Committed {commit_hash}", data={"commit": commit_hash})


async def git_branch(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    operation = args.get("operation") or "list"
    if operation not in _BRANCH_OPERATIONS:
        return ToolResult.failure("Invalid branch operation")
    name = args.get("name")
    if operation != "list" and not name:
        return ToolResult.failure("Invalid branch operation")

    client = GitClient(ctx.working_dir)
    try:
        if operation == "list":
            branches = await asyncio.to_thread(client.list_branches)
            return ToolResult(success=True, output="\n".join(branches), data={"branches": branches})
        if operation == "create":
            await asyncio.to_thread(client.create_branch, name)
            return ToolResult(success=True, output=f"Created branch {name}")
        await asyncio.to_thread(client.delete_branch, name, force=bool(args.get("force")))
        return ToolResult(success=True, output=f"Deleted branch {name}")
    except (GitError, ValueError) as exc:
        return ToolResult.failure(str(exc))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def builtin_tools(*, timeout_ms: int = DEFAULT_TOOL_TIMEOUT_MS) -> list[ToolDefinition]:
    return [
        ToolDefinition(
            name="file_read",
            description="Read the contents of a file",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(
                properties={"path": "string", "line_start": "integer", "line_end": "integer"},
                required=("path",),
                descriptions={"path": "Path to the file to read"},
            ),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=file_read,
            allowed_in_sandbox=True,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="file_write",
            description="Create or overwrite a file with content",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(
                properties={
                    "path": "string",
                    "content": "string",
                    "mode": "string",
                    "line_number": "integer",
                },
                required=("path", "content"),
                descriptions={"mode": "Write mode: overwrite, append, insert"},
            ),
            risk_level=RiskLevel.MEDIUM,
            requires_approval=True,
            handler=file_write,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="file_edit",
            description="Apply a replace/insert/delete/append edit to a file",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(
                properties={
                    "type": "string",
                    "file": "string",
                    "search_pattern": "string",
                    "replacement": "string",
                    "line_number": "integer",
                    "end_line_number": "integer",
                },
                required=("type", "file"),
            ),
            risk_level=RiskLevel.MEDIUM,
            requires_approval=True,
            handler=file_edit,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="file_glob",
            description="Find files matching a pattern",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(
                properties={"pattern": "string", "path": "string", "ignore": "array"},
                required=("pattern",),
                descriptions={"pattern": 'Glob pattern (e.g., "**/*.py")'},
            ),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=file_glob,
            allowed_in_sandbox=True,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="file_tree",
            description="Get directory tree structure",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(properties={"path": "string", "max_depth": "integer"}),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=file_tree,
            allowed_in_sandbox=True,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="file_search",
            description="Search for files containing a pattern",
            category=ToolCategory.FILESYSTEM,
            schema=ToolSchema(
                properties={"pattern": "string", "path": "string", "file_type": "string"},
                required=("pattern",),
            ),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=file_search,
            allowed_in_sandbox=True,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="shell_exec",
            description="Execute a shell command",
            category=ToolCategory.SHELL,
            schema=ToolSchema(
                properties={"command": "string", "timeout_ms": "integer"},
                required=("command",),
            ),
            risk_level=RiskLevel.HIGH,
            requires_approval=True,
            handler=shell_exec,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="git_status",
            description="Show working tree status",
            category=ToolCategory.GIT,
            schema=ToolSchema(properties={"short": "boolean"}),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=git_status,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="git_diff",
            description="Show changes in the working tree or index",
            category=ToolCategory.GIT,
            schema=ToolSchema(properties={"staged": "boolean", "file": "string"}),
            risk_level=RiskLevel.LOW,
            requires_approval=False,
            handler=git_diff,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="git_commit",
            description="Record changes to the repository",
            category=ToolCategory.GIT,
            schema=ToolSchema(
                properties={"message": "string", "amend": "boolean", "all": "boolean"},
                required=("message",),
            ),
            risk_level=RiskLevel.HIGH,
            requires_approval=True,
            handler=git_commit,
            timeout_ms=timeout_ms,
        ),
        ToolDefinition(
            name="git_branch",
            description="List, create, or delete branches",
            category=ToolCategory.GIT,
            schema=ToolSchema(
                properties={"operation": "string", "name": "string", "force": "boolean"},
                descriptions={"operation": "Operation: list, create, delete"},
            ),
            risk_level=RiskLevel.MEDIUM,
            requires_approval=True,
            handler=git_branch,
            timeout_ms=timeout_ms,
        ),
    ]


def default_registry(*, timeout_ms: int = DEFAULT_TOOL_TIMEOUT_MS) -> ToolRegistry:
    """Registry holding every built-in tool."""

    return ToolRegistry(builtin_tools(timeout_ms=timeout_ms))


__all__ = [
    "builtin_tools",
    "default_registry",
    "file_edit",
    "file_glob",
    "file_read",
    "file_search",
    "file_tree",
    "file_write",
    "git_branch",
    "git_commit",
    "git_diff",
    "git_status",
    "shell_exec",
]
