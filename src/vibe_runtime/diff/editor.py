"""Pure edit application plus the file-level editor used by tools and multi-edits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from vibe_runtime.diff.engine import DiffEngine, render_side_by_side, split_lines
from vibe_runtime.domain.models import (
    EditChange,
    EditOperation,
    EditResult,
    EditType,
    MultiEditResult,
)
from vibe_runtime.utils.fs import atomic_write, read_text_exact, resolve_inside

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vibe_runtime.checkpoint.store import CheckpointStore

logger = structlog.get_logger(__name__)


class EditError(ValueError):
    """Raised when an edit operation is malformed for the content it targets."""


class UnsupportedEditError(EditError):
    """Raised for edit types that are declared but not implemented (``patch``)."""


@dataclass(frozen=True, slots=True)
class EditOutcome:
    content: str
    changes: tuple[EditChange, ...]


def apply_edit(content: str, op: EditOperation) -> EditOutcome:
    """Apply ``op`` to ``content`` without touching the filesystem.

    Line numbers are 1-indexed. ``insert`` places the new line before
    ``line_number`` (``len + 1`` appends), ``delete`` removes the inclusive
    range ``[line_number, end_line_number]``, ``replace`` substitutes every
    literal occurrence and ``append`` adds a newline plus the text at EOF.
    """

    if op.type == EditType.REPLACE:
        return _replace(content, op)
    if op.type == EditType.INSERT:
        return _insert(content, op)
    if op.type == EditType.DELETE:
        return _delete(content, op)
    if op.type == EditType.APPEND:
        return _append(content, op)
    if op.type == EditType.PATCH:
        raise UnsupportedEditError("patch edits are not supported; use replace/insert/delete")

    logger.warning("edit_type_unknown", edit_type=str(op.type), file=op.file)
    return EditOutcome(content=content, changes=())


def _replace(content: str, op: EditOperation) -> EditOutcome:
    if not op.search_pattern:
        raise EditError("replace requires a non-empty search_pattern")
    if op.replacement is None:
        raise EditError("replace requires a replacement")
    index = content.find(op.search_pattern)
    if index < 0:
        return EditOutcome(content=content, changes=())
    return EditOutcome(
        content=content.replace(op.search_pattern, op.replacement),
        changes=(
            EditChange(
                type=EditType.REPLACE.value,
                line_start=content.count("\n", 0, index) + 1,
                content=op.replacement,
            ),
        ),
    )


def _insert(content: str, op: EditOperation) -> EditOutcome:
    if op.line_number is None:
        raise EditError("insert requires line_number")
    if op.replacement is None:
        raise EditError("insert requires a replacement")
    lines = split_lines(content)
    if not 1 <= op.line_number <= len(lines) + 1:
        raise EditError(f"line {op.line_number} out of range (1-{len(lines) + 1})")
    lines.insert(op.line_number - 1, op.replacement)
    return EditOutcome(
        content="\n".join(lines),
        changes=(
            EditChange(
                type=EditType.INSERT.value, line_start=op.line_number, content=op.replacement
            ),
        ),
    )


def _delete(content: str, op: EditOperation) -> EditOutcome:
    if op.line_number is None:
        raise EditError("delete requires line_number")
    end = op.end_line_number if op.end_line_number is not None else op.line_number
    lines = split_lines(content)
    if end > len(lines):
        raise EditError(f"line range {op.line_number}-{end} out of range (1-{len(lines)})")
    del lines[op.line_number - 1 : end]
    return EditOutcome(
        content="\n".join(lines),
        changes=(EditChange(type=EditType.DELETE.value, line_start=op.line_number, line_end=end),),
    )


def _append(content: str, op: EditOperation) -> EditOutcome:
    if op.replacement is None:
        raise EditError("append requires a replacement")
    separator = "" if not content or op.replacement.startswith("\n") else "\n"
    return EditOutcome(
        content=f"{content}{separator}{op.replacement}",
        changes=(EditChange(type=EditType.APPEND.value, content=op.replacement),),
    )


class DiffEditor:
    """Applies edit operations to files under a working directory."""

    def __init__(
        self,
        checkpoints: CheckpointStore | None = None,
        *,
        engine: DiffEngine | None = None,
    ) -> None:
        self._checkpoints = checkpoints
        self._engine = engine or DiffEngine()

    async def apply(
        self, op: EditOperation, *, working_dir: Path | str, dry_run: bool = False
    ) -> EditResult:
        """Apply one operation. Ordinary failures come back as unsuccessful results."""

        if not isinstance(op.type, EditType):
            logger.warning("edit_type_unknown", edit_type=str(op.type), file=op.file)
            return EditResult(success=False, file=op.file, error=f"Unknown edit type: {op.type}")

        try:
            path = resolve_inside(working_dir, op.file)
        except ValueError as exc:
            return EditResult(success=False, file=op.file, error=str(exc))
        if not path.is_file():
            return EditResult(success=False, file=op.file, error="File not found")

        try:
            original = await asyncio.to_thread(read_text_exact, path)
            outcome = apply_edit(original, op)
            if not dry_run and outcome.content != original:
                await asyncio.to_thread(atomic_write, path, outcome.content)
        except (EditError, OSError, UnicodeError) as exc:
            logger.info("edit_failed", file=op.file, edit_type=op.type.value, error=str(exc))
            return EditResult(success=False, file=op.file, error=str(exc))

        return EditResult(
            success=True,
            file=op.file,
            changes=outcome.changes,
            diff=self._engine.render_unified(original, outcome.content, op.file),
        )

    async def preview(self, op: EditOperation, *, working_dir: Path | str) -> str:
        """Side-by-side preview of ``op`` without writing anything."""

        path = resolve_inside(working_dir, op.file)
        if not path.is_file():
            return "File does not exist"
        original = await asyncio.to_thread(read_text_exact, path)
        outcome = apply_edit(original, op)
        return render_side_by_side(original, outcome.content, op.file)

    async def multi_edit(
        self,
        ops: Sequence[EditOperation],
        *,
        working_dir: Path | str,
        session_id: str,
        dry_run: bool = False,
    ) -> MultiEditResult:
        """Apply ``ops`` in order against one checkpoint taken before the first.

        Per-operation failures are recorded and skipped. Only an unexpected
        exception escaping the loop restores the checkpoint wholesale.
        """

        checkpoint_id = None
        if not dry_run:
            if self._checkpoints is None:
                raise EditError("multi-file edits need a checkpoint store")
            checkpoint_id = await self._checkpoints.create(
                session_id, f"Before multi-edit ({len(ops)} ops)", root=working_dir
            )

        results: list[EditResult] = []
        try:
            for op in ops:
                results.append(await self.apply(op, working_dir=working_dir, dry_run=dry_run))
                if checkpoint_id is not None and self._checkpoints is not None:
                    await self._checkpoints.track_new_files(checkpoint_id)
        except Exception as exc:
            logger.error("multi_edit_aborted", error=str(exc), completed=len(results))
            rolled_back = False
            if checkpoint_id is not None and self._checkpoints is not None:
                rolled_back = await self._checkpoints.restore(checkpoint_id)
            successful = sum(1 for result in results if result.success)
            return MultiEditResult(
                success=False,
                total_files=len(ops),
                successful_files=successful,
                failed_files=len(results) - successful,
                results=tuple(results),
                checkpoint_id=checkpoint_id,
                rolled_back=rolled_back,
                error=str(exc),
            )

        successful = sum(1 for result in results if result.success)
        return MultiEditResult(
            success=successful == len(results),
            total_files=len(ops),
            successful_files=successful,
            failed_files=len(results) - successful,
            results=tuple(results),
            checkpoint_id=checkpoint_id,
        )


__all__ = [
    "DiffEditor",
    "EditError",
    "EditOutcome",
    "UnsupportedEditError",
    "apply_edit",
]
