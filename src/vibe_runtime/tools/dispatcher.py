"""Gated, checkpointed execution of registered tools."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from vibe_runtime.checkpoint.store import CheckpointError
from vibe_runtime.diff.editor import DiffEditor
from vibe_runtime.domain.events import EventType
from vibe_runtime.domain.models import (
    EditOperation,
    MultiEditResult,
    RiskLevel,
    ToolResult,
)
from vibe_runtime.utils.concurrency import CancellationToken, run_with_timeout

if TYPE_CHECKING:
    from vibe_runtime.checkpoint.store import CheckpointStore
    from vibe_runtime.observability.events import EventBus
    from vibe_runtime.tools.context import ToolContext
    from vibe_runtime.tools.registry import ToolDefinition, ToolRegistry

logger = structlog.get_logger(__name__)

DENIED_MESSAGE = "Execution cancelled by user"
SANDBOX_DENIED_MESSAGE = "This tool is not allowed in sandbox mode"


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    """Successful tool call kept for history and undo."""

    tool: str
    args: Mapping[str, Any]
    result: ToolResult
    checkpoint_id: str | None
    session_id: str
    finished_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class ToolDispatcher:
    """
    Run tool calls through approval, checkpoint, dry-run and sandbox checks.

    The order is fixed: arguments are validated, approval is requested when
    the tool needs it, a checkpoint of the working tree is taken, dry-run and
    sandbox restrictions short-circuit (discarding the checkpoint), and the
    handler runs under the tool's timeout. A handler that raises or times out
    has its checkpoint restored.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        checkpoints: CheckpointStore,
        *,
        bus: EventBus | None = None,
        editor: DiffEditor | None = None,
    ) -> None:
        self._registry = registry
        self._checkpoints = checkpoints
        self._bus = bus
        self._editor = editor or DiffEditor(checkpoints)
        self._history: list[ToolCallRecord] = []

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute_by_name(
        self, name: str, args: Mapping[str, Any], context: ToolContext
    ) -> ToolResult:
        return await self.execute(self._registry.require(name), args, context)

    async def execute(
        self, tool: ToolDefinition, args: Mapping[str, Any], context: ToolContext
    ) -> ToolResult:
        started = time.perf_counter()
        tool.schema.validate(args)
        log = logger.bind(tool=tool.name, session_id=context.session_id)

        if tool.requires_approval and not context.pre_approved:
            approved = await self._request_approval(tool, args, context)
            if not approved:
                log.info("tool_denied", risk=tool.risk_level.value)
                self._emit(
                    EventType.TOOL_DENIED,
                    {"tool": tool.name, "session_id": context.session_id},
                )
                return ToolResult.failure(DENIED_MESSAGE, duration_ms=_elapsed_ms(started))

        try:
            checkpoint_id = await self._checkpoints.create(
                context.session_id, f"Before: {tool.name}", root=context.working_dir
            )
        except CheckpointError as exc:
            log.error("tool_checkpoint_failed", error=str(exc))
            return ToolResult.failure(
                f"Unable to create checkpoint: {exc}", duration_ms=_elapsed_ms(started)
            )

        if context.dry_run:
            await self._checkpoints.discard(checkpoint_id)
            return ToolResult(
                success=True,
                output=_format_dry_run(tool, args, context),
                duration_ms=_elapsed_ms(started),
            )

        if context.sandbox and not tool.allowed_in_sandbox:
            await self._checkpoints.discard(checkpoint_id)
            return ToolResult.failure(SANDBOX_DENIED_MESSAGE, duration_ms=_elapsed_ms(started))

        timeout_ms = tool.timeout_ms
        call_token = CancellationToken()
        unlink = context.cancel_token.on_cancel(
            lambda: call_token.cancel(context.cancel_token.reason)
        )
        call_context = dataclasses.replace(context, cancel_token=call_token)
        try:
            result = await run_with_timeout(
                tool.handler(args, call_context),
                timeout_ms,
                call_token,
                timeout_message=f"Tool {tool.name} timed out after {timeout_ms}ms",
            )
        except asyncio.CancelledError:
            await asyncio.shield(self._rollback(checkpoint_id, log))
            raise
        except Exception as exc:  # noqa: BLE001
            log.warning("tool_failed", error=str(exc), error_type=exc.__class__.__name__)
            await self._rollback(checkpoint_id, log)
            result = ToolResult.failure(str(exc) or exc.__class__.__name__)
            return dataclasses.replace(result, duration_ms=_elapsed_ms(started))
        finally:
            unlink()

        await self._checkpoints.track_new_files(checkpoint_id)
        result = dataclasses.replace(
            result, duration_ms=_elapsed_ms(started), checkpoint_id=checkpoint_id
        )
        if result.success:
            self._history.append(
                ToolCallRecord(
                    tool=tool.name,
                    args=dict(args),
                    result=result,
                    checkpoint_id=checkpoint_id,
                    session_id=context.session_id,
                )
            )
        log.info("tool_executed", success=result.success, duration_ms=result.duration_ms)
        self._emit(
            EventType.TOOL_EXECUTED,
            {
                "tool": tool.name,
                "session_id": context.session_id,
                "success": result.success,
                "duration_ms": result.duration_ms,
                "checkpoint_id": checkpoint_id,
            },
        )
        return result

    def history(self) -> tuple[ToolCallRecord, ...]:
        return tuple(self._history)

    def clear_history(self) -> None:
        self._history.clear()

    async def undo_last(self) -> bool:
        """Restore the checkpoint of the most recent successful call."""

        while self._history:
            record = self._history.pop()
            if record.checkpoint_id is None:
                continue
            restored = await self._checkpoints.restore(record.checkpoint_id)
            logger.info("tool_undone", tool=record.tool, restored=restored)
            return restored
        return False

    async def multi_edit(
        self, operations: Sequence[EditOperation], context: ToolContext
    ) -> MultiEditResult:
        """Apply several edits under one checkpoint; approval covers the whole batch."""

        if not context.pre_approved and not context.dry_run:
            described = [f"{op.type} {op.file}" for op in operations]
            approved = await _ask(
                context,
                f"Multi-edit ({len(operations)} operations)",
                described,
                RiskLevel.MEDIUM,
            )
            if not approved:
                return MultiEditResult(
                    success=False,
                    total_files=len(operations),
                    successful_files=0,
                    failed_files=0,
                    results=(),
                    error=DENIED_MESSAGE,
                )
        return await self._editor.multi_edit(
            operations,
            working_dir=context.working_dir,
            session_id=context.session_id,
            dry_run=context.dry_run,
        )

    async def _request_approval(
        self, tool: ToolDefinition, args: Mapping[str, Any], context: ToolContext
    ) -> bool:
        return await _ask(
            context,
            f"Execute: {tool.name}",
            [f"{tool.name} {_render_args(args)}"],
            tool.risk_level,
        )

    async def _rollback(self, checkpoint_id: str, log: Any) -> None:
        try:
            await self._checkpoints.track_new_files(checkpoint_id)
            restored = await self._checkpoints.restore(checkpoint_id)
        except CheckpointError as exc:
            log.error("tool_rollback_failed", checkpoint_id=checkpoint_id, error=str(exc))
            return
        log.info("tool_rolled_back", checkpoint_id=checkpoint_id, restored=restored)

    def _emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self._bus is not None:
            self._bus.emit(event_type, payload)


async def _ask(
    context: ToolContext, description: str, operations: Sequence[str], risk: RiskLevel
) -> bool:
    if context.approval_gate is None:
        logger.info("approval_unavailable", description=description, risk=risk.value)
        return False
    return await context.approval_gate.request(description, operations, risk)


def _render_args(args: Mapping[str, Any]) -> str:
    return json.dumps(dict(args), sort_keys=True, ensure_ascii=False, default=str)


def _format_dry_run(tool: ToolDefinition, args: Mapping[str, Any], context: ToolContext) -> str:
    return "\n".join(
        [
            "[DRY RUN] Would execute:",
            f"  Tool: {tool.name}",
            f"  Args: {_render_args(args) if args else '(none)'}",
            f"  Working Dir: {context.working_dir}",
            f"  Risk: {tool.risk_level.value}",
        ]
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


__all__ = [
    "DENIED_MESSAGE",
    "SANDBOX_DENIED_MESSAGE",
    "ToolCallRecord",
    "ToolDispatcher",
]
