"""
vibe-runtime: provider-backed agent runner

File: src/vibe_runtime/orchestration/runner.py

Purpose
- Drive one agent through a ``ChatProvider`` in a bounded tool-call loop.

Functional requirements
- System and task prompts are rendered from package templates with strict
  undefined handling.
- The model only sees, and may only call, the tools its role allows.
- Every tool call goes through the ``ToolDispatcher`` so approvals,
  checkpoints and timeouts apply.
- The loop stops when the model answers without tool calls, when the turn
  budget is exhausted, or when the agent's cancellation token trips.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from jinja2 import Environment, PackageLoader, StrictUndefined

from vibe_runtime.domain.models import Agent, RoleDefinition, ToolResult
from vibe_runtime.orchestration.scheduler import AgentOutput
from vibe_runtime.providers.base import (
    ChatMessage,
    ChatOptions,
    ChatProvider,
    MessageRole,
    ToolCall,
    ToolSpec,
)
from vibe_runtime.tools.context import ToolContext
from vibe_runtime.tools.registry import ToolDefinition, ToolError

if TYPE_CHECKING:
    from vibe_runtime.approvals.gate import ApprovalGate
    from vibe_runtime.sandbox.policy import SandboxPolicy
    from vibe_runtime.tools.dispatcher import ToolDispatcher
    from vibe_runtime.utils.concurrency import CancellationToken

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TURNS = 8


class PromptRenderer:
    """Renders the agent prompt templates shipped with the package."""

    def __init__(self, environment: Environment | None = None) -> None:
        self._environment = environment or Environment(
            loader=PackageLoader("vibe_runtime", "prompts"),
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def system_prompt(
        self, role: RoleDefinition, *, agent_id: str, working_dir: Path, tools: Sequence[ToolSpec]
    ) -> str:
        template = self._environment.get_template("agent_system.j2")
        return template.render(
            role=role, agent_id=agent_id, working_dir=str(working_dir), tools=list(tools)
        ).strip()

    def task_prompt(self, agent: Agent) -> str:
        template = self._environment.get_template("agent_task.j2")
        return template.render(task=agent.task, context=agent.context).strip()


@dataclass(frozen=True, slots=True)
class RunnerSettings:
    max_turns: int = DEFAULT_MAX_TURNS
    chat_options: ChatOptions = field(default_factory=ChatOptions)
    dry_run: bool = False
    sandbox: bool = False

    def __post_init__(self) -> None:
        if self.max_turns <= 0:
            raise ValueError("max_turns must be > 0")


class ProviderAgentRunner:
    """``AgentRunner`` that lets an LLM act through the role's tools."""

    def __init__(
        self,
        provider: ChatProvider,
        dispatcher: ToolDispatcher,
        *,
        approval_gate: ApprovalGate | None = None,
        sandbox_policy: SandboxPolicy | None = None,
        settings: RunnerSettings | None = None,
        prompts: PromptRenderer | None = None,
    ) -> None:
        self._provider = provider
        self._dispatcher = dispatcher
        self._approval_gate = approval_gate
        self._sandbox_policy = sandbox_policy
        self._settings = settings or RunnerSettings()
        self._prompts = prompts or PromptRenderer()

    async def run(
        self, agent: Agent, role: RoleDefinition, cancel_token: CancellationToken
    ) -> AgentOutput:
        agent_id = agent.id or "agent"
        working_dir = Path(agent.sandbox_path or agent.context.working_dir)
        tools = {
            tool.name: tool
            for tool in self._dispatcher.registry.list()
            if tool.name in role.allowed_tools
        }
        specs = [_tool_spec(tool) for tool in tools.values()]
        context = ToolContext(
            working_dir=working_dir,
            session_id=agent_id,
            approval_gate=self._approval_gate,
            dry_run=self._settings.dry_run,
            sandbox=self._settings.sandbox,
            cancel_token=cancel_token,
            sandbox_policy=self._sandbox_policy,
        )
        options = replace(self._settings.chat_options, tools=tuple(specs))
        messages = [
            ChatMessage.system(
                self._prompts.system_prompt(
                    role, agent_id=agent_id, working_dir=working_dir, tools=specs
                )
            ),
            ChatMessage.user(self._prompts.task_prompt(agent)),
        ]
        log = logger.bind(agent_id=agent_id, role=role.role.value)

        changed: dict[str, None] = {}
        content = ""
        for turn in range(1, self._settings.max_turns + 1):
            cancel_token.raise_if_cancelled()
            response = await self._provider.chat(messages, options)
            content = response.content
            log.debug(
                "agent_turn",
                turn=turn,
                tool_calls=len(response.tool_calls),
                tokens=response.usage.total_tokens,
            )
            if not response.tool_calls:
                return AgentOutput(output=content, artifacts=tuple(changed))

            messages.append(
                ChatMessage(
                    role=MessageRole.ASSISTANT,
                    content=content,
                    tool_calls=response.tool_calls,
                )
            )
            for call in response.tool_calls:
                cancel_token.raise_if_cancelled()
                reply, files_changed = await self._call_tool(call, tools, role, context)
                changed.update(dict.fromkeys(files_changed))
                messages.append(ChatMessage.tool(call.call_id, reply))

        log.warning("agent_turn_budget_exhausted", max_turns=self._settings.max_turns)
        return AgentOutput(
            output=content,
            success=False,
            error=f"Agent exceeded {self._settings.max_turns} turns without finishing",
            artifacts=tuple(changed),
        )

    async def _call_tool(
        self,
        call: ToolCall,
        tools: Mapping[str, ToolDefinition],
        role: RoleDefinition,
        context: ToolContext,
    ) -> tuple[str, tuple[str, ...]]:
        tool = tools.get(call.name)
        if tool is None:
            return f"Error: tool {call.name!r} is not available to the {role.role.value} role", ()
        try:
            result = await self._dispatcher.execute(tool, dict(call.arguments), context)
        except ToolError as exc:
            return f"Error: {exc}", ()
        return _format_result(result), result.files_changed


def _tool_spec(tool: ToolDefinition) -> ToolSpec:
    return ToolSpec(
        name=tool.name,
        description=tool.description,
        json_schema=tool.schema.to_json_schema(),
    )


def _format_result(result: ToolResult) -> str:
    if not result.success:
        return f"Error: {result.error or 'tool failed'}"
    if result.data is not None and not result.output:
        return json.dumps(dict(result.data), sort_keys=True)
    return result.output


__all__ = ["DEFAULT_MAX_TURNS", "PromptRenderer", "ProviderAgentRunner", "RunnerSettings"]
