"""
vibe-runtime: agent scheduler

File: src/vibe_runtime/orchestration/scheduler.py

Purpose
- Run a batch of agents concurrently, each in its own sandbox, bounded by a
  parallelism limit and a per-agent timeout.

Functional requirements
- Validation happens before any sandbox is allocated.
- Every agent contributes exactly one result, in input order, even when it
  raises or times out.
- Timeouts cancel the agent task, trip its cancellation token and report
  ``success=False`` with a "timed out" error.
- Sandboxes are always cleaned up; cleanup failures are logged, not raised.

Non-functional requirements
- Scheduler bookkeeping is guarded by one ``asyncio.Lock`` so overlapping
  runs never interleave counter or sandbox-map writes.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import structlog

from vibe_runtime.constants import DEFAULT_AGENT_TIMEOUT_MS, DEFAULT_MAX_PARALLEL
from vibe_runtime.domain.events import EventType
from vibe_runtime.domain.ids import generate_agent_id
from vibe_runtime.domain.models import Agent, AgentResult, JSONValue, RoleDefinition, ScoredResult
from vibe_runtime.observability.events import EventBus
from vibe_runtime.observability.logging import correlation_scope
from vibe_runtime.orchestration import scoring
from vibe_runtime.orchestration.roles import RoleCatalog
from vibe_runtime.sandbox.isolation import AgentSandbox, IsolationStrategy
from vibe_runtime.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    OperationTimeoutError,
    run_with_timeout,
)

logger = structlog.get_logger(__name__)


class SchedulingError(RuntimeError):
    """Raised when a batch cannot be scheduled."""


class SchedulingValidationError(SchedulingError, ValueError):
    """Raised for invalid batches before any side effect happens."""


@dataclass(frozen=True, slots=True)
class ExecutionOptions:
    max_parallel: int = DEFAULT_MAX_PARALLEL
    timeout_ms: int | None = None
    require_consensus: bool = False

    def __post_init__(self) -> None:
        if self.max_parallel <= 0:
            raise ValueError("max_parallel must be > 0")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")


@dataclass(frozen=True, slots=True)
class AgentOutput:
    """What a runner reports for one agent."""

    output: str
    success: bool = True
    error: str | None = None
    artifacts: tuple[str, ...] = ()


class AgentRunner(Protocol):
    """Runs one agent inside its sandbox until done or cancelled."""

    async def run(
        self, agent: Agent, role: RoleDefinition, cancel_token: CancellationToken
    ) -> AgentOutput: ...


@dataclass(frozen=True, slots=True)
class SchedulerStats:
    runs: int
    agents_started: int
    agents_succeeded: int
    agents_failed: int
    agents_timed_out: int
    active_sandboxes: int


SandboxFactory = Callable[[Agent], AgentSandbox]


class AgentScheduler:
    """Bounded parallel agent execution with per-agent sandboxes."""

    def __init__(
        self,
        runner: AgentRunner,
        *,
        catalog: RoleCatalog | None = None,
        bus: EventBus | None = None,
        isolation: IsolationStrategy | str = IsolationStrategy.TEMP_DIRECTORY,
        sandbox_base_dir: Path | str | None = None,
        default_timeout_ms: int = DEFAULT_AGENT_TIMEOUT_MS,
        default_options: ExecutionOptions | None = None,
        sandbox_factory: SandboxFactory | None = None,
    ) -> None:
        if default_timeout_ms <= 0:
            raise ValueError("default_timeout_ms must be > 0")
        self._runner = runner
        self._catalog = catalog
        self._bus = bus
        self._isolation = IsolationStrategy(isolation)
        self._sandbox_base_dir = sandbox_base_dir
        self._default_timeout_ms = default_timeout_ms
        self._default_options = default_options or ExecutionOptions()
        self._sandbox_factory = sandbox_factory or self._default_sandbox

        self._lock = asyncio.Lock()
        self._active: dict[str, AgentSandbox] = {}
        self._runs = 0
        self._started = 0
        self._succeeded = 0
        self._failed = 0
        self._timed_out = 0

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        runner: AgentRunner,
        *,
        catalog: RoleCatalog | None = None,
        bus: EventBus | None = None,
    ) -> AgentScheduler:
        section = config["scheduler"]
        return cls(
            runner,
            catalog=catalog if catalog is not None else RoleCatalog.from_config(config),
            bus=bus,
            isolation=section["isolation"],
            default_timeout_ms=int(section["default_timeout_ms"]),
            default_options=ExecutionOptions(
                max_parallel=int(section["max_parallel"]),
                require_consensus=bool(section["require_consensus"]),
            ),
        )

    @property
    def default_options(self) -> ExecutionOptions:
        return self._default_options

    async def run(
        self,
        task: str,
        agents: Sequence[Agent],
        options: ExecutionOptions | None = None,
    ) -> list[ScoredResult]:
        """Run ``agents`` in parallel and return one scored result per agent."""

        opts = options or self._default_options
        if not agents:
            raise SchedulingValidationError("At least one agent is required")
        if len(agents) > opts.max_parallel:
            raise SchedulingValidationError(
                f"Cannot spawn more than {opts.max_parallel} agents "
                f"(requested {len(agents)})"
            )

        sandboxes: dict[str, AgentSandbox] = {}
        try:
            prepared = await self._prepare(agents, opts, sandboxes)
            async with self._lock:
                self._runs += 1
            self._emit(EventType.EXECUTION_STARTED, {"agent_count": len(prepared), "task": task})

            semaphore = BoundedSemaphore(opts.max_parallel)
            results = await asyncio.gather(
                *(
                    self._execute_agent(agent, role, sandboxes[agent_id], semaphore)
                    for agent_id, agent, role in prepared
                )
            )

            scored = (
                scoring.score_results(results)
                if opts.require_consensus
                else scoring.unscored(results)
            )
            self._emit(
                EventType.EXECUTION_COMPLETED,
                {"results": [item.to_dict() for item in scored]},
            )
            logger.info(
                "execution_completed",
                agents=len(scored),
                succeeded=sum(1 for item in scored if item.success),
                consensus=opts.require_consensus,
            )
            return scored
        finally:
            await self._cleanup(sandboxes)

    def compare_results(self, results: Sequence[AgentResult]) -> list[ScoredResult]:
        return scoring.compare_results(results)

    def stats(self) -> SchedulerStats:
        return SchedulerStats(
            runs=self._runs,
            agents_started=self._started,
            agents_succeeded=self._succeeded,
            agents_failed=self._failed,
            agents_timed_out=self._timed_out,
            active_sandboxes=len(self._active),
        )

    def _default_sandbox(self, agent: Agent) -> AgentSandbox:
        return AgentSandbox(
            agent.context.working_dir,
            strategy=self._isolation,
            base_dir=self._sandbox_base_dir,
        )

    def _role_for(self, agent: Agent) -> RoleDefinition | None:
        if self._catalog is None:
            return None
        return self._catalog.create_role(agent.role)

    def _timeout_for(
        self, agent: Agent, options: ExecutionOptions, role: RoleDefinition | None
    ) -> int:
        if agent.timeout_ms is not None:
            return agent.timeout_ms
        if options.timeout_ms is not None:
            return options.timeout_ms
        if role is not None:
            return role.timeout_ms
        return self._default_timeout_ms

    async def _prepare(
        self,
        agents: Sequence[Agent],
        options: ExecutionOptions,
        sandboxes: dict[str, AgentSandbox],
    ) -> list[tuple[str, Agent, RoleDefinition]]:
        prepared: list[tuple[str, Agent, RoleDefinition]] = []
        for agent in agents:
            agent_id = generate_agent_id()
            sandbox = self._sandbox_factory(agent)
            async with self._lock:
                sandboxes[agent_id] = sandbox
                self._active[agent_id] = sandbox
            try:
                path = await asyncio.to_thread(sandbox.create, agent_id)
            except OSError as exc:
                raise SchedulingError(f"Failed to create sandbox for {agent_id}: {exc}") from exc

            role = self._role_for(agent)
            timeout_ms = self._timeout_for(agent, options, role)
            if role is None:
                role = _fallback_role(agent, timeout_ms)
            prepared.append(
                (
                    agent_id,
                    dataclasses.replace(
                        agent, id=agent_id, sandbox_path=str(path), timeout_ms=timeout_ms
                    ),
                    role,
                )
            )
        return prepared

    async def _execute_agent(
        self,
        agent: Agent,
        role: RoleDefinition,
        sandbox: AgentSandbox,
        semaphore: BoundedSemaphore,
    ) -> AgentResult:
        assert agent.id is not None and agent.timeout_ms is not None
        async with semaphore.permit():
            async with self._lock:
                self._started += 1
            self._emit(EventType.AGENT_STARTED, {"agent_id": agent.id, "role": agent.role.value})
            logger.info("agent_started", agent_id=agent.id, role=agent.role.value)

            token = CancellationToken()
            started = time.perf_counter()
            timed_out = False
            try:
                with correlation_scope(agent_id=agent.id):
                    output = await run_with_timeout(
                        self._runner.run(agent, role, token),
                        agent.timeout_ms,
                        token,
                        timeout_message=f"Agent {agent.id} timed out after {agent.timeout_ms}ms",
                    )
                execution_time_ms = _elapsed_ms(started)
                collected = await asyncio.to_thread(sandbox.collect_artifacts)
                artifacts = dict.fromkeys([*output.artifacts, *(str(path) for path in collected)])
                result = AgentResult(
                    agent_id=agent.id,
                    role=agent.role,
                    success=output.success,
                    output=output.output,
                    execution_time_ms=execution_time_ms,
                    error=output.error,
                    artifacts=tuple(artifacts),
                )
            except OperationTimeoutError as exc:
                timed_out = True
                result = _failed(agent, str(exc), started)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "agent_raised",
                    agent_id=agent.id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                result = _failed(agent, str(exc) or type(exc).__name__, started)

        async with self._lock:
            if result.success:
                self._succeeded += 1
            else:
                self._failed += 1
            if timed_out:
                self._timed_out += 1

        event_type = EventType.AGENT_COMPLETED if result.success else EventType.AGENT_FAILED
        self._emit(
            event_type,
            {
                "agent_id": result.agent_id,
                "role": result.role.value,
                "execution_time_ms": result.execution_time_ms,
                "error": result.error,
            },
        )
        logger.info(
            "agent_finished",
            agent_id=result.agent_id,
            success=result.success,
            execution_time_ms=result.execution_time_ms,
            timed_out=timed_out,
        )
        return result

    async def _cleanup(self, sandboxes: Mapping[str, AgentSandbox]) -> None:
        for agent_id, sandbox in sandboxes.items():
            try:
                await asyncio.to_thread(sandbox.cleanup)
            except Exception as exc:  # noqa: BLE001
                logger.warning("sandbox_cleanup_failed", agent_id=agent_id, error=str(exc))
            async with self._lock:
                self._active.pop(agent_id, None)

    def _emit(self, event_type: EventType, payload: Mapping[str, JSONValue]) -> None:
        if self._bus is None:
            return
        self._bus.emit(event_type, payload)


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.perf_counter() - started) * 1000))


def _failed(agent: Agent, error: str, started: float) -> AgentResult:
    assert agent.id is not None
    return AgentResult(
        agent_id=agent.id,
        role=agent.role,
        success=False,
        output="",
        execution_time_ms=_elapsed_ms(started),
        error=error,
    )


def _fallback_role(agent: Agent, timeout_ms: int) -> RoleDefinition:
    return RoleDefinition(
        role=agent.role,
        system_prompt="",
        allowed_tools=frozenset(),
        timeout_ms=timeout_ms,
        priority=3,
    )


__all__ = [
    "AgentOutput",
    "AgentRunner",
    "AgentScheduler",
    "ExecutionOptions",
    "SandboxFactory",
    "SchedulerStats",
    "SchedulingError",
    "SchedulingValidationError",
]
