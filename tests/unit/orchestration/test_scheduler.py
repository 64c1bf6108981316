"""Agent scheduler: validation, isolation, timeouts, events and statistics."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from vibe_runtime.config import default_config
from vibe_runtime.domain.events import EventType, RuntimeEvent
from vibe_runtime.domain.models import Agent, AgentRole, ProjectContext, RoleDefinition
from vibe_runtime.observability.events import EventBus
from vibe_runtime.observability.logging import get_correlation_context
from vibe_runtime.orchestration import (
    AgentOutput,
    AgentScheduler,
    ExecutionOptions,
    RoleCatalog,
    SchedulingError,
    SchedulingValidationError,
)
from vibe_runtime.sandbox.isolation import AgentSandbox, IsolationStrategy
from vibe_runtime.utils.concurrency import CancellationToken


class _FakeRunner:
    """Behaviour keyed by task text: ``sleep``, ``raise``, ``fail`` or plain output."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.seen: list[Agent] = []
        self.active = 0
        self.peak = 0

    async def run(
        self, agent: Agent, role: RoleDefinition, cancel_token: CancellationToken
    ) -> AgentOutput:
        self.seen.append(agent)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if agent.task == "sleep":
                await asyncio.sleep(10)
            if agent.task == "raise":
                raise RuntimeError("runner exploded")
            await asyncio.sleep(self.delay)
            if agent.task == "fail":
                return AgentOutput(output="", success=False, error="could not finish")
            return AgentOutput(output=f"{agent.role.value}: {agent.task}", artifacts=("notes.md",))
        finally:
            self.active -= 1


def _agent(
    root: Path, task: str = "work", role: AgentRole = AgentRole.DEVELOPER, **kw: int
) -> Agent:
    return Agent(role=role, task=task, context=ProjectContext(str(root)), **kw)


def _scheduler(runner: _FakeRunner, **kwargs: object) -> AgentScheduler:
    kwargs.setdefault("isolation", IsolationStrategy.SHARED)
    return AgentScheduler(runner, **kwargs)  # type: ignore[arg-type]


async def test_every_agent_gets_one_result_in_input_order(project_dir: Path) -> None:
    runner = _FakeRunner(delay=0.02)
    scheduler = _scheduler(runner)
    agents = [
        _agent(project_dir, "a", AgentRole.ARCHITECT),
        _agent(project_dir, "b", AgentRole.DEVELOPER),
        _agent(project_dir, "c", AgentRole.REVIEWER),
    ]

    results = await scheduler.run("task", agents)

    assert [item.role for item in results] == [
        AgentRole.ARCHITECT,
        AgentRole.DEVELOPER,
        AgentRole.REVIEWER,
    ]
    assert len({item.agent_id for item in results}) == 3
    assert all(item.agent_id.startswith("agt-") for item in results)
    assert all(item.success for item in results)
    assert results[0].output == "architect: a"
    assert runner.peak == 3
    assert all(agent.sandbox_path == str(project_dir.resolve()) for agent in runner.seen)


async def test_unscored_results_without_consensus(project_dir: Path) -> None:
    results = await _scheduler(_FakeRunner()).run("task", [_agent(project_dir)])
    assert results[0].score == 1.0
    assert results[0].reasoning == "No consensus required"
    assert "notes.md" in results[0].artifacts


async def test_consensus_scores_failures_lowest(project_dir: Path) -> None:
    results = await _scheduler(_FakeRunner()).run(
        "task",
        [_agent(project_dir), _agent(project_dir, "fail")],
        ExecutionOptions(require_consensus=True),
    )
    assert results[0].score > 0.5
    assert results[1].score == 0.0
    assert results[1].reasoning == "Agent failed: could not finish"


@pytest.mark.parametrize(
    ("agents", "options", "message"),
    [
        (0, None, "At least one agent is required"),
        (3, ExecutionOptions(max_parallel=2), "Cannot spawn more than 2 agents (requested 3)"),
    ],
)
async def test_validation_happens_before_sandboxes(
    project_dir: Path, agents: int, options: ExecutionOptions | None, message: str
) -> None:
    created: list[Agent] = []

    def _factory(agent: Agent) -> AgentSandbox:
        created.append(agent)
        return AgentSandbox(project_dir, strategy=IsolationStrategy.SHARED)

    scheduler = _scheduler(_FakeRunner(), sandbox_factory=_factory)
    with pytest.raises(SchedulingValidationError) as excinfo:
        await scheduler.run("task", [_agent(project_dir)] * agents, options)

    assert str(excinfo.value) == message
    assert created == []
    assert scheduler.stats().runs == 0


async def test_timeout_fails_only_the_slow_agent(project_dir: Path) -> None:
    scheduler = _scheduler(_FakeRunner())

    results = await scheduler.run(
        "task", [_agent(project_dir, "sleep", timeout_ms=50), _agent(project_dir)]
    )

    slow, fast = results
    assert slow.success is False
    assert slow.error == f"Agent {slow.agent_id} timed out after 50ms"
    assert slow.output == ""
    assert fast.success
    stats = scheduler.stats()
    assert (stats.agents_started, stats.agents_succeeded, stats.agents_failed) == (2, 1, 1)
    assert stats.agents_timed_out == 1


async def test_raising_runner_becomes_failed_result(project_dir: Path) -> None:
    scheduler = _scheduler(_FakeRunner())

    [result] = await scheduler.run("task", [_agent(project_dir, "raise")])

    assert result.success is False
    assert result.error == "runner exploded"
    assert scheduler.stats().agents_timed_out == 0


async def test_events_bracket_the_run(project_dir: Path) -> None:
    bus = EventBus()
    seen: list[RuntimeEvent] = []
    bus.subscribe(None, seen.append)
    scheduler = _scheduler(_FakeRunner(), bus=bus)

    await scheduler.run("ship it", [_agent(project_dir), _agent(project_dir, "fail")])

    types = [event.event_type for event in seen]
    assert types[0] is EventType.EXECUTION_STARTED
    assert types[-1] is EventType.EXECUTION_COMPLETED
    assert types.count(EventType.AGENT_STARTED) == 2
    assert types.count(EventType.AGENT_COMPLETED) == 1
    assert types.count(EventType.AGENT_FAILED) == 1
    assert seen[0].payload == {"agent_count": 2, "task": "ship it"}
    failed = bus.replay(event_type=EventType.AGENT_FAILED)[0]
    assert failed.payload["error"] == "could not finish"
    assert len(seen[-1].payload["results"]) == 2  # type: ignore[arg-type]


async def test_temp_directory_sandboxes_are_removed(project_dir: Path, tmp_path: Path) -> None:
    runner = _FakeRunner()
    base = tmp_path / "sandboxes"
    scheduler = AgentScheduler(
        runner, isolation=IsolationStrategy.TEMP_DIRECTORY, sandbox_base_dir=base
    )

    await scheduler.run("task", [_agent(project_dir), _agent(project_dir)])

    paths = [Path(str(agent.sandbox_path)) for agent in runner.seen]
    assert len(set(paths)) == 2
    assert all(path.parent == base for path in paths)
    assert not any(path.exists() for path in paths)
    assert scheduler.stats().active_sandboxes == 0
    assert (project_dir / "README.md").exists()


async def test_sandbox_creation_failure_is_reported(project_dir: Path) -> None:
    class _BrokenSandbox(AgentSandbox):
        def create(self, agent_id: str) -> Path:
            raise OSError("disk full")

    scheduler = _scheduler(
        _FakeRunner(), sandbox_factory=lambda agent: _BrokenSandbox(project_dir)
    )

    with pytest.raises(SchedulingError, match="Failed to create sandbox for agt-.*disk full"):
        await scheduler.run("task", [_agent(project_dir)])
    assert scheduler.stats().active_sandboxes == 0


async def test_timeout_precedence(project_dir: Path) -> None:
    runner = _FakeRunner()
    with_catalog = _scheduler(runner, catalog=RoleCatalog(), default_timeout_ms=9_000)
    bare = _scheduler(runner, default_timeout_ms=9_000)

    await with_catalog.run("t", [_agent(project_dir, timeout_ms=1_234)])
    await with_catalog.run("t", [_agent(project_dir)], ExecutionOptions(timeout_ms=5_000))
    await with_catalog.run("t", [_agent(project_dir)])
    await bare.run("t", [_agent(project_dir)])

    assert [agent.timeout_ms for agent in runner.seen] == [1_234, 5_000, 300_000, 9_000]


def test_from_config_reads_scheduler_section() -> None:
    config = default_config()
    config["scheduler"] = {
        "max_parallel": 2,
        "default_timeout_ms": 1_000,
        "isolation": "shared",
        "require_consensus": True,
    }

    scheduler = AgentScheduler.from_config(config, _FakeRunner())

    assert scheduler.default_options == ExecutionOptions(max_parallel=2, require_consensus=True)


def test_invalid_options_are_rejected() -> None:
    with pytest.raises(ValueError):
        ExecutionOptions(max_parallel=0)
    with pytest.raises(ValueError):
        AgentScheduler(_FakeRunner(), default_timeout_ms=0)


async def test_runner_sees_its_own_agent_id_in_log_context(project_dir: Path) -> None:
    class _ContextRunner(_FakeRunner):
        def __init__(self) -> None:
            super().__init__(delay=0.01)
            self.contexts: dict[str, object] = {}

        async def run(
            self, agent: Agent, role: RoleDefinition, cancel_token: CancellationToken
        ) -> AgentOutput:
            output = await super().run(agent, role, cancel_token)
            assert agent.id is not None
            self.contexts[agent.id] = get_correlation_context().get("agent_id")
            return output

    runner = _ContextRunner()
    results = await _scheduler(runner).run(
        "task", [_agent(project_dir, "a"), _agent(project_dir, "b", AgentRole.REVIEWER)]
    )

    assert runner.contexts == {result.agent_id: result.agent_id for result in results}
    assert "agent_id" not in get_correlation_context()


async def test_overlapping_runs_keep_bookkeeping_consistent(
    project_dir: Path, tmp_path: Path
) -> None:
    runner = _FakeRunner(delay=0.02)
    scheduler = AgentScheduler(
        runner,
        isolation=IsolationStrategy.TEMP_DIRECTORY,
        sandbox_base_dir=tmp_path / "sandboxes",
    )
    batches = [
        [_agent(project_dir, "a"), _agent(project_dir, "b"), _agent(project_dir, "fail")]
        for _ in range(4)
    ]

    outcomes = await asyncio.gather(*(scheduler.run("task", batch) for batch in batches))

    agent_ids = [item.agent_id for results in outcomes for item in results]
    assert len(agent_ids) == len(set(agent_ids)) == 12
    stats = scheduler.stats()
    assert stats.runs == 4
    assert stats.agents_started == 12
    assert (stats.agents_succeeded, stats.agents_failed) == (8, 4)
    assert stats.agents_succeeded + stats.agents_failed == stats.agents_started
    assert stats.active_sandboxes == 0
    assert not any((tmp_path / "sandboxes").iterdir())
