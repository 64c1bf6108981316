"""Pairwise conflict detection between agents in one batch."""

from __future__ import annotations

from vibe_runtime.domain.models import Agent, AgentRole, ProjectContext
from vibe_runtime.sandbox.conflicts import ConflictDetector


def _agent(role: AgentRole, *, files: tuple[str, ...] = (), sandbox: str | None = None) -> Agent:
    return Agent(
        role=role,
        task="task",
        context=ProjectContext(working_dir="/work", files=files),
        sandbox_path=sandbox,
    )


def test_same_role_shared_files_and_directory_conflict() -> None:
    report = ConflictDetector().detect(
        _agent(AgentRole.DEVELOPER, files=("a.py", "b.py")),
        _agent(AgentRole.DEVELOPER, files=("b.py", "c.py")),
    )

    assert report.has_conflicts
    assert report.file_conflicts == ("b.py",)
    assert report.role_conflicts == ("Same agent role may cause conflicts",)
    assert report.resource_conflicts == ("Same working directory",)


def test_separate_sandboxes_and_roles_do_not_conflict() -> None:
    report = ConflictDetector().detect(
        _agent(AgentRole.DEVELOPER, sandbox="/tmp/one"),
        _agent(AgentRole.REVIEWER, sandbox="/tmp/two"),
    )
    assert not report.has_conflicts


def test_detect_all_keys_reports_by_position() -> None:
    agents = [
        _agent(AgentRole.DEVELOPER, sandbox="/tmp/a"),
        _agent(AgentRole.REVIEWER, sandbox="/tmp/b"),
        _agent(AgentRole.DEVELOPER, sandbox="/tmp/c"),
    ]
    reports = ConflictDetector().detect_all(agents)
    assert list(reports) == [(0, 2)]


def test_shared_working_dirs() -> None:
    detector = ConflictDetector()
    assert detector.shared_working_dirs(["/a", "/b"]) == []
    assert detector.shared_working_dirs(["/a", "/a"]) == [
        "Multiple agents using same working directory"
    ]
