"""Role catalog: classification, recommendations, overrides and validation."""

from __future__ import annotations

import pytest

from vibe_runtime.config import default_config
from vibe_runtime.domain.models import AgentRole
from vibe_runtime.orchestration import RoleCatalog, UnknownRoleError


@pytest.fixture
def catalog() -> RoleCatalog:
    return RoleCatalog()


@pytest.mark.parametrize(
    ("task", "role"),
    [
        ("Design the plugin architecture", AgentRole.ARCHITECT),
        ("Fix the memory leak in the data processing module", AgentRole.DEBUGGER),
        ("Verify the parser handles empty input", AgentRole.VALIDATOR),
        ("Refactor the settings loader", AgentRole.REVIEWER),
        ("Implement the export command", AgentRole.DEVELOPER),
        ("Plan and fix the build", AgentRole.ARCHITECT),
    ],
)
def test_classify_uses_first_matching_rule(
    catalog: RoleCatalog, task: str, role: AgentRole
) -> None:
    assert catalog.optimal_role(task) is role


def test_debug_task_is_confident(catalog: RoleCatalog) -> None:
    analysis = catalog.classify("Fix the memory leak in the data processing module")
    assert analysis.primary_role is AgentRole.DEBUGGER
    assert analysis.confidence >= 0.8
    assert analysis.supporting_roles == (AgentRole.DEVELOPER,)


def test_unmatched_task_falls_back_to_developer(catalog: RoleCatalog) -> None:
    analysis = catalog.classify("Hello there")
    assert analysis.primary_role is AgentRole.DEVELOPER
    assert analysis.confidence == 0.5


def test_recommend_is_capped_and_unique(catalog: RoleCatalog) -> None:
    roles = catalog.recommend("Build a new feature with tests and documentation", 3)

    assert len(roles) == 3
    assert len(set(roles)) == 3
    assert AgentRole.DEVELOPER in roles
    assert AgentRole.VALIDATOR in roles or AgentRole.REVIEWER in roles
    assert catalog.recommend("Implement it", 1) == [AgentRole.DEVELOPER]
    assert catalog.recommend("Implement it", 0) == []


def test_create_role_returns_definitions(catalog: RoleCatalog) -> None:
    developer = catalog.create_role("developer")
    assert developer.role is AgentRole.DEVELOPER
    assert "file_write" in developer.allowed_tools
    assert "file_write" not in catalog.create_role(AgentRole.REVIEWER).allowed_tools
    with pytest.raises(UnknownRoleError, match="Unknown agent role: wizard"):
        catalog.create_role("wizard")


def test_roles_by_priority_puts_architect_first(catalog: RoleCatalog) -> None:
    ordered = catalog.roles_by_priority()
    assert ordered[0].role is AgentRole.ARCHITECT
    assert len(catalog.all_roles()) == 5


def test_overrides_from_config() -> None:
    config = default_config()
    config["roles"] = {"reviewer": {"timeout_ms": 1_000, "extra_tools": ["shell_exec"]}}

    reviewer = RoleCatalog.from_config(config).create_role(AgentRole.REVIEWER)

    assert reviewer.timeout_ms == 1_000
    assert "shell_exec" in reviewer.allowed_tools
    with pytest.raises(UnknownRoleError):
        RoleCatalog({"wizard": {}})


def test_validate_combination(catalog: RoleCatalog) -> None:
    assert catalog.validate_combination([]).issues == ("At least one agent role is required",)
    assert catalog.validate_combination([AgentRole.DEVELOPER, AgentRole.REVIEWER]).valid

    crowded = catalog.validate_combination([AgentRole.DEVELOPER] * 6)
    assert not crowded.valid
    assert "Too many agents (maximum 5)" in crowded.issues
    assert "Duplicate roles detected" in crowded.issues
