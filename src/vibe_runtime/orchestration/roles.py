"""Role definitions and keyword-based task classification."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from typing import Any, Final

from vibe_runtime.constants import DEFAULT_RECOMMENDED_AGENTS, MAX_AGENTS
from vibe_runtime.domain.models import AgentRole, RoleDefinition, RoleValidation, TaskAnalysis


class RoleCatalogError(ValueError):
    """Base error for role catalog failures."""


class UnknownRoleError(RoleCatalogError, KeyError):
    """Raised when a role id is not defined."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown role"


@dataclasses.dataclass(frozen=True, slots=True)
class _KeywordRule:
    keywords: tuple[str, ...]
    primary: AgentRole
    supporting: tuple[AgentRole, ...]
    confidence: float
    reasoning: str


# Evaluated in order; the first rule with a matching keyword wins.
_RULES: Final[tuple[_KeywordRule, ...]] = (
    _KeywordRule(
        keywords=("design", "architecture", "plan", "structure", "organize"),
        primary=AgentRole.ARCHITECT,
        supporting=(AgentRole.DEVELOPER,),
        confidence=0.9,
        reasoning="Task involves system design and planning",
    ),
    _KeywordRule(
        keywords=("debug", "fix", "error", "bug", "issue", "problem"),
        primary=AgentRole.DEBUGGER,
        supporting=(AgentRole.DEVELOPER,),
        confidence=0.9,
        reasoning="Task involves debugging and problem solving",
    ),
    _KeywordRule(
        keywords=("test", "validate", "verify", "check", "quality", "cases"),
        primary=AgentRole.VALIDATOR,
        supporting=(AgentRole.REVIEWER,),
        confidence=0.8,
        reasoning="Task involves testing and validation",
    ),
    _KeywordRule(
        keywords=("review", "analyze", "improve", "refactor", "optimize"),
        primary=AgentRole.REVIEWER,
        supporting=(AgentRole.DEVELOPER,),
        confidence=0.75,
        reasoning="Task involves code review and improvement",
    ),
    _KeywordRule(
        keywords=("implement", "create", "build", "code", "develop", "write"),
        primary=AgentRole.DEVELOPER,
        supporting=(AgentRole.VALIDATOR,),
        confidence=0.85,
        reasoning="Task involves code implementation",
    ),
)

_DEFAULT_ANALYSIS: Final[TaskAnalysis] = TaskAnalysis(
    primary_role=AgentRole.DEVELOPER,
    supporting_roles=(AgentRole.VALIDATOR,),
    confidence=0.5,
    reasoning="General development task",
)

_COMPLEMENTARY: Final[dict[AgentRole, tuple[AgentRole, ...]]] = {
    AgentRole.ARCHITECT: (AgentRole.DEVELOPER, AgentRole.REVIEWER),
    AgentRole.DEVELOPER: (AgentRole.VALIDATOR, AgentRole.REVIEWER),
    AgentRole.VALIDATOR: (AgentRole.DEVELOPER, AgentRole.DEBUGGER),
    AgentRole.DEBUGGER: (AgentRole.DEVELOPER, AgentRole.VALIDATOR),
    AgentRole.REVIEWER: (AgentRole.DEVELOPER, AgentRole.VALIDATOR),
}

_READ_TOOLS: Final[frozenset[str]] = frozenset(
    {"file_read", "file_glob", "file_tree", "file_search"}
)

_BUILTIN_ROLES: Final[tuple[RoleDefinition, ...]] = (
    RoleDefinition(
        role=AgentRole.ARCHITECT,
        system_prompt=(
            "You are a software architect. Analyse the requirements, break the work into "
            "components, identify dependencies and risks, and produce a structured "
            "implementation plan. Do not write implementation code."
        ),
        allowed_tools=_READ_TOOLS,
        timeout_ms=180_000,
        priority=1,
        description="Designs system architecture and creates implementation plans",
    ),
    RoleDefinition(
        role=AgentRole.DEVELOPER,
        system_prompt=(
            "You are a software developer. Implement the requested change with clean, "
            "maintainable code, create the files it needs and handle edge cases and errors."
        ),
        allowed_tools=_READ_TOOLS
        | {
            "file_write",
            "file_edit",
            "shell_exec",
            "git_status",
            "git_diff",
            "git_commit",
            "git_branch",
        },
        timeout_ms=300_000,
        priority=2,
        description="Implements features and writes production code",
    ),
    RoleDefinition(
        role=AgentRole.VALIDATOR,
        system_prompt=(
            "You are a code validator. Check the change for correctness, write and run "
            "tests, verify the requirements are met and look for security problems."
        ),
        allowed_tools=_READ_TOOLS | {"shell_exec", "git_diff"},
        timeout_ms=240_000,
        priority=3,
        description="Tests code and ensures quality standards",
    ),
    RoleDefinition(
        role=AgentRole.DEBUGGER,
        system_prompt=(
            "You are a debugger. Reproduce the failure, trace the execution path to the "
            "root cause and propose or apply the smallest correct fix."
        ),
        allowed_tools=_READ_TOOLS | {"file_edit", "shell_exec", "git_status", "git_diff"},
        timeout_ms=360_000,
        priority=2,
        description="Diagnoses issues and provides solutions",
    ),
    RoleDefinition(
        role=AgentRole.REVIEWER,
        system_prompt=(
            "You are a code reviewer. Review the change for readability, maintainability "
            "and adherence to project standards, and give concrete, constructive feedback."
        ),
        allowed_tools=_READ_TOOLS | {"git_status", "git_diff"},
        timeout_ms=180_000,
        priority=3,
        description="Reviews code quality and adherence to standards",
    ),
)


class RoleCatalog:
    """Built-in agent roles plus per-role overrides from configuration."""

    def __init__(self, overrides: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._roles: dict[AgentRole, RoleDefinition] = {
            definition.role: definition for definition in _BUILTIN_ROLES
        }
        for name, override in (overrides or {}).items():
            self._apply_override(name, override)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> RoleCatalog:
        return cls(config.get("roles") or {})

    def classify(self, task: str) -> TaskAnalysis:
        lowered = task.lower()
        for rule in _RULES:
            if any(keyword in lowered for keyword in rule.keywords):
                return TaskAnalysis(
                    primary_role=rule.primary,
                    supporting_roles=rule.supporting,
                    confidence=rule.confidence,
                    reasoning=rule.reasoning,
                )
        return _DEFAULT_ANALYSIS

    def optimal_role(self, task: str) -> AgentRole:
        return self.classify(task).primary_role

    def recommend(self, task: str, max_agents: int = DEFAULT_RECOMMENDED_AGENTS) -> list[AgentRole]:
        """Primary role, then supporting roles, then complementary roles, capped."""

        if max_agents < 1:
            return []
        analysis = self.classify(task)
        selected = [analysis.primary_role]
        candidates = (*analysis.supporting_roles, *_COMPLEMENTARY[analysis.primary_role])
        for role in candidates:
            if len(selected) >= max_agents:
                break
            if role not in selected:
                selected.append(role)
        return selected

    def create_role(self, role: AgentRole | str) -> RoleDefinition:
        """Return a copy of the role definition."""

        definition = self._roles.get(_coerce_role(role))
        if definition is None:
            raise UnknownRoleError(f"Unknown agent role: {role}")
        return dataclasses.replace(definition)

    def all_roles(self) -> list[RoleDefinition]:
        return [*self._roles.values()]

    def roles_by_priority(self) -> list[RoleDefinition]:
        return sorted(self._roles.values(), key=lambda definition: definition.priority)

    def validate_combination(self, roles: Sequence[AgentRole | str]) -> RoleValidation:
        issues: list[str] = []
        if len(set(roles)) != len(roles):
            issues.append("Duplicate roles detected")
        if len(roles) > MAX_AGENTS:
            issues.append(f"Too many agents (maximum {MAX_AGENTS})")
        if not roles:
            issues.append("At least one agent role is required")
        return RoleValidation(valid=not issues, issues=tuple(issues))

    def _apply_override(self, name: str, override: Mapping[str, Any]) -> None:
        role = _coerce_role(name)
        current = self._roles.get(role)
        if current is None:
            raise UnknownRoleError(f"Unknown agent role: {name}")
        self._roles[role] = dataclasses.replace(
            current,
            timeout_ms=int(override.get("timeout_ms", current.timeout_ms)),
            priority=int(override.get("priority", current.priority)),
            allowed_tools=current.allowed_tools | frozenset(override.get("extra_tools", ())),
        )


def _coerce_role(role: AgentRole | str) -> AgentRole:
    if isinstance(role, AgentRole):
        return role
    try:
        return AgentRole(str(role).strip().lower())
    except ValueError:
        raise UnknownRoleError(f"Unknown agent role: {role}") from None


__all__ = ["RoleCatalog", "RoleCatalogError", "UnknownRoleError"]
