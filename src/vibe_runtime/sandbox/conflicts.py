"""Overlap checks between agents scheduled in the same batch."""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from dataclasses import dataclass

from vibe_runtime.domain.models import Agent


@dataclass(frozen=True, slots=True)
class ConflictReport:
    file_conflicts: tuple[str, ...] = ()
    role_conflicts: tuple[str, ...] = ()
    resource_conflicts: tuple[str, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return bool(self.file_conflicts or self.role_conflicts or self.resource_conflicts)


class ConflictDetector:
    def detect(self, first: Agent, second: Agent) -> ConflictReport:
        shared_files = sorted(set(first.context.files) & set(second.context.files))
        roles = ("Same agent role may cause conflicts",) if first.role == second.role else ()
        same_dir = _effective_dir(first) == _effective_dir(second)
        return ConflictReport(
            file_conflicts=tuple(shared_files),
            role_conflicts=roles,
            resource_conflicts=("Same working directory",) if same_dir else (),
        )

    def detect_all(self, agents: Sequence[Agent]) -> dict[tuple[int, int], ConflictReport]:
        """Reports for every conflicting pair, keyed by input positions."""

        reports: dict[tuple[int, int], ConflictReport] = {}
        for (i, first), (j, second) in itertools.combinations(enumerate(agents), 2):
            report = self.detect(first, second)
            if report.has_conflicts:
                reports[(i, j)] = report
        return reports

    def shared_working_dirs(self, paths: Sequence[str]) -> list[str]:
        if len(paths) != len(set(paths)):
            return ["Multiple agents using same working directory"]
        return []


def _effective_dir(agent: Agent) -> str:
    return agent.sandbox_path or agent.context.working_dir


__all__ = ["ConflictDetector", "ConflictReport"]
