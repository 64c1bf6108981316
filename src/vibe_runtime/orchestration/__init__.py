"""
vibe-runtime: orchestration

File: src/vibe_runtime/orchestration/__init__.py

Purpose
- Role catalog, bounded parallel agent scheduling, result scoring and the
  provider-backed agent runner.
"""

from vibe_runtime.orchestration.roles import RoleCatalog, RoleCatalogError, UnknownRoleError
from vibe_runtime.orchestration.runner import PromptRenderer, ProviderAgentRunner, RunnerSettings
from vibe_runtime.orchestration.scheduler import (
    AgentOutput,
    AgentRunner,
    AgentScheduler,
    ExecutionOptions,
    SchedulerStats,
    SchedulingError,
    SchedulingValidationError,
)
from vibe_runtime.orchestration.scoring import compare_results, score_results

__all__ = [
    "AgentOutput",
    "AgentRunner",
    "AgentScheduler",
    "ExecutionOptions",
    "PromptRenderer",
    "ProviderAgentRunner",
    "RoleCatalog",
    "RoleCatalogError",
    "RunnerSettings",
    "SchedulerStats",
    "SchedulingError",
    "SchedulingValidationError",
    "UnknownRoleError",
    "compare_results",
    "score_results",
]
