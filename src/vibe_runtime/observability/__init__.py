"""Public observability primitives: structured logging and event streaming."""

from vibe_runtime.observability.events import DispatchError, EventBus, Subscriber
from vibe_runtime.observability.logging import (
    LogSession,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "DispatchError",
    "EventBus",
    "LogSession",
    "Subscriber",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
