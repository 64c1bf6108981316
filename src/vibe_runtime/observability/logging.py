"""Run-scoped structured logging.

Components log through ``structlog.get_logger(__name__)``. :func:`setup_logging`
points structlog at the stdlib ``vibe_runtime`` logger, whose records travel
through a queue to a JSON-lines file at ``<log_dir>/<run_id>/runtime.jsonl``
(and optionally stderr). Correlation fields bound with
:func:`correlation_scope` live in structlog's context variables, so they follow
asyncio tasks spawned inside the scope.

Each line is one JSON object::

    {"event": "...", "level": "INFO", "logger": "...", "run_id": "...",
     "timestamp": "...Z", "agent_id": "...", "fields": {...}}

Correlation keys sit at the top level; every other keyword argument is nested
under ``fields``. Secrets are redacted from the whole line before it is
written.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import queue
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

import structlog

from vibe_runtime.constants import LOG_DIR

LOGGER_NAME: Final[str] = "vibe_runtime"
LOG_FILENAME: Final[str] = "runtime.jsonl"
REDACTED: Final[str] = "***REDACTED***"

Redactor = Callable[[Any], Any]

# Promoted to top-level keys of each line.
_CORRELATION_KEYS: Final[frozenset[str]] = frozenset(
    {"run_id", "session_id", "agent_id", "checkpoint_id", "tool", "correlation_id"}
)
_SECRET_KEY_PARTS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)
_SECRET_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
        ),
        rf"\1\2{REDACTED}",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), f"Bearer {REDACTED}"),
    (re.compile(r"\bsk-[A-Za-z0-9_-]{12,}\b"), REDACTED),
)
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    logging.makeLogRecord({}).__dict__
) | {"message", "asctime"}

_session_lock = threading.Lock()
_active_session: LogSession | None = None


def default_log_redactor(value: Any) -> Any:
    """Redact credential-looking keys and inline secrets, recursively."""

    if isinstance(value, str):
        for pattern, replacement in _SECRET_PATTERNS:
            value = pattern.sub(replacement, value)
        return value
    if isinstance(value, Mapping):
        return {
            key: REDACTED if _is_secret_key(str(key)) else default_log_redactor(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [default_log_redactor(item) for item in value]
    return value


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str, redactor: Redactor | None) -> None:
        super().__init__()
        self._run_id = run_id
        self._redactor = redactor

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "run_id": self._run_id,
        }
        fields: dict[str, Any] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            if key in _CORRELATION_KEYS and isinstance(value, str) and value.strip():
                line[key] = value.strip()
            else:
                fields[key] = _jsonable(value)
        if fields:
            line["fields"] = fields
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)

        if self._redactor is not None:
            line = self._redactor(line)
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class LogSession:
    """An active logging setup for one run."""

    def __init__(
        self, run_id: str, log_path: Path, sinks: list[logging.Handler], level: int
    ) -> None:
        self.run_id = run_id
        self.log_path = log_path
        self._sinks = sinks
        self._queue: queue.Queue[logging.LogRecord] = queue.Queue()
        self._queue_handler = logging.handlers.QueueHandler(self._queue)
        self._queue_handler.setLevel(level)
        self._listener = logging.handlers.QueueListener(
            self._queue, *sinks, respect_handler_level=True
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, logger: logging.Logger) -> None:
        self._listener.start()
        logger.addHandler(self._queue_handler)

    def flush(self) -> None:
        """Block until every queued record has reached the sinks."""

        if self._closed:
            return
        self._queue.join()
        for sink in self._sinks:
            sink.flush()

    def close(self) -> None:
        if self._closed:
            return
        logging.getLogger(LOGGER_NAME).removeHandler(self._queue_handler)
        self._listener.stop()
        for sink in self._sinks:
            sink.close()
        self._closed = True


def setup_logging(
    observability: Mapping[str, Any] | None = None,
    *,
    run_id: str,
    log_dir: Path | str | None = None,
) -> LogSession:
    """Start logging for ``run_id`` from an ``[observability]`` config section.

    Any previously active session is closed first. ``log_dir`` overrides the
    section's ``log_dir``.
    """

    section = dict(observability or {})
    run_id = run_id.strip()
    if not run_id:
        raise ValueError("run_id must not be empty")
    level = _level(section.get("log_level", "INFO"))

    shutdown_logging()

    base_dir = Path(log_dir if log_dir is not None else section.get("log_dir", LOG_DIR))
    log_path = base_dir / run_id / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = _JsonLinesFormatter(
        run_id, default_log_redactor if section.get("redact_secrets", True) else None
    )
    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if section.get("log_to_stdout", False):
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)

    session = LogSession(run_id, log_path, sinks, level)
    session.attach(logger)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    global _active_session
    with _session_lock:
        _active_session = session
    return session


def shutdown_logging() -> None:
    """Flush and close the active session, if any."""

    global _active_session
    with _session_lock:
        session, _active_session = _active_session, None
    if session is not None:
        session.flush()
        session.close()


def get_correlation_context() -> dict[str, Any]:
    return structlog.contextvars.get_contextvars()


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for the duration of the block.

    A ``None`` value hides that field inside the block.
    """

    saved = structlog.contextvars.get_contextvars()
    structlog.contextvars.unbind_contextvars(*(k for k, v in fields.items() if v is None))
    structlog.contextvars.bind_contextvars(**{k: v for k, v in fields.items() if v is not None})
    try:
        yield
    finally:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**saved)


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SECRET_KEY_PARTS)


def _level(value: object) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelNamesMapping().get(str(value).strip().upper())
    if level is None:
        raise ValueError(f"unsupported logging level {value!r}")
    return level


def _utc_timestamp(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _jsonable(value: object) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (Path, datetime)):
        return str(value)
    return repr(value)


__all__ = [
    "LOGGER_NAME",
    "LogSession",
    "Redactor",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "setup_logging",
    "shutdown_logging",
]
