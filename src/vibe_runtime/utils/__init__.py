"""Utility exports for filesystem and concurrency helpers."""

from vibe_runtime.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    OperationTimeoutError,
    run_with_timeout,
)
from vibe_runtime.utils.fs import (
    atomic_write,
    copy_project_tree,
    is_within,
    iter_project_files,
    read_text_exact,
    resolve_inside,
    safe_delete,
    temp_directory,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "OperationTimeoutError",
    "atomic_write",
    "copy_project_tree",
    "is_within",
    "iter_project_files",
    "read_text_exact",
    "resolve_inside",
    "run_with_timeout",
    "safe_delete",
    "temp_directory",
]
