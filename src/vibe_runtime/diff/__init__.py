"""Line diffs, edit application and multi-file editing."""

from vibe_runtime.diff.editor import (
    DiffEditor,
    EditError,
    EditOutcome,
    UnsupportedEditError,
    apply_edit,
)
from vibe_runtime.diff.engine import (
    DiffEngine,
    DiffLine,
    Hunk,
    LineKind,
    edit_script,
    group_hunks,
    render_side_by_side,
    split_lines,
)

__all__ = [
    "DiffEditor",
    "DiffEngine",
    "DiffLine",
    "EditError",
    "EditOutcome",
    "Hunk",
    "LineKind",
    "UnsupportedEditError",
    "apply_edit",
    "edit_script",
    "group_hunks",
    "render_side_by_side",
    "split_lines",
]
