"""
vibe-runtime: line diff engine

File: src/vibe_runtime/diff/engine.py

Purpose
- Compute a line-level edit script between two texts with a bounded
  look-ahead heuristic (not LCS): on a mismatch, the nearest matching line
  pair within ``lookahead_window`` lines of both sides is used, minimising
  the combined distance. Without such a pair a delete+insert is emitted.
- Group the edit script into hunks with surrounding context; large hunks are
  flushed every ``max_hunk_lines`` lines with recomputed headers.
- Render hunks as unified text, side-by-side text, or ``rich`` ``Text``.

Non-functional requirements
- O(window^2) work per mismatch; deterministic output.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

from rich.style import Style
from rich.text import Text

from vibe_runtime.constants import DIFF_CONTEXT_LINES, DIFF_LOOKAHEAD_WINDOW, DIFF_MAX_HUNK_LINES

_S_HEADER = Style(color="cyan", bold=True)
_S_HUNK = Style(color="magenta")
_S_CONTEXT = Style(color="bright_black")
_S_DELETE = Style(color="red")
_S_INSERT = Style(color="green")


class LineKind(StrEnum):
    CONTEXT = "context"
    DELETE = "delete"
    INSERT = "insert"


_PREFIX = {LineKind.CONTEXT: " ", LineKind.DELETE: "-", LineKind.INSERT: "+"}


@dataclass(frozen=True, slots=True)
class DiffLine:
    """One line of an edit script.

    ``old_index``/``new_index`` are zero-based cursor positions in the old and
    new sequences when the line was emitted; line numbers are derived from
    them.
    """

    kind: LineKind
    text: str
    old_index: int
    new_index: int

    @property
    def old_lineno(self) -> int | None:
        return None if self.kind is LineKind.INSERT else self.old_index + 1

    @property
    def new_lineno(self) -> int | None:
        return None if self.kind is LineKind.DELETE else self.new_index + 1


@dataclass(frozen=True, slots=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[DiffLine, ...]

    @property
    def header(self) -> str:
        return f"@@ -{self.old_start},{self.old_count} +{self.new_start},{self.new_count} @@"

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.DELETE)

    @property
    def insertions(self) -> int:
        return sum(1 for line in self.lines if line.kind is LineKind.INSERT)

    @classmethod
    def from_lines(cls, lines: Sequence[DiffLine]) -> Hunk:
        """Build a hunk and compute its header from the contained lines."""

        if not lines:
            raise ValueError("hunk must contain at least one line")
        old_lines = [line for line in lines if line.kind is not LineKind.INSERT]
        new_lines = [line for line in lines if line.kind is not LineKind.DELETE]
        # Unified-diff convention: an empty side starts at the line before it.
        old_start = old_lines[0].old_index + 1 if old_lines else lines[0].old_index
        new_start = new_lines[0].new_index + 1 if new_lines else lines[0].new_index
        return cls(
            old_start=old_start,
            old_count=len(old_lines),
            new_start=new_start,
            new_count=len(new_lines),
            lines=tuple(lines),
        )


def split_lines(text: str) -> list[str]:
    """Split on ``\\n``; the empty string has no lines."""
    return [] if text == "" else text.split("\n")


def edit_script(
    old_lines: Sequence[str],
    new_lines: Sequence[str],
    *,
    lookahead_window: int = DIFF_LOOKAHEAD_WINDOW,
) -> list[DiffLine]:
    """Return the full edit script turning ``old_lines`` into ``new_lines``."""

    if lookahead_window <= 0:
        raise ValueError("lookahead_window must be > 0")

    script: list[DiffLine] = []
    i = j = 0
    old_len, new_len = len(old_lines), len(new_lines)

    while i < old_len or j < new_len:
        if i >= old_len:
            script.append(DiffLine(LineKind.INSERT, new_lines[j], i, j))
            j += 1
            continue
        if j >= new_len:
            script.append(DiffLine(LineKind.DELETE, old_lines[i], i, j))
            i += 1
            continue
        if old_lines[i] == new_lines[j]:
            script.append(DiffLine(LineKind.CONTEXT, old_lines[i], i, j))
            i += 1
            j += 1
            continue

        match = _nearest_match(old_lines, new_lines, i, j, lookahead_window)
        if match is None:
            script.append(DiffLine(LineKind.DELETE, old_lines[i], i, j))
            script.append(DiffLine(LineKind.INSERT, new_lines[j], i + 1, j))
            i += 1
            j += 1
            continue

        match_old, match_new = match
        while i < match_old:
            script.append(DiffLine(LineKind.DELETE, old_lines[i], i, j))
            i += 1
        while j < match_new:
            script.append(DiffLine(LineKind.INSERT, new_lines[j], i, j))
            j += 1

    return script


def _nearest_match(
    old_lines: Sequence[str],
    new_lines: Sequence[str],
    i: int,
    j: int,
    window: int,
) -> tuple[int, int] | None:
    best: tuple[int, int] | None = None
    best_distance = window
    for old_pos in range(i, min(i + window, len(old_lines))):
        for new_pos in range(j, min(j + window, len(new_lines))):
            distance = (old_pos - i) + (new_pos - j)
            if distance >= best_distance:
                break
            if old_lines[old_pos] == new_lines[new_pos]:
                best = (old_pos, new_pos)
                best_distance = distance
                break
    return best


def group_hunks(
    script: Sequence[DiffLine],
    *,
    context_lines: int = DIFF_CONTEXT_LINES,
    max_hunk_lines: int = DIFF_MAX_HUNK_LINES,
) -> list[Hunk]:
    """Group an edit script into hunks, skipping unchanged regions."""

    if context_lines < 0:
        raise ValueError("context_lines must be >= 0")
    if max_hunk_lines <= 0:
        raise ValueError("max_hunk_lines must be > 0")

    changed = [index for index, line in enumerate(script) if line.kind is not LineKind.CONTEXT]
    if not changed:
        return []

    ranges: list[list[int]] = []
    for index in changed:
        start = max(0, index - context_lines)
        end = min(len(script), index + context_lines + 1)
        if ranges and start <= ranges[-1][1]:
            ranges[-1][1] = max(ranges[-1][1], end)
        else:
            ranges.append([start, end])

    hunks: list[Hunk] = []
    for start, end in ranges:
        for chunk_start in range(start, end, max_hunk_lines):
            chunk = script[chunk_start : min(end, chunk_start + max_hunk_lines)]
            if any(line.kind is not LineKind.CONTEXT for line in chunk):
                hunks.append(Hunk.from_lines(chunk))
    return hunks


class DiffEngine:
    """Configured entry point for diffs and their renderings."""

    def __init__(
        self,
        *,
        lookahead_window: int = DIFF_LOOKAHEAD_WINDOW,
        max_hunk_lines: int = DIFF_MAX_HUNK_LINES,
        context_lines: int = DIFF_CONTEXT_LINES,
    ) -> None:
        if lookahead_window <= 0 or max_hunk_lines <= 0 or context_lines < 0:
            raise ValueError("invalid diff engine settings")
        self.lookahead_window = lookahead_window
        self.max_hunk_lines = max_hunk_lines
        self.context_lines = context_lines

    @classmethod
    def from_config(cls, diff_config: Mapping[str, object]) -> DiffEngine:
        """Build an engine from the ``[diff]`` config section."""

        def _int(key: str, default: int) -> int:
            value = diff_config.get(key, default)
            return value if isinstance(value, int) and not isinstance(value, bool) else default

        return cls(
            lookahead_window=_int("lookahead_window", DIFF_LOOKAHEAD_WINDOW),
            max_hunk_lines=_int("max_hunk_lines", DIFF_MAX_HUNK_LINES),
            context_lines=_int("context_lines", DIFF_CONTEXT_LINES),
        )

    def diff(self, old: str, new: str) -> list[Hunk]:
        """Return hunks turning ``old`` into ``new``; identical texts give ``[]``."""

        if old == new:
            return []
        script = edit_script(
            split_lines(old), split_lines(new), lookahead_window=self.lookahead_window
        )
        return group_hunks(
            script, context_lines=self.context_lines, max_hunk_lines=self.max_hunk_lines
        )

    def render_unified(
        self, old: str, new: str, path: str, *, line_numbers: bool = False
    ) -> str:
        """Unified diff text; empty when the texts are identical."""

        hunks = self.diff(old, new)
        if not hunks:
            return ""
        out = [f"--- a/{path}", f"+++ b/{path}"]
        for hunk in hunks:
            out.append(hunk.header)
            for line in hunk.lines:
                gutter = ""
                if line_numbers:
                    number = (
                        line.new_lineno if line.kind is LineKind.INSERT else line.old_lineno
                    )
                    gutter = f"{number:>4} | "
                out.append(f"{_PREFIX[line.kind]}{gutter}{line.text}")
        return "\n".join(out)

    def render_rich(self, old: str, new: str, path: str) -> Text:
        """Coloured unified diff for terminal previews."""

        text = Text()
        text.append(f"--- a/{path}\n+++ b/{path}\n", style=_S_HEADER)
        for hunk in self.diff(old, new):
            text.append(f"{hunk.header}\n", style=_S_HUNK)
            for line in hunk.lines:
                style = {
                    LineKind.CONTEXT: _S_CONTEXT,
                    LineKind.DELETE: _S_DELETE,
                    LineKind.INSERT: _S_INSERT,
                }[line.kind]
                text.append(f"{_PREFIX[line.kind]}{line.text}\n", style=style)
        text.rstrip()
        return text


def render_side_by_side(old: str, new: str, path: str) -> str:
    """Positional line-by-line comparison used for quick edit previews."""

    old_lines = split_lines(old)
    new_lines = split_lines(new)
    out = [f"--- Diff: {path} ---"]
    for index in range(max(len(old_lines), len(new_lines))):
        old_line = old_lines[index] if index < len(old_lines) else None
        new_line = new_lines[index] if index < len(new_lines) else None
        if old_line == new_line:
            out.append(f"  {index + 1:>3} | {old_line}")
            continue
        if old_line is not None:
            out.append(f"-{index + 1:>3} | {old_line}")
        if new_line is not None:
            out.append(f"+{index + 1:>3} | {new_line}")
    return "\n".join(out)


__all__ = [
    "DiffEngine",
    "DiffLine",
    "Hunk",
    "LineKind",
    "edit_script",
    "group_hunks",
    "render_side_by_side",
    "split_lines",
]
