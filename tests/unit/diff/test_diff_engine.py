"""Edit scripts, hunk grouping and diff renderings."""

from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from vibe_runtime.diff.engine import (
    DiffEngine,
    LineKind,
    edit_script,
    group_hunks,
    render_side_by_side,
    split_lines,
)

_lines = st.lists(st.sampled_from(["a", "b", "c", "d", ""]), max_size=25)


@given(old=_lines, new=_lines)
def test_edit_script_reconstructs_both_sides(old: list[str], new: list[str]) -> None:
    script = edit_script(old, new)

    assert [line.text for line in script if line.kind is not LineKind.INSERT] == old
    assert [line.text for line in script if line.kind is not LineKind.DELETE] == new


@given(old=_lines, new=_lines)
def test_hunks_only_exist_for_changes(old: list[str], new: list[str]) -> None:
    hunks = group_hunks(edit_script(old, new), context_lines=1, max_hunk_lines=4)

    assert (hunks == []) == (old == new)
    for hunk in hunks:
        assert len(hunk.lines) <= 4
        assert hunk.old_count == len(hunk.lines) - hunk.insertions
        assert hunk.new_count == len(hunk.lines) - hunk.deletions


def test_identical_texts_produce_no_hunks() -> None:
    engine = DiffEngine()
    assert engine.diff("same\ntext", "same\ntext") == []
    assert engine.render_unified("x", "x", "a.txt") == ""


def test_split_lines_treats_empty_text_as_no_lines() -> None:
    assert split_lines("") == []
    assert split_lines("a\n") == ["a", ""]


def test_single_line_change_has_expected_header() -> None:
    old = "one\ntwo\nthree\nfour"
    new = "one\ntwo\nTHREE\nfour"

    [hunk] = DiffEngine(context_lines=1).diff(old, new)

    assert hunk.header == "@@ -2,3 +2,3 @@"
    assert [(line.kind, line.text) for line in hunk.lines] == [
        (LineKind.CONTEXT, "two"),
        (LineKind.DELETE, "three"),
        (LineKind.INSERT, "THREE"),
        (LineKind.CONTEXT, "four"),
    ]


def test_insertion_into_empty_file_uses_zero_start() -> None:
    [hunk] = DiffEngine().diff("", "hello")
    assert hunk.header == "@@ -0,0 +1,1 @@"


def test_distant_changes_split_into_separate_hunks() -> None:
    old = "\n".join(f"line {n}" for n in range(1, 21))
    new = old.replace("line 2\n", "line two\n").replace("line 19", "line nineteen")

    hunks = DiffEngine(context_lines=2).diff(old, new)

    assert [hunk.header for hunk in hunks] == ["@@ -1,4 +1,4 @@", "@@ -17,4 +17,4 @@"]


def test_render_unified_has_file_headers_and_optional_gutter() -> None:
    engine = DiffEngine()
    rendered = engine.render_unified("a\nb", "a\nc", "src/x.py")
    assert rendered.splitlines() == [
        "--- a/src/x.py",
        "+++ b/src/x.py",
        "@@ -1,2 +1,2 @@",
        " a",
        "-b",
        "+c",
    ]

    numbered = engine.render_unified("a\nb", "a\nc", "src/x.py", line_numbers=True)
    assert "-   2 | b" in numbered.splitlines()


def test_render_rich_styles_changed_lines() -> None:
    text = DiffEngine().render_rich("a\nb", "a\nc", "f.txt")
    assert text.plain.splitlines()[-2:] == ["-b", "+c"]
    assert any(span.style and "red" in str(span.style) for span in text.spans)


def test_from_config_ignores_malformed_values() -> None:
    engine = DiffEngine.from_config({"context_lines": 1, "max_hunk_lines": "many"})
    assert engine.context_lines == 1
    assert engine.max_hunk_lines == DiffEngine().max_hunk_lines


def test_side_by_side_marks_positional_differences() -> None:
    assert render_side_by_side("a\nb", "a\nc\nd", "f.txt").splitlines() == [
        "--- Diff: f.txt ---",
        "    1 | a",
        "-  2 | b",
        "+  2 | c",
        "+  3 | d",
    ]
