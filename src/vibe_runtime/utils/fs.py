"""
vibe-runtime: filesystem utilities

File: src/vibe_runtime/utils/fs.py

Purpose
- Atomic writes for checkpoints and edited files.
- Guarded deletion and containment checks for sandboxes and tool paths.
- Project walking that skips VCS, dependency and build directories.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import fnmatch
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from vibe_runtime.constants import IGNORED_DIR_NAMES, IGNORED_FILE_NAMES, IGNORED_FILE_SUFFIXES

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

PathLike = str | os.PathLike[str]

__all__ = [
    "PathLike",
    "atomic_write",
    "copy_project_tree",
    "is_ignored",
    "is_within",
    "iter_project_files",
    "read_text_exact",
    "resolve_inside",
    "safe_delete",
    "temp_directory",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``, creating parent directories.

    The write strategy is:
    1. create temp file in the same directory,
    2. write + flush + fsync file data,
    3. replace target via ``os.replace``.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target_parent = target.parent.resolve(strict=True)

    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target_parent),
    )
    temp_path = Path(temp_name)

    try:
        payload = data if isinstance(data, bytes) else data.encode(encoding)
        with os.fdopen(fd, "wb") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        if target.exists():
            with contextlib.suppress(OSError):
                shutil.copymode(target, temp_path)
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def read_text_exact(path: PathLike, *, encoding: str = "utf-8") -> str:
    """Decode ``path`` without newline translation, so CRLF survives a rewrite."""

    return Path(path).read_bytes().decode(encoding)


def is_within(child: PathLike, parent: PathLike) -> bool:
    """Return ``True`` if ``child`` resolves to a location inside ``parent``.

    ``child`` need not exist yet; its nearest existing ancestor is resolved so
    symlinked parents cannot escape.
    """

    try:
        resolved_parent = Path(parent).resolve(strict=True)
    except FileNotFoundError:
        return False
    if not resolved_parent.is_dir():
        return False

    resolved_child = Path(child).resolve(strict=False)
    return resolved_child == resolved_parent or _is_relative_to(resolved_child, resolved_parent)


def resolve_inside(root: PathLike, relative: PathLike) -> Path:
    """Join ``relative`` onto ``root`` and refuse results that escape ``root``."""

    base = Path(root)
    candidate = Path(relative)
    joined = candidate if candidate.is_absolute() else base / candidate
    if not is_within(joined, base):
        raise ValueError(f"path escapes working directory: {relative!s}")
    return joined.resolve(strict=False)


def safe_delete(path: PathLike, workspace_root: PathLike) -> None:
    """
    Delete ``path`` only if it is contained within ``workspace_root``.

    Symlinks are unlinked without traversing into their targets.
    """

    workspace = Path(workspace_root).resolve(strict=True)
    if not workspace.is_dir():
        raise NotADirectoryError(f"{workspace!s} is not a directory")

    target = Path(path)
    candidate = target.parent.resolve(strict=True) / target.name
    if not _is_relative_to(candidate, workspace):
        raise ValueError(f"refusing to delete path outside workspace root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return
    if target.is_dir():
        shutil.rmtree(target)
        return
    target.unlink()


@contextmanager
def temp_directory(prefix: str = "vibe-") -> Iterator[Path]:
    """Yield a temporary directory path and clean it up on exit."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)


def is_ignored(relative: PathLike, extra_patterns: Iterable[str] = ()) -> bool:
    """Return ``True`` when any component of ``relative`` is a skipped name."""

    parts = Path(relative).parts
    if any(part in IGNORED_DIR_NAMES for part in parts[:-1]):
        return True
    if not parts:
        return False
    name = parts[-1]
    if name in IGNORED_DIR_NAMES or name in IGNORED_FILE_NAMES:
        return True
    if any(name.endswith(suffix) for suffix in IGNORED_FILE_SUFFIXES):
        return True
    return any(fnmatch.fnmatch(name, pattern) for pattern in extra_patterns)


def iter_project_files(root: PathLike, extra_patterns: Iterable[str] = ()) -> Iterator[Path]:
    """Yield project files under ``root`` as relative paths, sorted per directory."""

    base = Path(root)
    patterns = tuple(extra_patterns)
    for dirpath, dirnames, filenames in os.walk(base):
        current = Path(dirpath)
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not is_ignored((current / name).relative_to(base), patterns)
            and not (current / name).is_symlink()
        )
        for filename in sorted(filenames):
            relative = (current / filename).relative_to(base)
            if is_ignored(relative, patterns):
                continue
            yield relative


def copy_project_tree(source: PathLike, destination: PathLike) -> int:
    """Copy non-ignored project files from ``source`` into ``destination``."""

    src = Path(source)
    dst = Path(destination)
    copied = 0
    for relative in iter_project_files(src):
        target = dst / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src / relative, target)
        copied += 1
    return copied


def _is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
    except ValueError:
        return False
    return True
