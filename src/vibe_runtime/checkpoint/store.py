"""Checkpoint capture and rollback for project working trees."""

from __future__ import annotations

import asyncio
import builtins
import itertools
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from vibe_runtime.constants import DEFAULT_MAX_CHECKPOINT_FILE_BYTES
from vibe_runtime.domain import ids
from vibe_runtime.domain.events import EventType
from vibe_runtime.domain.models import Checkpoint, CheckpointInfo, FileChangeType, FileDiff
from vibe_runtime.utils.fs import (
    atomic_write,
    is_ignored,
    iter_project_files,
    read_text_exact,
    resolve_inside,
)
from vibe_runtime.vcs.git import GitClient, GitError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from vibe_runtime.observability.events import EventBus

logger = structlog.get_logger(__name__)


class CheckpointError(RuntimeError):
    """Raised when a checkpoint cannot be captured, persisted or restored."""


class CheckpointStore:
    """
    Capture file state before mutations and restore it on demand.

    Each checkpoint is a full snapshot of the files it captured, so restoring
    one never depends on later checkpoints. When ``state_dir`` is given every
    checkpoint is also written to ``<state_dir>/<id>.json`` and can be loaded
    back by a later process.
    """

    def __init__(
        self,
        *,
        state_dir: Path | str | None = None,
        default_root: Path | str | None = None,
        max_file_bytes: int = DEFAULT_MAX_CHECKPOINT_FILE_BYTES,
        bus: EventBus | None = None,
    ) -> None:
        if max_file_bytes < 1:
            raise ValueError("max_file_bytes must be >= 1")
        self._state_dir = Path(state_dir) if state_dir is not None else None
        self._default_root = Path(default_root) if default_root is not None else None
        self._max_file_bytes = max_file_bytes
        self._bus = bus
        self._checkpoints: dict[str, Checkpoint] = {}
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        project_root: Path | str,
        bus: EventBus | None = None,
    ) -> CheckpointStore:
        section = config["checkpoints"]
        root = Path(project_root)
        state_dir: Path | None = None
        if section["persist"]:
            state_dir = Path(section["state_dir"])
            if not state_dir.is_absolute():
                state_dir = root / state_dir
        return cls(
            state_dir=state_dir,
            default_root=root,
            max_file_bytes=int(section["max_file_bytes"]),
            bus=bus,
        )

    @property
    def persistent(self) -> bool:
        return self._state_dir is not None

    async def create(
        self,
        session_id: str,
        description: str,
        *,
        root: Path | str | None = None,
    ) -> str:
        """Capture the working tree under ``root`` and return the checkpoint id."""

        base = self._resolve_root(root)
        checkpoint = await asyncio.to_thread(self._capture, session_id, description, base)
        async with self._lock:
            self._remember(checkpoint)
        await self._persist(checkpoint)

        logger.info(
            "checkpoint_created",
            checkpoint_id=checkpoint.id,
            session_id=session_id,
            file_count=len(checkpoint.file_diffs),
            git=checkpoint.is_git,
        )
        self._emit(
            EventType.CHECKPOINT_CREATED,
            {
                "checkpoint_id": checkpoint.id,
                "session_id": session_id,
                "description": description,
                "file_count": len(checkpoint.file_diffs),
            },
        )
        return checkpoint.id

    async def record_created(
        self, checkpoint_id: str, paths: Iterable[Path | str]
    ) -> builtins.list[str]:
        """Record ``paths`` as files created after capture; returns the new entries."""

        checkpoint = await self._require(checkpoint_id)
        root = Path(checkpoint.root)
        added: builtins.list[str] = []
        async with self._lock:
            known = checkpoint.tracked_paths()
            for raw in paths:
                relative = _relative_to_root(raw, root)
                if relative in known or relative in checkpoint.baseline_paths:
                    continue
                checkpoint.file_diffs.append(FileDiff(path=relative, type=FileChangeType.CREATED))
                known = known | {relative}
                added.append(relative)
        if added:
            await self._persist(checkpoint)
        return added

    async def track_new_files(self, checkpoint_id: str) -> builtins.list[str]:
        """Scan the root and record every file that did not exist at capture."""

        checkpoint = await self._require(checkpoint_id)
        present = await asyncio.to_thread(_current_paths, Path(checkpoint.root), checkpoint.is_git)
        candidates = sorted(present - checkpoint.baseline_paths - checkpoint.tracked_paths())
        return await self.record_created(checkpoint_id, candidates)

    async def restore(self, checkpoint_id: str) -> bool:
        """
        Restore the files captured by ``checkpoint_id`` and consume it.

        Returns ``False`` for unknown (or already consumed) ids.
        """

        checkpoint = await self.get(checkpoint_id)
        if checkpoint is None:
            logger.warning("checkpoint_not_found", checkpoint_id=checkpoint_id)
            return False

        failures = await asyncio.to_thread(_restore_files, checkpoint)
        if failures:
            raise CheckpointError(
                f"failed to restore {len(failures)} file(s) from {checkpoint_id}: "
                + ", ".join(sorted(failures))
            )

        async with self._lock:
            self._checkpoints.pop(checkpoint_id, None)
            self._order.pop(checkpoint_id, None)
        await self._delete_persisted(checkpoint_id)

        logger.info(
            "checkpoint_restored",
            checkpoint_id=checkpoint_id,
            file_count=len(checkpoint.file_diffs),
        )
        self._emit(
            EventType.CHECKPOINT_RESTORED,
            {"checkpoint_id": checkpoint_id, "file_count": len(checkpoint.file_diffs)},
        )
        return True

    async def discard(self, checkpoint_id: str) -> bool:
        """Forget a checkpoint without restoring it."""

        async with self._lock:
            known = self._checkpoints.pop(checkpoint_id, None) is not None
            self._order.pop(checkpoint_id, None)
        deleted = await self._delete_persisted(checkpoint_id)
        if known or deleted:
            logger.debug("checkpoint_discarded", checkpoint_id=checkpoint_id)
        return known or deleted

    async def get(self, checkpoint_id: str) -> Checkpoint | None:
        async with self._lock:
            checkpoint = self._checkpoints.get(checkpoint_id)
        if checkpoint is not None or self._state_dir is None:
            return checkpoint

        path = self._state_dir / f"{checkpoint_id}.json"
        if not path.is_file():
            return None
        loaded = await asyncio.to_thread(_load_checkpoint, path)
        async with self._lock:
            return self._checkpoints.setdefault(loaded.id, loaded)

    async def list(self, session_id: str | None = None) -> builtins.list[CheckpointInfo]:
        """Checkpoints for ``session_id`` (all sessions when ``None``), newest first."""

        if self._state_dir is not None:
            for loaded in await asyncio.to_thread(_load_all, self._state_dir):
                async with self._lock:
                    self._checkpoints.setdefault(loaded.id, loaded)

        async with self._lock:
            selected = [
                checkpoint
                for checkpoint in self._checkpoints.values()
                if session_id is None or checkpoint.session_id == session_id
            ]
            order = dict(self._order)
        selected.sort(
            key=lambda item: (item.created_at, order.get(item.id, -1), item.id), reverse=True
        )
        return [checkpoint.info() for checkpoint in selected]

    def _resolve_root(self, root: Path | str | None) -> Path:
        if root is not None:
            return Path(root).resolve()
        if self._default_root is not None:
            return self._default_root.resolve()
        return Path.cwd().resolve()

    def _remember(self, checkpoint: Checkpoint) -> None:
        self._checkpoints[checkpoint.id] = checkpoint
        self._order[checkpoint.id] = next(self._sequence)

    async def _require(self, checkpoint_id: str) -> Checkpoint:
        checkpoint = await self.get(checkpoint_id)
        if checkpoint is None:
            raise CheckpointError(f"unknown checkpoint: {checkpoint_id}")
        return checkpoint

    def _capture(self, session_id: str, description: str, root: Path) -> Checkpoint:
        if not root.is_dir():
            raise CheckpointError(f"checkpoint root is not a directory: {root}")

        is_git = GitClient.is_repository(root)
        dirty: set[str] = set()
        if is_git:
            try:
                modified = GitClient(root).list_modified_files()
            except GitError as exc:
                raise CheckpointError(f"unable to list modified files: {exc}") from exc
            dirty = {path for path in modified if not is_ignored(path)}
            candidates = sorted(dirty)
        else:
            candidates = [path.as_posix() for path in iter_project_files(root)]

        diffs: list[FileDiff] = []
        for relative in candidates:
            content = self._read_capturable(root / relative, relative)
            if content is not None:
                diffs.append(
                    FileDiff(path=relative, type=FileChangeType.MODIFIED, original_content=content)
                )

        return Checkpoint(
            id=ids.generate_checkpoint_id(),
            session_id=session_id,
            description=description,
            created_at=datetime.now(tz=UTC),
            root=root.as_posix(),
            file_diffs=diffs,
            baseline_paths=_current_paths(root, is_git),
            dirty_paths=frozenset(dirty),
            is_git=is_git,
        )

    def _read_capturable(self, path: Path, relative: str) -> str | None:
        try:
            size = path.stat().st_size
        except OSError as exc:
            logger.warning("checkpoint_file_skipped", path=relative, reason=str(exc))
            return None
        if size > self._max_file_bytes:
            logger.warning(
                "checkpoint_file_skipped",
                path=relative,
                reason="too large",
                size_bytes=size,
                limit_bytes=self._max_file_bytes,
            )
            return None
        try:
            return read_text_exact(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("checkpoint_file_skipped", path=relative, reason=str(exc))
            return None

    async def _persist(self, checkpoint: Checkpoint) -> None:
        if self._state_dir is None:
            return
        path = self._state_dir / f"{checkpoint.id}.json"
        try:
            await asyncio.to_thread(atomic_write, path, checkpoint.to_json() + "\n")
        except OSError as exc:
            raise CheckpointError(f"unable to persist checkpoint {checkpoint.id}: {exc}") from exc

    async def _delete_persisted(self, checkpoint_id: str) -> bool:
        if self._state_dir is None:
            return False
        path = self._state_dir / f"{checkpoint_id}.json"
        try:
            existed = path.exists()
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as exc:
            logger.warning(
                "checkpoint_file_delete_failed", checkpoint_id=checkpoint_id, error=str(exc)
            )
            return False
        return existed

    def _emit(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self._bus is None:
            return
        self._bus.emit(event_type, payload)


def _relative_to_root(raw: Path | str, root: Path) -> str:
    candidate = Path(raw)
    if candidate.is_absolute():
        return candidate.resolve().relative_to(root.resolve()).as_posix()
    resolve_inside(root, candidate)
    return candidate.as_posix()


def _current_paths(root: Path, is_git: bool) -> frozenset[str]:
    if is_git:
        client = GitClient(root)
        listed = [*client.list_tracked_files(), *client.list_untracked_files()]
        return frozenset(
            path for path in listed if not is_ignored(path) and (root / path).exists()
        )
    return frozenset(path.as_posix() for path in iter_project_files(root))


def _restore_files(checkpoint: Checkpoint) -> list[str]:
    root = Path(checkpoint.root)
    baseline_dirs = _parent_dirs(checkpoint.baseline_paths)
    failures: list[str] = []
    for diff in reversed(checkpoint.file_diffs):
        target = root / diff.path
        try:
            if diff.type is FileChangeType.CREATED:
                target.unlink(missing_ok=True)
                _prune_new_dirs(root, diff.path, baseline_dirs)
            else:
                atomic_write(target, diff.original_content or "")
        except OSError as exc:
            logger.error("checkpoint_restore_file_failed", path=diff.path, error=str(exc))
            failures.append(diff.path)

    if checkpoint.is_git and GitClient.is_repository(root):
        client = GitClient(root)
        try:
            drifted = [
                path
                for path in client.list_modified_files()
                if path not in checkpoint.dirty_paths and path not in checkpoint.tracked_paths()
            ]
            client.checkout_paths(drifted)
        except GitError as exc:
            logger.error(
                "checkpoint_git_reset_failed", checkpoint_id=checkpoint.id, error=str(exc)
            )
            failures.append("<git checkout>")
    return failures


def _load_checkpoint(path: Path) -> Checkpoint:
    try:
        return Checkpoint.from_json(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CheckpointError(f"unable to load checkpoint {path.name}: {exc}") from exc


def _load_all(state_dir: Path) -> list[Checkpoint]:
    if not state_dir.is_dir():
        return []
    loaded: list[Checkpoint] = []
    for path in sorted(state_dir.glob("*.json")):
        try:
            loaded.append(_load_checkpoint(path))
        except CheckpointError as exc:
            logger.warning("checkpoint_load_skipped", path=path.name, error=str(exc))
    return loaded


__all__ = ["CheckpointError", "CheckpointStore"]


def _parent_dirs(paths: Iterable[str]) -> frozenset[str]:
    return frozenset(
        parent.as_posix() for path in paths for parent in Path(path).parents if parent.parts
    )


def _prune_new_dirs(root: Path, relative: str, baseline_dirs: frozenset[str]) -> None:
    """Remove empty directories above ``relative`` that did not exist at capture."""

    for parent in Path(relative).parents:
        if not parent.parts or parent.as_posix() in baseline_dirs:
            return
        directory = root / parent
        try:
            if any(directory.iterdir()):
                return
            directory.rmdir()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("checkpoint_dir_prune_failed", path=parent.as_posix(), error=str(exc))
            return
