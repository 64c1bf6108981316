"""Checkpoint capture and rollback."""

from vibe_runtime.checkpoint.store import CheckpointError, CheckpointStore

__all__ = ["CheckpointError", "CheckpointStore"]
