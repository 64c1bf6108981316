"""
vibe-runtime: package root

File: src/vibe_runtime/__init__.py

Purpose
- Execution substrate for a coding-agent CLI: role classification, bounded
  parallel agent scheduling, gated tool dispatch, checkpoints and diffs.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
- Heavy submodules are imported by callers, not re-exported here.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
