"""Workspace-scoped path resolution and atomic writes."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from codeflow_core.domain.exceptions import SecurityError

IGNORED_DIRS = frozenset({"node_modules", "dist", "build", ".git", "__pycache__", ".venv", "venv"})


@dataclass
class Workspace:
    """Filesystem root every tool is confined to."""

    root: Path

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser().resolve()

    def resolve(self, raw: str) -> Path:
        """Normalize ``raw`` against the root; escapes are rejected before any I/O."""

        text = (raw or "").strip() or "."
        candidate = Path(text).expanduser()
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve()
        if not self.contains(resolved):
            raise SecurityError(code="PATH_ESCAPE", message=f"path outside workspace root: {raw}")
        return resolved

    def contains(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.root)
            return True
        except ValueError:
            return False

    def display(self, path: Path) -> str:
        try:
            rel = path.resolve().relative_to(self.root)
        except ValueError:
            return str(path)
        return rel.as_posix() or "."

    def is_ignored(self, path: Path) -> bool:
        try:
            parts = path.resolve().relative_to(self.root).parts
        except ValueError:
            return True
        return any(part in IGNORED_DIRS for part in parts)


def read_text_exact(path: Path) -> str:
    """Read without newline translation so CRLF files round-trip unchanged."""

    with path.open("r", encoding="utf-8", newline="") as fh:
        return fh.read()


def write_text_atomic(path: Path, content: str) -> None:
    """Write through a sibling temp file so readers never see partial content."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
    try:
        # newline="" keeps the caller's line endings byte for byte
        with tmp_path.open("w", encoding="utf-8", newline="") as fh:
            fh.write(content)
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
