"""Diff patch engine: parse unified-diff hunks and apply them line-exact."""

from .diff_patch import (
    HunkLine,
    PatchFailure,
    PatchHunk,
    PatchResult,
    apply_hunks,
    apply_patch,
    format_hunks,
    parse_patch,
    reverse_hunks,
)

__all__ = [
    "HunkLine",
    "PatchFailure",
    "PatchHunk",
    "PatchResult",
    "apply_hunks",
    "apply_patch",
    "format_hunks",
    "parse_patch",
    "reverse_hunks",
]
