"""Unified-diff hunk parser and line-exact applier.

Hunks are applied in file order to a single working copy of the file's lines.
Removed and context lines are compared verbatim against the working copy;
the first mismatch aborts the whole patch and nothing of the partially
patched copy is returned. Each line keeps its own terminator, so files
with mixed CRLF and LF endings round-trip unchanged outside the edited lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Tuple

from codeflow_core.domain.exceptions import PatchApplyError

HUNK_HEADER = re.compile(r"^@@\s*-(\d+)(?:,(\d+))?\s*\+(\d+)(?:,(\d+))?\s*@@")
CONTEXT_WINDOW = 2
LINE_BREAK = re.compile(r"(\r\n|\n)")

LineKind = Literal["add", "remove", "context", "metadata"]


@dataclass(frozen=True)
class HunkLine:
    kind: LineKind
    text: str


@dataclass
class PatchHunk:
    """One ``@@ -a,b +c,d @@`` block.

    Counts default to 1 when the header omits them, as in unified diff.
    """

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: List[HunkLine] = field(default_factory=list)
    section: str = ""

    @property
    def added(self) -> int:
        return sum(1 for line in self.lines if line.kind == "add")

    @property
    def removed(self) -> int:
        return sum(1 for line in self.lines if line.kind == "remove")


@dataclass(frozen=True)
class PatchFailure:
    """First mismatch found while applying a patch."""

    reason: Literal["remove_mismatch", "context_mismatch", "syntax"]
    message: str
    hunk_index: Optional[int] = None
    line_number: Optional[int] = None
    expected: Optional[str] = None
    actual: Optional[str] = None
    nearby: Tuple[Tuple[int, str], ...] = ()


@dataclass(frozen=True)
class PatchResult:
    success: bool
    content: Optional[str] = None
    failure: Optional[PatchFailure] = None

    @classmethod
    def ok(cls, content: str) -> "PatchResult":
        return cls(success=True, content=content)

    @classmethod
    def failed(cls, failure: PatchFailure) -> "PatchResult":
        return cls(success=False, failure=failure)

    @property
    def error(self) -> str:
        return self.failure.message if self.failure else ""


def parse_patch(diff_text: str) -> List[PatchHunk]:
    """Split patch text into hunks.

    Anything before the first header (``---``/``+++`` lines, ``diff --git``,
    ``*** Begin Patch`` envelopes) is skipped.
    """

    raw_lines = re.split(r"\r?\n", diff_text or "")
    if raw_lines and raw_lines[-1] == "":
        raw_lines.pop()

    hunks: List[PatchHunk] = []
    current: Optional[PatchHunk] = None
    for raw in raw_lines:
        if raw.startswith("@@"):
            match = HUNK_HEADER.match(raw)
            if not match:
                raise PatchApplyError(code="PATCH_SYNTAX", message=f"Malformed hunk header: {raw!r}")
            current = PatchHunk(
                old_start=int(match.group(1)),
                old_count=_count(match.group(2)),
                new_start=int(match.group(3)),
                new_count=_count(match.group(4)),
                section=raw[match.end():].strip(),
            )
            hunks.append(current)
            continue
        if current is None:
            continue
        current.lines.append(_classify(raw))
    return hunks


def apply_patch(original: str, diff_text: str) -> PatchResult:
    try:
        hunks = parse_patch(diff_text)
    except PatchApplyError as exc:
        return PatchResult.failed(PatchFailure(reason="syntax", message=exc.message))
    return apply_hunks(original, hunks)


def apply_hunks(original: str, hunks: List[PatchHunk]) -> PatchResult:
    if not hunks:
        return PatchResult.failed(
            PatchFailure(reason="syntax", message="No hunks found in patch; expected at least one '@@ -a,b +c,d @@' header.")
        )

    working, endings = _split_lines(original)
    newline = next((e for e in endings if e), "\n")
    # terminator of the final line: "" when the file has no trailing newline
    final = endings[-1] if endings else newline
    delta = 0
    for number, hunk in enumerate(hunks, start=1):
        cursor = _hunk_cursor(hunk, delta)
        # a replacement line inherits the ending of the line it replaces
        replaced = ""
        for line in hunk.lines:
            if line.kind == "metadata":
                continue
            if line.kind == "add":
                cursor = min(cursor, len(working))
                working.insert(cursor, line.text)
                endings.insert(cursor, replaced or _neighbor_ending(endings, cursor, newline))
                cursor += 1
                continue
            actual = working[cursor] if cursor < len(working) else None
            if actual != line.text:
                return PatchResult.failed(_mismatch(number, line, cursor, actual, working))
            if line.kind == "remove":
                # the next line shifts into the gap, so the cursor stays
                del working[cursor]
                replaced = endings.pop(cursor)
            else:
                replaced = ""
                cursor += 1
        delta += hunk.added - hunk.removed

    return PatchResult.ok(_join_lines(working, endings, newline, final))


def reverse_hunks(hunks: List[PatchHunk]) -> List[PatchHunk]:
    """Inverse of ``hunks``: additions become removals and ranges swap sides."""

    swap = {"add": "remove", "remove": "add"}
    return [
        PatchHunk(
            old_start=hunk.new_start,
            old_count=hunk.new_count,
            new_start=hunk.old_start,
            new_count=hunk.old_count,
            lines=[HunkLine(kind=swap.get(line.kind, line.kind), text=line.text) for line in hunk.lines],
            section=hunk.section,
        )
        for hunk in hunks
    ]


def format_hunks(hunks: List[PatchHunk]) -> str:
    prefixes = {"add": "+", "remove": "-", "context": " ", "metadata": ""}
    out: List[str] = []
    for hunk in hunks:
        header = f"@@ -{hunk.old_start},{hunk.old_count} +{hunk.new_start},{hunk.new_count} @@"
        out.append(f"{header} {hunk.section}" if hunk.section else header)
        out.extend(prefixes[line.kind] + line.text for line in hunk.lines)
    return "\n".join(out) + "\n"


def _hunk_cursor(hunk: PatchHunk, delta: int) -> int:
    # The target (+) line is already in post-edit coordinates. A zero-length
    # new side names the line *before* the hunk, so fall back to the old
    # start shifted by what earlier hunks added or removed.
    if hunk.new_count == 0:
        return max(0, hunk.old_start - 1 + delta)
    return max(0, hunk.new_start - 1)


def _classify(raw: str) -> HunkLine:
    if raw.startswith("+"):
        return HunkLine("add", raw[1:])
    if raw.startswith("-"):
        return HunkLine("remove", raw[1:])
    if raw.startswith(" "):
        return HunkLine("context", raw[1:])
    if raw.startswith("\\") or raw.startswith("***"):
        return HunkLine("metadata", raw)
    return HunkLine("context", raw)


def _count(raw: Optional[str]) -> int:
    return int(raw) if raw is not None else 1


def _split_lines(text: str) -> Tuple[List[str], List[str]]:
    """Split into line texts and each line's own terminator; the last may be empty."""

    parts = LINE_BREAK.split(text)
    texts, endings = parts[0::2], parts[1::2]
    if texts[-1] == "":
        texts.pop()
    else:
        endings.append("")
    return texts, endings


def _neighbor_ending(endings: List[str], cursor: int, newline: str) -> str:
    # ending of the line about to be pushed down, else of the line above
    for index in (cursor, cursor - 1):
        if 0 <= index < len(endings) and endings[index]:
            return endings[index]
    return newline


def _join_lines(lines: List[str], endings: List[str], newline: str, final: str) -> str:
    out: List[str] = []
    last = len(lines) - 1
    for index, (text, ending) in enumerate(zip(lines, endings)):
        if index == last:
            ending = final
        elif not ending:
            ending = newline
        out.append(text + ending)
    return "".join(out)


def _mismatch(hunk_index: int, line: HunkLine, cursor: int, actual: Optional[str], working: List[str]) -> PatchFailure:
    line_number = cursor + 1
    start = max(0, cursor - CONTEXT_WINDOW)
    end = min(len(working), cursor + CONTEXT_WINDOW + 1)
    nearby = tuple((i + 1, working[i]) for i in range(start, end))
    verb = "remove" if line.kind == "remove" else "find context"
    reason = "remove_mismatch" if line.kind == "remove" else "context_mismatch"

    if actual is None:
        message = (
            f"Hunk {hunk_index} failed: expected to {verb} \"{line.text}\" at file line {line_number}, "
            f"but the file has only {len(working)} lines."
        )
    else:
        message = (
            f"Hunk {hunk_index} failed at file line {line_number}.\n"
            f"Expected to {verb}: \"{line.text}\"\n"
            f"Found: \"{actual}\""
        )
    if nearby:
        message += "\n\nNearby file lines:\n" + "\n".join(f"{n}: {text}" for n, text in nearby)
    return PatchFailure(
        reason=reason,
        message=message,
        hunk_index=hunk_index,
        line_number=line_number,
        expected=line.text,
        actual=actual,
        nearby=nearby,
    )
