"""diff_edit_file: apply a unified diff to one workspace file, all or nothing."""

from __future__ import annotations

from pydantic import BaseModel, Field

from codeflow_core.domain.exceptions import PatchApplyError
from codeflow_core.infrastructure.logging.logger import logger
from codeflow_core.patching import apply_patch
from .definitions import ToolDef
from .workspace import Workspace, read_text_exact, write_text_atomic


DIFF_EDIT_DESCRIPTION = """Edit a file using diff format. Provide a unified diff patch to apply multiple line changes at once.
Every '-' and ' ' line must match the file exactly; if any line does not match, nothing is written.
    @@ -1,1 +1,1 @@
    -# App
    +# My App
    @@ -4,0 +5,2 @@
    +Installation:
    +pip install -e ."""


class DiffEditArgs(BaseModel):
    path: str = Field(description="The path to the file to edit")
    diff: str = Field(
        min_length=1,
        description=(
            "The unified diff patch to apply: '-' lines to remove, '+' lines to add, "
            "' ' unchanged context lines, each hunk introduced by an '@@ -a,b +c,d @@' header"
        ),
    )


def _make_diff_edit_tool(ws: Workspace) -> ToolDef:
    def _run(args: DiffEditArgs) -> str:
        path = ws.resolve(args.path)
        if not path.is_file():
            raise FileNotFoundError(f"file not found: {args.path} (use write_file to create new files)")
        original = read_text_exact(path)
        result = apply_patch(original, args.diff)
        display = ws.display(path)
        if not result.success:
            failure = result.failure
            logger.warning(
                "patch.failed",
                extra={"extra": {
                    "path": display,
                    "reason": failure.reason,
                    "hunk": failure.hunk_index,
                    "line": failure.line_number,
                }},
            )
            raise PatchApplyError(
                code="PATCH_MISMATCH",
                message=f"Error applying diff to {display}: {result.error}",
                path=display,
            )
        write_text_atomic(path, result.content)

        before = len(original.splitlines())
        after = len(result.content.splitlines())
        if after > before:
            summary = f"{after - before} lines added"
        elif after < before:
            summary = f"{before - after} lines removed"
        else:
            summary = "line count unchanged"
        logger.info("patch.applied", extra={"extra": {"path": display, "lines_before": before, "lines_after": after}})
        return f"File edited successfully using diff: {display}\n\nApplied diff patch:\n{args.diff}\n\nSummary: {summary}"

    return ToolDef(name="diff_edit_file", description=DIFF_EDIT_DESCRIPTION, contract=DiffEditArgs, handler=_run)


def edit_tools(ws: Workspace) -> list[ToolDef]:
    return [_make_diff_edit_tool(ws)]
