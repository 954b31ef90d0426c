"""run_terminal_cmd: deny-list check, hard timeout and bounded output."""

from __future__ import annotations

import os
import signal
import subprocess
import tempfile
from typing import Iterable, List

from pydantic import BaseModel, Field

from codeflow_core.domain.exceptions import BusinessError, SecurityError
from codeflow_core.infrastructure.logging.logger import logger
from .definitions import ToolDef
from .workspace import Workspace


class RunTerminalCmdArgs(BaseModel):
    cmd: str = Field(min_length=1, description="The command to run")


def _normalize(command: str) -> str:
    return " ".join(command.lower().split())


def check_command(command: str, deny_list: Iterable[str]) -> None:
    """Reject commands containing any deny-listed substring."""

    normalized = _normalize(command)
    for pattern in deny_list:
        needle = _normalize(pattern)
        if needle and needle in normalized:
            raise SecurityError(code="COMMAND_DENIED", message=f"Command blocked for security: contains '{pattern}'")


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:  # pragma: no cover - windows
            proc.kill()
    except ProcessLookupError:
        pass
    proc.wait()


def run_command(command: str, *, cwd: str, timeout: float, max_output_bytes: int) -> str:
    """Run ``command`` through the shell.

    stdout and stderr are spooled to a temporary file, so a chatty process
    cannot grow memory; only ``max_output_bytes`` are read back.
    """

    with tempfile.TemporaryFile() as spool:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=spool,
            stderr=subprocess.STDOUT,
            start_new_session=True,
        )
        try:
            returncode = proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(proc)
            raise BusinessError(code="COMMAND_TIMEOUT", message=f"Command timed out after {timeout:g} seconds")
        spool.seek(0)
        raw = spool.read(max_output_bytes + 1)

    truncated = len(raw) > max_output_bytes
    output = raw[:max_output_bytes].decode("utf-8", errors="replace").strip()
    if truncated:
        raise BusinessError(
            code="COMMAND_OUTPUT_LIMIT",
            message=f"Command output exceeded {max_output_bytes} bytes; first {max_output_bytes} bytes:\n{output}",
        )
    if returncode != 0:
        raise BusinessError(
            code="COMMAND_FAILED",
            message=f"Command exited with code {returncode}\n{output}".rstrip(),
            returncode=returncode,
        )
    return output or "Command completed with no output"


def _make_run_terminal_cmd_tool(ws: Workspace, *, timeout: float, max_output_bytes: int, deny_list: List[str]) -> ToolDef:
    def _run(args: RunTerminalCmdArgs) -> str:
        check_command(args.cmd, deny_list)
        logger.info("shell.run", extra={"extra": {"cmd": args.cmd[:200], "timeout": timeout}})
        return run_command(args.cmd, cwd=str(ws.root), timeout=timeout, max_output_bytes=max_output_bytes)

    return ToolDef(
        name="run_terminal_cmd",
        description="Run a terminal command in the codebase root (builds, tests, installs, git)",
        contract=RunTerminalCmdArgs,
        handler=_run,
    )


def shell_tools(ws: Workspace, *, timeout: float, max_output_bytes: int, deny_list: List[str]) -> List[ToolDef]:
    return [_make_run_terminal_cmd_tool(ws, timeout=timeout, max_output_bytes=max_output_bytes, deny_list=list(deny_list))]
