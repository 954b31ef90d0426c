from typing import List, Optional
import re

from pydantic import BaseModel, ConfigDict, Field

from codeflow_core.config.settings import settings
from .definitions import ToolDef
from .workspace import Workspace, read_text_exact, write_text_atomic


SOURCE_SUFFIXES = frozenset({
    ".py", ".pyi", ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs",
    ".json", ".toml", ".yaml", ".yml", ".ini", ".cfg", ".md", ".txt",
    ".html", ".css", ".scss", ".sh", ".go", ".rs", ".java", ".kt",
    ".c", ".h", ".cpp", ".hpp", ".cs", ".rb", ".php", ".sql",
})


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReadFileArgs(_Args):
    file_path: str = Field(alias="filePath", description="The path to the file to read")
    start_line: Optional[int] = Field(default=None, alias="startLine", ge=1, description="Line number to start reading from (1-based)")
    end_line: Optional[int] = Field(default=None, alias="endLine", ge=1, description="Line number to stop reading at (1-based)")


class WriteFileArgs(_Args):
    file_path: str = Field(alias="filePath", description="The path to the file to write")
    content: str = Field(description="The content to write to the file")


class GrepArgs(_Args):
    pattern: str = Field(min_length=1, description="The regex pattern to search for")
    path: Optional[str] = Field(default=None, description="Optional path to search in (defaults to codebase root)")
    ignore_case: bool = Field(default=False, alias="ignoreCase", description="Whether to ignore case")


class GlobalFileSearchArgs(_Args):
    pattern: str = Field(min_length=1, description="The glob pattern to search for files (e.g. '*.ts', '**/components/**', 'App.*')")


class ListDirArgs(_Args):
    path: Optional[str] = Field(default=None, description="The directory to list; defaults to the codebase root")


def _make_read_file_tool(ws: Workspace) -> ToolDef:
    def _run(args: ReadFileArgs) -> str:
        path = ws.resolve(args.file_path)
        if not path.is_file():
            raise FileNotFoundError(f"file not found: {args.file_path}")
        content = read_text_exact(path)
        if args.start_line is None and args.end_line is None:
            return content
        lines = content.splitlines()
        start = (args.start_line or 1) - 1
        end = args.end_line if args.end_line is not None else len(lines)
        if start >= len(lines) or end <= start:
            return f"No lines in range {start + 1}-{end} ({len(lines)} lines in file)"
        return "\n".join(f"{n:>4}| {line}" for n, line in enumerate(lines[start:end], start=start + 1))

    return ToolDef(name="read_file", description="Read a file from the codebase. Use startLine/endLine for large files.", contract=ReadFileArgs, handler=_run)


def _make_write_file_tool(ws: Workspace) -> ToolDef:
    def _run(args: WriteFileArgs) -> str:
        path = ws.resolve(args.file_path)
        if path.is_dir():
            raise IsADirectoryError(f"path is a directory: {args.file_path}")
        write_text_atomic(path, args.content)
        return f"File written successfully: {ws.display(path)}"

    return ToolDef(name="write_file", description="Create a new file or overwrite an existing one with the given content.", contract=WriteFileArgs, handler=_run)


def _make_grep_tool(ws: Workspace, max_results: int) -> ToolDef:
    def _run(args: GrepArgs) -> str:
        try:
            regex = re.compile(args.pattern, re.IGNORECASE if args.ignore_case else 0)
        except re.error as exc:
            raise ValueError(f"invalid regex {args.pattern!r}: {exc}") from exc
        base = ws.resolve(args.path or ".")
        if not base.exists():
            raise FileNotFoundError(f"path not found: {args.path}")
        files = [base] if base.is_file() else sorted(p for p in base.rglob("*") if p.is_file())
        results: List[str] = []
        for path in files:
            if ws.is_ignored(path) or (path != base and path.suffix.lower() not in SOURCE_SUFFIXES):
                continue
            try:
                text = path.read_text(encoding="utf-8", errors="ignore")
            except OSError:
                continue
            for line_no, line in enumerate(text.splitlines(), start=1):
                if regex.search(line):
                    results.append(f"{ws.display(path)}:{line_no}: {line.strip()}")
                    if len(results) >= max_results:
                        results.append("... truncated ...")
                        return "\n".join(results)
        if not results:
            return f"No matches found for pattern: {args.pattern}"
        return "\n".join(results)

    return ToolDef(
        name="grep",
        description="Exact text/regex search. Use for: locating symbols, function signatures, interfaces, imports, error identifiers",
        contract=GrepArgs,
        handler=_run,
    )


def _make_global_file_search_tool(ws: Workspace) -> ToolDef:
    def _run(args: GlobalFileSearchArgs) -> str:
        matches = sorted(
            ws.display(p)
            for p in ws.root.glob(args.pattern)
            if p.is_file() and ws.contains(p) and not ws.is_ignored(p)
        )
        if not matches:
            return f"No files found matching pattern: {args.pattern}"
        return "\n".join(matches)

    return ToolDef(name="global_file_search", description="Search for files by name pattern or extension", contract=GlobalFileSearchArgs, handler=_run)


def _make_list_dir_tool(ws: Workspace) -> ToolDef:
    def _run(args: ListDirArgs) -> str:
        target = ws.resolve(args.path or ".")
        if not target.is_dir():
            raise NotADirectoryError(f"not a directory: {args.path or '.'}")
        entries = [e for e in target.iterdir() if not e.name.startswith(".") and e.name != "node_modules"]
        entries.sort(key=lambda e: (not e.is_dir(), e.name.lower()))
        if not entries:
            return "Directory is empty"
        return "\n".join(f"{e.name}/" if e.is_dir() else e.name for e in entries)

    return ToolDef(name="list_dir", description="List the directory contents", contract=ListDirArgs, handler=_run)


def file_tools(ws: Workspace, *, include_writes: bool = True, grep_max_results: Optional[int] = None) -> List[ToolDef]:
    tools = [
        _make_grep_tool(ws, grep_max_results or settings.grep_max_results),
        _make_read_file_tool(ws),
        _make_global_file_search_tool(ws),
        _make_list_dir_tool(ws),
    ]
    if include_writes:
        tools.insert(2, _make_write_file_tool(ws))
    return tools
