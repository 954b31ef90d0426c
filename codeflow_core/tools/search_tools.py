"""search_codebase: thin adapter over an external semantic search index."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from .definitions import ToolDef


INDEX_NOT_READY = "Vector store not initialized. Please wait for indexing to complete."


@dataclass(frozen=True)
class SearchHit:
    file: str
    start_line: int
    end_line: int
    snippet: str
    score: float


class SearchIndex(Protocol):
    """语义检索协作方；索引构建与文件监听不在本包范围内。"""

    def is_ready(self) -> bool:
        ...

    def search(self, query: str, k: int) -> List[SearchHit]:
        ...


class SearchCodebaseArgs(BaseModel):
    query: str = Field(min_length=1, description="The query to search the codebase for")


def format_hits(hits: List[SearchHit]) -> str:
    blocks = []
    for index, hit in enumerate(hits, start=1):
        blocks.append(
            f"{index}. File: {hit.file} (Lines {hit.start_line}-{hit.end_line}) [score {hit.score:.3f}]\n"
            f"   Content: {hit.snippet}"
        )
    return "\n\n".join(blocks)


def _make_search_codebase_tool(index: Optional[SearchIndex], k: int) -> ToolDef:
    def _run(args: SearchCodebaseArgs) -> str:
        if index is None or not index.is_ready():
            return INDEX_NOT_READY
        hits = index.search(args.query, k)
        if not hits:
            return f"No results found for query: {args.query}"
        return format_hits(hits)

    return ToolDef(
        name="search_codebase",
        description="Semantic search through the codebase; best for finding functionality by meaning",
        contract=SearchCodebaseArgs,
        handler=_run,
    )


def search_tools(index: Optional[SearchIndex], *, k: int) -> List[ToolDef]:
    return [_make_search_codebase_tool(index, k)]
