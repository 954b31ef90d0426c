"""Tool system: argument contracts, role-scoped registries and the sequential executor."""

from .definitions import ToolDef
from .executor import ToolExecutor
from .registry import ROLES, ToolRegistry, build_registries, build_registry
from .search_tools import SearchHit, SearchIndex
from .workspace import Workspace

__all__ = [
    "ROLES",
    "SearchHit",
    "SearchIndex",
    "ToolDef",
    "ToolExecutor",
    "ToolRegistry",
    "Workspace",
    "build_registries",
    "build_registry",
]
