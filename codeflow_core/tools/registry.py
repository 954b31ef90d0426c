"""Role-scoped, read-only tool registries.

Each role gets its own closed mapping ``name -> ToolDef``; registries are built
once (per workspace) and never mutated afterwards.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, List, Literal, Mapping, Optional, Union, get_args

from codeflow_core.config.settings import Settings, settings as default_settings
from codeflow_core.domain.exceptions import ValidationError
from .definitions import ToolDef
from .edit_tools import edit_tools
from .file_tools import file_tools
from .search_tools import SearchIndex, search_tools
from .shell_tools import shell_tools
from .workspace import Workspace


AgentRole = Literal["coder", "reviewer", "planner", "creator"]
ROLES: tuple = get_args(AgentRole)

# 只有 coder 可以改动文件，其它角色只读
WRITE_ROLES = frozenset({"coder"})


class ToolRegistry(Mapping[str, ToolDef]):
    def __init__(self, role: str, tools: List[ToolDef]):
        self.role = role
        self._tools: Mapping[str, ToolDef] = MappingProxyType({tool.name: tool for tool in tools})

    def __getitem__(self, name: str) -> ToolDef:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> List[ToolDef]:
        return list(self._tools.values())

    @property
    def approval_required(self) -> FrozenSet[str]:
        return frozenset(name for name, tool in self._tools.items() if tool.requires_approval)


def check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationError(code="INVALID_ROLE", message=f"Invalid agent role: {role!r}; expected one of {', '.join(ROLES)}")
    return role


def build_registry(
    role: str,
    workspace_root: Optional[Union[str, Path]] = None,
    *,
    search_index: Optional[SearchIndex] = None,
    config: Optional[Settings] = None,
) -> ToolRegistry:
    check_role(role)
    cfg = config or default_settings
    ws = Workspace(Path(workspace_root or cfg.workspace_root))
    writable = role in WRITE_ROLES

    tools: List[ToolDef] = []
    tools.extend(search_tools(search_index, k=cfg.search_k))
    tools.extend(file_tools(ws, include_writes=writable, grep_max_results=cfg.grep_max_results))
    if writable:
        tools.extend(edit_tools(ws))
    tools.extend(
        shell_tools(
            ws,
            timeout=cfg.shell_timeout_seconds,
            max_output_bytes=cfg.shell_max_output_bytes,
            deny_list=cfg.shell_deny_list,
        )
    )
    approval = set(cfg.human_approval_tools)
    return ToolRegistry(role, [replace(tool, requires_approval=tool.name in approval) for tool in tools])


def build_registries(
    workspace_root: Optional[Union[str, Path]] = None,
    *,
    search_index: Optional[SearchIndex] = None,
    config: Optional[Settings] = None,
) -> Dict[str, ToolRegistry]:
    """Build every role's registry for one workspace."""

    return {
        role: build_registry(role, workspace_root, search_index=search_index, config=config)
        for role in ROLES
    }
