"""工具数据结构定义。

ToolDef 把工具名、参数契约（pydantic 模型）、是否需要人工审批以及处理函数绑定在一起，
既用于把可用工具暴露给 LLM（parameters_schema），
也用于 ToolExecutor 在调用前校验参数。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Type

from pydantic import BaseModel


ToolHandler = Callable[[Any], str]


@dataclass(frozen=True)
class ToolDef:
    """一个可供 LLM 调用的工具定义。"""

    name: str
    description: str
    contract: Type[BaseModel]
    handler: ToolHandler
    requires_approval: bool = False

    def parameters_schema(self) -> Dict[str, Any]:
        """参数契约的 JSON Schema（function calling 使用的 object schema）。"""

        schema = self.contract.model_json_schema(by_alias=True)
        properties: Dict[str, Any] = {}
        for name, prop in (schema.get("properties") or {}).items():
            prop = {k: v for k, v in prop.items() if k != "title"}
            # Optional[...] 字段在 pydantic 中展开为 anyOf，这里收敛为非 null 分支
            if "anyOf" in prop:
                branches = [b for b in prop.pop("anyOf") if b.get("type") != "null"]
                if branches:
                    prop = {**branches[0], **prop}
            prop.pop("default", None)
            properties[name] = prop
        return {
            "type": "object",
            "properties": properties,
            "required": list(schema.get("required") or []),
        }
