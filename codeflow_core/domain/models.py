"""统一的消息与模型调用数据结构。

本模块定义了 Turn Controller、Tool Executor 与 Provider 之间共享的标准结构：

- ToolCall: 模型发起的一次工具调用。
- ChatMessage: 一条对话消息，按 role 区分 user / assistant(model-response) / tool(tool-result)。
- ChatRequest / ChatResult: 发给模型后端的请求与解析后的响应。

消息一旦写入会话即不可变（frozen dataclass + tuple），
并且都可以与纯 dict 互相转换，便于检查点持久化。
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal, Optional, Any, Dict, List, Mapping, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from codeflow_core.tools.definitions import ToolDef


# system 仅出现在发往后端的请求中，不会写入会话
Role = Literal["system", "user", "assistant", "tool"]


@dataclass(frozen=True)
class ToolCall:
    """模型发起的一次工具调用请求。"""

    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # 参数在消息写入会话后同样只读
        object.__setattr__(self, "arguments", MappingProxyType(dict(self.arguments or {})))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。

    - role: user / assistant / tool（system 只用于请求）。
    - content: 文本内容；tool 消息里是工具输出或错误文本。
    - tool_calls: assistant 消息携带的工具调用（可以为空）。
    - tool_call_id / name: tool 消息关联的调用 id 与工具名。
    - is_error: tool 消息是否为错误结果。
    """

    role: Role
    content: str
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            payload["name"] = self.name
        if self.is_error:
            payload["is_error"] = True
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        return cls(
            role=data.get("role") or "user",
            content=data.get("content") or "",
            tool_calls=tuple(ToolCall.from_dict(c) for c in data.get("tool_calls") or []),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            is_error=bool(data.get("is_error", False)),
        )


def user_message(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


def model_response(content: str, tool_calls: Optional[List[ToolCall]] = None) -> ChatMessage:
    return ChatMessage(role="assistant", content=content or "", tool_calls=tuple(tool_calls or ()))


def tool_result(call_id: str, name: str, content: str, *, is_error: bool = False) -> ChatMessage:
    return ChatMessage(role="tool", content=content, tool_call_id=call_id, name=name, is_error=is_error)


@dataclass
class ChatRequest:
    """一次完整的模型请求。

    Provider 适配层负责把本结构转换成各家 API 的 JSON 请求体。
    """

    provider: str  # 逻辑 Provider 名，如 "openai"
    model: str  # 逻辑模型名，如 "coder-chat"（再由 registry 映射为真实模型名）
    messages: List[ChatMessage]
    temperature: Optional[float] = None  # None 时使用 registry 中的模型默认值
    max_tokens: Optional[int] = None
    tools: Optional[List["ToolDef"]] = None
    tool_choice: Literal["auto", "none", "required"] = "auto"


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次模型调用的最终结果。"""

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None
