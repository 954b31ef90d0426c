"""会话（线程）模型与检查点存储协议。"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Protocol

from .exceptions import ValidationError
from .models import ChatMessage


@dataclass
class Conversation:
    """单个线程的只追加消息日志。

    append 会校验 tool 消息引用的调用 id 必须出现在紧邻的上一条
    assistant 消息里（中间只能夹着其他 tool 消息）。
    """

    thread_id: str
    messages: List[ChatMessage] = field(default_factory=list)

    def append(self, message: ChatMessage) -> None:
        if message.role == "system":
            raise ValidationError(code="INVALID_MESSAGE", message="system messages are not stored in a conversation")
        if message.role == "tool":
            response = self.last_model_response()
            call_ids = {call.id for call in response.tool_calls} if response else set()
            if message.tool_call_id not in call_ids:
                raise ValidationError(
                    code="ORPHAN_TOOL_RESULT",
                    message=f"tool result {message.tool_call_id!r} does not answer the preceding model response",
                    thread_id=self.thread_id,
                )
        self.messages.append(message)

    def extend(self, messages: List[ChatMessage]) -> None:
        for message in messages:
            self.append(message)

    def last_model_response(self) -> Optional[ChatMessage]:
        """返回紧邻的 assistant 消息（跳过其后的 tool 消息）。"""

        for message in reversed(self.messages):
            if message.role == "tool":
                continue
            return message if message.role == "assistant" else None
        return None


@dataclass
class ThreadCheckpoint:
    """可序列化的线程续跑记录。

    pending_stage 为 "human_review" 时表示线程挂起等待人工审批，
    approval_request 保存发给审批方的请求（dict 形式）。
    """

    thread_id: str
    role: str
    messages: List[ChatMessage]
    pending_stage: Optional[str] = None
    approval_request: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "thread_id": self.thread_id,
            "role": self.role,
            "messages": [m.to_dict() for m in self.messages],
            "pending_stage": self.pending_stage,
            "approval_request": self.approval_request,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThreadCheckpoint":
        return cls(
            thread_id=data["thread_id"],
            role=data.get("role") or "coder",
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            pending_stage=data.get("pending_stage"),
            approval_request=data.get("approval_request"),
        )


class CheckpointStore(Protocol):
    def load(self, thread_id: str) -> Optional[ThreadCheckpoint]:
        ...

    def save(self, checkpoint: ThreadCheckpoint) -> None:
        ...

    def list_threads(self) -> List[str]:
        ...

    def delete(self, thread_id: str) -> None:
        ...
