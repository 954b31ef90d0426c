"""Approval gate records: what is shown to the human and what comes back.

Both records are plain, JSON-serializable dataclasses so a suspended thread
can be checkpointed and resumed after a process restart.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple

from codeflow_core.domain.exceptions import ValidationError
from codeflow_core.domain.models import ChatMessage, tool_result

FEEDBACK_DEFAULT = "User rejected the action"


@dataclass(frozen=True)
class ApprovalConfig:
    """Response kinds the human may send back."""

    allow_accept: bool = True
    allow_respond: bool = True
    allow_ignore: bool = False
    allow_edit: bool = False


@dataclass(frozen=True)
class ApprovalRequest:
    tool_call_id: str
    tool_name: str
    action: str
    args: Dict[str, Any]
    description: str
    config: ApprovalConfig = field(default_factory=ApprovalConfig)
    # every tool named in the response; the decision covers all of them
    pending_tools: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["pending_tools"] = list(self.pending_tools)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRequest":
        return cls(
            tool_call_id=data["tool_call_id"],
            tool_name=data["tool_name"],
            action=data.get("action") or f"execute {data['tool_name']} tool",
            args=dict(data.get("args") or {}),
            description=data.get("description") or "",
            config=ApprovalConfig(**(data.get("config") or {})),
            pending_tools=tuple(data.get("pending_tools") or ()),
        )


@dataclass(frozen=True)
class ApprovalDecision:
    """accept | respond (with feedback) | reject."""

    kind: str
    feedback: str = ""

    @classmethod
    def accept(cls) -> "ApprovalDecision":
        return cls(kind="accept")

    @classmethod
    def respond(cls, feedback: str) -> "ApprovalDecision":
        return cls(kind="respond", feedback=feedback)

    @classmethod
    def reject(cls) -> "ApprovalDecision":
        return cls(kind="reject")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalDecision":
        """Decode either ``{"kind", "feedback"}`` or a human-response ``{"type", "args"}``."""

        kind = str(data.get("kind") or data.get("type") or "").lower()
        if kind in ("response", "feedback"):
            kind = "respond"
        feedback = data.get("feedback")
        if feedback is None:
            feedback = data.get("args")
        return cls(kind=kind, feedback=feedback if isinstance(feedback, str) else "")

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "feedback": self.feedback}

    def resolve(self, config: ApprovalConfig) -> str:
        """Effective kind; anything not allowed or not recognized is a reject."""

        if self.kind == "accept" and config.allow_accept:
            return "accept"
        if self.kind == "respond" and config.allow_respond:
            return "respond"
        return "reject"


def build_approval_request(response: ChatMessage) -> ApprovalRequest:
    """Escalate the last tool call of a model response."""

    if response.role != "assistant" or not response.tool_calls:
        raise ValidationError(code="NOTHING_TO_APPROVE", message="model response carries no tool calls")
    call = response.tool_calls[-1]
    return ApprovalRequest(
        tool_call_id=call.id,
        tool_name=call.name,
        action=f"execute {call.name} tool",
        args=dict(call.arguments),
        description=f"Do you want to execute this {call.name} operation?",
        pending_tools=tuple(c.name for c in response.tool_calls),
    )


def declined_results(response: ChatMessage, reason: str) -> List[ChatMessage]:
    """Error-bearing results for calls that were not executed."""

    return [
        tool_result(call.id, call.name, f"Not executed: {reason}", is_error=True)
        for call in response.tool_calls
        if call.id and call.name
    ]
