"""State definition for the turn graph."""

from __future__ import annotations

from typing import List, Optional, TypedDict

from codeflow_core.domain.models import ChatMessage
from codeflow_core.flows.approval import ApprovalDecision, ApprovalRequest


class TurnState(TypedDict, total=False):
    """State shared across LangGraph nodes for one turn.

    status: running | suspended | rejected | max_rounds; the controller maps a
    run that ends while still "running" to "completed".
    """

    thread_id: str
    role: str
    messages: List[ChatMessage]
    rounds: int
    pending_approval: Optional[ApprovalRequest]
    decision: Optional[ApprovalDecision]
    next_stage: Optional[str]
    status: str
