"""Turn controller: runs the turn graph for one thread and checkpoints it.

A suspended thread is persisted as ``{thread_id, role, messages,
pending_stage, approval_request}``; ``resume`` re-enters the graph at the
recorded stage with the human's decision as input.
"""

from __future__ import annotations

import threading
import weakref
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from codeflow_core.config.settings import settings
from codeflow_core.domain.conversation import CheckpointStore, Conversation, ThreadCheckpoint
from codeflow_core.domain.exceptions import ValidationError
from codeflow_core.domain.models import ChatMessage, user_message
from codeflow_core.flows.approval import ApprovalDecision, ApprovalRequest
from codeflow_core.flows.graph import build_graph
from codeflow_core.flows.state import TurnState
from codeflow_core.infrastructure.logging.logger import logger
from codeflow_core.providers.base import ProviderClient
from codeflow_core.tools.executor import ToolExecutor
from codeflow_core.tools.registry import ToolRegistry, check_role

HUMAN_REVIEW_STAGE = "human_review"


@dataclass(frozen=True)
class TurnOutcome:
    thread_id: str
    role: str
    status: str  # completed | suspended | rejected | max_rounds
    messages: Tuple[ChatMessage, ...]
    approval_request: Optional[ApprovalRequest] = None

    @property
    def final_response(self) -> str:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message.content
        return ""


class TurnController:
    def __init__(
        self,
        backend: ProviderClient,
        store: CheckpointStore,
        registries: Mapping[str, ToolRegistry],
        *,
        executor: Optional[ToolExecutor] = None,
        model_name: Optional[str] = None,
        max_rounds: Optional[int] = None,
    ):
        self._store = store
        self._registries = registries
        self._max_rounds = max_rounds or settings.max_tool_rounds
        self._graph = build_graph(
            backend,
            registries,
            executor or ToolExecutor(),
            model_name=model_name or settings.default_model,
            max_rounds=self._max_rounds,
        )
        # an entry lives only while a turn on that thread holds its lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def start_turn(self, thread_id: str, role: str, user_text: str) -> TurnOutcome:
        """Append a user message and run until terminal or suspended."""

        self._check_role(role)
        with self._thread_lock(thread_id):
            checkpoint = self._store.load(thread_id)
            if checkpoint and checkpoint.pending_stage:
                raise ValidationError(
                    code="THREAD_SUSPENDED",
                    message=f"thread {thread_id} is waiting for an approval decision; resume it first",
                    thread_id=thread_id,
                )
            conv = Conversation(thread_id=thread_id, messages=list(checkpoint.messages) if checkpoint else [])
            conv.append(user_message(user_text))
            logger.info("turn.start", extra={"extra": {"thread_id": thread_id, "role": role}})
            state: TurnState = {
                "thread_id": thread_id,
                "role": role,
                "messages": conv.messages,
                "rounds": 0,
                "pending_approval": None,
                "decision": None,
                "next_stage": None,
                "status": "running",
            }
            return self._run(state)

    def resume(self, thread_id: str, role: str, decision: ApprovalDecision) -> TurnOutcome:
        """Feed the human's decision into a suspended thread."""

        if not isinstance(decision, ApprovalDecision):
            raise ValidationError(
                code="INVALID_DECISION",
                message=f"expected an ApprovalDecision, got {type(decision).__name__}",
                thread_id=thread_id,
            )
        self._check_role(role)
        with self._thread_lock(thread_id):
            checkpoint = self._store.load(thread_id)
            if not checkpoint or checkpoint.pending_stage != HUMAN_REVIEW_STAGE or not checkpoint.approval_request:
                raise ValidationError(code="NOTHING_PENDING", message=f"thread {thread_id} has no pending approval", thread_id=thread_id)
            if checkpoint.role != role:
                raise ValidationError(
                    code="ROLE_MISMATCH",
                    message=f"thread {thread_id} was suspended as {checkpoint.role!r}, not {role!r}",
                    thread_id=thread_id,
                )
            request = ApprovalRequest.from_dict(checkpoint.approval_request)
            conv = Conversation(thread_id=thread_id, messages=list(checkpoint.messages))
            response = conv.last_model_response()
            if (
                response is None
                or conv.messages[-1] is not response
                or not response.tool_calls
                or response.tool_calls[-1].id != request.tool_call_id
            ):
                raise ValidationError(
                    code="STALE_APPROVAL",
                    message=f"pending approval for {request.tool_call_id} no longer matches thread {thread_id}",
                    thread_id=thread_id,
                )
            logger.info("turn.resume", extra={"extra": {"thread_id": thread_id, "role": role, "decision": decision.kind}})
            state: TurnState = {
                "thread_id": thread_id,
                "role": role,
                "messages": conv.messages,
                "rounds": 0,
                "pending_approval": request,
                "decision": decision,
                "next_stage": None,
                "status": "running",
            }
            return self._run(state)

    def get_conversation(self, thread_id: str) -> Conversation:
        checkpoint = self._store.load(thread_id)
        return Conversation(thread_id=thread_id, messages=list(checkpoint.messages) if checkpoint else [])

    def pending_approval(self, thread_id: str) -> Optional[ApprovalRequest]:
        checkpoint = self._store.load(thread_id)
        if not checkpoint or not checkpoint.approval_request:
            return None
        return ApprovalRequest.from_dict(checkpoint.approval_request)

    def _run(self, state: TurnState) -> TurnOutcome:
        last: TurnState = dict(state)  # type: ignore[assignment]
        try:
            for values in self._graph.stream(
                state,
                config={"recursion_limit": self._max_rounds * 3 + 10},
                stream_mode="values",
            ):
                last = values
        except Exception as exc:
            # keep whatever the completed stages produced; the failed stage appended nothing
            self._save(last, suspended=False)
            logger.error(
                "turn.aborted",
                extra={"extra": {"thread_id": state["thread_id"], "error": str(exc), "error_type": type(exc).__name__}},
            )
            raise

        status = last.get("status") or "running"
        request = last.get("pending_approval") if status == "suspended" else None
        if status == "running":
            status = "completed"
        self._save(last, suspended=request is not None)
        logger.info("turn.end", extra={"extra": {"thread_id": state["thread_id"], "status": status, "messages": len(last["messages"])}})
        return TurnOutcome(
            thread_id=state["thread_id"],
            role=state["role"],
            status=status,
            messages=tuple(last["messages"]),
            approval_request=request,
        )

    def _save(self, state: TurnState, *, suspended: bool) -> None:
        request = state.get("pending_approval")
        self._store.save(
            ThreadCheckpoint(
                thread_id=state["thread_id"],
                role=state["role"],
                messages=list(state["messages"]),
                pending_stage=HUMAN_REVIEW_STAGE if suspended and request else None,
                approval_request=request.to_dict() if suspended and request else None,
            )
        )

    def _check_role(self, role: str) -> None:
        check_role(role)
        if role not in self._registries:
            raise ValidationError(code="INVALID_ROLE", message=f"no tool registry for role {role!r}")

    def _thread_lock(self, thread_id: str) -> "_NonBlocking":
        with self._locks_guard:
            lock = self._locks.get(thread_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[thread_id] = lock
        return _NonBlocking(lock, thread_id)


class _NonBlocking:
    """Refuse overlapping turns on one thread instead of queueing them."""

    def __init__(self, lock: threading.Lock, thread_id: str):
        self._lock = lock
        self._thread_id = thread_id

    def __enter__(self) -> None:
        if not self._lock.acquire(blocking=False):
            raise ValidationError(code="THREAD_BUSY", message=f"thread {self._thread_id} is already running a turn", thread_id=self._thread_id)

    def __exit__(self, *exc) -> bool:
        self._lock.release()
        return False
