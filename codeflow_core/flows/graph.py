"""LangGraph construction and node implementations for one conversational turn."""

from __future__ import annotations

from typing import Dict, Mapping

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from codeflow_core.domain.conversation import Conversation
from codeflow_core.domain.exceptions import BackendError, BusinessError
from codeflow_core.domain.models import ChatMessage, ChatRequest, model_response, user_message
from codeflow_core.flows.approval import FEEDBACK_DEFAULT, build_approval_request, declined_results
from codeflow_core.flows.state import TurnState
from codeflow_core.infrastructure.logging.logger import logger
from codeflow_core.prompts import load_system_prompt
from codeflow_core.providers.base import ProviderClient
from codeflow_core.tools.executor import ToolExecutor
from codeflow_core.tools.registry import ToolRegistry


def _conversation(state: TurnState) -> Conversation:
    return Conversation(thread_id=state.get("thread_id", ""), messages=list(state.get("messages") or []))


def call_llm_node(
    state: TurnState,
    backend: ProviderClient,
    registries: Mapping[str, ToolRegistry],
    model_name: str,
    max_rounds: int,
) -> Dict[str, object]:
    rounds = state.get("rounds", 0)
    if rounds >= max_rounds:
        logger.warning("call_llm.max_rounds", extra={"extra": {"thread_id": state.get("thread_id"), "rounds": rounds}})
        return {"status": "max_rounds"}

    role = state["role"]
    registry = registries[role]
    request = ChatRequest(
        provider=backend.name,
        model=model_name,
        messages=[ChatMessage(role="system", content=load_system_prompt(role))] + list(state["messages"]),
        tools=registry.definitions(),
        tool_choice="auto",
    )
    logger.info("call_llm.start", extra={"extra": {"thread_id": state.get("thread_id"), "role": role, "messages": len(state["messages"])}})
    try:
        result = backend.chat(request)
    except BusinessError:
        raise
    except Exception as exc:
        raise BackendError(code="BACKEND_ERROR", message=str(exc), provider=backend.name) from exc
    if not result.choices:
        raise BackendError(code="EMPTY_RESPONSE", message="model backend returned no choices", provider=backend.name)

    message = result.choices[0].message
    conv = _conversation(state)
    conv.append(model_response(message.content, list(message.tool_calls)))
    logger.info("call_llm.end", extra={"extra": {"thread_id": state.get("thread_id"), "tool_calls": [c.name for c in message.tool_calls]}})
    return {"messages": conv.messages, "rounds": rounds + 1}


def route_after_llm(state: TurnState, registries: Mapping[str, ToolRegistry]) -> str:
    if state.get("status") == "max_rounds":
        return END
    messages = state.get("messages") or []
    last = messages[-1] if messages else None
    # anything but a model response here is malformed input; end the turn
    if last is None or last.role != "assistant" or not last.tool_calls:
        return END
    approval = registries[state["role"]].approval_required
    if any(call.name in approval for call in last.tool_calls):
        return "human_review"
    return "run_tool"


def human_review_node(state: TurnState) -> Dict[str, object]:
    conv = _conversation(state)
    response = conv.last_model_response()
    decision = state.get("decision")

    if decision is None:
        request = build_approval_request(response)
        logger.info(
            "human_review.suspend",
            extra={"extra": {"thread_id": state.get("thread_id"), "tool": request.tool_name, "pending_tools": list(request.pending_tools)}},
        )
        return {"pending_approval": request, "status": "suspended", "next_stage": END}

    request = state.get("pending_approval")
    kind = decision.resolve(request.config)
    logger.info("human_review.resume", extra={"extra": {"thread_id": state.get("thread_id"), "decision": kind, "tool": request.tool_name}})
    updates: Dict[str, object] = {"pending_approval": None, "decision": None, "status": "running"}
    if kind == "accept":
        updates["next_stage"] = "run_tool"
    elif kind == "respond":
        conv.extend(declined_results(response, "the user responded with feedback instead of approving"))
        conv.append(user_message(decision.feedback or FEEDBACK_DEFAULT))
        updates["messages"] = conv.messages
        updates["next_stage"] = "call_llm"
    else:
        conv.extend(declined_results(response, "the user rejected this action"))
        updates["messages"] = conv.messages
        updates["status"] = "rejected"
        updates["next_stage"] = END
    return updates


def route_after_review(state: TurnState) -> str:
    return state.get("next_stage") or END


def run_tool_node(state: TurnState, registries: Mapping[str, ToolRegistry], executor: ToolExecutor) -> Dict[str, object]:
    conv = _conversation(state)
    response = conv.last_model_response()
    if response is None or not response.tool_calls:
        logger.warning("run_tool.no_tool_calls", extra={"extra": {"thread_id": state.get("thread_id")}})
        return {"next_stage": None}
    results = executor.execute(response.tool_calls, registries[state["role"]])
    conv.extend(results)
    logger.info(
        "run_tool.done",
        extra={"extra": {"thread_id": state.get("thread_id"), "results": len(results), "errors": sum(1 for r in results if r.is_error)}},
    )
    return {"messages": conv.messages}


def route_entry(state: TurnState) -> str:
    if state.get("decision") is not None and state.get("pending_approval") is not None:
        return "human_review"
    return "call_llm"


def build_graph(
    backend: ProviderClient,
    registries: Mapping[str, ToolRegistry],
    executor: ToolExecutor,
    *,
    model_name: str,
    max_rounds: int,
) -> CompiledStateGraph:
    graph = StateGraph(TurnState)
    graph.add_node("call_llm", lambda s: call_llm_node(s, backend, registries, model_name, max_rounds))
    graph.add_node("human_review", human_review_node)
    graph.add_node("run_tool", lambda s: run_tool_node(s, registries, executor))
    graph.add_conditional_edges(START, route_entry, {"call_llm": "call_llm", "human_review": "human_review"})
    graph.add_conditional_edges(
        "call_llm",
        lambda s: route_after_llm(s, registries),
        {"human_review": "human_review", "run_tool": "run_tool", END: END},
    )
    graph.add_conditional_edges(
        "human_review",
        route_after_review,
        {"run_tool": "run_tool", "call_llm": "call_llm", END: END},
    )
    graph.add_edge("run_tool", "call_llm")
    return graph.compile()
