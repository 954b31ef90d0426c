"""对外 API 服务模块。

提供简化的函数接口供上层应用（CLI / IDE 插件 / HTTP 层）调用，
返回值均为可直接 JSON 序列化的 dict。
"""

from typing import Any, Dict, List, Optional

from codeflow_core.config.settings import settings
from codeflow_core.flows.approval import ApprovalDecision
from codeflow_core.flows.runner import TurnController, TurnOutcome
from codeflow_core.infrastructure.logging.logger import logger
from codeflow_core.infrastructure.storage.json_store import JsonCheckpointStore
from codeflow_core.providers import create_provider
from codeflow_core.tools.registry import build_registries


_store: Optional[JsonCheckpointStore] = None
_controller: Optional[TurnController] = None


def get_default_controller() -> TurnController:
    """获取默认的 TurnController 实例（单例）。"""
    global _store, _controller
    if _store is None:
        _store = JsonCheckpointStore(root=settings.storage_root)
    if _controller is None:
        _controller = TurnController(
            backend=create_provider(settings.default_provider),
            store=_store,
            registries=build_registries(settings.workspace_root),
        )
    return _controller


def _outcome_to_dict(outcome: TurnOutcome) -> Dict[str, Any]:
    return {
        "thread_id": outcome.thread_id,
        "role": outcome.role,
        "status": outcome.status,
        "final_response": outcome.final_response,
        "approval_request": outcome.approval_request.to_dict() if outcome.approval_request else None,
        "messages": [m.to_dict() for m in outcome.messages],
    }


def run_chat(thread_id: str, user_input: str, role: str = "coder") -> Dict[str, Any]:
    """运行一轮对话，直到完成或挂起等待人工审批。

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        outcome = get_default_controller().start_turn(thread_id, role, user_input)
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {"thread_id": thread_id, "role": role, "error": str(e)}})
        raise
    return _outcome_to_dict(outcome)


def resume_chat(thread_id: str, decision: Dict[str, Any], role: str = "coder") -> Dict[str, Any]:
    """提交人工审批决定并继续执行。

    Args:
        thread_id: 会话ID
        decision: {"kind": "accept" | "respond" | "reject", "feedback": "..."}，
            也接受 {"type": ..., "args": ...} 形式
        role: 挂起时使用的角色
    """
    try:
        outcome = get_default_controller().resume(thread_id, role, ApprovalDecision.from_dict(decision))
    except Exception as e:
        logger.error(f"Resume failed: {e}", extra={"extra": {"thread_id": thread_id, "role": role, "error": str(e)}})
        raise
    return _outcome_to_dict(outcome)


def get_pending_approval(thread_id: str) -> Optional[Dict[str, Any]]:
    request = get_default_controller().pending_approval(thread_id)
    return request.to_dict() if request else None


def list_threads() -> List[str]:
    """列出所有已持久化的会话ID。"""
    get_default_controller()
    return _store.list_threads()


def get_thread_messages(thread_id: str) -> List[Dict[str, Any]]:
    conv = get_default_controller().get_conversation(thread_id)
    return [m.to_dict() for m in conv.messages]
