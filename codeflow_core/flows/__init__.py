"""对话流程层：基于 LangGraph 的单轮执行图、人工审批与线程检查点。"""

from codeflow_core.flows.approval import ApprovalConfig, ApprovalDecision, ApprovalRequest
from codeflow_core.flows.runner import TurnController, TurnOutcome

__all__ = ["ApprovalConfig", "ApprovalDecision", "ApprovalRequest", "TurnController", "TurnOutcome"]
