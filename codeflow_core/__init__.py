"""Codeflow Core 顶层包。

该包提供多角色编码 Agent 的核心实现，
包括配置加载、领域模型、Provider 适配、工具系统、
diff 补丁引擎、带人工审批的对话流程与检查点持久化等能力。
"""

from codeflow_core.flows import ApprovalDecision, TurnController, TurnOutcome

__all__ = ["ApprovalDecision", "TurnController", "TurnOutcome"]
