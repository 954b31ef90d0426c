"""领域层模型与协议。

包含：
- models: ChatMessage / ToolCall / ChatRequest / ChatResult 等统一模型。
- conversation: 只追加的会话、线程检查点及 CheckpointStore 抽象。
- exceptions: 业务异常类型定义。
"""
