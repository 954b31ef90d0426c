from typing import Iterable, List
import json

from pydantic import ValidationError as ContractError

from codeflow_core.domain.models import ChatMessage, ToolCall, tool_result
from codeflow_core.infrastructure.logging.logger import logger
from .registry import ToolRegistry


class ToolExecutor:
    """Run tool calls one after another against a role-scoped registry.

    Every call that has an id and a name yields exactly one tool-result
    message; failures are captured as error results and never raised.
    """

    def execute(self, calls: Iterable[ToolCall], registry: ToolRegistry) -> List[ChatMessage]:
        results: List[ChatMessage] = []
        for call in calls:
            if call is None or not call.id or not call.name:
                logger.warning("tool.skip_malformed", extra={"extra": {"role": registry.role}})
                continue
            results.append(self._execute_one(call, registry))
        return results

    def _execute_one(self, call: ToolCall, registry: ToolRegistry) -> ChatMessage:
        tool = registry.get(call.name)
        if tool is None:
            logger.warning("tool.not_found", extra={"extra": {"tool": call.name, "role": registry.role}})
            return tool_result(call.id, call.name, f"Error: Tool {call.name} not found", is_error=True)

        try:
            args = tool.contract.model_validate(dict(call.arguments or {}))
        except ContractError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ())) or 'arguments'}: {err.get('msg')}"
                for err in exc.errors()
            )
            logger.warning("tool.invalid_arguments", extra={"extra": {"tool": call.name, "errors": problems}})
            return tool_result(call.id, call.name, f"Error: invalid arguments for {call.name}: {problems}", is_error=True)

        logger.info("tool.execute", extra={"extra": {"tool": call.name, "call_id": call.id, "role": registry.role}})
        try:
            raw = tool.handler(args)
        except Exception as exc:  # noqa: BLE001 - 需要把异常转换为工具错误
            logger.warning("tool.error", extra={"extra": {"tool": call.name, "error": str(exc)}})
            return tool_result(call.id, call.name, f"Error executing tool: {exc}", is_error=True)
        content = raw if isinstance(raw, str) else json.dumps(raw, ensure_ascii=False)
        return tool_result(call.id, call.name, content)
