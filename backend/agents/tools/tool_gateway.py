from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Sequence

from agents.tool_call_state import InvalidTransitionError, ToolCall
from utils.config import Config
from utils.logger import get_logger

from .tool_registry import ToolExecutionContext, ToolRegistry, tool_registry, validate_tool_input


class UnknownToolError(KeyError):
    """Raised when a tool name is not registered."""


class ToolExecutionGateway:
    """
    Single entry point for running tools.

    Validates input against the tool schema, runs the tool and converts
    expected failures (ValueError) into {success: false, error} results.
    execute() and execute_tool_call() never raise; run() lets unexpected
    exceptions through so the HTTP layer can answer 500.
    """

    def __init__(self, registry: ToolRegistry = tool_registry, max_workers: Optional[int] = None):
        self._registry = registry
        self._max_workers = max_workers or Config.get_tool_executor_max_workers()
        self._logger = get_logger(__name__)

    def has_tool(self, name: str) -> bool:
        return self._registry.has(name)

    def requires_approval(self, name: str) -> bool:
        return self._registry.has(name) and self._registry.get(name).requires_approval

    def model_tool_definitions(self) -> List[Dict[str, Any]]:
        return self._registry.model_tool_definitions()

    def validate(self, name: str, params: Any) -> List[str]:
        """Schema errors for params; an unknown tool is reported as an error too."""
        if not self._registry.has(name):
            return [f"Unknown tool '{name}'. Available tools: {', '.join(self._registry.list())}"]
        return validate_tool_input(self._registry.get(name), params)["errors"]

    def run(self, name: str, params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
        if not self._registry.has(name):
            raise UnknownToolError(name)
        spec = self._registry.get(name)

        start = time.perf_counter()
        try:
            result = spec.fn(params, ctx)
            output = result.output
        except ValueError as exc:
            output = {"success": False, "error": str(exc)}
        latency_ms = int((time.perf_counter() - start) * 1000)

        self._logger.info(
            f"[TOOL] {name} thread={ctx.thread_id} call={ctx.call_id or '-'} "
            f"success={output.get('success')} latency={latency_ms}ms"
        )
        return output

    def execute(self, name: str, params: Dict[str, Any], ctx: ToolExecutionContext) -> Dict[str, Any]:
        try:
            return self.run(name, params, ctx)
        except UnknownToolError:
            return {"success": False, "error": f"Unknown tool '{name}'"}
        except Exception as exc:
            self._logger.error(f"[TOOL] {name} failed unexpectedly: {exc}", exc_info=True)
            return {"success": False, "error": f"Internal error while running {name}: {exc}"}

    def execute_tool_call(self, call: ToolCall, ctx: ToolExecutionContext) -> Dict[str, Any]:
        """Run one call that is approved (or needs no approval) and mark it executed."""
        if not call.can_execute:
            self._logger.warning(
                f"[TOOL] Refusing to run {call.name} call {call.id} in state {call.state.value}"
            )
            return {"success": False, "error": f"Tool call {call.id} is not approved for execution"}

        output = self.execute(call.name, call.input or {}, ctx)
        try:
            call.mark_executed(output)
        except InvalidTransitionError as exc:
            self._logger.warning(f"[TOOL] Result of call {call.id} dropped: {exc}")
        return output

    def execute_batch(
        self,
        calls: Sequence[ToolCall],
        ctx_factory: Callable[[ToolCall], ToolExecutionContext],
    ) -> Dict[str, Dict[str, Any]]:
        """Run independent calls concurrently; results are keyed by call id."""
        if not calls:
            return {}
        if len(calls) == 1:
            call = calls[0]
            return {call.id: self.execute_tool_call(call, ctx_factory(call))}

        workers = min(self._max_workers, len(calls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tool") as pool:
            futures = {
                call.id: pool.submit(self.execute_tool_call, call, ctx_factory(call))
                for call in calls
            }
            return {call_id: future.result() for call_id, future in futures.items()}


tool_gateway = ToolExecutionGateway()
