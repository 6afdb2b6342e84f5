"""Unit tests for the tool execution gateway."""

import threading
import time
import unittest
from unittest.mock import Mock

from agents.tool_call_state import ToolCall, ToolCallState
from agents.tools.tool_gateway import ToolExecutionGateway, UnknownToolError
from agents.tools.tool_registry import ToolExecutionContext, ToolRegistry, ToolResult, ToolSpec


def _spec(name, fn, requires_approval=False):
    return ToolSpec(
        name=name,
        version="1.0",
        description=name,
        effects=[],
        in_schema={
            "type": "object",
            "properties": {"value": {"type": "string"}},
            "required": ["value"],
            "additionalProperties": False,
        },
        out_schema={"type": "object"},
        fn=fn,
        requires_approval=requires_approval,
    )


def _echo(params, ctx):
    return ToolResult(output={"success": True, "value": params["value"], "call": ctx.call_id})


def _reject(params, ctx):
    raise ValueError("target not found")


def _crash(params, ctx):
    raise RuntimeError("disk on fire")


def _ready_call(call_id, name, needs_approval=False, approved=True):
    call = ToolCall(id=call_id, name=name)
    call.append_arguments('{"value": "v"}')
    call.complete_input()
    if needs_approval:
        call.request_approval()
        call.record_decision(approved)
    return call


class TestToolExecutionGateway(unittest.TestCase):

    def setUp(self):
        self.registry = ToolRegistry()
        self.registry.register(_spec("echo", _echo))
        self.registry.register(_spec("reject", _reject))
        self.registry.register(_spec("crash", _crash))
        self.registry.register(_spec("guarded", _echo, requires_approval=True))
        self.gateway = ToolExecutionGateway(registry=self.registry, max_workers=4)
        self.ctx = ToolExecutionContext(thread_id="thr_1")

    def test_validate_reports_schema_errors(self):
        self.assertEqual(self.gateway.validate("echo", {"value": "x"}), [])
        self.assertEqual(self.gateway.validate("echo", {}), ["input.value: required parameter missing"])

    def test_validate_unknown_tool(self):
        errors = self.gateway.validate("nope", {})
        self.assertEqual(len(errors), 1)
        self.assertIn("Unknown tool 'nope'", errors[0])

    def test_requires_approval(self):
        self.assertTrue(self.gateway.requires_approval("guarded"))
        self.assertFalse(self.gateway.requires_approval("echo"))
        self.assertFalse(self.gateway.requires_approval("nope"))

    def test_run_returns_tool_output(self):
        self.assertEqual(self.gateway.run("echo", {"value": "x"}, self.ctx)["value"], "x")

    def test_value_error_becomes_failure_result(self):
        self.assertEqual(
            self.gateway.run("reject", {"value": "x"}, self.ctx),
            {"success": False, "error": "target not found"},
        )

    def test_run_propagates_unexpected_errors(self):
        with self.assertRaises(RuntimeError):
            self.gateway.run("crash", {"value": "x"}, self.ctx)
        with self.assertRaises(UnknownToolError):
            self.gateway.run("nope", {}, self.ctx)

    def test_execute_never_raises(self):
        crashed = self.gateway.execute("crash", {"value": "x"}, self.ctx)
        unknown = self.gateway.execute("nope", {}, self.ctx)

        self.assertFalse(crashed["success"])
        self.assertIn("disk on fire", crashed["error"])
        self.assertEqual(unknown, {"success": False, "error": "Unknown tool 'nope'"})

    def test_execute_tool_call_marks_executed(self):
        call = _ready_call("call_1", "echo")

        output = self.gateway.execute_tool_call(call, self.ctx)

        self.assertTrue(output["success"])
        self.assertEqual(call.state, ToolCallState.EXECUTED)
        self.assertEqual(call.output, output)

    def test_unapproved_call_is_refused(self):
        fn = Mock(return_value=ToolResult(output={"success": True}))
        self.registry.register(_spec("guarded_mock", fn, requires_approval=True))
        call = _ready_call("call_1", "guarded_mock", needs_approval=True, approved=False)

        output = self.gateway.execute_tool_call(call, self.ctx)

        self.assertFalse(output["success"])
        fn.assert_not_called()
        self.assertEqual(call.state, ToolCallState.APPROVAL_RESPONDED)

    def test_pending_call_is_refused(self):
        call = ToolCall(id="call_1", name="guarded")
        call.append_arguments('{"value": "v"}')
        call.complete_input()
        call.request_approval()

        output = self.gateway.execute_tool_call(call, self.ctx)

        self.assertFalse(output["success"])
        self.assertEqual(call.state, ToolCallState.APPROVAL_REQUESTED)

    def test_batch_runs_calls_concurrently(self):
        barrier = threading.Barrier(3, timeout=5)

        def _wait_for_peers(params, ctx):
            barrier.wait()
            return ToolResult(output={"success": True, "call": ctx.call_id})

        self.registry.register(_spec("parallel", _wait_for_peers))
        calls = [_ready_call(f"call_{i}", "parallel") for i in range(3)]

        start = time.monotonic()
        results = self.gateway.execute_batch(
            calls,
            lambda c: ToolExecutionContext(thread_id="thr_1", call_id=c.id),
        )

        self.assertLess(time.monotonic() - start, 5)
        self.assertEqual(set(results), {"call_0", "call_1", "call_2"})
        self.assertTrue(all(results[c.id]["call"] == c.id for c in calls))
        self.assertTrue(all(c.state == ToolCallState.EXECUTED for c in calls))

    def test_empty_batch(self):
        self.assertEqual(self.gateway.execute_batch([], lambda c: self.ctx), {})


if __name__ == '__main__':
    unittest.main()
