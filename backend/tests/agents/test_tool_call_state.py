"""Unit tests for the tool-call state machine."""

import unittest

from agents.tool_call_state import (
    STATE_ORDER,
    ApprovalDecision,
    ConflictingDecisionError,
    InvalidTransitionError,
    PendingApproval,
    ToolCall,
    ToolCallState,
)


def _complete_call(name="bash", arguments='{"command": "ls"}'):
    call = ToolCall(id="call_1", name=name)
    call.append_arguments(arguments)
    call.complete_input()
    return call


class TestToolCallInput(unittest.TestCase):
    """Argument streaming and parsing."""

    def test_starts_awaiting_input(self):
        call = ToolCall(id="call_1", name="bash")
        self.assertEqual(call.state, ToolCallState.AWAITING_INPUT)
        self.assertEqual(call.history, [ToolCallState.AWAITING_INPUT])

    def test_arguments_accumulate_across_deltas(self):
        call = ToolCall(id="call_1", name="bash")
        call.append_arguments('{"comm')
        call.append_arguments('and": "ls"}')

        self.assertEqual(call.state, ToolCallState.INPUT_STREAMING)
        self.assertTrue(call.complete_input())
        self.assertEqual(call.input, {"command": "ls"})
        self.assertEqual(call.state, ToolCallState.INPUT_COMPLETE)

    def test_empty_arguments_parse_as_empty_object(self):
        call = ToolCall(id="call_1", name="ls")
        self.assertTrue(call.complete_input())
        self.assertEqual(call.input, {})

    def test_malformed_arguments_deny_the_call(self):
        call = ToolCall(id="call_1", name="bash")
        call.append_arguments('{"command": ')

        self.assertFalse(call.complete_input())
        self.assertEqual(call.state, ToolCallState.DENIED)
        self.assertIn("Invalid tool arguments", call.error)
        self.assertFalse(call.output["success"])

    def test_non_object_arguments_deny_the_call(self):
        call = ToolCall(id="call_1", name="bash")
        call.append_arguments('["ls"]')

        self.assertFalse(call.complete_input())
        self.assertEqual(call.state, ToolCallState.DENIED)
        self.assertIn("expected a JSON object", call.error)

    def test_arguments_after_completion_are_rejected(self):
        call = _complete_call()
        with self.assertRaises(InvalidTransitionError):
            call.append_arguments("more")


class TestToolCallApproval(unittest.TestCase):
    """Approval gate transitions."""

    def test_request_approval_exposes_pending_payload(self):
        call = _complete_call()
        pending = call.request_approval()

        self.assertIsInstance(pending, PendingApproval)
        self.assertEqual(pending.to_dict(), {"id": "call_1", "needsApproval": True})
        self.assertEqual(call.state, ToolCallState.APPROVAL_REQUESTED)
        self.assertFalse(call.can_execute)

    def test_approved_call_can_execute(self):
        call = _complete_call()
        call.request_approval()

        self.assertTrue(call.record_decision(True))
        self.assertEqual(call.state, ToolCallState.APPROVAL_RESPONDED)
        self.assertIsInstance(call.approval, ApprovalDecision)
        self.assertTrue(call.can_execute)

    def test_denied_decision_cannot_execute(self):
        call = _complete_call()
        call.request_approval()
        call.record_decision(False, "not now")

        self.assertFalse(call.can_execute)
        self.assertEqual(call.approval.to_dict()["reason"], "not now")
        with self.assertRaises(InvalidTransitionError):
            call.mark_executed({"success": True})

    def test_repeated_identical_decision_is_a_no_op(self):
        call = _complete_call()
        call.request_approval()
        call.record_decision(True)

        self.assertFalse(call.record_decision(True))
        self.assertEqual(call.state, ToolCallState.APPROVAL_RESPONDED)

    def test_opposite_decision_conflicts(self):
        call = _complete_call()
        call.request_approval()
        call.record_decision(True)

        with self.assertRaises(ConflictingDecisionError):
            call.record_decision(False)

    def test_decision_without_request_is_rejected(self):
        call = _complete_call()
        with self.assertRaises(InvalidTransitionError):
            call.record_decision(True)

    def test_gated_call_cannot_execute_before_decision(self):
        call = _complete_call()
        call.request_approval()
        with self.assertRaises(InvalidTransitionError):
            call.mark_executed({"success": True})


class TestToolCallTermination(unittest.TestCase):
    """Executed and denied endings."""

    def test_no_approval_shortcut_executes_from_input_complete(self):
        call = _complete_call(name="read", arguments='{"path": "a.txt"}')
        self.assertTrue(call.can_execute)

        call.mark_executed({"success": True})
        self.assertEqual(call.state, ToolCallState.EXECUTED)
        self.assertEqual(call.output, {"success": True})

    def test_deny_is_idempotent_on_terminal_calls(self):
        call = _complete_call()
        self.assertTrue(call.deny("cancelled"))
        self.assertFalse(call.deny("again"))
        self.assertEqual(call.error, "cancelled")

    def test_backward_transition_is_rejected(self):
        call = _complete_call()
        call.request_approval()
        call.record_decision(True)
        call.mark_executed({"success": True})

        with self.assertRaises(InvalidTransitionError):
            call.request_approval()

    def test_observed_states_never_decrease(self):
        call = ToolCall(id="call_1", name="bash")
        call.append_arguments('{"command": "ls"}')
        call.complete_input()
        call.request_approval()
        call.record_decision(True)
        call.mark_executed({"success": True})

        orders = [STATE_ORDER[state] for state in call.history]
        self.assertEqual(orders, sorted(orders))
        self.assertEqual(call.history[-1], ToolCallState.EXECUTED)

    def test_to_dict_carries_approval_and_output(self):
        call = _complete_call()
        call.request_approval()
        call.record_decision(True)
        call.mark_executed({"success": True, "exitCode": 0})

        payload = call.to_dict()
        self.assertEqual(payload["state"], "executed")
        self.assertEqual(payload["input"], {"command": "ls"})
        self.assertEqual(payload["approval"], {"id": "call_1", "needsApproval": True, "approved": True})
        self.assertEqual(payload["output"]["exitCode"], 0)


if __name__ == '__main__':
    unittest.main()
