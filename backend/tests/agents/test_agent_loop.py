"""Unit tests for the agent loop controller."""

import os
import unittest
from unittest.mock import patch

from agents.agent_loop import AgentLoopController
from chat.stream_chunks import FinishReason


class TestAgentLoopController(unittest.TestCase):

    def test_stops_on_plain_stop(self):
        controller = AgentLoopController(max_iterations=10)
        self.assertFalse(controller.should_continue(FinishReason.STOP))
        self.assertEqual(controller.iteration, 1)
        self.assertFalse(controller.bound_reached)

    def test_continues_on_tool_calls_below_bound(self):
        controller = AgentLoopController(max_iterations=10)
        self.assertTrue(controller.should_continue("tool_calls"))
        self.assertTrue(controller.should_continue(FinishReason.TOOL_CALLS))
        self.assertEqual(controller.iteration, 2)

    def test_length_and_error_stop_the_loop(self):
        self.assertFalse(AgentLoopController(3).should_continue(FinishReason.LENGTH))
        self.assertFalse(AgentLoopController(3).should_continue("error"))

    def test_bound_suppresses_extra_turns(self):
        controller = AgentLoopController(max_iterations=10)
        decisions = [controller.should_continue(FinishReason.TOOL_CALLS) for _ in range(10)]

        self.assertEqual(decisions, [True] * 9 + [False])
        self.assertEqual(controller.iteration, 10)
        self.assertTrue(controller.bound_reached)

    def test_reset_starts_a_new_request(self):
        controller = AgentLoopController(max_iterations=1)
        controller.should_continue(FinishReason.TOOL_CALLS)
        self.assertTrue(controller.bound_reached)

        controller.reset()
        self.assertEqual(controller.iteration, 0)
        self.assertFalse(controller.bound_reached)

    def test_bound_defaults_to_configuration(self):
        with patch.dict(os.environ, {"RELAYCHAT_MAX_AGENT_ITERATIONS": "3"}):
            controller = AgentLoopController()
        self.assertEqual(controller.max_iterations, 3)

    def test_invalid_configured_bound_falls_back_to_default(self):
        with patch.dict(os.environ, {"RELAYCHAT_MAX_AGENT_ITERATIONS": "zero"}):
            controller = AgentLoopController()
        self.assertEqual(controller.max_iterations, 10)

    def test_explicit_bound_is_not_replaced_by_default(self):
        with patch.dict(os.environ, {"RELAYCHAT_MAX_AGENT_ITERATIONS": "7"}):
            self.assertEqual(AgentLoopController(max_iterations=1).max_iterations, 1)
            with self.assertRaises(ValueError):
                AgentLoopController(max_iterations=0)


if __name__ == '__main__':
    unittest.main()
