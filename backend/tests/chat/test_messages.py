"""Unit tests for message parts, serialization and model message conversion."""

import json
import unittest

from agents.tool_call_state import ToolCall, ToolCallState
from chat.messages import (
    Message,
    TextPart,
    ThinkingPart,
    ToolCallPart,
    ToolResultPart,
    UIMessage,
    deserialize_parts,
    parse_thinking_content,
    serialize_parts,
    strip_think_prefix,
    to_model_messages,
)


def _executed_call():
    call = ToolCall(id="call_1", name="read")
    call.append_arguments('{"path": "notes.txt"}')
    call.complete_input()
    call.mark_executed({"success": True, "content": "hi"})
    return call


class TestPartSerialization(unittest.TestCase):

    def test_plain_text_content_is_one_text_part(self):
        parts = deserialize_parts("Hello there")
        self.assertEqual(len(parts), 1)
        self.assertEqual(parts[0].text, "Hello there")

    def test_unknown_json_array_falls_back_to_text(self):
        parts = deserialize_parts('[1, 2, 3]')
        self.assertEqual(parts[0].text, '[1, 2, 3]')

    def test_parts_survive_storage(self):
        call = _executed_call()
        parts = [
            ThinkingPart(text="let me look"),
            TextPart(text="Reading the file."),
            ToolCallPart(call=call),
            ToolResultPart(tool_call_id="call_1", content={"success": True}),
        ]

        restored = deserialize_parts(serialize_parts(parts))

        self.assertEqual([p.type for p in restored], ["thinking", "text", "tool-call", "tool-result"])
        self.assertEqual(restored[2].call.id, "call_1")
        self.assertEqual(restored[2].call.state, ToolCallState.EXECUTED)
        self.assertEqual(restored[2].call.input, {"path": "notes.txt"})
        self.assertEqual(restored[3].content, {"success": True})

    def test_message_to_dict_exposes_parts(self):
        record = {"id": "msg_1", "thread_id": "thr_1", "role": "user", "content": "Hi", "created_at": 5}
        payload = Message.from_record(record).to_dict()

        self.assertEqual(payload["parts"], [{"type": "text", "text": "Hi"}])
        self.assertEqual(payload["source"], "persisted")
        self.assertEqual(payload["createdAt"], 5)


class TestThinkingHelpers(unittest.TestCase):

    def test_parse_thinking_splits_blocks(self):
        thinking, content, is_thinking = parse_thinking_content("<think>plan</think>Answer")
        self.assertEqual(thinking, "plan")
        self.assertEqual(content, "Answer")
        self.assertFalse(is_thinking)

    def test_open_think_block_is_reported(self):
        thinking, content, is_thinking = parse_thinking_content("<think>still going")
        self.assertEqual(thinking, "still going")
        self.assertEqual(content, "")
        self.assertTrue(is_thinking)

    def test_strip_think_prefix(self):
        self.assertEqual(strip_think_prefix("/no_think hello"), "hello")
        self.assertEqual(strip_think_prefix("/think hello"), "hello")
        self.assertEqual(strip_think_prefix("hello"), "hello")


class TestModelMessages(unittest.TestCase):

    def test_in_flight_tool_round_trip_becomes_tool_messages(self):
        message = UIMessage(id="msg_a", role="assistant", parts=[
            ThinkingPart(text="hmm"),
            TextPart(text="Let me read it."),
            ToolCallPart(call=_executed_call()),
            ToolResultPart(tool_call_id="call_1", content={"success": True}),
        ])

        result = to_model_messages([message])

        self.assertEqual(result[0]["role"], "assistant")
        self.assertEqual(result[0]["content"], "Let me read it.")
        self.assertEqual(result[0]["tool_calls"][0]["function"]["name"], "read")
        self.assertEqual(json.loads(result[0]["tool_calls"][0]["function"]["arguments"]), {"path": "notes.txt"})
        self.assertEqual(result[1], {"role": "tool", "tool_call_id": "call_1", "content": '{"success": true}'})

    def test_persisted_assistant_text_drops_think_blocks(self):
        persisted = Message(id="msg_a", thread_id="thr_1", role="assistant", content="<think>x</think>Done")
        self.assertEqual(to_model_messages([persisted]), [{"role": "assistant", "content": "Done"}])

    def test_persisted_tool_history_is_replayed(self):
        content = serialize_parts([
            ToolCallPart(call=_executed_call()),
            ToolResultPart(tool_call_id="call_1", content={"success": True}),
            TextPart(text="It says hi."),
        ])
        persisted = Message(id="msg_a", thread_id="thr_1", role="assistant", content=content)

        result = to_model_messages([persisted])

        self.assertEqual([m["role"] for m in result], ["assistant", "tool", "assistant"])
        self.assertEqual(result[2]["content"], "It says hi.")

    def test_system_prompts_come_first_and_blank_ones_are_skipped(self):
        user = Message(id="msg_u", thread_id="thr_1", role="user", content="Hi")

        result = to_model_messages([user], system_prompts=["Base rules", "", "Be brief"])

        self.assertEqual(result, [
            {"role": "system", "content": "Base rules"},
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hi"},
        ])


if __name__ == '__main__':
    unittest.main()
