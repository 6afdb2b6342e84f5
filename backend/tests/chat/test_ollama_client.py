"""Unit tests for the Ollama client stream parsing."""

import json
import threading
import unittest
from unittest.mock import MagicMock, patch

import requests

from chat.ollama_client import OllamaClient, ThinkTagSplitter
from chat.stream_chunks import (
    Finish,
    FinishReason,
    TextDelta,
    ThinkingDelta,
    ToolCallComplete,
    ToolCallDelta,
)


def _sse_lines(*payloads):
    lines = []
    for payload in payloads:
        lines.append(f"data: {json.dumps(payload)}".encode("utf-8"))
        lines.append(b"")
    lines.append(b"data: [DONE]")
    return lines


def _response(lines):
    response = MagicMock()
    response.iter_lines.return_value = iter(lines)
    response.raise_for_status.return_value = None
    return response


class TestThinkTagSplitter(unittest.TestCase):

    def test_splits_think_block_from_answer(self):
        splitter = ThinkTagSplitter()
        chunks = splitter.feed("<think>plan</think>answer") + splitter.flush()

        self.assertEqual(chunks, [ThinkingDelta(text="plan"), TextDelta(text="answer")])

    def test_tags_cut_across_chunks(self):
        splitter = ThinkTagSplitter()
        chunks = []
        for piece in ["<thi", "nk>pl", "an</th", "ink>ans", "wer"]:
            chunks.extend(splitter.feed(piece))
        chunks.extend(splitter.flush())

        thinking = "".join(c.text for c in chunks if isinstance(c, ThinkingDelta))
        text = "".join(c.text for c in chunks if isinstance(c, TextDelta))
        self.assertEqual(thinking, "plan")
        self.assertEqual(text, "answer")

    def test_lone_angle_bracket_is_released_on_flush(self):
        splitter = ThinkTagSplitter()
        chunks = splitter.feed("a <") + splitter.flush()
        self.assertEqual("".join(c.text for c in chunks), "a <")


class TestOllamaStream(unittest.TestCase):

    def setUp(self):
        self.client = OllamaClient(base_url="http://ollama.test", model="test-model")

    def _collect(self, lines):
        with patch("chat.ollama_client.requests.post", return_value=_response(lines)) as post:
            channel = self.client.stream_chat([{"role": "user", "content": "hi"}], tools=[{"type": "function"}])
            chunks = list(channel)
        return chunks, post

    def test_text_stream_ends_with_stop(self):
        chunks, post = self._collect(_sse_lines(
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
        ))

        self.assertEqual(chunks[:-1], [TextDelta(text="Hel"), TextDelta(text="lo")])
        self.assertEqual(chunks[-1], Finish(finish_reason=FinishReason.STOP))
        body = post.call_args.kwargs["json"]
        self.assertTrue(body["stream"])
        self.assertEqual(body["model"], "test-model")
        self.assertEqual(body["tools"], [{"type": "function"}])

    def test_reasoning_field_becomes_thinking(self):
        chunks, _ = self._collect(_sse_lines(
            {"choices": [{"delta": {"reasoning": "hmm"}}]},
            {"choices": [{"delta": {"content": "ok"}, "finish_reason": "stop"}]},
        ))
        self.assertEqual(chunks[0], ThinkingDelta(text="hmm"))

    def test_tool_call_deltas_complete_before_finish(self):
        chunks, _ = self._collect(_sse_lines(
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_a", "function": {"name": "bash", "arguments": '{"command":'}}
            ]}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": ' "ls"}'}}
            ]}, "finish_reason": "stop"}]},
        ))

        self.assertEqual(chunks, [
            ToolCallDelta(tool_call_id="call_a", tool_name="bash", arguments_delta='{"command":'),
            ToolCallDelta(tool_call_id="call_a", tool_name="bash", arguments_delta=' "ls"}'),
            ToolCallComplete(tool_call_id="call_a"),
            Finish(finish_reason=FinishReason.TOOL_CALLS),
        ])

    def test_object_arguments_are_encoded(self):
        chunks, _ = self._collect(_sse_lines(
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"name": "read", "arguments": {"path": "a.txt"}}}
            ]}, "finish_reason": "tool_calls"}]},
        ))

        delta = chunks[0]
        self.assertTrue(delta.tool_call_id.startswith("call_"))
        self.assertEqual(json.loads(delta.arguments_delta), {"path": "a.txt"})

    def test_request_failure_finishes_with_error(self):
        with patch("chat.ollama_client.requests.post",
                   side_effect=requests.exceptions.ConnectionError("refused")):
            chunks = list(self.client.stream_chat([{"role": "user", "content": "hi"}]))

        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].finish_reason, FinishReason.ERROR)
        self.assertIn("refused", chunks[0].error)

    def test_cancelled_stream_closes_without_finish(self):
        cancel_event = threading.Event()
        cancel_event.set()
        lines = _sse_lines({"choices": [{"delta": {"content": "late"}, "finish_reason": "stop"}]})

        with patch("chat.ollama_client.requests.post", return_value=_response(lines)):
            chunks = list(self.client.stream_chat([], cancel_event=cancel_event))

        self.assertEqual(chunks, [])


class TestOllamaComplete(unittest.TestCase):

    def test_complete_returns_text(self):
        response = MagicMock()
        response.raise_for_status.return_value = None
        response.json.return_value = {"choices": [{"message": {"content": "A title"}}]}

        with patch("chat.ollama_client.requests.post", return_value=response):
            result = OllamaClient(base_url="http://ollama.test").complete([{"role": "user", "content": "x"}])

        self.assertEqual(result, {"text": "A title", "error": None})

    def test_complete_reports_errors(self):
        with patch("chat.ollama_client.requests.post",
                   side_effect=requests.exceptions.Timeout("slow")):
            result = OllamaClient(base_url="http://ollama.test").complete([])

        self.assertIsNone(result["text"])
        self.assertIn("slow", result["error"])

    def test_is_available_false_when_unreachable(self):
        with patch("chat.ollama_client.requests.get",
                   side_effect=requests.exceptions.ConnectionError("down")):
            self.assertFalse(OllamaClient(base_url="http://ollama.test").is_available())


if __name__ == '__main__':
    unittest.main()
