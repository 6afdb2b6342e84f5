"""Unit tests for the conversation state merger."""

import unittest

from chat.merger import merge_messages
from chat.messages import Message, TextPart, UIMessage


def _persisted(message_id, role, content, thread_id="thr_1"):
    return Message(id=message_id, thread_id=thread_id, role=role, content=content)


def _streaming(message_id, text, role="assistant"):
    return UIMessage(id=message_id, role=role, parts=[TextPart(text=text)])


class TestMergeMessages(unittest.TestCase):

    def test_single_persisted_user_message_before_streaming(self):
        persisted = [_persisted("msg_u1", "user", "Hello")]

        merged = merge_messages(persisted, [])

        self.assertEqual(len(merged), 1)
        self.assertEqual(merged[0].role, "user")
        self.assertEqual(merged[0].content, "Hello")

    def test_streaming_assistant_is_appended_after_history(self):
        persisted = [_persisted("msg_u1", "user", "Hello")]
        streaming = [_streaming("msg_a1", "Hi")]

        merged = merge_messages(persisted, streaming)

        self.assertEqual([m.id for m in merged], ["msg_u1", "msg_a1"])

    def test_flushed_streaming_message_is_not_duplicated(self):
        persisted = [_persisted("msg_u1", "user", "Hello"), _persisted("msg_a1", "assistant", "Hi")]
        streaming = [_streaming("msg_a1", "Hi")]

        merged = merge_messages(persisted, streaming)

        self.assertEqual([m.id for m in merged], ["msg_u1", "msg_a1"])
        self.assertIsInstance(merged[1], Message)

    def test_streaming_user_messages_are_ignored(self):
        persisted = [_persisted("msg_u1", "user", "Hello")]
        streaming = [_streaming("msg_u1", "Hello", role="user"), _streaming("msg_u2", "Hello", role="user")]

        merged = merge_messages(persisted, streaming)

        self.assertEqual([m.id for m in merged], ["msg_u1"])

    def test_unloaded_history_shows_streaming_only(self):
        streaming = [_streaming("msg_a1", "Hi")]
        self.assertEqual([m.id for m in merge_messages(None, streaming)], ["msg_a1"])

    def test_merge_is_idempotent_and_pure(self):
        persisted = [_persisted("msg_u1", "user", "Hello")]
        streaming = [_streaming("msg_a1", "Hi"), _streaming("msg_a1", "Hi again")]

        first = merge_messages(persisted, streaming)
        second = merge_messages(persisted, streaming)

        self.assertEqual([m.id for m in first], [m.id for m in second])
        self.assertEqual([m.id for m in first], ["msg_u1", "msg_a1"])
        self.assertEqual(len(persisted), 1)
        self.assertEqual(len(streaming), 2)

    def test_persisted_order_is_preserved(self):
        persisted = [
            _persisted("msg_3", "user", "c"),
            _persisted("msg_1", "assistant", "a"),
            _persisted("msg_2", "user", "b"),
        ]
        merged = merge_messages(persisted, [])
        self.assertEqual([m.id for m in merged], ["msg_3", "msg_1", "msg_2"])


if __name__ == '__main__':
    unittest.main()
