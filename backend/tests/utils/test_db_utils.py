"""Tests for the thread and message persistence layer, against a temporary sqlite file."""

import shutil
import sys
import tempfile
import unittest
from pathlib import Path

backend_dir = Path(__file__).resolve().parents[2]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from utils.db_utils import AccessDeniedError, DatabaseManager, NotFoundError


class _DatabaseTestCase(unittest.TestCase):

    def setUp(self):
        self.data_dir = tempfile.mkdtemp()
        self.db = DatabaseManager(data_dir=self.data_dir)

    def tearDown(self):
        shutil.rmtree(self.data_dir, ignore_errors=True)


class TestThreads(_DatabaseTestCase):

    def test_create_thread_defaults(self):
        thread = self.db.create_thread("alice")

        self.assertTrue(thread["id"].startswith("thr_"))
        self.assertEqual(thread["owner"], "alice")
        self.assertEqual(thread["title"], "New Chat")
        self.assertIsNone(thread["last_ai_response_at"])
        self.assertEqual(self.db.get_thread(thread["id"], "alice")["title"], "New Chat")

    def test_blank_owner_is_rejected(self):
        with self.assertRaises(ValueError):
            self.db.create_thread("  ")

    def test_list_threads_is_scoped_to_owner(self):
        mine = self.db.create_thread("alice", "Mine")
        self.db.create_thread("bob", "Theirs")

        self.assertEqual([t["id"] for t in self.db.list_threads("alice")], [mine["id"]])

    def test_other_owner_is_denied(self):
        thread = self.db.create_thread("alice")

        with self.assertRaises(AccessDeniedError):
            self.db.get_thread(thread["id"], "bob")
        with self.assertRaises(AccessDeniedError):
            self.db.add_message(thread["id"], "bob", "user", "hi")

    def test_missing_thread(self):
        with self.assertRaises(NotFoundError):
            self.db.get_thread("thr_missing", "alice")
        self.assertFalse(self.db.thread_exists("thr_missing"))

    def test_update_title(self):
        thread = self.db.create_thread("alice")

        self.assertTrue(self.db.update_thread_title(thread["id"], "alice", "  Renamed  "))
        self.assertEqual(self.db.get_thread(thread["id"], "alice")["title"], "Renamed")
        with self.assertRaises(ValueError):
            self.db.update_thread_title(thread["id"], "alice", " ")

    def test_delete_thread_removes_messages(self):
        thread = self.db.create_thread("alice")
        message_id = self.db.add_message(thread["id"], "alice", "user", "hi")["message_id"]

        self.assertTrue(self.db.delete_thread(thread["id"], "alice"))
        with self.assertRaises(NotFoundError):
            self.db.get_message(message_id, "alice")

    def test_clear_thread_resets_title(self):
        thread = self.db.create_thread("alice", "Topic")
        self.db.add_message(thread["id"], "alice", "user", "hi")
        self.db.add_message(thread["id"], "alice", "assistant", "hello")

        self.assertEqual(self.db.clear_thread(thread["id"], "alice"), 2)
        self.assertEqual(self.db.list_messages(thread["id"], "alice"), [])
        self.assertEqual(self.db.get_thread(thread["id"], "alice")["title"], "New Chat")


class TestMessages(_DatabaseTestCase):

    def setUp(self):
        super().setUp()
        self.thread_id = self.db.create_thread("alice")["id"]

    def test_messages_keep_insertion_order(self):
        for i in range(5):
            self.db.add_message(self.thread_id, "alice", "user" if i % 2 == 0 else "assistant", f"m{i}")

        contents = [m["content"] for m in self.db.list_messages(self.thread_id, "alice")]
        self.assertEqual(contents, ["m0", "m1", "m2", "m3", "m4"])

    def test_first_user_message_flag(self):
        first = self.db.add_message(self.thread_id, "alice", "user", "one")
        second = self.db.add_message(self.thread_id, "alice", "user", "two")

        self.assertTrue(first["is_first_message"])
        self.assertFalse(second["is_first_message"])

    def test_explicit_id_is_kept_and_idempotent(self):
        first = self.db.add_message(self.thread_id, "alice", "assistant", "reply", message_id="msg_stream_1")
        again = self.db.add_message(self.thread_id, "alice", "assistant", "other", message_id="msg_stream_1")

        self.assertEqual(first, {"message_id": "msg_stream_1", "is_first_message": False, "created": True})
        self.assertFalse(again["created"])
        self.assertEqual(self.db.get_message("msg_stream_1", "alice")["content"], "reply")
        self.assertEqual(len(self.db.list_messages(self.thread_id, "alice")), 1)

    def test_explicit_id_in_another_thread_is_rejected(self):
        other = self.db.create_thread("alice")["id"]
        self.db.add_message(self.thread_id, "alice", "assistant", "reply", message_id="msg_x")

        with self.assertRaises(ValueError):
            self.db.add_message(other, "alice", "assistant", "reply", message_id="msg_x")

    def test_assistant_message_marks_thread_answered(self):
        self.db.add_message(self.thread_id, "alice", "assistant", "reply")

        self.assertIsNotNone(self.db.get_thread(self.thread_id, "alice")["last_ai_response_at"])

    def test_invalid_role_is_rejected(self):
        with self.assertRaises(ValueError):
            self.db.add_message(self.thread_id, "alice", "system", "x")

    def test_update_and_delete_message(self):
        message_id = self.db.add_message(self.thread_id, "alice", "user", "draft")["message_id"]

        self.assertTrue(self.db.update_message(message_id, "alice", "final"))
        self.assertEqual(self.db.get_message(message_id, "alice")["content"], "final")
        with self.assertRaises(AccessDeniedError):
            self.db.update_message(message_id, "bob", "hijack")

        self.assertTrue(self.db.delete_message(message_id, "alice"))
        with self.assertRaises(NotFoundError):
            self.db.delete_message(message_id, "alice")


if __name__ == '__main__':
    unittest.main()
