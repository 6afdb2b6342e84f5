# status: complete

import threading
from typing import Dict, List

from utils.logger import get_logger

logger = get_logger(__name__)


class CancellationManager:
    """Tracks the active agent thread of each conversation and its stop signal"""

    def __init__(self):
        self._active_chat_threads: Dict[str, threading.Thread] = {}
        self._chat_cancel_events: Dict[str, threading.Event] = {}

        self._lock = threading.Lock()

    def is_chat_active(self, thread_id: str) -> bool:
        """Check whether an agent thread is still running for a conversation"""
        with self._lock:
            worker = self._active_chat_threads.get(thread_id)
            return worker is not None and worker.is_alive()

    def cancel_chat(self, thread_id: str) -> bool:
        """Signal the agent thread of a conversation to stop; False if none is registered"""
        with self._lock:
            event = self._chat_cancel_events.get(thread_id)
            if event is None:
                return False
            event.set()
            logger.info(f"[CANCEL] Set cancel event for chat {thread_id}")
            return True

    def register_chat_thread(self, thread_id: str, thread: threading.Thread, cancel_event: threading.Event):
        """Register an agent thread and its cancel event for tracking"""
        with self._lock:
            self._active_chat_threads[thread_id] = thread
            self._chat_cancel_events[thread_id] = cancel_event
            logger.info(f"[CANCEL] Registered chat thread for {thread_id}")

    def unregister_chat_thread(self, thread_id: str, thread: threading.Thread = None):
        """Unregister a completed agent thread"""
        with self._lock:
            current = self._active_chat_threads.get(thread_id)
            if thread is not None and current is not None and current is not thread:
                return
            self._active_chat_threads.pop(thread_id, None)
            self._chat_cancel_events.pop(thread_id, None)
            logger.debug(f"[CANCEL] Unregistered chat thread for {thread_id}")

    def active_chats(self) -> List[str]:
        with self._lock:
            return [tid for tid, worker in self._active_chat_threads.items() if worker.is_alive()]

    def cleanup_chat(self, thread_id: str):
        """Clean up all tracking for a conversation"""
        with self._lock:
            self._active_chat_threads.pop(thread_id, None)
            self._chat_cancel_events.pop(thread_id, None)


cancellation_manager = CancellationManager()
