# status: complete

from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional

from agents.approval_broker import ApprovalBroker
from agents.tool_call_state import ToolCall, ToolCallState
from chat.messages import TextPart, ThinkingPart, ToolCallPart, ToolResultPart, UIMessage
from chat.stream_chunks import (
    Finish,
    FinishReason,
    TextDelta,
    ThinkingDelta,
    ToolCallComplete,
    ToolCallDelta,
    ToolResultChunk,
)
from utils.logger import get_logger

logger = get_logger(__name__)

STREAM_INTERRUPTED = "stream interrupted"
CANCELLED = "cancelled"


class StreamingSession:
    """
    Ephemeral buffer for the assistant's in-progress turn in one thread.

    Holds the in-flight UI messages, the tool calls they carry and the
    approval broker for those calls. Chunks are applied strictly in the
    order they are passed in.
    """

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        self.broker = ApprovalBroker()
        self.finish_reason: Optional[FinishReason] = None
        self._messages: List[UIMessage] = []
        self._tool_calls: Dict[str, ToolCall] = {}
        self._lock = threading.RLock()

    @property
    def current_message(self) -> Optional[UIMessage]:
        with self._lock:
            return self._messages[-1] if self._messages else None

    def begin_assistant_message(self) -> UIMessage:
        with self._lock:
            message = UIMessage.new_assistant()
            message.created_at = int(time.time() * 1000)
            self._messages.append(message)
            self.finish_reason = None
            return message

    def begin_turn(self) -> None:
        with self._lock:
            self.finish_reason = None

    def _require_message(self) -> UIMessage:
        message = self.current_message
        if message is None:
            message = self.begin_assistant_message()
        return message

    def tool_call(self, call_id: str) -> Optional[ToolCall]:
        with self._lock:
            return self._tool_calls.get(call_id)

    def tool_calls(self) -> List[ToolCall]:
        with self._lock:
            return list(self._tool_calls.values())

    def apply_chunk(self, chunk) -> None:
        """Fold one model chunk into the current assistant message."""
        with self._lock:
            message = self._require_message()

            if isinstance(chunk, (TextDelta, ThinkingDelta)):
                part_cls = TextPart if isinstance(chunk, TextDelta) else ThinkingPart
                last = message.parts[-1] if message.parts else None
                if type(last) is part_cls:
                    last.text += chunk.text
                else:
                    message.parts.append(part_cls(text=chunk.text))

            elif isinstance(chunk, ToolCallDelta):
                call = self._tool_calls.get(chunk.tool_call_id)
                if call is None:
                    call = ToolCall(id=chunk.tool_call_id, name=chunk.tool_name)
                    self._tool_calls[call.id] = call
                    message.parts.append(ToolCallPart(call=call))
                call.append_arguments(chunk.arguments_delta)

            elif isinstance(chunk, ToolCallComplete):
                call = self._tool_calls.get(chunk.tool_call_id)
                if call is None:
                    logger.warning(f"Completion for unknown tool call {chunk.tool_call_id} in thread {self.thread_id}")
                    return
                if not call.complete_input():
                    logger.warning(f"[TOOL] Call {call.id} ({call.name}) denied: {call.error}")

            elif isinstance(chunk, ToolResultChunk):
                self.add_tool_result(chunk.tool_call_id, chunk.output)

            elif isinstance(chunk, Finish):
                self.finish_reason = chunk.finish_reason

            else:
                raise TypeError(f"Unsupported chunk type: {type(chunk).__name__}")

    def add_tool_result(self, call_id: str, output: Dict, state: Optional[str] = None) -> ToolResultPart:
        with self._lock:
            message = self._require_message()
            call = self._tool_calls.get(call_id)
            if state is None:
                state = call.state.value if call is not None else ToolCallState.EXECUTED.value
            part = ToolResultPart(tool_call_id=call_id, content=output, state=state)
            message.parts.append(part)
            return part

    def interrupt(self, reason: str = STREAM_INTERRUPTED) -> List[ToolCall]:
        """Deny calls whose arguments never finished streaming."""
        denied = []
        with self._lock:
            for call in self._tool_calls.values():
                if call.state in (ToolCallState.AWAITING_INPUT, ToolCallState.INPUT_STREAMING):
                    if call.deny(reason):
                        denied.append(call)
        if denied:
            logger.warning(f"[AGENT] {len(denied)} tool call(s) in thread {self.thread_id} denied: {reason}")
        return denied

    def cancel_pending(self, reason: str = CANCELLED) -> List[ToolCall]:
        """Deny every non-terminal call, including those awaiting approval."""
        self.broker.cancel_pending(reason)
        denied = []
        with self._lock:
            for call in self._tool_calls.values():
                if call.deny(reason):
                    denied.append(call)
        return denied

    def discard(self, message_id: str) -> None:
        """Drop an in-flight message without persisting it."""
        with self._lock:
            self._messages = [m for m in self._messages if m.id != message_id]

    def snapshot(self) -> List[UIMessage]:
        """Copies of the in-flight messages, safe to hand to the merger."""
        with self._lock:
            return [
                UIMessage(id=m.id, role=m.role, parts=list(m.parts), created_at=m.created_at)
                for m in self._messages
            ]

    def reset(self) -> None:
        with self._lock:
            self.broker.cancel_pending(CANCELLED)
            self.broker.clear()
            self._messages = []
            self._tool_calls = {}
            self.finish_reason = None


class SessionRegistry:
    """Streaming sessions keyed by thread id, with explicit lifecycle calls."""

    def __init__(self):
        self._sessions: Dict[str, StreamingSession] = {}
        self._lock = threading.Lock()

    def create(self, thread_id: str) -> StreamingSession:
        """Start a fresh session, replacing any previous one for the thread."""
        with self._lock:
            previous = self._sessions.get(thread_id)
            session = StreamingSession(thread_id)
            self._sessions[thread_id] = session
        if previous is not None:
            previous.reset()
            logger.debug(f"Replaced streaming session for thread {thread_id}")
        return session

    def get(self, thread_id: str) -> Optional[StreamingSession]:
        with self._lock:
            return self._sessions.get(thread_id)

    def reset(self, thread_id: str) -> bool:
        session = self.get(thread_id)
        if session is None:
            return False
        session.reset()
        return True

    def destroy(self, thread_id: str) -> bool:
        with self._lock:
            session = self._sessions.pop(thread_id, None)
        if session is None:
            return False
        session.reset()
        logger.debug(f"Destroyed streaming session for thread {thread_id}")
        return True


session_registry = SessionRegistry()
