from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from agents.tool_call_state import PendingApproval, ToolCall, ToolCallState
from utils.logger import get_logger


class UnknownToolCallError(KeyError):
    """Raised when a decision targets a call the broker never exposed."""


@dataclass
class _ApprovalSlot:
    tool_call: ToolCall
    decided: threading.Event


class ApprovalBroker:
    """
    Carries user decisions for approval-gated tool calls back to the agent loop.

    One broker belongs to one streaming session. The agent thread calls
    request_approval() for every gated call and then blocks in
    wait_for_decisions() until each of them has a recorded decision or the
    request is cancelled. Decisions arrive from HTTP handler threads through
    record_decision().
    """

    def __init__(self, poll_interval: float = 0.1):
        self.poll_interval = poll_interval
        self._slots: Dict[str, _ApprovalSlot] = {}
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)

    def request_approval(self, tool_call: ToolCall) -> PendingApproval:
        """Expose a call for approval. The call moves to approval-requested."""
        with self._lock:
            pending = tool_call.request_approval()
            self._slots[tool_call.id] = _ApprovalSlot(tool_call=tool_call, decided=threading.Event())
        self.logger.info(f"[APPROVAL] Requested approval for {tool_call.name} call {tool_call.id}")
        return pending

    def record_decision(self, call_id: str, approved: bool, reason: Optional[str] = None) -> bool:
        """
        Record a decision for a pending call.

        Returns True when recorded, False when the identical decision was
        already recorded. Raises UnknownToolCallError or
        ConflictingDecisionError.
        """
        with self._lock:
            slot = self._slots.get(call_id)
            if slot is None:
                raise UnknownToolCallError(call_id)
            recorded = slot.tool_call.record_decision(approved, reason)
            slot.decided.set()

        if recorded:
            self.logger.info(
                f"[APPROVAL] Call {call_id} {'approved' if approved else 'denied'}"
                + (f" ({reason})" if reason else "")
            )
        else:
            self.logger.info(f"[STALE-APPROVAL] Ignoring repeated decision for call {call_id}")
        return recorded

    def wait_for_decisions(self, call_ids: Iterable[str], cancel_event: Optional[threading.Event] = None) -> bool:
        """
        Block until every listed call has a decision.

        There is no timeout: only a decision or cancellation ends the wait.
        Returns False if cancel_event was set first.
        """
        with self._lock:
            slots = [self._slots[call_id] for call_id in call_ids if call_id in self._slots]

        for slot in slots:
            while not slot.decided.wait(timeout=self.poll_interval):
                if cancel_event is not None and cancel_event.is_set():
                    self.logger.info("[APPROVAL] Wait for decisions interrupted by cancellation")
                    return False
        return not (cancel_event is not None and cancel_event.is_set())

    def cancel_pending(self, reason: str = "cancelled") -> int:
        """Deny every call still waiting for a decision and wake the waiter."""
        cancelled = 0
        with self._lock:
            for slot in self._slots.values():
                if slot.tool_call.state == ToolCallState.APPROVAL_REQUESTED:
                    if slot.tool_call.deny(reason):
                        cancelled += 1
                slot.decided.set()
        if cancelled:
            self.logger.info(f"[APPROVAL] Denied {cancelled} pending call(s): {reason}")
        return cancelled

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()
