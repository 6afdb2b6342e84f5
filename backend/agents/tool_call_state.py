from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from utils.logger import get_logger

_logger = get_logger(__name__)


class ToolCallState(str, Enum):
    AWAITING_INPUT = "awaiting-input"
    INPUT_STREAMING = "input-streaming"
    INPUT_COMPLETE = "input-complete"
    APPROVAL_REQUESTED = "approval-requested"
    APPROVAL_RESPONDED = "approval-responded"
    EXECUTED = "executed"
    DENIED = "denied"


STATE_ORDER = {
    ToolCallState.AWAITING_INPUT: 0,
    ToolCallState.INPUT_STREAMING: 1,
    ToolCallState.INPUT_COMPLETE: 2,
    ToolCallState.APPROVAL_REQUESTED: 3,
    ToolCallState.APPROVAL_RESPONDED: 4,
    ToolCallState.EXECUTED: 5,
    ToolCallState.DENIED: 5,
}

TERMINAL_STATES = frozenset({ToolCallState.EXECUTED, ToolCallState.DENIED})

_TRANSITIONS = {
    ToolCallState.AWAITING_INPUT: {
        ToolCallState.INPUT_STREAMING, ToolCallState.INPUT_COMPLETE, ToolCallState.DENIED,
    },
    ToolCallState.INPUT_STREAMING: {ToolCallState.INPUT_COMPLETE, ToolCallState.DENIED},
    ToolCallState.INPUT_COMPLETE: {
        ToolCallState.APPROVAL_REQUESTED, ToolCallState.EXECUTED, ToolCallState.DENIED,
    },
    ToolCallState.APPROVAL_REQUESTED: {ToolCallState.APPROVAL_RESPONDED, ToolCallState.DENIED},
    ToolCallState.APPROVAL_RESPONDED: {ToolCallState.EXECUTED, ToolCallState.DENIED},
    ToolCallState.EXECUTED: set(),
    ToolCallState.DENIED: set(),
}


class InvalidTransitionError(ValueError):
    """Raised when a tool call is asked to move to a state it cannot reach."""


class ConflictingDecisionError(ValueError):
    """Raised when a decided tool call receives the opposite decision."""


@dataclass(frozen=True)
class PendingApproval:
    """Approval payload while the user has not answered yet."""

    id: str
    needs_approval: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "needsApproval": self.needs_approval}


@dataclass(frozen=True)
class ApprovalDecision:
    """Approval payload once the user answered."""

    id: str
    approved: bool
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {"id": self.id, "needsApproval": True, "approved": self.approved}
        if self.reason:
            payload["reason"] = self.reason
        return payload


Approval = Union[PendingApproval, ApprovalDecision]


@dataclass
class ToolCall:
    """
    Lifecycle record of one model-requested tool invocation.

    States only move forward:
    awaiting-input -> input-streaming -> input-complete -> approval-requested
    -> approval-responded -> executed | denied. A tool that does not need
    approval may go from input-complete straight to executed. Arguments arrive
    as text and are parsed once, when input completes.
    """

    id: str
    name: str
    arguments_text: str = ""
    input: Optional[Dict[str, Any]] = None
    state: ToolCallState = ToolCallState.AWAITING_INPUT
    needs_approval: bool = False
    approval: Optional[Approval] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    history: List[ToolCallState] = field(default_factory=list)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def __post_init__(self):
        if not self.history:
            self.history.append(self.state)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def can_execute(self) -> bool:
        """True only for an approved call or a no-approval call with complete input."""
        with self._lock:
            if self.state == ToolCallState.APPROVAL_RESPONDED:
                return isinstance(self.approval, ApprovalDecision) and self.approval.approved
            if self.state == ToolCallState.INPUT_COMPLETE:
                return not self.needs_approval and self.input is not None
            return False

    def _advance(self, target: ToolCallState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Tool call {self.id} ({self.name}) cannot move from {self.state.value} to {target.value}"
            )
        self.state = target
        self.history.append(target)

    def append_arguments(self, delta: str) -> None:
        with self._lock:
            if self.state == ToolCallState.AWAITING_INPUT:
                self._advance(ToolCallState.INPUT_STREAMING)
            elif self.state != ToolCallState.INPUT_STREAMING:
                raise InvalidTransitionError(
                    f"Tool call {self.id} received arguments after input was complete"
                )
            self.arguments_text += delta or ""

    def complete_input(self) -> bool:
        """
        Finish argument streaming and parse the payload.

        Returns True when the arguments parsed into an object. A parse failure
        denies the call with an error output instead of raising.
        """
        with self._lock:
            self._advance(ToolCallState.INPUT_COMPLETE)
            raw = self.arguments_text.strip()
            try:
                parsed = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                self._deny(f"Invalid tool arguments: {e.msg} at position {e.pos}")
                return False
            if not isinstance(parsed, dict):
                self._deny(f"Invalid tool arguments: expected a JSON object, got {type(parsed).__name__}")
                return False
            self.input = parsed
            return True

    def request_approval(self) -> PendingApproval:
        with self._lock:
            self._advance(ToolCallState.APPROVAL_REQUESTED)
            self.needs_approval = True
            self.approval = PendingApproval(id=self.id)
            return self.approval

    def record_decision(self, approved: bool, reason: Optional[str] = None) -> bool:
        """
        Record the user's decision.

        Returns False when the same decision was already recorded (replay).
        Raises ConflictingDecisionError when the opposite decision exists and
        InvalidTransitionError when no approval was requested.
        """
        with self._lock:
            if isinstance(self.approval, ApprovalDecision):
                if self.approval.approved == approved:
                    return False
                raise ConflictingDecisionError(
                    f"Tool call {self.id} was already {'approved' if self.approval.approved else 'denied'}"
                )
            if self.state != ToolCallState.APPROVAL_REQUESTED:
                raise InvalidTransitionError(
                    f"Tool call {self.id} is {self.state.value}, not awaiting approval"
                )
            self._advance(ToolCallState.APPROVAL_RESPONDED)
            self.approval = ApprovalDecision(id=self.id, approved=approved, reason=reason)
            return True

    def mark_executed(self, output: Dict[str, Any]) -> None:
        with self._lock:
            if not self.can_execute:
                raise InvalidTransitionError(
                    f"Tool call {self.id} cannot be executed from {self.state.value}"
                )
            self._advance(ToolCallState.EXECUTED)
            self.output = output

    def deny(self, reason: str, output: Optional[Dict[str, Any]] = None) -> bool:
        """Move to denied unless already terminal. Returns whether it changed."""
        with self._lock:
            if self.is_terminal:
                return False
            self._deny(reason, output)
            return True

    def _deny(self, reason: str, output: Optional[Dict[str, Any]] = None) -> None:
        self._advance(ToolCallState.DENIED)
        self.error = reason
        self.output = output if output is not None else {"success": False, "error": reason}
        _logger.debug(f"Tool call {self.id} ({self.name}) denied: {reason}")

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            payload: Dict[str, Any] = {
                "id": self.id,
                "name": self.name,
                "arguments": self.arguments_text,
                "state": self.state.value,
            }
            if self.input is not None:
                payload["input"] = self.input
            if self.output is not None:
                payload["output"] = self.output
            if self.error:
                payload["error"] = self.error
            if self.approval is not None:
                payload["approval"] = self.approval.to_dict()
            return payload
