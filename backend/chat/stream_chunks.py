# status: complete

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"

    @classmethod
    def coerce(cls, value) -> "FinishReason":
        """Map a provider finish reason onto the four known values."""
        if isinstance(value, cls):
            return value
        if value in ("tool_calls", "tool-calls", "function_call"):
            return cls.TOOL_CALLS
        if value in ("length", "max_tokens"):
            return cls.LENGTH
        if value in ("stop", "end_turn", "eos"):
            return cls.STOP
        return cls.ERROR


@dataclass(frozen=True)
class TextDelta:
    type: ClassVar[str] = "text-delta"
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ThinkingDelta:
    type: ClassVar[str] = "thinking-delta"
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True)
class ToolCallDelta:
    type: ClassVar[str] = "tool-call-delta"
    tool_call_id: str
    tool_name: str
    arguments_delta: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "argumentsDelta": self.arguments_delta,
        }


@dataclass(frozen=True)
class ToolCallComplete:
    type: ClassVar[str] = "tool-call-complete"
    tool_call_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "toolCallId": self.tool_call_id}


@dataclass(frozen=True)
class ToolResultChunk:
    type: ClassVar[str] = "tool-result"
    tool_call_id: str
    output: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "toolCallId": self.tool_call_id, "output": self.output}


@dataclass(frozen=True)
class Finish:
    type: ClassVar[str] = "finish"
    finish_reason: FinishReason = FinishReason.STOP
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {"type": self.type, "finishReason": self.finish_reason.value}
        if self.error:
            payload["error"] = self.error
        return payload


StreamChunk = Union[TextDelta, ThinkingDelta, ToolCallDelta, ToolCallComplete, ToolResultChunk, Finish]
