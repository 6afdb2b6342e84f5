# status: complete

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from agents.tool_call_state import ApprovalDecision, PendingApproval, ToolCall, ToolCallState
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class TextPart:
    type: ClassVar[str] = "text"
    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ThinkingPart:
    type: ClassVar[str] = "thinking"
    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolCallPart:
    type: ClassVar[str] = "tool-call"
    call: ToolCall

    def to_dict(self) -> Dict[str, Any]:
        payload = self.call.to_dict()
        payload["type"] = self.type
        return payload


@dataclass
class ToolResultPart:
    type: ClassVar[str] = "tool-result"
    tool_call_id: str
    content: Dict[str, Any] = field(default_factory=dict)
    state: str = ToolCallState.EXECUTED.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "toolCallId": self.tool_call_id,
            "content": self.content,
            "state": self.state,
        }


MessagePart = Union[TextPart, ThinkingPart, ToolCallPart, ToolResultPart]


@dataclass
class Message:
    """A persisted message, as returned by the persistence adapter."""

    id: str
    thread_id: str
    role: str
    content: str
    created_at: Optional[int] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Message":
        return cls(
            id=record["id"],
            thread_id=record["thread_id"],
            role=record["role"],
            content=record["content"],
            created_at=record.get("created_at"),
        )

    @property
    def parts(self) -> List[MessagePart]:
        return deserialize_parts(self.content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "threadId": self.thread_id,
            "role": self.role,
            "parts": [part.to_dict() for part in self.parts],
            "createdAt": self.created_at,
            "source": "persisted",
        }


@dataclass
class UIMessage:
    """An in-flight message held by a streaming session."""

    id: str
    role: str
    parts: List[MessagePart] = field(default_factory=list)
    created_at: Optional[int] = None

    @classmethod
    def new_assistant(cls) -> "UIMessage":
        return cls(id=f"msg_{uuid.uuid4().hex}", role="assistant")

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_calls(self) -> List[ToolCall]:
        return [part.call for part in self.parts if isinstance(part, ToolCallPart)]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "parts": [part.to_dict() for part in self.parts],
            "createdAt": self.created_at,
            "source": "streaming",
        }


def serialize_parts(parts: Sequence[MessagePart]) -> str:
    """Encode message parts as the JSON array stored in message content."""
    return json.dumps([part.to_dict() for part in parts], ensure_ascii=False)


def _tool_call_from_dict(data: Dict[str, Any]) -> ToolCall:
    try:
        state = ToolCallState(data.get("state", ToolCallState.INPUT_COMPLETE.value))
    except ValueError:
        state = ToolCallState.INPUT_COMPLETE

    call = ToolCall(
        id=str(data.get("id", "")),
        name=str(data.get("name", "")),
        arguments_text=data.get("arguments") or "",
        input=data.get("input"),
        state=state,
        output=data.get("output"),
        error=data.get("error"),
    )
    approval = data.get("approval")
    if isinstance(approval, dict):
        call.needs_approval = bool(approval.get("needsApproval", True))
        if isinstance(approval.get("approved"), bool):
            call.approval = ApprovalDecision(
                id=str(approval.get("id", call.id)),
                approved=approval["approved"],
                reason=approval.get("reason"),
            )
        else:
            call.approval = PendingApproval(
                id=str(approval.get("id", call.id)),
                needs_approval=call.needs_approval,
            )
    return call


def _part_from_dict(data: Any) -> Optional[MessagePart]:
    if not isinstance(data, dict):
        return None
    part_type = data.get("type")
    if part_type == "text":
        return TextPart(text=str(data.get("text", "")))
    if part_type == "thinking":
        return ThinkingPart(text=str(data.get("text", "")))
    if part_type == "tool-call":
        return ToolCallPart(call=_tool_call_from_dict(data))
    if part_type == "tool-result":
        content = data.get("content")
        return ToolResultPart(
            tool_call_id=str(data.get("toolCallId", "")),
            content=content if isinstance(content, dict) else {"output": content},
            state=str(data.get("state", ToolCallState.EXECUTED.value)),
        )
    return None


def deserialize_parts(content: str) -> List[MessagePart]:
    """
    Decode stored message content.

    Content that is not a JSON array of known parts is plain text and
    becomes a single text part.
    """
    if not content:
        return [TextPart(text="")]
    stripped = content.lstrip()
    if not stripped.startswith("["):
        return [TextPart(text=content)]
    try:
        raw = json.loads(content)
    except json.JSONDecodeError:
        return [TextPart(text=content)]
    if not isinstance(raw, list):
        return [TextPart(text=content)]

    parts = [_part_from_dict(item) for item in raw]
    if not parts or any(part is None for part in parts):
        return [TextPart(text=content)]
    return parts


_THINK_BLOCK = re.compile(r"<think>([\s\S]*?)(?:</think>|$)", re.IGNORECASE)
_THINK_TAG = re.compile(r"</?think>", re.IGNORECASE)
_OPEN_THINK = re.compile(r"<think>(?![\s\S]*</think>)", re.IGNORECASE)


def parse_thinking_content(text: str) -> Tuple[str, str, bool]:
    """
    Split <think> reasoning out of model text.

    Returns (thinking, content, is_thinking). is_thinking is True while a
    <think> block is still open, which happens mid-stream.
    """
    if "<think>" not in text.lower():
        return "", text.strip(), False

    is_thinking = bool(_OPEN_THINK.search(text))
    blocks = [match.group(1).strip() for match in _THINK_BLOCK.finditer(text)]
    thinking = "\n\n".join(block for block in blocks if block)
    content = _THINK_TAG.sub("", _THINK_BLOCK.sub("", text)).strip()
    return thinking, content, is_thinking


def strip_think_prefix(content: str) -> str:
    """Remove a leading /think or /no_think switch from user input."""
    content = re.sub(r"^/think\s+", "", content, flags=re.IGNORECASE)
    return re.sub(r"^/no_think\s+", "", content, flags=re.IGNORECASE)


def _persisted_text(message: Message) -> str:
    texts = [part.text for part in message.parts if isinstance(part, TextPart)]
    return parse_thinking_content("".join(texts))[1] if message.role == "assistant" else "".join(texts)


def _ui_message_to_model_messages(message: UIMessage) -> List[Dict[str, Any]]:
    result: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None

    for part in message.parts:
        if isinstance(part, ThinkingPart):
            continue
        if isinstance(part, ToolResultPart):
            if current is not None:
                result.append(current)
                current = None
            result.append({
                "role": "tool",
                "tool_call_id": part.tool_call_id,
                "content": json.dumps(part.content, ensure_ascii=False),
            })
            continue

        if current is None:
            current = {"role": message.role, "content": ""}
        if isinstance(part, TextPart):
            current["content"] += part.text
        elif isinstance(part, ToolCallPart):
            current.setdefault("tool_calls", []).append({
                "id": part.call.id,
                "type": "function",
                "function": {
                    "name": part.call.name,
                    "arguments": json.dumps(part.call.input) if part.call.input is not None
                    else part.call.arguments_text,
                },
            })

    if current is not None:
        result.append(current)
    return result


def to_model_messages(
    entries: Sequence[Union[Message, UIMessage]],
    system_prompts: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """Convert a merged conversation view into chat-completions messages, system prompts first."""
    model_messages: List[Dict[str, Any]] = [
        {"role": "system", "content": prompt} for prompt in (system_prompts or []) if prompt
    ]
    for entry in entries:
        if isinstance(entry, UIMessage):
            model_messages.extend(_ui_message_to_model_messages(entry))
            continue
        parts = entry.parts
        if entry.role == "assistant" and any(isinstance(part, ToolCallPart) for part in parts):
            model_messages.extend(_ui_message_to_model_messages(UIMessage(id=entry.id, role=entry.role, parts=parts)))
        else:
            model_messages.append({"role": entry.role, "content": _persisted_text(entry)})
    return model_messages
