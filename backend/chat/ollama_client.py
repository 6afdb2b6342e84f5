# status: complete

import json
import threading
import uuid
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

from chat.stream_channel import StreamChannel
from chat.stream_chunks import (
    Finish,
    FinishReason,
    TextDelta,
    ThinkingDelta,
    ToolCallComplete,
    ToolCallDelta,
)
from utils.config import Config
from utils.logger import get_logger

load_dotenv()

logger = get_logger(__name__)


class ThinkTagSplitter:
    """
    Splits streamed content into thinking and answer text on <think> tags.

    Tags may be cut across chunks, so a trailing fragment that could still
    become a tag is held back until the next feed().
    """

    OPEN = "<think>"
    CLOSE = "</think>"

    def __init__(self):
        self.in_think = False
        self._pending = ""

    def feed(self, text: str) -> List[Any]:
        chunks = []
        buffer = self._pending + text
        self._pending = ""

        while buffer:
            tag = self.CLOSE if self.in_think else self.OPEN
            index = buffer.find(tag)
            if index == -1:
                keep = self._partial_tag_length(buffer, tag)
                emit, self._pending = (buffer[:-keep], buffer[-keep:]) if keep else (buffer, "")
                self._emit(chunks, emit)
                break
            self._emit(chunks, buffer[:index])
            buffer = buffer[index + len(tag):]
            self.in_think = not self.in_think
        return chunks

    def flush(self) -> List[Any]:
        chunks = []
        self._emit(chunks, self._pending)
        self._pending = ""
        return chunks

    @staticmethod
    def _partial_tag_length(buffer: str, tag: str) -> int:
        for length in range(min(len(tag) - 1, len(buffer)), 0, -1):
            if tag.startswith(buffer[-length:]):
                return length
        return 0

    def _emit(self, chunks: List[Any], text: str) -> None:
        if text:
            chunks.append(ThinkingDelta(text=text) if self.in_think else TextDelta(text=text))


class OllamaClient:
    """
    Ollama through its OpenAI-compatible chat completions API.
    """

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None):
        self.base_url = (base_url or Config.get_ollama_base_url()).rstrip("/")
        self.model = model or Config.get_ollama_model()
        self.chat_url = f"{self.base_url}/v1/chat/completions"
        self.tags_url = f"{self.base_url}/api/tags"

    def _timeout(self):
        return (Config.get_model_connect_timeout(), Config.get_model_request_timeout())

    def is_available(self) -> bool:
        try:
            response = requests.get(self.tags_url, timeout=3)
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.debug(f"Ollama not reachable at {self.base_url}: {e}")
            return False

    def get_available_models(self) -> List[str]:
        try:
            response = requests.get(self.tags_url, timeout=3)
            response.raise_for_status()
            return [m.get("name") for m in response.json().get("models", []) if m.get("name")]
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Could not list Ollama models: {e}")
            return []

    def complete(self, messages: List[Dict[str, Any]], **options) -> Dict[str, Any]:
        """Non-streaming completion. Returns {"text", "error"}."""
        data = {"model": self.model, "messages": messages, "stream": False}
        for key, value in options.items():
            if key in ["temperature", "max_tokens", "top_p"]:
                data[key] = value

        try:
            response = requests.post(self.chat_url, json=data, timeout=self._timeout())
            response.raise_for_status()
            result = response.json()
            choices = result.get("choices") or []
            if not choices:
                logger.warning(f"Unexpected response format from Ollama: {result}")
                return {"text": None, "error": "Invalid response format"}
            return {"text": choices[0].get("message", {}).get("content") or "", "error": None}
        except requests.exceptions.RequestException as e:
            logger.error(f"Ollama request failed: {str(e)}")
            return {"text": None, "error": str(e)}
        except ValueError as e:
            logger.error(f"Ollama returned invalid JSON: {str(e)}")
            return {"text": None, "error": str(e)}

    def stream_chat(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None,
                    cancel_event: Optional[threading.Event] = None) -> StreamChannel:
        """
        Start a streaming completion on a producer thread.

        Typed chunks arrive on the returned channel in order and a Finish
        chunk ends every turn that was read to completion. When the
        consumer cancels (or cancel_event is set) the channel is closed
        without a Finish, which readers treat as an interrupted stream.
        """
        channel = StreamChannel(name=f"ollama-{uuid.uuid4().hex[:8]}")
        data: Dict[str, Any] = {"model": self.model, "messages": messages, "stream": True}
        if tools:
            data["tools"] = tools

        producer = threading.Thread(
            target=self._produce,
            args=(channel, data, cancel_event),
            name=channel.name,
            daemon=True,
        )
        producer.start()
        return channel

    def _produce(self, channel: StreamChannel, data: Dict[str, Any], cancel_event: Optional[threading.Event]):
        def stopped() -> bool:
            return channel.cancelled or (cancel_event is not None and cancel_event.is_set())

        splitter = ThinkTagSplitter()
        tool_calls: Dict[int, Dict[str, str]] = {}
        finish_reason = None
        response = None

        try:
            response = requests.post(self.chat_url, json=data, stream=True, timeout=self._timeout())
            response.raise_for_status()

            for line in response.iter_lines():
                if stopped():
                    logger.info(f"Ollama stream {channel.name} stopped by consumer")
                    return
                if not line:
                    continue
                line_str = line.decode('utf-8')
                if not line_str.startswith('data: '):
                    continue
                line_str = line_str[6:]
                if line_str == '[DONE]':
                    break

                try:
                    chunk = json.loads(line_str)
                except json.JSONDecodeError:
                    logger.warning(f"Failed to parse chunk: {line_str}")
                    continue

                if chunk.get("error"):
                    raise RuntimeError(chunk["error"].get("message") if isinstance(chunk["error"], dict)
                                       else str(chunk["error"]))

                for choice in chunk.get("choices") or []:
                    delta = choice.get("delta") or {}
                    reasoning = delta.get("reasoning") or delta.get("reasoning_content")
                    if reasoning:
                        channel.put(ThinkingDelta(text=reasoning))
                    if delta.get("content"):
                        for item in splitter.feed(delta["content"]):
                            channel.put(item)
                    for call_delta in delta.get("tool_calls") or []:
                        self._apply_tool_call_delta(channel, tool_calls, call_delta)
                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]

            if stopped():
                return

            for item in splitter.flush():
                channel.put(item)
            for index in sorted(tool_calls):
                channel.put(ToolCallComplete(tool_call_id=tool_calls[index]["id"]))

            if finish_reason is None:
                reason = FinishReason.TOOL_CALLS if tool_calls else FinishReason.STOP
            else:
                reason = FinishReason.coerce(finish_reason)
                if tool_calls and reason == FinishReason.STOP:
                    reason = FinishReason.TOOL_CALLS
            channel.put(Finish(finish_reason=reason))

        except requests.exceptions.RequestException as e:
            if not stopped():
                logger.error(f"Ollama streaming request failed: {str(e)}")
                channel.put(Finish(finish_reason=FinishReason.ERROR, error=str(e)))
        except Exception as e:
            logger.error(f"Unexpected error in Ollama stream: {str(e)}", exc_info=True)
            channel.put(Finish(finish_reason=FinishReason.ERROR, error=str(e)))
        finally:
            if response is not None:
                response.close()
            channel.close()

    @staticmethod
    def _apply_tool_call_delta(channel: StreamChannel, tool_calls: Dict[int, Dict[str, str]],
                               call_delta: Dict[str, Any]) -> None:
        index = call_delta.get("index")
        if index is None:
            index = len(tool_calls)
        function = call_delta.get("function") or {}
        arguments = function.get("arguments") or ""
        if isinstance(arguments, dict):
            arguments = json.dumps(arguments)

        entry = tool_calls.get(index)
        if entry is None:
            entry = {
                "id": call_delta.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                "name": function.get("name") or "",
            }
            tool_calls[index] = entry
        elif function.get("name") and not entry["name"]:
            entry["name"] = function["name"]

        channel.put(ToolCallDelta(tool_call_id=entry["id"], tool_name=entry["name"], arguments_delta=arguments))
