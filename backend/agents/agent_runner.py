from __future__ import annotations

import queue
import threading
from typing import Any, Dict, List, Optional

from agents.agent_loop import AgentLoopController
from agents.tool_call_state import ApprovalDecision, InvalidTransitionError, ToolCall, ToolCallState
from agents.tools.tool_gateway import ToolExecutionGateway, tool_gateway
from agents.tools.tool_registry import ToolExecutionContext
from chat.merger import merge_messages
from chat.messages import Message, UIMessage, serialize_parts, to_model_messages
from chat.session import CANCELLED, STREAM_INTERRUPTED, StreamingSession
from chat.stream_channel import ChannelClosed, StreamChannel
from chat.stream_chunks import Finish, FinishReason, ToolCallComplete, ToolCallDelta
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)

USER_DENIED = "The user denied this tool call"


class AgentRunner:
    """
    Runs one user request on the agent thread.

    Each turn streams the model reply into the session, gates the tool
    calls it asked for, waits for every pending approval, executes what
    may run and feeds the results back for the next turn until the loop
    controller says stop. Progress is published as event dicts on
    self.events, which is closed when the request ends.
    """

    def __init__(
        self,
        session: StreamingSession,
        client,
        owner: str,
        gateway: ToolExecutionGateway = tool_gateway,
        db_manager=None,
        cancel_event: Optional[threading.Event] = None,
        controller: Optional[AgentLoopController] = None,
        events: Optional[StreamChannel] = None,
        system_prompts: Optional[List[str]] = None,
    ):
        if db_manager is None:
            from utils.db_utils import db as db_manager
        self.session = session
        self.thread_id = session.thread_id
        self.client = client
        self.owner = owner
        self.gateway = gateway
        self.db = db_manager
        self.cancel_event = cancel_event or threading.Event()
        self.controller = controller or AgentLoopController()
        self.events = events or StreamChannel(name=f"events-{session.thread_id}")
        self.system_prompts = list(system_prompts or [])
        self.message: Optional[UIMessage] = None
        self.persisted_message_id: Optional[str] = None

    # ---- events ----

    def _emit(self, event: Dict[str, Any]) -> None:
        self.events.put(event)

    def _emit_state(self, call: ToolCall) -> None:
        self._emit({"type": "tool-call-state", "toolCallId": call.id, "state": call.state.value})

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set() or self.events.cancelled

    # ---- request ----

    def run(self) -> Optional[str]:
        """
        Drive the whole request. Returns the persisted assistant message id,
        or None when the turn was cancelled, interrupted or failed.
        """
        self.controller.reset()
        try:
            self.message = self.session.begin_assistant_message()
            logger.info(f"[AGENT] Starting request for thread {self.thread_id} (message {self.message.id})")

            while True:
                self.session.begin_turn()
                finish = self._stream_turn()

                if self.cancelled:
                    self._abort(CANCELLED)
                    return None
                if finish is None or finish.finish_reason == FinishReason.ERROR:
                    reason = finish.error if finish is not None and finish.error else STREAM_INTERRUPTED
                    self._abort(STREAM_INTERRUPTED, error=reason)
                    return None

                keep_going = self.controller.should_continue(finish.finish_reason)

                if not self._process_tool_calls():
                    self._abort(CANCELLED)
                    return None

                if not keep_going:
                    self._finish(finish.finish_reason)
                    return self.persisted_message_id

        except Exception as e:
            logger.error(f"[AGENT] Request for thread {self.thread_id} failed: {e}", exc_info=True)
            self._abort("internal error", error="The assistant failed to complete the request")
            return None
        finally:
            self.events.close()

    def _model_messages(self) -> List[Dict[str, Any]]:
        records = self.db.list_messages(self.thread_id, self.owner)
        persisted = [Message.from_record(record) for record in records]
        prompts = [Config.get_agent_system_prompt(), *self.system_prompts]
        return to_model_messages(merge_messages(persisted, self.session.snapshot()), system_prompts=prompts)

    def _stream_turn(self) -> Optional[Finish]:
        """Consume one model turn. Returns its Finish chunk, or None if the stream ended without one."""
        channel = self.client.stream_chat(
            self._model_messages(),
            tools=self.gateway.model_tool_definitions(),
            cancel_event=self.cancel_event,
        )

        while True:
            if self.cancelled:
                channel.cancel()
                return None
            try:
                chunk = channel.get(timeout=0.1)
            except queue.Empty:
                continue
            except ChannelClosed:
                return None

            try:
                self.session.apply_chunk(chunk)
            except (InvalidTransitionError, TypeError) as e:
                logger.warning(f"[AGENT] Skipping chunk {getattr(chunk, 'type', chunk)!r}: {e}")
                continue

            if isinstance(chunk, Finish):
                return chunk

            self._emit(chunk.to_dict())
            if isinstance(chunk, ToolCallComplete):
                call = self.session.tool_call(chunk.tool_call_id)
                if call is not None:
                    self._emit_state(call)
            elif isinstance(chunk, ToolCallDelta):
                call = self.session.tool_call(chunk.tool_call_id)
                if call is not None and len(call.history) == 2:
                    self._emit_state(call)

    # ---- tool calls ----

    def _turn_calls(self) -> List[ToolCall]:
        """Calls of the current message that have no result part yet."""
        answered = {
            part.tool_call_id for part in self.message.parts
            if getattr(part, "type", None) == "tool-result"
        }
        return [call for call in self.message.tool_calls() if call.id not in answered]

    def _gate(self, call: ToolCall) -> None:
        """Route a call whose input is complete: deny, ask for approval, or leave it for the shortcut."""
        errors = self.gateway.validate(call.name, call.input)
        if errors:
            call.deny(
                f"Invalid input for tool '{call.name}'",
                output={
                    "success": False,
                    "error": f"Invalid input for tool '{call.name}': " + "; ".join(errors),
                    "validationErrors": errors,
                },
            )
            logger.warning(f"[TOOL] Call {call.id} ({call.name}) rejected: {'; '.join(errors)}")
            self._emit_state(call)
            return

        if self.gateway.requires_approval(call.name):
            pending = self.session.broker.request_approval(call)
            self._emit({
                "type": "approval-requested",
                "toolCallId": call.id,
                "toolName": call.name,
                "input": call.input,
                "approval": pending.to_dict(),
            })
            self._emit_state(call)

    def _process_tool_calls(self) -> bool:
        """Gate, wait for, execute and report this turn's calls. False if cancelled meanwhile."""
        calls = self._turn_calls()
        if not calls:
            return True

        for call in calls:
            if call.state in (ToolCallState.AWAITING_INPUT, ToolCallState.INPUT_STREAMING):
                call.deny(STREAM_INTERRUPTED)
            elif call.state == ToolCallState.INPUT_COMPLETE:
                self._gate(call)

        pending_ids = [c.id for c in calls if c.state == ToolCallState.APPROVAL_REQUESTED]
        if pending_ids:
            logger.info(f"[AGENT] Waiting for {len(pending_ids)} approval decision(s) in thread {self.thread_id}")
            if not self.session.broker.wait_for_decisions(pending_ids, self.cancel_event):
                return False

        for call in calls:
            approval = call.approval
            if (call.state == ToolCallState.APPROVAL_RESPONDED
                    and isinstance(approval, ApprovalDecision) and not approval.approved):
                message = USER_DENIED + (f": {approval.reason}" if approval.reason else "")
                call.deny(message, output={"success": False, "denied": True, "error": message})

        runnable = [c for c in calls if c.can_execute]
        if runnable:
            self.gateway.execute_batch(
                runnable,
                lambda c: ToolExecutionContext.from_config(self.thread_id, call_id=c.id),
            )

        if self.cancelled:
            return False

        for call in calls:
            output = call.output if call.output is not None else {"success": False, "error": "No result"}
            part = self.session.add_tool_result(call.id, output, state=call.state.value)
            self._emit_state(call)
            self._emit({
                "type": "tool-result",
                "toolCallId": call.id,
                "toolName": call.name,
                "output": part.content,
                "state": part.state,
            })
        return True

    # ---- endings ----

    def _finish(self, finish_reason: FinishReason) -> None:
        self.persisted_message_id = self._flush()
        self._emit({
            "type": "finish",
            "finishReason": finish_reason.value,
            "iterations": self.controller.iteration,
            "boundReached": self.controller.bound_reached,
            "messageId": self.message.id,
        })
        self._emit({"type": "done", "messageId": self.persisted_message_id})
        logger.info(
            f"[AGENT] Request for thread {self.thread_id} finished after "
            f"{self.controller.iteration} turn(s) ({finish_reason.value})"
        )

    def _flush(self) -> Optional[str]:
        """Persist the assistant message under its streaming id."""
        if not self.message.parts:
            logger.info(f"[AGENT] Empty assistant reply in thread {self.thread_id}, nothing to persist")
            self.session.discard(self.message.id)
            return None

        result = self.db.add_message(
            self.thread_id,
            self.owner,
            "assistant",
            serialize_parts(self.message.parts),
            message_id=self.message.id,
        )
        self.session.discard(self.message.id)
        return result["message_id"]

    def _abort(self, reason: str, error: Optional[str] = None) -> None:
        """Deny open calls and drop the buffered reply without persisting it."""
        self.session.interrupt(STREAM_INTERRUPTED)
        self.session.cancel_pending(reason)
        if self.message is not None:
            self.session.discard(self.message.id)
        logger.info(f"[AGENT] Request for thread {self.thread_id} ended early: {error or reason}")

        if error is not None:
            self._emit({"type": "error", "error": error})
        self._emit({
            "type": "finish",
            "finishReason": FinishReason.ERROR.value if error is not None else FinishReason.STOP.value,
            "iterations": self.controller.iteration,
            "boundReached": False,
            "cancelled": reason == CANCELLED,
        })
        self._emit({"type": "done", "messageId": None})
