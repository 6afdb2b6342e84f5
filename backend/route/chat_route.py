# status: complete

from flask import Flask, request, jsonify, Response
import json
import queue
import threading
from typing import List, Optional, Tuple

from agents.agent_runner import AgentRunner
from agents.approval_broker import UnknownToolCallError
from agents.tool_call_state import ConflictingDecisionError, InvalidTransitionError
from chat.merger import merge_messages
from chat.messages import Message
from chat.ollama_client import OllamaClient
from chat.session import session_registry
from chat.stream_channel import ChannelClosed
from chat.title_generation import generate_title, spawn_title_generation
from utils.cancellation_manager import cancellation_manager
from utils.config import Config
from utils.db_route_utils import ResponseBuilder, get_owner, get_request_data, handle_route_error
from utils.db_utils import db
from utils.logger import get_logger

logger = get_logger(__name__)

SSE_RETRY_MS = 1500

_start_lock = threading.Lock()


def get_sse_headers(include_cors=False):
    """Get standardized SSE headers"""
    headers = {
        'Cache-Control': 'no-cache, no-transform',
        'Connection': 'keep-alive',
        'X-Accel-Buffering': 'no'
    }
    if include_cors:
        headers['Access-Control-Allow-Origin'] = '*'
    return headers


def format_sse_data(data, ensure_ascii=None):
    """Format data as SSE message"""
    if ensure_ascii is None:
        json_str = json.dumps(data)
    else:
        json_str = json.dumps(data, ensure_ascii=ensure_ascii)
    return f"data: {json_str}\n\n"


def create_sse_response(generator_func, include_cors=False):
    """Create standardized SSE response with proper headers"""
    return Response(
        generator_func(),
        mimetype='text/event-stream',
        headers=get_sse_headers(include_cors)
    )


def get_model_client():
    return OllamaClient()


def _start_agent(thread_id: str, owner: str, message: str, client,
                 system_prompts: Optional[List[str]] = None) -> Tuple[Optional[AgentRunner], Optional[dict]]:
    """
    Persist the user message and start the agent thread for a request.

    Both happen under the start lock, so a submission that loses the race
    against a running request leaves nothing behind. Returns (None, None)
    if a request is already running.
    """
    with _start_lock:
        if cancellation_manager.is_chat_active(thread_id):
            return None, None

        saved = db.add_message(thread_id, owner, 'user', message)
        session = session_registry.create(thread_id)
        cancel_event = threading.Event()
        runner = AgentRunner(session, client, owner, cancel_event=cancel_event, system_prompts=system_prompts)

        def run():
            try:
                runner.run()
            finally:
                cancellation_manager.unregister_chat_thread(thread_id, worker)

        worker = threading.Thread(target=run, name=f"agent-{thread_id}", daemon=True)
        cancellation_manager.register_chat_thread(thread_id, worker, cancel_event)
        worker.start()
        return runner, saved


def stream_agent_events(thread_id: str, runner: AgentRunner, user_message_id: str):
    """Relay the runner's events as SSE until the request ends."""
    keepalive = Config.get_sse_keepalive_seconds()

    def generate():
        yield f"retry: {SSE_RETRY_MS}\n\n"
        yield format_sse_data({'type': 'start', 'threadId': thread_id, 'userMessageId': user_message_id})
        try:
            while True:
                try:
                    event = runner.events.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keep-alive\n\n"
                    continue
                except ChannelClosed:
                    break
                yield format_sse_data(event, ensure_ascii=False)
        except GeneratorExit:
            logger.info(f"Client disconnected from stream for thread {thread_id} - agent continues")

    return create_sse_response(generate)


def register_chat_routes(app: Flask):
    """Register chat routes directly"""

    @app.route('/api/chat', methods=['POST'])
    def chat():
        """Persist the user message and stream the agent's reply"""
        owner, error = get_owner(request)
        if error:
            return error
        data, error = get_request_data(request, ['threadId', 'message'])
        if error:
            return error

        thread_id = data['threadId']
        message = data['message']
        system_prompts = data.get('systemPrompts') or []
        if not isinstance(thread_id, str) or not thread_id.strip():
            return ResponseBuilder.error('threadId must be a non-empty string', 400)
        if not isinstance(message, str) or not message.strip():
            return ResponseBuilder.error('message must be a non-empty string', 400)
        if not isinstance(system_prompts, list) or not all(isinstance(p, str) for p in system_prompts):
            return ResponseBuilder.error('systemPrompts must be a list of strings', 400)

        client = get_model_client()
        try:
            runner, saved = _start_agent(thread_id, owner, message, client, system_prompts)
        except Exception as e:
            return handle_route_error("saving user message", e, {"thread_id": thread_id}, logger)
        if runner is None:
            return ResponseBuilder.error('A request is already running for this thread', 409)

        if saved['is_first_message']:
            spawn_title_generation(thread_id, owner, message, client)

        logger.info(f"[AGENT] Chat request accepted for thread {thread_id} (user message {saved['message_id']})")
        return stream_agent_events(thread_id, runner, saved['message_id'])

    @app.route('/api/chat/<thread_id>/stop', methods=['POST'])
    def stop_chat(thread_id: str):
        """Cancel the active request of a thread"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            db.get_thread(thread_id, owner)
            cancelled = cancellation_manager.cancel_chat(thread_id)
            return ResponseBuilder.success(
                message='Cancellation requested' if cancelled else 'No active request',
                threadId=thread_id,
                cancelled=cancelled
            )
        except Exception as e:
            return handle_route_error("stopping chat", e, {"thread_id": thread_id}, logger)

    @app.route('/api/chat/<thread_id>/tool-calls/<call_id>/decision', methods=['POST'])
    def tool_call_decision(thread_id: str, call_id: str):
        """Record the user's approval decision for a pending tool call"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            data, error = get_request_data(request, ['approved'])
            if error:
                return error
            approved = data['approved']
            reason = data.get('reason')
            if not isinstance(approved, bool):
                return jsonify({'success': False, 'error': 'approved must be a boolean'}), 400
            if reason is not None and not isinstance(reason, str):
                return jsonify({'success': False, 'error': 'reason must be a string'}), 400

            db.get_thread(thread_id, owner)
            session = session_registry.get(thread_id)
            if session is None:
                return jsonify({'success': False, 'error': f'No active session for thread {thread_id}'}), 404

            recorded = session.broker.record_decision(call_id, approved, reason)
            return jsonify({
                'success': True,
                'toolCallId': call_id,
                'approved': approved,
                'recorded': recorded,
                'duplicate': not recorded
            }), 200

        except UnknownToolCallError:
            return jsonify({'success': False, 'error': f'Unknown tool call {call_id}'}), 404
        except (ConflictingDecisionError, InvalidTransitionError) as e:
            return jsonify({'success': False, 'error': str(e)}), 409
        except Exception as e:
            return handle_route_error("recording tool decision", e, {"thread_id": thread_id, "call_id": call_id}, logger)

    @app.route('/api/chat/<thread_id>/messages', methods=['GET'])
    def chat_messages(thread_id: str):
        """Persisted history plus the in-flight assistant message"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            persisted = [Message.from_record(record) for record in db.list_messages(thread_id, owner)]
            session = session_registry.get(thread_id)
            streaming = session.snapshot() if session is not None else []
            merged = merge_messages(persisted, streaming)
            return ResponseBuilder.success(
                threadId=thread_id,
                messages=[entry.to_dict() for entry in merged],
                streaming=cancellation_manager.is_chat_active(thread_id)
            )
        except Exception as e:
            return handle_route_error("listing chat messages", e, {"thread_id": thread_id}, logger)

    @app.route('/api/chat/<thread_id>/reset', methods=['POST'])
    def reset_chat(thread_id: str):
        """Drop the streaming session of a thread"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            db.get_thread(thread_id, owner)
            if cancellation_manager.is_chat_active(thread_id):
                return ResponseBuilder.error('Cannot reset while a request is running', 409)
            reset = session_registry.reset(thread_id)
            return ResponseBuilder.success(message='Session reset', threadId=thread_id, reset=reset)
        except Exception as e:
            return handle_route_error("resetting chat session", e, {"thread_id": thread_id}, logger)

    @app.route('/api/generate-title', methods=['POST'])
    def generate_thread_title():
        """Generate and store a title for a thread"""
        owner, error = get_owner(request)
        if error:
            return error
        data, error = get_request_data(request, ['threadId', 'userMessage'])
        if error:
            return error
        thread_id = data['threadId']
        user_message = data['userMessage']
        if not isinstance(user_message, str) or not user_message.strip():
            return ResponseBuilder.error('userMessage must be a non-empty string', 400)

        try:
            db.get_thread(thread_id, owner)
            title = generate_title(user_message, get_model_client())
            db.update_thread_title(thread_id, owner, title)
            return ResponseBuilder.success(threadId=thread_id, title=title)
        except Exception as e:
            return handle_route_error("generating title", e, {"thread_id": thread_id}, logger)

    @app.route('/api/ollama/status', methods=['GET'])
    def ollama_status():
        client = get_model_client()
        available = client.is_available()
        return jsonify({
            'available': available,
            'baseUrl': client.base_url,
            'model': client.model,
            'models': client.get_available_models() if available else []
        })
