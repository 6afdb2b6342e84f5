# status: complete
"""Database route handler for thread and message storage"""

from typing import Tuple
from flask import Flask, request
from chat.session import session_registry
from utils.db_utils import db
from utils.logger import get_logger
from utils.cancellation_manager import cancellation_manager
from utils.db_route_utils import (
    ResponseBuilder,
    handle_route_error,
    get_owner,
    get_request_data
)

logger = get_logger(__name__)


class ThreadRoute:
    """Handler for thread CRUD and message-level operations"""

    def __init__(self, app: Flask):
        self.app = app
        self._register_routes()

    def _register_routes(self):
        """Register all thread and message routes"""
        self.app.route('/api/threads', methods=['GET'])(self.list_threads)
        self.app.route('/api/threads', methods=['POST'])(self.create_thread)
        self.app.route('/api/threads/<thread_id>', methods=['GET'])(self.get_thread)
        self.app.route('/api/threads/<thread_id>', methods=['PATCH'])(self.rename_thread)
        self.app.route('/api/threads/<thread_id>', methods=['DELETE'])(self.delete_thread)
        self.app.route('/api/threads/<thread_id>/clear', methods=['POST'])(self.clear_thread)
        self.app.route('/api/threads/<thread_id>/messages', methods=['GET'])(self.list_messages)
        self.app.route('/api/threads/<thread_id>/messages', methods=['POST'])(self.add_message)
        self.app.route('/api/messages/<message_id>', methods=['PUT'])(self.update_message)
        self.app.route('/api/messages/<message_id>', methods=['DELETE'])(self.delete_message)

    def _handle_route_error(self, operation: str, error: Exception, context: dict = None) -> Tuple:
        """Wrapper for standardized error handling"""
        return handle_route_error(operation, error, context, logger)

    def _stop_thread_activity(self, thread_id: str):
        """Cancel a running request and drop the streaming session of a thread"""
        if cancellation_manager.is_chat_active(thread_id):
            logger.info(f"[CANCEL] Stopping active request for thread {thread_id}")
            cancellation_manager.cancel_chat(thread_id)
        session_registry.destroy(thread_id)

    def list_threads(self):
        """Threads of the caller, most recently answered first"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            threads = db.list_threads(owner)
            return ResponseBuilder.success(threads=threads)
        except Exception as e:
            return self._handle_route_error("listing threads", e, {"owner": owner})

    def create_thread(self):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            data, error = get_request_data(request)
            if error:
                return error
            thread = db.create_thread(owner, data.get('title'))
            return ResponseBuilder.success(message='Thread created', thread=thread), 201
        except Exception as e:
            return self._handle_route_error("creating thread", e, {"owner": owner})

    def get_thread(self, thread_id: str):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            thread = db.get_thread(thread_id, owner)
            return ResponseBuilder.success(thread=thread)
        except Exception as e:
            return self._handle_route_error("getting thread", e, {"thread_id": thread_id})

    def rename_thread(self, thread_id: str):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            data, error = get_request_data(request, ['title'])
            if error:
                return error
            db.update_thread_title(thread_id, owner, data['title'])
            return ResponseBuilder.success(
                message='Thread renamed',
                thread=db.get_thread(thread_id, owner)
            )
        except Exception as e:
            return self._handle_route_error("renaming thread", e, {"thread_id": thread_id})

    def delete_thread(self, thread_id: str):
        """Delete a thread with its messages"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            db.get_thread(thread_id, owner)
            self._stop_thread_activity(thread_id)
            db.delete_thread(thread_id, owner)
            return ResponseBuilder.success(message='Thread deleted', threadId=thread_id)
        except Exception as e:
            return self._handle_route_error("deleting thread", e, {"thread_id": thread_id})

    def clear_thread(self, thread_id: str):
        """Remove every message of a thread"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            db.get_thread(thread_id, owner)
            self._stop_thread_activity(thread_id)
            removed = db.clear_thread(thread_id, owner)
            return ResponseBuilder.success(message='Thread cleared', threadId=thread_id, removed=removed)
        except Exception as e:
            return self._handle_route_error("clearing thread", e, {"thread_id": thread_id})

    def list_messages(self, thread_id: str):
        """Persisted messages only; the merged view lives under /api/chat"""
        owner, error = get_owner(request)
        if error:
            return error
        try:
            messages = db.list_messages(thread_id, owner)
            return ResponseBuilder.success(threadId=thread_id, messages=messages)
        except Exception as e:
            return self._handle_route_error("listing messages", e, {"thread_id": thread_id})

    def add_message(self, thread_id: str):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            data, error = get_request_data(request, ['role', 'content'])
            if error:
                return error
            result = db.add_message(
                thread_id,
                owner,
                data['role'],
                data['content'],
                message_id=data.get('id')
            )
            status_code = 201 if result['created'] else 200
            return ResponseBuilder.success(
                messageId=result['message_id'],
                isFirstMessage=result['is_first_message'],
                created=result['created']
            ), status_code
        except Exception as e:
            return self._handle_route_error("adding message", e, {"thread_id": thread_id})

    def update_message(self, message_id: str):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            data, error = get_request_data(request, ['content'])
            if error:
                return error
            db.update_message(message_id, owner, data['content'])
            return ResponseBuilder.success(message='Message updated', messageId=message_id)
        except Exception as e:
            return self._handle_route_error("updating message", e, {"message_id": message_id})

    def delete_message(self, message_id: str):
        owner, error = get_owner(request)
        if error:
            return error
        try:
            db.delete_message(message_id, owner)
            return ResponseBuilder.success(message='Message deleted', messageId=message_id)
        except Exception as e:
            return self._handle_route_error("deleting message", e, {"message_id": message_id})


def register_thread_routes(app: Flask):
    """Helper function to register thread routes"""
    ThreadRoute(app)
