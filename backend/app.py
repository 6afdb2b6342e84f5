# status: complete

from flask import Flask, jsonify
from flask_cors import CORS
import os
import sys

backend_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(backend_dir)

from route.chat_route import register_chat_routes
from route.thread_route import register_thread_routes
from route.tool_route import register_tool_routes
from agents.tools.tool_registry import tool_registry
from utils.cancellation_manager import cancellation_manager
from utils.config import Config
from utils.logger import get_logger

logger = get_logger(__name__)


def create_app():
    """Create and configure the Flask application"""
    app = Flask(__name__)

    CORS(app, origins=Config.get_cors_origins())

    register_chat_routes(app)
    register_thread_routes(app)
    register_tool_routes(app)

    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'message': 'RelayChat backend is running',
            'tools': tool_registry.list(),
            'active_chats': len(cancellation_manager.active_chats()),
            'config': Config.get_defaults()
        })

    logger.info(f"App created with tools: {', '.join(tool_registry.list())}")
    return app


if __name__ == '__main__':
    app = create_app()

    host = os.getenv('RELAYCHAT_HOST', '0.0.0.0')
    port = int(os.getenv('RELAYCHAT_PORT', '5000'))
    logger.info(f"Starting RelayChat Backend on {host}:{port}")

    app.run(
        host=host,
        port=port,
        debug=os.getenv('RELAYCHAT_DEBUG', '').lower() in ('1', 'true'),
        threaded=True
    )
