# status: complete

from flask import Flask, jsonify, request

from agents.tools.tool_gateway import UnknownToolError, tool_gateway
from agents.tools.tool_registry import ToolExecutionContext
from utils.logger import get_logger

logger = get_logger(__name__)

DIRECT_THREAD_ID = "direct"

TOOL_ALIASES = {
    'multi-edit': 'multi_edit',
}


def register_tool_routes(app: Flask, gateway=None):
    """Register one execution endpoint per registered tool"""
    gateway = gateway or tool_gateway

    @app.route('/api/tools', methods=['GET'])
    def list_tools():
        """Tool definitions as offered to the model"""
        return jsonify({
            'success': True,
            'tools': [definition['function'] for definition in gateway.model_tool_definitions()]
        })

    @app.route('/api/tools/<tool_name>', methods=['POST'])
    def run_tool(tool_name: str):
        """Validate the body against the tool schema and execute it"""
        name = TOOL_ALIASES.get(tool_name, tool_name)
        if not gateway.has_tool(name):
            return jsonify({'success': False, 'error': f"Unknown tool '{tool_name}'"}), 404

        params = request.get_json(silent=True)
        if not isinstance(params, dict):
            return jsonify({'success': False, 'error': 'Request body must be a JSON object'}), 400

        errors = gateway.validate(name, params)
        if errors:
            logger.warning(f"[TOOL] Rejected {name} request: {'; '.join(errors)}")
            return jsonify({
                'success': False,
                'error': f"Invalid input for tool '{name}': " + "; ".join(errors),
                'validationErrors': errors
            }), 400

        thread_id = request.args.get('threadId') or DIRECT_THREAD_ID
        try:
            output = gateway.run(name, params, ToolExecutionContext.from_config(thread_id))
            return jsonify(output), 200
        except UnknownToolError:
            return jsonify({'success': False, 'error': f"Unknown tool '{tool_name}'"}), 404
        except Exception as e:
            logger.error(f"[TOOL] {name} failed unexpectedly: {e}", exc_info=True)
            return jsonify({'success': False, 'error': f"Internal error while running {name}"}), 500
