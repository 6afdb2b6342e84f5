# status: complete
"""Request parsing and JSON response helpers shared by the route modules"""

from flask import jsonify
from typing import List, Optional, Tuple

from utils.db_utils import AccessDeniedError, NotFoundError


class RouteConstants:
    """Header names, limits and canned error messages"""
    MAX_PARAM_LENGTH = 255
    OWNER_HEADER = 'X-User-Id'

    REQUEST_BODY_REQUIRED = 'Request body required'
    OWNER_REQUIRED = 'X-User-Id header is required'
    THREAD_ID_REQUIRED = 'threadId is required'


# Checked in order; anything else is an internal error.
_ERROR_STATUS = (
    (NotFoundError, 404),
    (AccessDeniedError, 403),
    (ValueError, 400),
)


class ResponseBuilder:

    @staticmethod
    def success(message: str = None, data: dict = None, **fields):
        """Merge an optional message, a data dict and keyword fields into one JSON body"""
        body = dict(data) if data else {}
        if message:
            body = {'message': message, **body}
        body.update(fields)
        return jsonify(body)

    @staticmethod
    def error(message: str, status_code: int = 400, **fields):
        return jsonify({'error': message, **fields}), status_code


def handle_route_error(operation: str, error: Exception, context: dict = None, logger=None) -> Tuple:
    """Turn an exception raised inside a route into an error response.

    Store and validation errors become 4xx replies without logging; anything
    unexpected is logged with its traceback and answered with a 500.
    """
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return ResponseBuilder.error(str(error), status)

    if logger:
        details = ", ".join(f"{key}={value}" for key, value in (context or {}).items())
        where = f" ({details})" if details else ""
        logger.error(f"Failed while {operation}{where}: {error}", exc_info=True)
    return ResponseBuilder.error(str(error), 500)


def get_owner(request) -> Tuple[Optional[str], Optional[Tuple]]:
    """Read the caller identity set by the upstream auth layer"""
    owner = (request.headers.get(RouteConstants.OWNER_HEADER) or '').strip()
    if not owner:
        return None, ResponseBuilder.error(RouteConstants.OWNER_REQUIRED, 401)
    if len(owner) > RouteConstants.MAX_PARAM_LENGTH:
        return None, ResponseBuilder.error('X-User-Id header is too long', 400)
    return owner, None


def get_request_data(request, required_fields: List[str] = None) -> Tuple:
    """Parse the JSON object body, returning (data, None) or (None, error_response)"""
    data = request.get_json(silent=True)
    if data is not None and not isinstance(data, dict):
        return None, ResponseBuilder.error('Request body must be a JSON object', 400)
    if not data and required_fields:
        return None, ResponseBuilder.error(RouteConstants.REQUEST_BODY_REQUIRED, 400)

    data = data or {}
    missing = [name for name in (required_fields or []) if data.get(name) is None]
    if missing:
        return None, ResponseBuilder.error(f'{missing[0]} is required', 400)
    return data, None
