"""Unit tests for route utilities."""

import sys
import unittest
from pathlib import Path
from unittest.mock import Mock

from flask import Flask

backend_dir = Path(__file__).resolve().parents[2]
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from utils.db_route_utils import (
    ResponseBuilder,
    RouteConstants,
    get_owner,
    get_request_data,
    handle_route_error,
)
from utils.db_utils import AccessDeniedError, NotFoundError


class TestResponseBuilder(unittest.TestCase):

    def setUp(self):
        self.app = Flask(__name__)

    def test_success_merges_message_data_and_kwargs(self):
        with self.app.app_context():
            response = ResponseBuilder.success("Done", {"a": 1}, b=2)

        self.assertEqual(response.get_json(), {"message": "Done", "a": 1, "b": 2})

    def test_error_returns_status(self):
        with self.app.app_context():
            response, status = ResponseBuilder.error("bad", 422, field="x")

        self.assertEqual(status, 422)
        self.assertEqual(response.get_json(), {"error": "bad", "field": "x"})


class TestHandleRouteError(unittest.TestCase):

    def setUp(self):
        self.app = Flask(__name__)

    def _status(self, error, logger=None):
        with self.app.app_context():
            return handle_route_error("doing things", error, {"threadId": "thr_1"}, logger)[1]

    def test_domain_errors_map_to_status_codes(self):
        self.assertEqual(self._status(NotFoundError("gone")), 404)
        self.assertEqual(self._status(AccessDeniedError("nope")), 403)
        self.assertEqual(self._status(ValueError("bad input")), 400)

    def test_unexpected_error_is_logged(self):
        logger = Mock()

        self.assertEqual(self._status(RuntimeError("boom"), logger), 500)
        message = logger.error.call_args[0][0]
        self.assertIn("doing things", message)
        self.assertIn("threadId=thr_1", message)


class TestRequestHelpers(unittest.TestCase):

    def setUp(self):
        self.app = Flask(__name__)

    def test_owner_header_required(self):
        with self.app.test_request_context("/"):
            from flask import request
            owner, error = get_owner(request)

        self.assertIsNone(owner)
        self.assertEqual(error[1], 401)

    def test_owner_is_stripped(self):
        with self.app.test_request_context("/", headers={RouteConstants.OWNER_HEADER: "  alice "}):
            from flask import request
            owner, error = get_owner(request)

        self.assertEqual(owner, "alice")
        self.assertIsNone(error)

    def test_required_fields(self):
        with self.app.test_request_context("/", method="POST", json={"title": None}):
            from flask import request
            data, error = get_request_data(request, ["title"])

        self.assertIsNone(data)
        self.assertEqual(error[1], 400)
        self.assertEqual(error[0].get_json(), {"error": "title is required"})

    def test_non_object_body_is_rejected(self):
        with self.app.test_request_context("/", method="POST", json=[1, 2]):
            from flask import request
            data, error = get_request_data(request)

        self.assertIsNone(data)
        self.assertEqual(error[1], 400)

    def test_missing_body_without_requirements(self):
        with self.app.test_request_context("/", method="POST"):
            from flask import request
            data, error = get_request_data(request)

        self.assertEqual(data, {})
        self.assertIsNone(error)


if __name__ == '__main__':
    unittest.main()
