"""
Request id handling
"""

from unittest.mock import MagicMock
from api.middleware import resolve_request_id


def make_request(header=None):
    request = MagicMock()
    request.headers = {"X-Request-ID": header} if header is not None else {}
    return request


def test_generated_request_id():
    request_id = resolve_request_id(make_request())

    assert request_id.startswith("req_")
    assert len(request_id) == 16


def test_caller_request_id_reused():
    assert resolve_request_id(make_request("trace-123_a.b")) == "trace-123_a.b"


def test_invalid_caller_request_id_replaced():
    assert resolve_request_id(make_request("bad id\nwith newline")).startswith("req_")
    assert resolve_request_id(make_request("x" * 65)).startswith("req_")
