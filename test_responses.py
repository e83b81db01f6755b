"""
Tests for the response envelope and error classification
"""

import json

import pytest
from flask import Flask

from cache import CachePolicies
from responses import (
    ErrorCode,
    ErrorKind,
    ExplorerError,
    classify,
    error_from_exception,
    error_response,
    status_for_code,
    success_response,
)
from rpc_client import RpcMethodError, RpcRateLimitError, RpcTimeoutError, RpcTransportError


@pytest.fixture
def app_context():
    app = Flask(__name__)
    with app.app_context():
        yield


class TestClassification:
    @pytest.mark.parametrize("kind,status", [
        (ErrorKind.INVALID_INPUT, 400),
        (ErrorKind.NOT_FOUND, 404),
        (ErrorKind.REQUEST_TOO_EXPENSIVE, 413),
        (ErrorKind.UPSTREAM_OVERLOADED, 429),
        (ErrorKind.UPSTREAM_UNAVAILABLE, 503),
        (ErrorKind.INTERNAL, 500),
    ])
    def test_classify(self, kind, status):
        assert classify(kind) == status

    def test_classify_is_pure(self):
        assert [classify(ErrorKind.NOT_FOUND) for _ in range(3)] == [404, 404, 404]

    def test_every_code_has_a_status(self):
        for code in ErrorCode:
            assert status_for_code(code) in (400, 404, 405, 413, 429, 500, 503)

    def test_method_not_allowed(self):
        assert status_for_code(ErrorCode.METHOD_NOT_ALLOWED) == 405


class TestErrorFromException:
    def test_explorer_error_passes_through(self):
        error = ExplorerError(ErrorCode.BLOCK_NOT_FOUND, "Block not found")
        assert error_from_exception(error) is error

    def test_rate_limit(self):
        mapped = error_from_exception(RpcRateLimitError("slow down", status=429, method="getSlot"))
        assert mapped.code == ErrorCode.RATE_LIMIT_EXCEEDED
        assert mapped.details["status"] == 429

    def test_timeout(self):
        mapped = error_from_exception(RpcTimeoutError("timed out", 15, "getBlock"))
        assert mapped.code == ErrorCode.RPC_ERROR
        assert mapped.details["timeout"] == 15

    def test_transport_and_method_errors(self):
        assert error_from_exception(RpcTransportError("502", status=502)).status == 503
        mapped = error_from_exception(RpcMethodError("boom", code=-32000, method="getSlot"))
        assert mapped.code == ErrorCode.RPC_ERROR
        assert mapped.details["rpcCode"] == -32000
        assert mapped.message == "Upstream RPC request failed"

    def test_unknown_exception_is_generic(self):
        mapped = error_from_exception(KeyError("secret internals"))
        assert mapped.code == ErrorCode.INTERNAL_SERVER_ERROR
        assert "secret" not in mapped.message
        assert mapped.details is None


class TestEnvelope:
    def test_success(self, app_context):
        response, status = success_response({"a": 1}, CachePolicies.BLOCKS, headers={"X-Cache": "MISS"})
        body = json.loads(response.get_data())
        assert status == 200
        assert body["success"] is True
        assert body["data"] == {"a": 1}
        assert body["timestamp"].endswith("Z")
        assert response.headers["Cache-Control"] == "public, max-age=300, stale-while-revalidate=600"
        assert response.headers["X-Cache"] == "MISS"

    def test_success_without_policy(self, app_context):
        response, _ = success_response([])
        assert response.headers["Cache-Control"] == "no-store"

    def test_error(self, app_context):
        error = ExplorerError(ErrorCode.INVALID_ADDRESS, "Invalid", [{"field": "address"}])
        response, status = error_response(error, headers={"Retry-After": "3"})
        body = json.loads(response.get_data())
        assert status == 400
        assert body["success"] is False
        assert body["error"] == {
            "code": "INVALID_ADDRESS",
            "message": "Invalid",
            "details": [{"field": "address"}],
        }
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["Retry-After"] == "3"
