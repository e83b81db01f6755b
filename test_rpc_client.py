"""
Tests for the Solana JSON-RPC client
"""

from unittest.mock import Mock, patch

import pytest
import requests

from rpc_client import (
    RpcMethodError,
    RpcRateLimitError,
    RpcTimeoutError,
    RpcTransportError,
    SolanaRpcClient,
)

URL = "http://node.invalid"


def http_response(status=200, body=None, reason="OK"):
    resp = Mock()
    resp.status_code = status
    resp.reason = reason
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def client():
    return SolanaRpcClient(timeout=3)


class TestSolanaRpcClient:
    def test_returns_result(self, client):
        with patch("requests.Session.post", return_value=http_response(body={"jsonrpc": "2.0", "id": 1, "result": 42})) as post:
            assert client.call(URL, "getSlot") == 42

        args, kwargs = post.call_args
        assert args[0] == URL
        assert kwargs["json"]["method"] == "getSlot"
        assert kwargs["json"]["params"] == []
        assert kwargs["json"]["jsonrpc"] == "2.0"
        assert kwargs["timeout"] == 3

    def test_request_ids_increase(self, client):
        with patch("requests.Session.post", return_value=http_response(body={"result": None})) as post:
            client.call(URL, "getSlot")
            client.call(URL, "getSlot")
        ids = [c.kwargs["json"]["id"] for c in post.call_args_list]
        assert ids[1] > ids[0]

    def test_null_result_is_not_an_error(self, client):
        with patch("requests.Session.post", return_value=http_response(body={"result": None})):
            assert client.call(URL, "getTransaction", ["sig"]) is None

    def test_method_error(self, client):
        body = {"error": {"code": -32602, "message": "Invalid param: WrongSize"}}
        with patch("requests.Session.post", return_value=http_response(body=body)):
            with pytest.raises(RpcMethodError) as exc_info:
                client.call(URL, "getTransaction", ["abc"])

        assert exc_info.value.code == -32602
        assert exc_info.value.is_invalid_params
        assert exc_info.value.method == "getTransaction"

    def test_slot_unavailable_codes(self, client):
        body = {"error": {"code": -32007, "message": "Slot 5 was skipped"}}
        with patch("requests.Session.post", return_value=http_response(body=body)):
            with pytest.raises(RpcMethodError) as exc_info:
                client.call(URL, "getBlock", [5])
        assert exc_info.value.is_slot_unavailable

    def test_http_429(self, client):
        with patch("requests.Session.post", return_value=http_response(429, reason="Too Many Requests")):
            with pytest.raises(RpcRateLimitError) as exc_info:
                client.call(URL, "getSlot")
        assert exc_info.value.status == 429

    def test_rate_limit_error_object(self, client):
        body = {"error": {"code": -32429, "message": "rate limited"}}
        with patch("requests.Session.post", return_value=http_response(body=body)):
            with pytest.raises(RpcRateLimitError):
                client.call(URL, "getSlot")

    def test_http_error_status(self, client):
        with patch("requests.Session.post", return_value=http_response(502, reason="Bad Gateway")):
            with pytest.raises(RpcTransportError) as exc_info:
                client.call(URL, "getSlot")
        assert exc_info.value.status == 502
        assert "502 Bad Gateway" in exc_info.value.message

    def test_invalid_json(self, client):
        with patch("requests.Session.post", return_value=http_response(body=ValueError("bad json"))):
            with pytest.raises(RpcTransportError, match="not valid JSON"):
                client.call(URL, "getSlot")

    def test_non_object_body(self, client):
        with patch("requests.Session.post", return_value=http_response(body=[1, 2])):
            with pytest.raises(RpcTransportError):
                client.call(URL, "getSlot")

    def test_timeout(self, client):
        with patch("requests.Session.post", side_effect=requests.exceptions.Timeout()):
            with pytest.raises(RpcTimeoutError) as exc_info:
                client.call(URL, "getSlot", timeout=1.5)
        assert exc_info.value.timeout == 1.5

    def test_connection_failure(self, client):
        with patch("requests.Session.post", side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(RpcTransportError, match="refused"):
                client.call(URL, "getSlot")
