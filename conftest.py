import os
import threading
from unittest.mock import Mock, patch

# Must be set before config is imported anywhere
os.environ.setdefault("EXPLORER_ENV", "test")

import pytest  # noqa: E402


class RpcStub:
    """
    Stands in for the upstream node behind requests.Session.post.

    Handlers are keyed by JSON-RPC method; each one is a result value, a
    callable taking the params list, or an ``RpcStub.error(...)`` marker.
    """

    def __init__(self):
        self.handlers = {}
        self.calls = []
        self._lock = threading.Lock()

    @staticmethod
    def error(code, message, status=200):
        return {"__error__": {"code": code, "message": message}, "__status__": status}

    @staticmethod
    def http(status, reason="Error"):
        return {"__status__": status, "__reason__": reason}

    def on(self, method, result):
        self.handlers[method] = result
        return self

    def methods(self):
        with self._lock:
            return [method for _, method, _ in self.calls]

    def count(self, method):
        return self.methods().count(method)

    def __call__(self, url, json=None, **kwargs):
        method = json["method"]
        params = json.get("params", [])
        with self._lock:
            self.calls.append((url, method, params))

        handler = self.handlers.get(method)
        if callable(handler):
            handler = handler(params)

        resp = Mock()
        resp.status_code = 200
        resp.reason = "OK"
        if method not in self.handlers:
            resp.json.return_value = {
                "jsonrpc": "2.0",
                "id": json["id"],
                "error": {"code": -32601, "message": f"Unhandled test method {method}"},
            }
        elif isinstance(handler, dict) and "__status__" in handler:
            resp.status_code = handler["__status__"]
            resp.reason = handler.get("__reason__", "OK")
            resp.json.return_value = {"jsonrpc": "2.0", "id": json["id"], "error": handler.get("__error__")}
        else:
            resp.json.return_value = {"jsonrpc": "2.0", "id": json["id"], "result": handler}
        return resp


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Each test starts with an empty cache, a fresh limiter and mainnet selected"""
    import explorer_backend

    explorer_backend.selector.set_network("mainnet")
    explorer_backend.cache.clear()
    explorer_backend.rate_limiter.reset()
    yield
    explorer_backend.cache.clear()


@pytest.fixture
def rpc():
    stub = RpcStub()
    with patch("requests.Session.post", side_effect=stub):
        yield stub


@pytest.fixture
def client():
    from explorer_backend import app

    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
