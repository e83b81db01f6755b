"""
Solana JSON-RPC client
Single-call JSON-RPC 2.0 transport with typed failures
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# JSON-RPC error codes surfaced by Solana nodes
RPC_INVALID_PARAMS = -32602
RPC_BLOCK_NOT_AVAILABLE = -32004
RPC_SLOT_SKIPPED = -32007
RPC_LONG_TERM_STORAGE_SLOT_SKIPPED = -32009
RPC_RATE_LIMITED = -32429

SLOT_UNAVAILABLE_CODES = (
    RPC_BLOCK_NOT_AVAILABLE,
    RPC_SLOT_SKIPPED,
    RPC_LONG_TERM_STORAGE_SLOT_SKIPPED,
)


# ==================== ERRORS ====================


class RpcError(Exception):
    """Base class for every upstream RPC failure"""

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.method = method


class RpcTransportError(RpcError):
    """Non-2xx HTTP status, connection failure or malformed body"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        status_text: str = "",
        method: Optional[str] = None,
    ):
        super().__init__(message, method)
        self.status = status
        self.status_text = status_text


class RpcRateLimitError(RpcTransportError):
    """Upstream answered 429 or reported a rate-limit error"""


class RpcTimeoutError(RpcError):
    """Upstream did not answer within the configured timeout"""

    def __init__(self, message: str, timeout: float, method: Optional[str] = None):
        super().__init__(message, method)
        self.timeout = timeout


class RpcMethodError(RpcError):
    """JSON-RPC level error object returned by the node"""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        method: Optional[str] = None,
    ):
        super().__init__(message, method)
        self.code = code
        self.data = data

    @property
    def is_invalid_params(self) -> bool:
        return self.code == RPC_INVALID_PARAMS or "invalid param" in self.message.lower()

    @property
    def is_slot_unavailable(self) -> bool:
        return self.code in SLOT_UNAVAILABLE_CODES


# ==================== CLIENT ====================


class SolanaRpcClient:
    """
    JSON-RPC 2.0 client for Solana nodes.

    The endpoint URL is passed on every call so one client (and its
    connection pool) serves every network.
    """

    def __init__(self, timeout: float = 15.0, max_retries: int = 0):
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

        # Connection pooling; retries stay off unless configured
        self.session = requests.Session()
        retry = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=[502, 503, 504],
            allowed_methods=["POST"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_maxsize=32)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _next_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    def call(
        self,
        url: str,
        method: str,
        params: Optional[List[Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Issue a single JSON-RPC request and return its ``result``"""
        timeout = timeout if timeout is not None else self.timeout
        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id(),
            "method": method,
            "params": params or [],
        }

        try:
            response = self.session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"RPC {method} timed out after {timeout}s")
            raise RpcTimeoutError(
                f"RPC request timed out after {timeout}s", timeout, method
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"RPC {method} transport failure: {e}")
            raise RpcTransportError(f"RPC request failed: {e}", method=method) from e

        status = response.status_code
        if status == 429:
            raise RpcRateLimitError(
                "RPC request failed: 429 Too Many Requests",
                status=status,
                status_text=response.reason or "Too Many Requests",
                method=method,
            )
        if status < 200 or status >= 300:
            reason = response.reason or ""
            logger.error(f"RPC {method} failed with HTTP {status} {reason}")
            raise RpcTransportError(
                f"RPC request failed: {status} {reason}".strip(),
                status=status,
                status_text=reason,
                method=method,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise RpcTransportError(
                "RPC response was not valid JSON",
                status=status,
                status_text=response.reason or "",
                method=method,
            ) from e

        if not isinstance(body, dict):
            raise RpcTransportError(
                "RPC response was not a JSON object", status=status, method=method
            )

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                message = str(error.get("message") or "Unknown RPC error")
                code = error.get("code")
                data = error.get("data")
            else:
                message, code, data = str(error), None, None

            if code == RPC_RATE_LIMITED or "rate limit" in message.lower():
                raise RpcRateLimitError(message, status=429, method=method)
            logger.warning(f"RPC {method} returned error {code}: {message}")
            raise RpcMethodError(message, code=code, data=data, method=method)

        return body.get("result")

    def close(self) -> None:
        self.session.close()
