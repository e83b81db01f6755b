"""
Response envelope and error classification
Every handler outcome leaves the API through this module
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from flask import jsonify, Response

from cache import CachePolicy
from rpc_client import (
    RpcError,
    RpcMethodError,
    RpcRateLimitError,
    RpcTimeoutError,
    RpcTransportError,
)

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Error categories, each bound to one HTTP status"""

    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    REQUEST_TOO_EXPENSIVE = "request_too_expensive"
    UPSTREAM_OVERLOADED = "upstream_overloaded"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INTERNAL = "internal"


_KIND_STATUS = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.REQUEST_TOO_EXPENSIVE: 413,
    ErrorKind.UPSTREAM_OVERLOADED: 429,
    ErrorKind.UPSTREAM_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


def classify(kind: ErrorKind) -> int:
    """HTTP status for an error kind"""
    return _KIND_STATUS.get(kind, 500)


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in the envelope"""

    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_NETWORK = "INVALID_NETWORK"
    TRANSACTION_NOT_FOUND = "TRANSACTION_NOT_FOUND"
    BLOCK_NOT_FOUND = "BLOCK_NOT_FOUND"
    SLOT_NOT_AVAILABLE = "SLOT_NOT_AVAILABLE"
    TOKEN_NOT_FOUND = "TOKEN_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    ADDRESS_TOO_ACTIVE = "ADDRESS_TOO_ACTIVE"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RPC_ERROR = "RPC_ERROR"
    ANALYTICS_DATA_UNAVAILABLE = "ANALYTICS_DATA_UNAVAILABLE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


ERROR_CODES: Dict[ErrorCode, ErrorKind] = {
    ErrorCode.INVALID_PARAMETERS: ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_ADDRESS: ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_SIGNATURE: ErrorKind.INVALID_INPUT,
    ErrorCode.INVALID_NETWORK: ErrorKind.NOT_FOUND,
    ErrorCode.TRANSACTION_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.BLOCK_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.SLOT_NOT_AVAILABLE: ErrorKind.NOT_FOUND,
    ErrorCode.TOKEN_NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.METHOD_NOT_ALLOWED: ErrorKind.INVALID_INPUT,
    ErrorCode.ADDRESS_TOO_ACTIVE: ErrorKind.REQUEST_TOO_EXPENSIVE,
    ErrorCode.PAYLOAD_TOO_LARGE: ErrorKind.REQUEST_TOO_EXPENSIVE,
    ErrorCode.RATE_LIMIT_EXCEEDED: ErrorKind.UPSTREAM_OVERLOADED,
    ErrorCode.RPC_ERROR: ErrorKind.UPSTREAM_UNAVAILABLE,
    ErrorCode.ANALYTICS_DATA_UNAVAILABLE: ErrorKind.UPSTREAM_UNAVAILABLE,
    ErrorCode.INTERNAL_SERVER_ERROR: ErrorKind.INTERNAL,
}


def status_for_code(code: ErrorCode) -> int:
    if code == ErrorCode.METHOD_NOT_ALLOWED:
        return 405
    return classify(ERROR_CODES.get(code, ErrorKind.INTERNAL))


class ExplorerError(Exception):
    """Classified failure raised anywhere below the HTTP layer"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def kind(self) -> ErrorKind:
        return ERROR_CODES.get(self.code, ErrorKind.INTERNAL)

    @property
    def status(self) -> int:
        return status_for_code(self.code)


def _upstream_details(exc: RpcError) -> Dict[str, Any]:
    details: Dict[str, Any] = {"method": exc.method, "upstream": exc.message}
    if isinstance(exc, RpcTransportError) and exc.status is not None:
        details["status"] = exc.status
    if isinstance(exc, RpcMethodError) and exc.code is not None:
        details["rpcCode"] = exc.code
    if isinstance(exc, RpcTimeoutError):
        details["timeout"] = exc.timeout
    return details


def error_from_exception(exc: Exception) -> ExplorerError:
    """
    Map any exception to a classified ExplorerError.

    Upstream text is only ever placed in ``details``; unclassified
    exceptions are reported generically.
    """
    if isinstance(exc, ExplorerError):
        return exc
    if isinstance(exc, RpcRateLimitError):
        return ExplorerError(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            "Upstream RPC rate limit exceeded, retry later",
            _upstream_details(exc),
        )
    if isinstance(exc, RpcTimeoutError):
        return ExplorerError(
            ErrorCode.RPC_ERROR, "Upstream RPC request timed out", _upstream_details(exc)
        )
    if isinstance(exc, RpcError):
        return ExplorerError(
            ErrorCode.RPC_ERROR, "Upstream RPC request failed", _upstream_details(exc)
        )

    logger.exception(f"Unhandled error: {exc}")
    return ExplorerError(ErrorCode.INTERNAL_SERVER_ERROR, "Internal server error")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def success_body(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data, "timestamp": _timestamp()}


def error_body(error: ExplorerError) -> Dict[str, Any]:
    return {
        "success": False,
        "error": {
            "code": error.code.value,
            "message": error.message,
            "details": error.details,
        },
        "timestamp": _timestamp(),
    }


def success_response(
    data: Any,
    policy: Optional[CachePolicy] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Tuple[Response, int]:
    """Wrap data in the success envelope with its Cache-Control header"""
    response = jsonify(success_body(data))
    response.headers["Cache-Control"] = policy.header() if policy else "no-store"
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response, 200


def error_response(
    error: Exception,
    headers: Optional[Dict[str, str]] = None,
    status: Optional[int] = None,
) -> Tuple[Response, int]:
    """Wrap any exception in the error envelope; ``status`` overrides the classified one"""
    classified = error_from_exception(error)
    response = jsonify(error_body(classified))
    response.headers["Cache-Control"] = "no-store"
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response, status or classified.status
