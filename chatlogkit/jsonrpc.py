"""JSON-RPC 2.0 messages and errors used by the MCP transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

JSONRPC_VERSION = "2.0"


class RpcError(Exception):
    """A JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return f"RpcError(code={self.code}, message={self.message!r}, data={self.data!r})"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out

    def json_rpc(self) -> "Response":
        """A response without an id that carries this error."""
        return Response(jsonrpc=JSONRPC_VERSION, id=None, error=self)


ERR_PARSE_ERROR = RpcError(-32700, "Parse error")
ERR_INVALID_REQUEST = RpcError(-32600, "Invalid Request")
ERR_METHOD_NOT_FOUND = RpcError(-32601, "Method not found")
ERR_INVALID_PARAMS = RpcError(-32602, "Invalid params")
ERR_INTERNAL_ERROR = RpcError(-32603, "Internal error")

ERR_INVALID_SESSION_ID = RpcError(400, "Invalid session ID")
ERR_SESSION_NOT_FOUND = RpcError(404, "Could not find session")
ERR_TOO_MANY_REQUESTS = RpcError(429, "Too many requests")


def _invalid_request() -> RpcError:
    return RpcError(ERR_INVALID_REQUEST.code, ERR_INVALID_REQUEST.message)


@dataclass
class Request:
    """A JSON-RPC request."""

    jsonrpc: str = ""
    id: Any = None
    method: str = ""
    params: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> "Request":
        """Build a request from decoded JSON; raises RpcError for malformed input."""
        if not isinstance(data, dict):
            raise _invalid_request()
        jsonrpc = data.get("jsonrpc", "")
        method = data.get("method", "")
        if jsonrpc is None:
            jsonrpc = ""
        if method is None:
            method = ""
        if not isinstance(jsonrpc, str) or not isinstance(method, str):
            raise _invalid_request()
        return cls(jsonrpc=jsonrpc, id=data.get("id"), method=method, params=data.get("params"))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        return out


@dataclass
class Response:
    """A JSON-RPC response carrying either a result or an error."""

    jsonrpc: str = JSONRPC_VERSION
    id: Any = None
    result: Any = None
    error: RpcError | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.result is not None:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out


@dataclass
class Notification:
    """A JSON-RPC notification (no id, no reply)."""

    jsonrpc: str = JSONRPC_VERSION
    method: str = ""
    params: Any = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": self.jsonrpc, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        return out


def new_response(request_id: Any, result: Any) -> Response:
    """A successful response to the request with ``request_id``."""
    return Response(jsonrpc=JSONRPC_VERSION, id=request_id, result=result)


def new_error_response(request_id: Any, code: int, err: Any) -> Response:
    """An error response whose message is the text of ``err``."""
    return Response(
        jsonrpc=JSONRPC_VERSION,
        id=request_id,
        error=RpcError(code, str(err)),
    )