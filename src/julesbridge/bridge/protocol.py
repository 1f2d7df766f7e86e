"""JSON-RPC 2.0 message types for the bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"


class JsonRpcErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class JsonRpcError(Exception):
    """Raised by handlers; rendered into an error response by the server."""

    def __init__(self, code: JsonRpcErrorCode, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


@dataclass
class JsonRpcMessage:
    """Parsed JSON-RPC message.

    ``has_id`` records whether the ``id`` member was present at all, so a
    request with ``"id": null`` is still told apart from a notification.
    """

    jsonrpc: str = JSONRPC_VERSION
    id: int | str | None = None
    method: str | None = None
    params: dict[str, Any] | list[Any] | None = None
    result: Any = None
    error: dict[str, Any] | None = None
    has_id: bool = field(default=False, repr=False)

    def is_request(self) -> bool:
        return self.method is not None and self.has_id

    def is_notification(self) -> bool:
        return self.method is not None and not self.has_id

    def is_response(self) -> bool:
        return self.method is None and self.has_id

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JsonRpcMessage:
        """Parse from a decoded JSON object.

        Raises JsonRpcError(INVALID_REQUEST) for members of the wrong type.
        """
        method = data.get("method")
        if method is not None and not isinstance(method, str):
            raise JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request")
        msg_id = data.get("id")
        if msg_id is not None and (isinstance(msg_id, bool) or not isinstance(msg_id, (int, str))):
            raise JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request")
        params = data.get("params")
        if params is not None and not isinstance(params, (dict, list)):
            raise JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request")
        return cls(
            jsonrpc=data.get("jsonrpc", JSONRPC_VERSION),
            id=msg_id,
            method=method,
            params=params,
            result=data.get("result"),
            error=data.get("error"),
            has_id="id" in data,
        )


def result_response(msg_id: int | str | None, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result}


def error_response(msg_id: int | str | None, error: JsonRpcError) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "error": error.to_dict()}


# =============================================================================
# Method parameters
# =============================================================================


class ClientInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str = "unknown"
    version: str | None = None


class InitializeParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    protocol_version: str | None = Field(default=None, alias="protocolVersion")
    client_info: ClientInfo | None = Field(default=None, alias="clientInfo")


class ToolCallParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    arguments: dict[str, Any] | None = None
