"""JSON-RPC bridge exposing task delegation to local agents."""

from julesbridge.bridge.protocol import JsonRpcError, JsonRpcErrorCode, JsonRpcMessage
from julesbridge.bridge.server import BridgeServer
from julesbridge.bridge.tools import DELEGATE_TO_JULES, TOOLS
from julesbridge.bridge.transport import LineTransport

__all__ = [
    "BridgeServer",
    "LineTransport",
    "JsonRpcMessage",
    "JsonRpcError",
    "JsonRpcErrorCode",
    "DELEGATE_TO_JULES",
    "TOOLS",
]
