"""JSON-RPC 2.0 bridge server.

Exposes task delegation to other local agents over newline-delimited
JSON (normally the process's stdin/stdout).

Every input line is handled on its own:
- Lines that are not JSON get a parse error with a null id.
- Messages with an ``id`` member are requests and get exactly one response.
- Messages without one are notifications and never get a response.

Requests run concurrently; responses may go out in any order and are
matched to requests by id.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from julesbridge import __version__
from julesbridge.bridge.protocol import (
    InitializeParams,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcMessage,
    ToolCallParams,
    error_response,
    result_response,
)
from julesbridge.bridge.tools import DELEGATE_TO_JULES, TOOLS, delegate_to_jules
from julesbridge.bridge.transport import LineTooLongError
from julesbridge.config import BridgeConfig
from julesbridge.logging import get_logger

if TYPE_CHECKING:
    from julesbridge.api.client import JulesClient
    from julesbridge.bridge.transport import LineTransport
    from julesbridge.context.gatherer import ContextProvider

log = get_logger("bridge")

Handler = Callable[[JsonRpcMessage], Awaitable[Any]]

INTERNAL_ERROR_MESSAGE = "Internal error"


class BridgeServer:
    """Dispatches JSON-RPC messages to the bridge methods."""

    def __init__(
        self,
        client: JulesClient,
        gatherer: ContextProvider,
        config: BridgeConfig | None = None,
    ) -> None:
        self._client = client
        self._gatherer = gatherer
        self._config = config or BridgeConfig()
        self.initialized = False
        self._handlers: dict[str, Handler] = {
            "initialize": self._initialize,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "ping": self._ping,
        }
        self._notification_handlers: dict[str, Handler] = {
            "initialized": self._client_initialized,
            "notifications/initialized": self._client_initialized,
            "notifications/cancelled": self._cancelled,
        }

    @property
    def server_info(self) -> dict[str, Any]:
        return {
            "name": self._config.server_name,
            "version": self._config.server_version or __version__,
        }

    # -------------------------------------------------------------------------
    # Message handling
    # -------------------------------------------------------------------------

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Handle one input line; return the response, or None for no response."""
        if not line.strip():
            return None
        try:
            data = json.loads(line)
        except (ValueError, RecursionError):
            log.debug("Unparseable line: %.200s", line)
            return error_response(None, JsonRpcError(JsonRpcErrorCode.PARSE_ERROR, "Parse error"))
        return await self.handle_message(data)

    async def handle_message(self, data: Any) -> dict[str, Any] | None:
        if isinstance(data, list):
            log.debug("Rejecting batch of %d message(s)", len(data))
            return error_response(
                None, JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Batch requests are not supported")
            )
        if not isinstance(data, dict):
            return error_response(None, JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request"))

        try:
            msg = JsonRpcMessage.from_dict(data)
        except JsonRpcError as e:
            msg_id = data.get("id")
            if not isinstance(msg_id, (int, str)) or isinstance(msg_id, bool):
                msg_id = None
            return error_response(msg_id, e)

        if msg.method is None:
            if msg.is_response():
                log.debug("Ignoring client response for id %r", msg.id)
                return None
            return error_response(
                msg.id if msg.has_id else None,
                JsonRpcError(JsonRpcErrorCode.INVALID_REQUEST, "Invalid Request"),
            )

        if msg.is_notification():
            await self._handle_notification(msg)
            return None

        return await self._handle_request(msg)

    async def _handle_request(self, msg: JsonRpcMessage) -> dict[str, Any]:
        log.debug("Request %r: %s", msg.id, msg.method)
        handler = self._handlers.get(msg.method or "")
        try:
            if handler is None:
                raise JsonRpcError(
                    JsonRpcErrorCode.METHOD_NOT_FOUND, f"Method not found: {msg.method}"
                )
            result = await handler(msg)
        except JsonRpcError as e:
            log.debug("Request %r failed: %d %s", msg.id, e.code, e.message)
            return error_response(msg.id, e)
        except Exception:
            log.exception("Unhandled error in %s", msg.method)
            return error_response(
                msg.id, JsonRpcError(JsonRpcErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE)
            )
        log.debug("Response %r ready", msg.id)
        return result_response(msg.id, result)

    async def _handle_notification(self, msg: JsonRpcMessage) -> None:
        handler = self._notification_handlers.get(msg.method or "")
        if handler is None:
            log.info("Ignoring unknown notification: %s", msg.method)
            return
        try:
            await handler(msg)
        except Exception:
            log.exception("Error handling notification %s", msg.method)

    # -------------------------------------------------------------------------
    # Methods
    # -------------------------------------------------------------------------

    async def _initialize(self, msg: JsonRpcMessage) -> dict[str, Any]:
        try:
            params = InitializeParams.model_validate(
                msg.params if isinstance(msg.params, dict) else {}
            )
        except ValidationError as e:
            raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, "Invalid initialize parameters") from e
        if params.client_info is not None:
            log.info("Client: %s %s", params.client_info.name, params.client_info.version or "")
        self.initialized = True
        return {
            "protocolVersion": self._config.protocol_version,
            "capabilities": {
                "tools": True,
                "resources": False,
                "prompts": False,
                "logging": False,
            },
            "serverInfo": self.server_info,
        }

    async def _tools_list(self, msg: JsonRpcMessage) -> dict[str, Any]:
        return {"tools": TOOLS}

    async def _tools_call(self, msg: JsonRpcMessage) -> dict[str, Any]:
        if not isinstance(msg.params, dict):
            raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, "Missing tool name")
        try:
            params = ToolCallParams.model_validate(msg.params)
        except ValidationError as e:
            raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, "Invalid tool call parameters") from e

        if params.name != DELEGATE_TO_JULES:
            raise JsonRpcError(JsonRpcErrorCode.INVALID_PARAMS, f"Unknown tool: {params.name}")
        return await delegate_to_jules(self._client, self._gatherer, params.arguments or {})

    async def _ping(self, msg: JsonRpcMessage) -> dict[str, Any]:
        return {"pong": True}

    async def _client_initialized(self, msg: JsonRpcMessage) -> None:
        log.info("Client initialized")

    async def _cancelled(self, msg: JsonRpcMessage) -> None:
        request_id = msg.params.get("requestId") if isinstance(msg.params, dict) else None
        log.debug("Client cancelled request %r", request_id)

    # -------------------------------------------------------------------------
    # Serving
    # -------------------------------------------------------------------------

    async def serve(self, transport: LineTransport) -> None:
        """Read lines until EOF, handling each as its own task.

        Returns once the input is closed and every in-flight request has
        been answered.
        """
        pending: set[asyncio.Task[None]] = set()
        log.info("Bridge serving (%s %s)", self.server_info["name"], self.server_info["version"])
        while True:
            try:
                line = await transport.read_line()
            except LineTooLongError as e:
                log.warning("Dropping oversized input: %s", e)
                await transport.write_message(
                    error_response(None, JsonRpcError(JsonRpcErrorCode.PARSE_ERROR, "Parse error"))
                )
                continue
            if line is None:
                break
            task = asyncio.create_task(self._process(line, transport))
            pending.add(task)
            task.add_done_callback(pending.discard)

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        log.info("Bridge input closed")

    async def _process(self, line: str, transport: LineTransport) -> None:
        try:
            response = await self.handle_line(line)
        except Exception:
            log.exception("Unhandled error while handling line: %.200s", line)
            response = error_response(None, JsonRpcError(JsonRpcErrorCode.INTERNAL_ERROR, INTERNAL_ERROR_MESSAGE))
        if response is None:
            return
        try:
            await transport.write_message(response)
        except (ConnectionError, OSError) as e:
            log.error("Could not write response %r: %s", response.get("id"), e)
