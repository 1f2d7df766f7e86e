"""Tests for the JSON-RPC bridge server."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from julesbridge import __version__
from julesbridge.api.cache import SessionCache
from julesbridge.api.models import SessionStatus
from julesbridge.bridge.server import BridgeServer
from julesbridge.bridge.tools import DELEGATE_TO_JULES
from julesbridge.bridge.transport import LineTransport
from julesbridge.config import BridgeConfig
from julesbridge.context.gatherer import ContextFile, GatheredContext, GitContext
from tests.utils import FakeWriter


class FakeGatherer:
    """Returns a fixed context and records what it was asked for."""

    def __init__(self, context: GatheredContext | None = None, delay: float = 0.0) -> None:
        self.context = context or GatheredContext(
            git=GitContext(owner="octo", repo="widgets", branch="feature", is_dirty=True, diff="+x")
        )
        self.delay = delay
        self.calls: list[list[str] | None] = []

    async def gather(self, context_files: list[str] | None = None) -> GatheredContext:
        self.calls.append(context_files)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.context


class BrokenGatherer:
    async def gather(self, context_files: list[str] | None = None) -> GatheredContext:
        raise RuntimeError("disk on fire")


def created(session_id: str = "abc123") -> httpx.Response:
    return httpx.Response(200, json={"name": f"sessions/{session_id}", "id": session_id})


@pytest.fixture
def requests_seen() -> list[httpx.Request]:
    return []


@pytest.fixture
def server(make_client, requests_seen: list[httpx.Request]) -> BridgeServer:
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        return created()

    return BridgeServer(make_client(handler), FakeGatherer())


def call(msg_id: Any, name: str = DELEGATE_TO_JULES, **arguments: Any) -> str:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": msg_id,
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        }
    )


def tool_text(response: dict[str, Any]) -> str:
    return response["result"]["content"][0]["text"]


# =============================================================================
# Framing and dispatch
# =============================================================================


class TestDispatch:
    """Tests for request/notification handling."""

    @pytest.mark.asyncio
    async def test_ping(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":7,"method":"ping"}')
        assert response == {"jsonrpc": "2.0", "id": 7, "result": {"pong": True}}

    @pytest.mark.asyncio
    async def test_string_id_is_echoed(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":"req-1","method":"ping"}')
        assert response is not None
        assert response["id"] == "req-1"

    @pytest.mark.asyncio
    async def test_parse_error(self, server: BridgeServer) -> None:
        response = await server.handle_line("{not json")
        assert response == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }

    @pytest.mark.asyncio
    async def test_deeply_nested_line_is_a_parse_error(self, server: BridgeServer) -> None:
        response = await server.handle_line("[" * 200_000 + "]" * 200_000)
        assert response == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }

    @pytest.mark.asyncio
    async def test_blank_line_is_ignored(self, server: BridgeServer) -> None:
        assert await server.handle_line("   ") is None

    @pytest.mark.asyncio
    async def test_notification_gets_no_response(self, server: BridgeServer) -> None:
        assert await server.handle_line('{"jsonrpc":"2.0","method":"ping"}') is None
        assert await server.handle_line('{"jsonrpc":"2.0","method":"notifications/initialized"}') is None

    @pytest.mark.asyncio
    async def test_unknown_notification_is_ignored(self, server: BridgeServer) -> None:
        assert await server.handle_line('{"jsonrpc":"2.0","method":"whatever/happened"}') is None

    @pytest.mark.asyncio
    async def test_unknown_method(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":3,"method":"resources/list"}')
        assert response is not None
        assert response["id"] == 3
        assert response["error"]["code"] == -32601
        assert "resources/list" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_null_id_is_still_a_request(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":null,"method":"ping"}')
        assert response == {"jsonrpc": "2.0", "id": None, "result": {"pong": True}}

    @pytest.mark.asyncio
    async def test_batch_is_rejected(self, server: BridgeServer) -> None:
        response = await server.handle_line('[{"jsonrpc":"2.0","id":1,"method":"ping"}]')
        assert response is not None
        assert response["id"] is None
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "line",
        [
            '"just a string"',
            '{"jsonrpc":"2.0","id":4,"method":12}',
            '{"jsonrpc":"2.0","id":4,"method":"ping","params":"nope"}',
        ],
    )
    async def test_invalid_requests(self, server: BridgeServer, line: str) -> None:
        response = await server.handle_line(line)
        assert response is not None
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_invalid_request_keeps_valid_id(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":9,"method":["x"]}')
        assert response is not None
        assert response["id"] == 9

    @pytest.mark.asyncio
    async def test_client_response_is_ignored(self, server: BridgeServer) -> None:
        assert await server.handle_line('{"jsonrpc":"2.0","id":5,"result":{}}') is None


# =============================================================================
# Methods
# =============================================================================


class TestMethods:
    """Tests for initialize and tools/list."""

    @pytest.mark.asyncio
    async def test_initialize(self, server: BridgeServer) -> None:
        line = json.dumps(
            {
                "jsonrpc": "2.0",
                "id": 1,
                "method": "initialize",
                "params": {"protocolVersion": "2024-11-05", "clientInfo": {"name": "ide", "version": "1"}},
            }
        )
        response = await server.handle_line(line)

        assert response is not None
        result = response["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["capabilities"]["tools"] is True
        assert result["serverInfo"] == {"name": "jules-bridge", "version": __version__}
        assert server.initialized

    @pytest.mark.asyncio
    async def test_initialize_with_configured_identity(self, make_client) -> None:
        server = BridgeServer(
            make_client(lambda r: created()),
            FakeGatherer(),
            BridgeConfig(server_name="custom", server_version="9.9"),
        )
        response = await server.handle_line('{"jsonrpc":"2.0","id":1,"method":"initialize"}')
        assert response is not None
        assert response["result"]["serverInfo"] == {"name": "custom", "version": "9.9"}

    @pytest.mark.asyncio
    async def test_initialize_rejects_bad_params(self, server: BridgeServer) -> None:
        line = '{"jsonrpc":"2.0","id":1,"method":"initialize","params":{"clientInfo":"ide"}}'
        response = await server.handle_line(line)
        assert response is not None
        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_tools_list(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":2,"method":"tools/list"}')
        assert response is not None
        (tool,) = response["result"]["tools"]
        assert tool["name"] == "delegate_to_jules"
        assert tool["inputSchema"]["required"] == ["task"]
        assert tool["inputSchema"]["properties"]["context_files"]["type"] == "array"


# =============================================================================
# delegate_to_jules
# =============================================================================


class TestDelegate:
    """Tests for the delegation tool."""

    @pytest.mark.asyncio
    async def test_success(
        self, server: BridgeServer, cache: SessionCache, requests_seen: list[httpx.Request]
    ) -> None:
        response = await server.handle_line(call(11, task="fix bug", context_files=["a.py"]))

        assert response is not None
        assert response["id"] == 11
        assert "isError" not in response["result"]
        payload = json.loads(tool_text(response))
        assert payload == {
            "sessionId": "abc123",
            "status": "pending",
            "message": "Task delegated successfully. Session ID: abc123",
        }

        cached = cache.get("abc123")
        assert cached is not None
        assert cached.status is SessionStatus.PENDING
        assert cached.task == "fix bug"

        body = json.loads(requests_seen[0].content)
        assert body["sourceContext"]["source"] == "sources/github/octo/widgets"
        assert body["sourceContext"]["githubRepoContext"]["startingBranch"] == "feature"
        assert "<mission_brief>fix bug</mission_brief>" in body["prompt"]
        assert "<has_uncommitted_changes>true</has_uncommitted_changes>" in body["prompt"]

    @pytest.mark.asyncio
    async def test_context_files_reach_gatherer(self, make_client) -> None:
        gatherer = FakeGatherer(
            GatheredContext(files=[ContextFile(path="a.py", content="print(1)", language="python")])
        )
        server = BridgeServer(make_client(lambda r: created()), gatherer)

        await server.handle_line(call(1, task="t", context_files=["a.py", "b.md"]))

        assert gatherer.calls == [["a.py", "b.md"]]

    @pytest.mark.asyncio
    async def test_missing_repository_falls_back_to_unknown(self, make_client) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return created()

        server = BridgeServer(make_client(handler), FakeGatherer(GatheredContext()))
        await server.handle_line(call(1, task="t"))

        body = json.loads(seen[0].content)
        assert body["sourceContext"]["source"] == "sources/github/unknown/unknown"
        assert body["sourceContext"]["githubRepoContext"]["startingBranch"] == "main"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("arguments", [{}, {"task": ""}, {"task": "   "}, {"task": 5}])
    async def test_missing_task(
        self, server: BridgeServer, requests_seen: list[httpx.Request], arguments: dict
    ) -> None:
        response = await server.handle_line(call(2, **arguments))

        assert response is not None
        assert response["error"]["code"] == -32602
        assert "task" in response["error"]["message"]
        assert requests_seen == []

    @pytest.mark.asyncio
    async def test_bad_context_files(self, server: BridgeServer) -> None:
        response = await server.handle_line(call(2, task="t", context_files="a.py"))
        assert response is not None
        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server: BridgeServer) -> None:
        response = await server.handle_line(call(3, name="rm_rf", task="t"))
        assert response is not None
        assert response["error"] == {"code": -32602, "message": "Unknown tool: rm_rf"}

    @pytest.mark.asyncio
    async def test_missing_tool_params(self, server: BridgeServer) -> None:
        response = await server.handle_line('{"jsonrpc":"2.0","id":3,"method":"tools/call"}')
        assert response is not None
        assert response["error"]["code"] == -32602

    @pytest.mark.asyncio
    async def test_api_failure_is_a_tool_error(self, make_client, cache: SessionCache) -> None:
        body = {"error": {"message": "Requested entity was not found."}}
        server = BridgeServer(
            make_client(lambda r: httpx.Response(404, json=body)), FakeGatherer()
        )

        response = await server.handle_line(call(4, task="t"))

        assert response is not None
        assert "error" not in response
        assert response["result"]["isError"] is True
        text = tool_text(response)
        assert text.startswith("Error: Jules does not have access to octo/widgets.")
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_missing_api_key_is_a_tool_error(self, make_client) -> None:
        server = BridgeServer(make_client(lambda r: created(), api_key=None), FakeGatherer())

        response = await server.handle_line(call(5, task="t"))

        assert response is not None
        assert response["result"]["isError"] is True
        assert "JULES_API_KEY" in tool_text(response)

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_generic(self, make_client) -> None:
        server = BridgeServer(make_client(lambda r: created()), BrokenGatherer())

        response = await server.handle_line(call(6, task="t"))

        assert response is not None
        assert response["result"]["isError"] is True
        assert tool_text(response) == "Error: Failed to delegate task to Jules."
        assert "disk on fire" not in json.dumps(response)

    @pytest.mark.asyncio
    async def test_handler_crash_is_internal_error(self, server: BridgeServer) -> None:
        async def explode(msg):
            raise KeyError("secret detail")

        server._handlers["ping"] = explode

        response = await server.handle_line('{"jsonrpc":"2.0","id":8,"method":"ping"}')

        assert response == {
            "jsonrpc": "2.0",
            "id": 8,
            "error": {"code": -32603, "message": "Internal error"},
        }


# =============================================================================
# Serving over a stream
# =============================================================================


class TestServe:
    """Tests for the read loop."""

    @pytest.mark.asyncio
    async def test_responses_correlate_by_id(self, make_client) -> None:
        server = BridgeServer(make_client(lambda r: created("slow1")), FakeGatherer(delay=0.05))
        reader = asyncio.StreamReader()
        writer = FakeWriter()
        reader.feed_data((call(1, task="slow") + "\n").encode())
        reader.feed_data(b'{"jsonrpc":"2.0","id":2,"method":"ping"}\n')
        reader.feed_data(b'{"jsonrpc":"2.0","method":"notifications/initialized"}\n')
        reader.feed_data(b"garbage\n")
        reader.feed_eof()

        await server.serve(LineTransport.from_streams(reader, writer))

        messages = writer.messages()
        assert len(messages) == 3
        by_id = {m["id"]: m for m in messages}
        assert by_id[2]["result"] == {"pong": True}
        assert json.loads(tool_text(by_id[1]))["sessionId"] == "slow1"
        assert by_id[None]["error"]["code"] == -32700
        # The slow delegation finishes last
        assert messages[-1]["id"] == 1

    @pytest.mark.asyncio
    async def test_oversized_line_gets_parse_error(self, server: BridgeServer) -> None:
        reader = asyncio.StreamReader(limit=64)
        writer = FakeWriter()
        reader.feed_data(b'{"pad":"' + b"x" * 200 + b'"}\n')
        reader.feed_data(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')
        reader.feed_eof()

        await server.serve(LineTransport.from_streams(reader, writer))

        messages = writer.messages()
        assert messages[0] == {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}}
        assert messages[1] == {"jsonrpc": "2.0", "id": 1, "result": {"pong": True}}

    @pytest.mark.asyncio
    async def test_empty_input(self, server: BridgeServer) -> None:
        reader = asyncio.StreamReader()
        writer = FakeWriter()
        reader.feed_eof()

        await server.serve(LineTransport.from_streams(reader, writer))

        assert writer.data == b""

    @pytest.mark.asyncio
    async def test_deeply_nested_line_is_answered(self, server: BridgeServer) -> None:
        reader = asyncio.StreamReader(limit=1 << 20)
        writer = FakeWriter()
        reader.feed_data(b"[" * 200_000 + b"]" * 200_000 + b"\n")
        reader.feed_data(b'{"jsonrpc":"2.0","id":7,"method":"ping"}\n')
        reader.feed_eof()

        await server.serve(LineTransport.from_streams(reader, writer))

        messages = writer.messages()
        assert len(messages) == 2
        by_id = {m["id"]: m for m in messages}
        assert by_id[None]["error"] == {"code": -32700, "message": "Parse error"}
        assert by_id[7]["result"] == {"pong": True}

    @pytest.mark.asyncio
    async def test_line_handler_crash_gets_internal_error(self, server: BridgeServer) -> None:
        reader = asyncio.StreamReader()
        writer = FakeWriter()
        reader.feed_data(b'{"jsonrpc":"2.0","id":1,"method":"ping"}\n')
        reader.feed_eof()

        with patch.object(server, "handle_line", AsyncMock(side_effect=RuntimeError("boom"))):
            await server.serve(LineTransport.from_streams(reader, writer))

        assert writer.messages() == [
            {"jsonrpc": "2.0", "id": None, "error": {"code": -32603, "message": "Internal error"}}
        ]
