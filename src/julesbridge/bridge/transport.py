"""Newline-delimited JSON transport over asyncio streams."""

from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from dataclasses import dataclass, field
from typing import Any

from julesbridge.logging import get_logger

log = get_logger("bridge.transport")

# Longest accepted input line; longer lines are answered with a parse error
MAX_LINE_BYTES = 4 * 1024 * 1024


class LineTooLongError(Exception):
    """An input line exceeded the stream buffer limit."""


@dataclass
class LineTransport:
    """Reads raw lines and writes JSON messages, one per line.

    Parsing is left to the caller so that malformed input can still be
    answered. Writes are serialized so concurrent responses never interleave.
    """

    reader: asyncio.StreamReader | None = None
    writer: asyncio.StreamWriter | None = None
    _read_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    _write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @classmethod
    async def from_stdio(cls) -> LineTransport:
        """Create transport from stdin/stdout."""
        loop = asyncio.get_running_loop()

        reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, reader, loop)

        return cls(reader=reader, writer=writer)

    @classmethod
    def from_streams(
        cls, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> LineTransport:
        return cls(reader=reader, writer=writer)

    async def read_line(self) -> str | None:
        """Read one line without its terminator. Returns None on EOF.

        Raises LineTooLongError when a line exceeds the buffer limit; the
        rest of that line is discarded so the stream stays framed.
        """
        if self.reader is None:
            return None

        async with self._read_lock:
            try:
                raw = await self.reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # EOF; a final line without a newline still counts
                raw = e.partial
                if not raw:
                    return None
            except asyncio.LimitOverrunError as e:
                await self._discard_line(e.consumed)
                raise LineTooLongError(f"line longer than {MAX_LINE_BYTES} bytes") from e
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    async def _discard_line(self, consumed: int) -> None:
        assert self.reader is not None
        await self.reader.readexactly(consumed)
        while True:
            try:
                await self.reader.readuntil(b"\n")
                return
            except asyncio.LimitOverrunError as e:
                await self.reader.readexactly(e.consumed)
            except asyncio.IncompleteReadError:
                return

    async def write_message(self, message: dict[str, Any]) -> None:
        """Write one JSON message followed by a newline."""
        if self.writer is None:
            return

        data = json.dumps(message, separators=(",", ":"), ensure_ascii=False)
        async with self._write_lock:
            self.writer.write(f"{data}\n".encode())
            await self.writer.drain()

    async def close(self) -> None:
        if self.writer is not None:
            self.writer.close()
            with contextlib.suppress(Exception):
                await self.writer.wait_closed()
