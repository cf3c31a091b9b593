"""
Newline-delimited JSON transport over stdin/stdout.

Each input line is one request. Requests are handled as independent tasks,
so a slow upstream call only delays its own response; responses are written
one per line in completion order. Logging goes to stderr.
"""

import asyncio
import json
import logging
import sys
from typing import Any, TextIO

from proxmox_mpc.framework.errors import RPCErrorCode
from proxmox_mpc.server.mcp_server import MCPServer
from proxmox_mpc.server.protocol import error_response

logger = logging.getLogger(__name__)


class StdioTransport:
    """Serves one ``MCPServer`` over a pair of text streams."""

    def __init__(
        self, server: MCPServer, stdin: TextIO | None = None, stdout: TextIO | None = None
    ) -> None:
        self.server = server
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Decode and process one line; blank lines produce no response."""
        line = line.strip()
        if not line:
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning("Parse error on stdin: %s", e)
            return error_response(
                None, {"code": int(RPCErrorCode.PARSE_ERROR), "message": f"Parse error: {e.msg}"}
            )
        return await self.server.process(message)

    async def _respond(self, line: str) -> None:
        response = await self.handle_line(line)
        if response is None:
            return
        payload = json.dumps(response, default=str)
        async with self._write_lock:
            self.stdout.write(payload + "\n")
            self.stdout.flush()

    async def serve(self) -> None:
        """Read until EOF, then wait for in-flight requests."""
        await self.server.start()
        try:
            while True:
                line = await asyncio.to_thread(self.stdin.readline)
                if not line:
                    break
                task = asyncio.create_task(self._respond(line))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

            if self._pending:
                await asyncio.gather(*self._pending, return_exceptions=True)
        finally:
            await self.server.stop()


def run_stdio(server: MCPServer) -> None:
    """Blocking entry point for the stdio transport."""
    logger.info("Starting MCP server on stdio")
    asyncio.run(StdioTransport(server).serve())
