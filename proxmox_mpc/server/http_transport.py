"""
HTTP transport for the MCP server.

Endpoints:
- POST /mcp     one JSON-RPC message per request body
- GET  /health  liveness plus server counters

The Starlette lifespan starts and stops the wrapped ``MCPServer``.
"""

import contextlib
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from proxmox_mpc import __version__
from proxmox_mpc.framework.errors import RPCErrorCode
from proxmox_mpc.server.mcp_server import MCPServer
from proxmox_mpc.server.protocol import error_response

logger = logging.getLogger(__name__)


def create_app(server: MCPServer) -> Starlette:
    """Build the Starlette application around ``server``."""

    async def handle_rpc(request: Request) -> JSONResponse:
        body = await request.body()
        try:
            message = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning("Parse error from %s: %s", request.client.host if request.client else "?", e)
            return JSONResponse(
                error_response(
                    None, {"code": int(RPCErrorCode.PARSE_ERROR), "message": "Parse error"}
                )
            )
        return JSONResponse(await server.process(message))

    async def handle_health(request: Request) -> JSONResponse:
        payload: dict[str, Any] = {
            "status": "ok" if server.is_running else "stopped",
            "version": __version__,
            "sessions": len(server.sessions),
            "cache": server.cache.get_stats(),
        }
        return JSONResponse(payload)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await server.start()
        try:
            yield
        finally:
            await server.stop()

    return Starlette(
        routes=[
            Route("/mcp", handle_rpc, methods=["POST"]),
            Route("/health", handle_health, methods=["GET"]),
        ],
        lifespan=lifespan,
    )


def run_http(server: MCPServer, host: str | None = None, port: int | None = None) -> None:
    """Blocking entry point for the HTTP transport."""
    host = host or server.config.server.http_host
    port = port or server.config.server.http_port
    logger.info("Starting MCP HTTP server on http://%s:%d/mcp", host, port)
    uvicorn.run(create_app(server), host=host, port=port, log_level="warning")
