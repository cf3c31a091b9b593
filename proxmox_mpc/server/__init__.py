"""Protocol server: configuration, sessions, dispatcher, facade and transports."""

from proxmox_mpc.server.config import Config, get_config, load_config, setup_hot_reload
from proxmox_mpc.server.dispatcher import MessageDispatcher
from proxmox_mpc.server.mcp_server import MCPServer
from proxmox_mpc.server.protocol import MCP_PROTOCOL_VERSION, MCPMethod, MCPRequest, ServerCapabilities
from proxmox_mpc.server.sessions import Session, SessionManager

__all__ = [
    "MCP_PROTOCOL_VERSION",
    "Config",
    "MCPMethod",
    "MCPRequest",
    "MCPServer",
    "MessageDispatcher",
    "ServerCapabilities",
    "Session",
    "SessionManager",
    "get_config",
    "load_config",
    "setup_hot_reload",
]
