"""JSON-RPC envelope schemas and the capability descriptor.

Requests carry the protocol literal ``"2.0"`` under ``jsonrpc`` (or the
``protocolVersion`` key); responses carry it under both keys.

Example:
    request = MCPRequest.model_validate(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}
    )
    success_response(request.id, {"tools": []})
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
)
from pydantic.alias_generators import to_camel

JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2024-11-05"

RequestId = Union[StrictInt, Annotated[StrictStr, Field(min_length=1)]]


class MCPMethod(str, Enum):
    """Methods routed by the dispatcher."""

    INITIALIZE = "initialize"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    PROMPTS_LIST = "prompts/list"
    PROMPTS_GET = "prompts/get"
    SESSION_CREATE = "session/create"
    SESSION_GET = "session/get"
    SESSION_CONTEXT_SET = "session/context/set"
    SESSION_CONTEXT_GET = "session/context/get"


class MCPRequest(BaseModel):
    """Request envelope.

    ``id`` may be any integer (including 0) or a non-empty string; booleans
    and null are rejected.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    jsonrpc: Literal["2.0"] = Field(
        validation_alias=AliasChoices("jsonrpc", "protocolVersion")
    )
    id: RequestId
    method: Annotated[StrictStr, Field(min_length=1)]
    params: Any = None


class RPCError(BaseModel):
    """Error member of a response envelope."""

    code: int
    message: str
    data: Any = None


def extract_id(message: Any) -> int | str | None:
    """Best-effort id for error responses to malformed envelopes."""
    if not isinstance(message, dict):
        return None
    request_id = message.get("id")
    if isinstance(request_id, bool):
        return None
    if isinstance(request_id, int) or (isinstance(request_id, str) and request_id):
        return request_id
    return None


def success_response(request_id: int | str | None, result: Any) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "protocolVersion": JSONRPC_VERSION,
        "id": request_id,
        "result": result,
    }


def error_response(request_id: int | str | None, error: RPCError | dict[str, Any]) -> dict[str, Any]:
    if not isinstance(error, RPCError):
        error = RPCError.model_validate(error)
    return {
        "jsonrpc": JSONRPC_VERSION,
        "protocolVersion": JSONRPC_VERSION,
        "id": request_id,
        "error": error.model_dump(exclude_none=True),
    }


class ServerInfo(BaseModel):
    name: str = "proxmox-mpc"
    version: str


class ServerCapabilities(BaseModel):
    """Capability descriptor returned by ``initialize``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    resources: list[str]
    tools: list[str]
    prompts: list[str]
    session_management: bool = True

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
