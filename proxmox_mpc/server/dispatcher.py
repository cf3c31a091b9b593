"""
Protocol dispatcher: envelope validation, routing and uniform responses.

``process`` never raises. Malformed envelopes become Invalid-Request errors
before any component is touched, typed ``MCPError`` subclasses keep their
own code, and anything else is logged with the method name and returned as
an Internal-Error carrying the exception message.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from proxmox_mpc import __version__
from proxmox_mpc.framework.errors import (
    InvalidParamsError,
    InvalidRequestError,
    MCPError,
    MethodNotFoundError,
    SessionNotFoundError,
    to_rpc_error,
)
from proxmox_mpc.observability.metrics import MetricsCollector
from proxmox_mpc.prompts.renderer import PromptRenderer
from proxmox_mpc.resources.models import ResourceDomain
from proxmox_mpc.resources.provider import ResourceProvider
from proxmox_mpc.server.protocol import (
    MCP_PROTOCOL_VERSION,
    MCPMethod,
    MCPRequest,
    ServerCapabilities,
    ServerInfo,
    error_response,
    extract_id,
    success_response,
)
from proxmox_mpc.server.sessions import SessionManager
from proxmox_mpc.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]

# Top-level resources/list keys accepted as filter shorthand.
_FILTER_KEYS = ("search", "limit", "offset")


def _require_str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if value is None:
        raise InvalidParamsError(f"Missing required parameter: {key}", field=key)
    if not isinstance(value, str) or not value:
        raise InvalidParamsError(f"{key} must be a non-empty string", field=key)
    return value


def _optional_dict(params: dict[str, Any], key: str) -> dict[str, Any]:
    value = params.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidParamsError(f"{key} must be an object", field=key)
    return value


class MessageDispatcher:
    """Routes JSON-RPC messages to the server components."""

    def __init__(
        self,
        resources: ResourceProvider,
        tools: ToolExecutor,
        prompts: PromptRenderer,
        sessions: SessionManager,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self.resources = resources
        self.tools = tools
        self.prompts = prompts
        self.sessions = sessions
        self.metrics = metrics if metrics is not None else MetricsCollector(enabled=False)

        self._routes: dict[str, Handler] = {
            MCPMethod.INITIALIZE.value: self._initialize,
            MCPMethod.RESOURCES_LIST.value: self._resources_list,
            MCPMethod.RESOURCES_READ.value: self._resources_read,
            MCPMethod.TOOLS_LIST.value: self._tools_list,
            MCPMethod.TOOLS_CALL.value: self._tools_call,
            MCPMethod.PROMPTS_LIST.value: self._prompts_list,
            MCPMethod.PROMPTS_GET.value: self._prompts_get,
            MCPMethod.SESSION_CREATE.value: self._session_create,
            MCPMethod.SESSION_GET.value: self._session_get,
            MCPMethod.SESSION_CONTEXT_SET.value: self._session_context_set,
            MCPMethod.SESSION_CONTEXT_GET.value: self._session_context_get,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._routes)

    def capabilities(self) -> ServerCapabilities:
        return ServerCapabilities(
            resources=[domain.value for domain in ResourceDomain],
            tools=[tool.name for tool in self.tools.list_tools()],
            prompts=[template.name for template in self.prompts.list_templates()],
            session_management=True,
        )

    async def process(self, message: Any) -> dict[str, Any]:
        """Handle one decoded message and return its response envelope."""
        try:
            request = MCPRequest.model_validate(message)
        except ValidationError as e:
            logger.warning("Rejected malformed envelope: %s", e.errors()[0]["msg"])
            return error_response(extract_id(message), InvalidRequestError().to_dict())

        handler = self._routes.get(request.method)
        if handler is None:
            logger.warning("Unknown method: %s", request.method)
            return error_response(request.id, MethodNotFoundError(request.method).to_dict())

        try:
            params = request.params if request.params is not None else {}
            if not isinstance(params, dict):
                raise InvalidParamsError("params must be an object")
            with self.metrics.track("rpc.duration", tags={"method": request.method}):
                result = await handler(params)
        except MCPError as e:
            logger.warning(
                "%s failed: %s",
                request.method,
                e.message,
                extra={"method": request.method, "error_category": e.severity.value},
            )
            return error_response(request.id, e.to_dict())
        except Exception as e:
            logger.exception(
                "MCP message processing failed: %s",
                request.method,
                extra={"method": request.method, "error_category": "internal"},
            )
            return error_response(request.id, to_rpc_error(e))

        return success_response(request.id, result)

    def _scope_session(self, params: dict[str, Any]) -> str | None:
        """Touch the session named by ``sessionId``, if any."""
        if params.get("sessionId") is None:
            return None
        session_id = _require_str(params, "sessionId")
        if self.sessions.get(session_id) is None:
            raise SessionNotFoundError(session_id)
        return session_id

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> Any:
        client = params.get("clientInfo")
        if isinstance(client, dict):
            logger.info("Client connected: %s %s", client.get("name"), client.get("version", ""))
        return {
            "serverInfo": ServerInfo(version=__version__).model_dump(),
            "protocolVersion": MCP_PROTOCOL_VERSION,
            "capabilities": self.capabilities().to_wire(),
        }

    async def _tools_list(self, params: dict[str, Any]) -> Any:
        return {"tools": [tool.to_dict() for tool in self.tools.list_tools()]}

    async def _prompts_list(self, params: dict[str, Any]) -> Any:
        return {"prompts": [template.to_dict() for template in self.prompts.list_templates()]}

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def _resources_list(self, params: dict[str, Any]) -> Any:
        domain = _require_str(params, "type")
        self._scope_session(params)
        filters = {key: params[key] for key in _FILTER_KEYS if key in params}
        filters.update(_optional_dict(params, "filter"))
        resources = await self.resources.get_resources(domain, filters)
        return {"resources": [resource.to_wire() for resource in resources]}

    async def _resources_read(self, params: dict[str, Any]) -> Any:
        uri = _require_str(params, "uri")
        resource = await self.resources.read_resource(uri)
        return {"resource": resource.to_wire()}

    # ------------------------------------------------------------------
    # Tools and prompts
    # ------------------------------------------------------------------

    async def _tools_call(self, params: dict[str, Any]) -> Any:
        name = _require_str(params, "name")
        arguments = _optional_dict(params, "arguments")
        session_id = self._scope_session(params)
        logger.info("MCP tool executed: %s", name, extra={"tool": name, "session_id": session_id})
        result = await self.tools.execute(name, arguments)
        return result.to_wire()

    async def _prompts_get(self, params: dict[str, Any]) -> Any:
        name = _require_str(params, "name")
        context = _optional_dict(params, "context")
        strict = params.get("strict", False)
        if not isinstance(strict, bool):
            raise InvalidParamsError("strict must be boolean", field="strict")

        session_id = self._scope_session(params)
        if session_id is not None:
            context = {**self.sessions.get_context(session_id), **context}

        content = self.prompts.render(name, context, strict=strict)
        return {"name": name, "content": content}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def _session_create(self, params: dict[str, Any]) -> Any:
        client_id = _require_str(params, "clientId")
        return {"sessionId": self.sessions.create(client_id)}

    async def _session_get(self, params: dict[str, Any]) -> Any:
        session_id = _require_str(params, "sessionId")
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return {"session": session.to_dict()}

    async def _session_context_set(self, params: dict[str, Any]) -> Any:
        session_id = _require_str(params, "sessionId")
        if not isinstance(params.get("context"), dict):
            raise InvalidParamsError("context must be an object", field="context")
        if not self.sessions.set_context(session_id, params["context"]):
            raise SessionNotFoundError(session_id)
        return {"success": True}

    async def _session_context_get(self, params: dict[str, Any]) -> Any:
        session_id = _require_str(params, "sessionId")
        if self.sessions.get(session_id) is None:
            raise SessionNotFoundError(session_id)
        return {"context": self.sessions.get_context(session_id)}
