"""
Tests for the protocol dispatcher.

Covers:
- envelope validation (-32600) and id echoing
- routing and Method-Not-Found (-32601)
- params checks (-32602)
- typed error codes and the Internal-Error catch-all
- session scoping of tools/call and prompts/get
"""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from proxmox_mpc.server.mcp_server import MCPServer
from proxmox_mpc.server.protocol import MCP_PROTOCOL_VERSION
from tests.conftest import rpc


def error_code(response: dict[str, Any]) -> int:
    return response["error"]["code"]


class TestEnvelopeValidation:
    """Malformed envelopes never reach a component."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "message",
        [
            {"id": 1, "method": "tools/list"},
            {"jsonrpc": "1.0", "id": 1, "method": "tools/list"},
            {"jsonrpc": "2.0", "method": "tools/list"},
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "2.0", "id": 1, "method": ""},
            {"jsonrpc": "2.0", "id": 1, "method": 42},
            {"jsonrpc": "2.0", "id": True, "method": "tools/list"},
            {"jsonrpc": "2.0", "id": None, "method": "tools/list"},
            [],
            "tools/list",
            None,
        ],
    )
    async def test_invalid_envelope(self, server: MCPServer, message: Any) -> None:
        """Missing version, id or method yields Invalid-Request."""
        response = await server.process(message)

        assert response["jsonrpc"] == "2.0"
        assert response["protocolVersion"] == "2.0"
        assert error_code(response) == -32600
        assert response["error"]["message"] == "Invalid JSON-RPC message format"

    @pytest.mark.asyncio
    async def test_invalid_envelope_echoes_id(self, server: MCPServer) -> None:
        response = await server.process({"id": "abc", "method": "tools/list"})

        assert response["id"] == "abc"
        assert error_code(response) == -32600

    @pytest.mark.asyncio
    async def test_invalid_envelope_without_id_uses_null(self, server: MCPServer) -> None:
        response = await server.process({"jsonrpc": "2.0", "method": "tools/list"})

        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_invalid_envelope_does_not_touch_components(
        self, server: MCPServer, infra_client: AsyncMock
    ) -> None:
        await server.process({"id": 1, "method": "resources/list", "params": {"type": "infrastructure"}})

        infra_client.get_vms.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_protocol_version_alias(self, server: MCPServer) -> None:
        """The version literal is accepted under protocolVersion and echoed under both keys."""
        response = await server.process({"protocolVersion": "2.0", "id": 7, "method": "tools/list"})

        assert response["id"] == 7
        assert response["jsonrpc"] == "2.0"
        assert response["protocolVersion"] == "2.0"
        assert "result" in response

    @pytest.mark.asyncio
    async def test_zero_id_is_valid(self, server: MCPServer) -> None:
        response = await server.process(rpc("tools/list", request_id=0))

        assert response["id"] == 0
        assert "result" in response


class TestRouting:
    """Method routing and discovery."""

    @pytest.mark.asyncio
    async def test_unknown_method(self, server: MCPServer) -> None:
        response = await server.process(rpc("vm/destroy"))

        assert error_code(response) == -32601
        assert response["error"]["message"] == "Method not found: vm/destroy"

    @pytest.mark.asyncio
    async def test_initialize(self, server: MCPServer) -> None:
        response = await server.process(rpc("initialize", {"clientInfo": {"name": "test"}}))
        result = response["result"]

        assert result["serverInfo"]["name"] == "proxmox-mpc"
        assert result["protocolVersion"] == MCP_PROTOCOL_VERSION
        capabilities = result["capabilities"]
        assert capabilities["resources"] == ["infrastructure", "workspace", "logs", "diagnostics"]
        assert "createVM" in capabilities["tools"]
        assert len(capabilities["tools"]) == 13  # noqa: PLR2004
        assert capabilities["prompts"] == ["troubleshoot", "optimize", "plan", "analyze"]
        assert capabilities["sessionManagement"] is True

    @pytest.mark.asyncio
    async def test_tools_list(self, server: MCPServer) -> None:
        response = await server.process(rpc("tools/list"))
        tools = {t["name"]: t for t in response["result"]["tools"]}

        create_vm = tools["createVM"]
        assert create_vm["parameters"][:4] == ["name", "node", "memory", "cores"]
        assert create_vm["schema"]["cores"] == {
            "type": "number",
            "required": True,
            "description": "CPU cores",
            "min": 1,
            "max": 64,
        }

    @pytest.mark.asyncio
    async def test_prompts_list(self, server: MCPServer) -> None:
        response = await server.process(rpc("prompts/list"))
        names = [p["name"] for p in response["result"]["prompts"]]

        assert names == ["troubleshoot", "optimize", "plan", "analyze"]

    @pytest.mark.asyncio
    async def test_non_object_params(self, server: MCPServer) -> None:
        response = await server.process(rpc("tools/call", ["createVM"]))

        assert error_code(response) == -32602


class TestResourceMethods:
    """resources/list and resources/read."""

    @pytest.mark.asyncio
    async def test_list_requires_type(self, server: MCPServer) -> None:
        response = await server.process(rpc("resources/list", {}))

        assert error_code(response) == -32602
        assert "type" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_type(self, server: MCPServer) -> None:
        response = await server.process(rpc("resources/list", {"type": "billing"}))

        assert error_code(response) == -32602

    @pytest.mark.asyncio
    async def test_list_infrastructure(self, server: MCPServer) -> None:
        response = await server.process(rpc("resources/list", {"type": "infrastructure"}))
        uris = [r["uri"] for r in response["result"]["resources"]]

        assert "infrastructure://node/pve1" in uris
        assert "infrastructure://vm/100" in uris
        assert "infrastructure://container/200" in uris
        assert "infrastructure://storage/local-lvm" in uris

    @pytest.mark.asyncio
    async def test_list_survives_malformed_upstream_record(
        self, server: MCPServer, infra_client: AsyncMock
    ) -> None:
        infra_client.get_vms.return_value = [{"name": "orphan"}]

        response = await server.process(rpc("resources/list", {"type": "infrastructure"}))
        uris = [r["uri"] for r in response["result"]["resources"]]

        assert "error" not in response
        assert "infrastructure://node/pve1" in uris
        assert "infrastructure://container/200" in uris
        assert "infrastructure://storage/local-lvm" in uris

    @pytest.mark.asyncio
    async def test_list_with_filter(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("resources/list", {"type": "infrastructure", "filter": {"type": "vm"}, "limit": 1})
        )
        resources = response["result"]["resources"]

        assert len(resources) == 1
        assert resources[0]["type"] == "vm"

    @pytest.mark.asyncio
    async def test_list_bad_filter(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("resources/list", {"type": "infrastructure", "offset": -1})
        )

        assert error_code(response) == -32602

    @pytest.mark.asyncio
    async def test_read_resource(self, server: MCPServer) -> None:
        response = await server.process(rpc("resources/read", {"uri": "workspace://config"}))

        assert response["result"]["resource"]["type"] == "workspace"

    @pytest.mark.asyncio
    async def test_read_unknown_resource(self, server: MCPServer) -> None:
        response = await server.process(rpc("resources/read", {"uri": "infrastructure://vm/999"}))

        assert error_code(response) == -32001
        assert response["error"]["message"] == "Resource not found: infrastructure://vm/999"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_internal_error(self, server: MCPServer) -> None:
        server.resources.get_resources = AsyncMock(side_effect=RuntimeError("cache corrupted"))

        response = await server.process(rpc("resources/list", {"type": "infrastructure"}))

        assert error_code(response) == -32603
        assert response["error"]["message"] == "cache corrupted"


class TestToolAndPromptMethods:
    """tools/call and prompts/get."""

    @pytest.mark.asyncio
    async def test_tools_call(self, server: MCPServer) -> None:
        response = await server.process(
            rpc(
                "tools/call",
                {
                    "name": "createVM",
                    "arguments": {"name": "web-2", "node": "pve1", "memory": 2048, "cores": 2},
                },
            )
        )
        result = response["result"]

        assert result["success"] is True
        assert result["data"] == {"vmid": 101}
        assert result["metadata"]["toolName"] == "createVM"

    @pytest.mark.asyncio
    async def test_tool_failure_is_a_result_not_an_error(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("tools/call", {"name": "createVM", "arguments": {"name": "x"}})
        )

        assert "error" not in response
        assert response["result"]["success"] is False
        assert "node" in response["result"]["error"]

    @pytest.mark.asyncio
    async def test_tools_call_requires_name(self, server: MCPServer) -> None:
        response = await server.process(rpc("tools/call", {"arguments": {}}))

        assert error_code(response) == -32602

    @pytest.mark.asyncio
    async def test_tools_call_unknown_session(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("tools/call", {"name": "generatePlan", "sessionId": "missing"})
        )

        assert error_code(response) == -32003

    @pytest.mark.asyncio
    async def test_prompts_get(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("prompts/get", {"name": "troubleshoot", "context": {"issue": "VM failed"}})
        )

        assert "VM failed" in response["result"]["content"]

    @pytest.mark.asyncio
    async def test_prompts_get_unknown_template(self, server: MCPServer) -> None:
        response = await server.process(rpc("prompts/get", {"name": "haiku"}))

        assert error_code(response) == -32001
        assert response["error"]["message"] == "Unknown prompt template: haiku"

    @pytest.mark.asyncio
    async def test_prompts_get_strict(self, server: MCPServer) -> None:
        response = await server.process(
            rpc("prompts/get", {"name": "troubleshoot", "context": {}, "strict": True})
        )

        assert error_code(response) == -32602
        assert "issue" in response["error"]["data"]["missing"]

    @pytest.mark.asyncio
    async def test_prompts_get_uses_session_context(self, server: MCPServer) -> None:
        """Session context supplies defaults; the caller's context wins."""
        session_id = server.sessions.create("client-a")
        server.sessions.set_context(session_id, {"issue": "disk full", "component": "storage"})

        response = await server.process(
            rpc(
                "prompts/get",
                {"name": "troubleshoot", "context": {"issue": "VM failed"}, "sessionId": session_id},
            )
        )
        content = response["result"]["content"]

        assert "VM failed" in content
        assert "disk full" not in content
        assert "**Component**: storage" in content


class TestSessionMethods:
    """session/* methods."""

    @pytest.mark.asyncio
    async def test_session_round_trip(self, server: MCPServer) -> None:
        created = await server.process(rpc("session/create", {"clientId": "client-a"}))
        session_id = created["result"]["sessionId"]

        set_response = await server.process(
            rpc("session/context/set", {"sessionId": session_id, "context": {"node": "pve1"}})
        )
        get_response = await server.process(
            rpc("session/context/get", {"sessionId": session_id})
        )
        session = await server.process(rpc("session/get", {"sessionId": session_id}))

        assert set_response["result"] == {"success": True}
        assert get_response["result"] == {"context": {"node": "pve1"}}
        assert session["result"]["session"]["clientId"] == "client-a"
        assert session["result"]["session"]["context"] == {"node": "pve1"}

    @pytest.mark.asyncio
    async def test_session_create_requires_client_id(self, server: MCPServer) -> None:
        response = await server.process(rpc("session/create", {}))

        assert error_code(response) == -32602

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "params"),
        [
            ("session/get", {"sessionId": "nope"}),
            ("session/context/get", {"sessionId": "nope"}),
            ("session/context/set", {"sessionId": "nope", "context": {}}),
        ],
    )
    async def test_unknown_session(
        self, server: MCPServer, method: str, params: dict[str, Any]
    ) -> None:
        response = await server.process(rpc(method, params))

        assert error_code(response) == -32003

    @pytest.mark.asyncio
    async def test_context_must_be_object(self, server: MCPServer) -> None:
        session_id = server.sessions.create("client-a")

        response = await server.process(
            rpc("session/context/set", {"sessionId": session_id, "context": "node=pve1"})
        )

        assert error_code(response) == -32602

    @pytest.mark.asyncio
    async def test_session_limit(self, server: MCPServer) -> None:
        server.sessions.max_sessions = 1
        await server.process(rpc("session/create", {"clientId": "a"}))

        response = await server.process(rpc("session/create", {"clientId": "b"}))

        assert error_code(response) == -32000
