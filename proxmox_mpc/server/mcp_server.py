"""
Server facade.

``MCPServer`` owns every store the protocol surface needs (sessions,
resource cache, metrics) and wires the components together. Nothing is
module-global: two servers in one process share no state.

Lifecycle:
    server = MCPServer(config, infra_client=client)
    await server.start()      # starts the session sweep
    response = await server.process(message)
    await server.stop()       # stops the sweep, clears sessions and cache

Listeners registered with ``add_listener`` are called with the event name
(``started``, ``stopped``, ``reloaded``) and the server.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from proxmox_mpc.infra.client import DeploymentBackend, InfraClient, LogSource
from proxmox_mpc.observability.diagnostics import DiagnosticsCollector
from proxmox_mpc.observability.metrics import MetricsCollector
from proxmox_mpc.prompts.renderer import PromptRenderer
from proxmox_mpc.resources.cache import ResourceCache
from proxmox_mpc.resources.models import ResourceDomain
from proxmox_mpc.resources.provider import ResourceProvider
from proxmox_mpc.server.config import Config, get_config
from proxmox_mpc.server.dispatcher import MessageDispatcher
from proxmox_mpc.server.sessions import SessionManager
from proxmox_mpc.tools.executor import ToolExecutor

logger = logging.getLogger(__name__)

Listener = Callable[[str, "MCPServer"], Any]


class MCPServer:
    """Protocol server for Proxmox infrastructure management.

    Args:
        config: Server configuration (the global config if omitted)
        infra_client: Virtualization API client
        deployment_backend: Terraform/Ansible plan-and-apply backend
        log_source: Recent-log store backing the logs domain
    """

    def __init__(
        self,
        config: Config | None = None,
        infra_client: InfraClient | None = None,
        deployment_backend: DeploymentBackend | None = None,
        log_source: LogSource | None = None,
    ) -> None:
        self.config = config if config is not None else get_config()
        self.workspace_path = workspace = self.config.server.workspace_path

        self.infra_client = infra_client
        self.metrics = MetricsCollector(enabled=self.config.observability.metrics_enabled)
        self.diagnostics = DiagnosticsCollector(infra_client, workspace)
        self.sessions = SessionManager(
            timeout_seconds=self.config.sessions.timeout_seconds,
            sweep_interval_seconds=self.config.sessions.sweep_interval_seconds,
            max_sessions=self.config.sessions.max_sessions,
        )
        self.cache = ResourceCache(
            max_entries=self.config.cache.max_entries,
            default_ttl=self.config.cache.ttl_seconds,
        )
        self.resources = ResourceProvider(
            infra_client,
            workspace,
            log_source=log_source,
            metrics=self.metrics,
            diagnostics=self.diagnostics,
            cache=self.cache,
        )
        self.tools = ToolExecutor(
            infra_client,
            workspace,
            deployment_backend=deployment_backend,
            diagnostics=self.diagnostics,
            metrics=self.metrics,
            log_source=log_source,
            timeout=self.config.server.tool_timeout_seconds or None,
            on_change=self._on_infrastructure_change,
        )
        self.prompts = PromptRenderer(workspace)
        self.dispatcher = MessageDispatcher(
            self.resources, self.tools, self.prompts, self.sessions, metrics=self.metrics
        )

        self._listeners: list[Listener] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def listeners(self) -> list[Listener]:
        return list(self._listeners)

    def add_listener(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> bool:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event, self)
                if asyncio.iscoroutine(result):
                    asyncio.get_running_loop().create_task(result)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, event)

    async def start(self) -> bool:
        """Start background work.

        Returns:
            False if the server was already running
        """
        if self._running:
            logger.warning("MCP server already running")
            return False

        self.sessions.start()
        self._running = True
        logger.info(
            "MCP server started (workspace %s, %d tools, %d prompts)",
            self.workspace_path,
            len(self.tools.list_tools()),
            len(self.prompts.list_templates()),
        )
        self._emit("started")
        return True

    async def stop(self) -> bool:
        """Stop background work and drop sessions and cached resources.

        Returns:
            False if the server was not running
        """
        if not self._running:
            return False

        await self.sessions.stop()
        self.sessions.clear()
        self.cache.clear()
        self._running = False
        logger.info("MCP server stopped")
        self._emit("stopped")
        return True

    async def process(self, message: Any) -> dict[str, Any]:
        return await self.dispatcher.process(message)

    async def get_workspace_context(self) -> dict[str, Any]:
        """Workspace configuration plus current infrastructure counts."""
        return {
            "workspace": self.resources.workspace_configuration(),
            "infrastructure": await self.resources.get_infrastructure_state(),
            "sessions": len(self.sessions),
        }

    def apply_config(self, config: Config) -> None:
        """Reload callback: apply the settings that can change at runtime.

        The workspace path and HTTP binding are fixed for the life of the
        process.
        """
        if config.server.workspace_path != self.workspace_path:
            logger.warning("workspace_path changed; restart the server to apply it")

        self.sessions.timeout_seconds = config.sessions.timeout_seconds
        self.sessions.sweep_interval_seconds = config.sessions.sweep_interval_seconds
        self.sessions.max_sessions = config.sessions.max_sessions
        self.cache.default_ttl = config.cache.ttl_seconds
        self.tools.timeout = config.server.tool_timeout_seconds or None
        self.metrics.enabled = config.observability.metrics_enabled
        self.config = config

        logger.info("Applied reloaded configuration")
        self._emit("reloaded")

    def _on_infrastructure_change(self, tool: str) -> None:
        removed = self.resources.clear_cache(ResourceDomain.INFRASTRUCTURE)
        logger.debug("%s changed infrastructure; dropped %d cached results", tool, removed)
